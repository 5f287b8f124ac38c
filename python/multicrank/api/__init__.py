"""HTTP surface of the crank supervisor."""

from .app import create_app
from .routes import router

__all__ = ["create_app", "router"]
