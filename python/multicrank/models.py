"""Pydantic models for market descriptors and crank requests."""

from typing import Dict, ItemsView, Optional

from pydantic import BaseModel, ConfigDict, Field, RootModel
from pydantic.alias_generators import to_camel


class Market(BaseModel):
    """Public description of one market.

    Serialized with camelCase keys (``programId``, ``baseTokenAccount``, ...),
    which is the format of both the HTTP API and the market-definition file.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    address: str
    deprecated: Optional[bool] = None
    name: Optional[str] = None
    program_id: str
    base_mint_address: Optional[str] = None
    quote_mint_address: Optional[str] = None
    base_token_account: str
    quote_token_account: str
    base_symbol: Optional[str] = None
    quote_symbol: Optional[str] = None


class Markets(RootModel[Dict[str, Market]]):
    """Market-definition file: a JSON object mapping market id to market."""

    def items(self) -> ItemsView[str, Market]:
        return self.root.items()


class CrankRequest(BaseModel):
    """Body of ``POST /start_crank``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    market_info: Market
    crank_duration: Optional[int] = Field(
        default=None, ge=0, description="Minutes to run for, forever if omitted"
    )
