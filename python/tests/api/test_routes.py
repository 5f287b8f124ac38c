"""Integration tests for the HTTP API using a real FastAPI app."""

import json
import threading
from pathlib import Path
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from multicrank.api.app import create_app
from multicrank.config import SupervisorConfig
from multicrank.exceptions import SignalFailedError
from multicrank.supervisor.persistence import PersistenceStore
from multicrank.supervisor.registry import RegistryGuard


def crank_request(market, crank_duration=None):
    body = {"marketInfo": market.model_dump(by_alias=True, exclude_none=True)}
    if crank_duration is not None:
        body["crankDuration"] = crank_duration
    return body


@pytest.fixture
def store(params):
    return PersistenceStore(params.persist)


@pytest.fixture
def config():
    return SupervisorConfig(reconcile_interval=3600)


@pytest.fixture
def client(registry, store, config):
    app = create_app(RegistryGuard(registry), store, config)
    with TestClient(app) as client:
        yield client


class TestStartCrank:
    """Test POST /start_crank."""

    def test_start_then_list(self, client, market_factory):
        response = client.post("/start_crank", json=crank_request(market_factory("M1"), 5))

        assert response.status_code == 200
        assert response.content == b""

        active = client.get("/active_cranks")
        assert active.status_code == 200
        body = active.json()
        assert [m["address"] for m in body] == ["M1"]
        assert body[0]["programId"] == "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin"
        assert body[0]["baseTokenAccount"] == "M1-base-account"
        assert body[0]["deprecated"] is False

    def test_duplicate_returns_conflict(self, client, market_factory, registry):
        client.post("/start_crank", json=crank_request(market_factory("M1")))

        response = client.post("/start_crank", json=crank_request(market_factory("M1")))

        assert response.status_code == 409
        assert "M1" in response.json()["detail"]
        assert len(registry) == 1

    def test_spawn_failure_returns_server_error(self, client, market_factory, registry):
        registry.params.crank = Path("/nonexistent/crank")

        response = client.post("/start_crank", json=crank_request(market_factory("M1")))

        assert response.status_code == 500
        assert "could not spawn" in response.json()["detail"]
        assert client.get("/active_cranks").json() == []

    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"marketInfo": {"address": "M1"}},
            {
                "marketInfo": {
                    "address": "M1",
                    "programId": "p",
                    "baseTokenAccount": "b",
                    "quoteTokenAccount": "q",
                },
                "crankDuration": -1,
            },
        ],
        ids=["empty", "incomplete_market", "negative_duration"],
    )
    def test_invalid_body_is_rejected(self, client, body, registry):
        response = client.post("/start_crank", json=body)

        assert response.status_code == 422
        assert len(registry) == 0


class TestActiveCranks:
    """Test GET /active_cranks."""

    def test_empty(self, client):
        response = client.get("/active_cranks")

        assert response.status_code == 200
        assert response.json() == []


class TestPurge:
    """Test GET /purge/{market_id}."""

    def test_purge_returns_removed_market(self, client, market_factory, registry, wait_exit):
        client.post("/start_crank", json=crank_request(market_factory("M1")))
        handle = registry.get("M1").handle

        response = client.get("/purge/M1")

        assert response.status_code == 200
        assert response.json()["address"] == "M1"
        assert response.json()["quoteTokenAccount"] == "M1-quote-account"
        assert client.get("/active_cranks").json() == []
        assert wait_exit(handle)

    def test_purge_unknown_returns_not_found(self, client):
        response = client.get("/purge/unknown")

        assert response.status_code == 404
        assert response.json()["detail"] == "no market with id unknown"

    def test_purge_signal_failure_returns_server_error(
        self, client, market_factory, registry
    ):
        client.post("/start_crank", json=crank_request(market_factory("M1")))
        crank = registry.get("M1")

        with patch.object(crank.handle, "kill", side_effect=SignalFailedError("denied")):
            response = client.get("/purge/M1")

        assert response.status_code == 500
        assert "M1" in registry


class TestLogs:
    """Test GET /logs/{market_id}."""

    def test_logs_not_implemented(self, client):
        response = client.get("/logs/M1")

        assert response.status_code == 501


class TestLifespan:
    """Test startup and shutdown behaviour."""

    def test_shutdown_snapshots_and_halts(
        self, registry, store, config, market_factory, wait_exit
    ):
        app = create_app(RegistryGuard(registry), store, config)
        with TestClient(app) as client:
            client.post("/start_crank", json=crank_request(market_factory("M1"), 5))
            handle = registry.get("M1").handle

        document = json.loads(store.state_path.read_text())
        assert document["cranks"]["M1"]["should_run_for"] == 5
        assert wait_exit(handle)
        assert "M1" in registry

    def test_shutdown_without_halting(self, registry, store, market_factory):
        config = SupervisorConfig(reconcile_interval=3600, halt_on_shutdown=False)
        app = create_app(RegistryGuard(registry), store, config)
        with TestClient(app) as client:
            client.post("/start_crank", json=crank_request(market_factory("M1")))

        assert registry.get("M1").is_running
        assert store.state_path.exists()

    def test_app_state_wiring(self, registry, store, config):
        guard = RegistryGuard(registry)
        app = create_app(guard, store, config)

        assert app.state.registry_guard is guard
        assert app.state.store is store
        assert app.state.reconciler.interval == 3600

    def test_shutdown_snapshot_written_off_event_loop(
        self, registry, store, config, market_factory
    ):
        app = create_app(RegistryGuard(registry), store, config)
        writer_threads = []
        original_write = store.write

        def recording_write(document):
            writer_threads.append(threading.get_ident())
            return original_write(document)

        with patch.object(store, "write", side_effect=recording_write):
            with TestClient(app) as client:
                client.post("/start_crank", json=crank_request(market_factory("M1")))
                client.get("/purge/M1")
                loop_thread = client.portal.call(threading.get_ident)

        assert writer_threads
        assert writer_threads[-1] != loop_thread
        assert json.loads(store.state_path.read_text())["cranks"] == {}
