from __future__ import annotations

import inspect
from pathlib import Path
from typing import Iterator

import httpx
import pytest
from fastapi.testclient import TestClient

from loadharness.api import create_app
from loadharness.config import AppConfig, DatabaseConfig
from loadharness.metrics import AggregateResult
from loadharness.storage import PersistenceError, Storage

BODY = {"url": "http://target.test/load", "method": "POST", "numUsers": 2, "numReqs": 3}


def _transport(status: int = 200) -> httpx.MockTransport:
    return httpx.MockTransport(lambda request: httpx.Response(status, json={"ok": True}))


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    return AppConfig(database=DatabaseConfig(path=tmp_path / "api.duckdb"))


@pytest.fixture
def client(config: AppConfig) -> Iterator[TestClient]:
    app = create_app(config, transport=_transport())
    with TestClient(app) as test_client:
        yield test_client


def test_trigger_run_and_fetch(client: TestClient) -> None:
    response = client.post("/test", json=BODY)
    assert response.status_code == 200
    payload = response.json()
    assert payload["result"]["total_requests"] == 6
    assert payload["result"]["total_success"] == 6
    assert payload["result"]["status_code_count"] == {"200": 6}
    assert payload["result"]["method"] == "POST"
    run_id = payload["run_id"]
    assert isinstance(run_id, int)

    stored = client.get(f"/runs/{run_id}")
    assert stored.status_code == 200
    assert stored.json()["result"]["total_requests"] == 6

    listing = client.get("/runs")
    assert listing.status_code == 200
    assert [row["id"] for row in listing.json()] == [run_id]


def test_malformed_body_is_rejected(client: TestClient) -> None:
    response = client.post("/test", content=b"{not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Failed to decode request body"


@pytest.mark.parametrize(
    "body",
    [
        {"url": "http://target.test", "numReqs": 3},
        {"url": "http://target.test", "numUsers": -1, "numReqs": 3},
        {"url": "", "numUsers": 1, "numReqs": 1},
    ],
)
def test_invalid_fields_are_rejected(client: TestClient, body: dict[str, object]) -> None:
    assert client.post("/test", json=body).status_code == 400


def test_only_post_triggers_a_run(client: TestClient) -> None:
    assert client.get("/test").status_code == 405


def test_unknown_run_is_404(client: TestClient) -> None:
    assert client.get("/runs/999").status_code == 404


def test_zero_user_trigger(client: TestClient) -> None:
    response = client.post("/test", json={**BODY, "numUsers": 0})
    assert response.status_code == 200
    result = response.json()["result"]
    assert result["total_requests"] == 0
    assert result["mttfb_percentiles"] == {}


class _FailingStorage(Storage):
    def save(self, result: AggregateResult) -> int:
        raise PersistenceError("disk full")


def test_persistence_failure_returns_500_with_result(config: AppConfig) -> None:
    app = create_app(config, storage=_FailingStorage(config.database.path), transport=_transport(500))
    with TestClient(app) as client:
        response = client.post("/test", json=BODY)
    assert response.status_code == 500
    payload = response.json()
    assert payload["error"] == "disk full"
    assert payload["run_id"] is None
    assert payload["result"]["total_errors"] == 6


class _UnreadableStorage(Storage):
    def list_runs(self):
        raise PersistenceError("database is locked")


def test_list_failure_returns_500(config: AppConfig) -> None:
    app = create_app(config, storage=_UnreadableStorage(config.database.path), transport=_transport())
    with TestClient(app) as client:
        response = client.get("/runs")
    assert response.status_code == 500
    assert response.json()["detail"] == "database is locked"


def test_store_reads_run_in_threadpool(client: TestClient) -> None:
    endpoints = {route.path: route.endpoint for route in client.app.routes if hasattr(route, "endpoint")}
    assert not inspect.iscoroutinefunction(endpoints["/runs"])
    assert not inspect.iscoroutinefunction(endpoints["/runs/{run_id}"])
