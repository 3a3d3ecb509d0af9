from __future__ import annotations

from pathlib import Path

import duckdb
import pytest

from loadharness.metrics import AggregateResult
from loadharness.storage import PersistenceError, Storage


def _result(url: str = "http://target.test/load") -> AggregateResult:
    return AggregateResult(
        total_requests=10,
        total_errors=2,
        total_success=8,
        status_code_count={200: 8, 502: 2},
        total_users=2,
        total_duration_ms=1234.7,
        mttfb_average_ms=18.9,
        mttfb_percentiles={"p50": 15.2, "p90": 40.8},
        tps_average=8.1,
        tps_percentiles={"p50": 6.0},
        url=url,
    )


def test_save_and_fetch(tmp_path: Path) -> None:
    storage = Storage(tmp_path / "runs.duckdb")
    run_id = storage.save(_result())
    fetched = storage.fetch(run_id)
    assert fetched is not None
    assert fetched.run_id == run_id
    assert fetched.url == "http://target.test/load"
    assert fetched.method == "POST"
    assert fetched.status_code_count == {200: 8, 502: 2}
    assert fetched.total_duration_ms == 1234.0
    assert fetched.mttfb_average_ms == 18.0
    assert fetched.mttfb_percentiles == {"p50": 15.0, "p90": 40.0}
    assert fetched.tps_average == 8.1
    assert fetched.tps_percentiles == {"p50": 6.0}
    assert fetched.total_requests == fetched.total_errors + fetched.total_success


def test_ids_are_assigned_and_missing_runs_are_none(tmp_path: Path) -> None:
    storage = Storage(tmp_path / "runs.duckdb")
    first = storage.save(_result("http://a.test"))
    second = storage.save(_result("http://b.test"))
    assert second > first
    assert storage.fetch(second + 100) is None


def test_soft_delete_hides_run(tmp_path: Path) -> None:
    storage = Storage(tmp_path / "runs.duckdb")
    keep = storage.save(_result("http://keep.test"))
    drop = storage.save(_result("http://drop.test"))
    assert storage.soft_delete(drop)
    assert not storage.soft_delete(drop)
    assert storage.fetch(drop) is None
    runs = storage.list_runs()
    assert list(runs["id"]) == [keep]
    assert list(runs["url"]) == ["http://keep.test"]


def test_storage_reopens_existing_file(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "runs.duckdb"
    run_id = Storage(path).save(_result())
    assert Storage(path).fetch(run_id) is not None


def test_unusable_location_raises_persistence_error(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x")
    with pytest.raises(PersistenceError):
        Storage(blocker / "runs.duckdb")


def test_list_runs_wraps_database_errors(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    storage = Storage(tmp_path / "runs.duckdb")

    def broken_connect(self: Storage) -> duckdb.DuckDBPyConnection:
        raise duckdb.IOException("database is locked")

    monkeypatch.setattr(Storage, "_connect", broken_connect)
    with pytest.raises(PersistenceError):
        storage.list_runs()
