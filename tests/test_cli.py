from __future__ import annotations

from pathlib import Path

import pytest

from loadharness.cli import main
from loadharness.metrics import AggregateResult
from loadharness.storage import Storage


def _store_one(path: Path) -> int:
    return Storage(path).save(
        AggregateResult(
            total_requests=4,
            total_errors=1,
            total_success=3,
            status_code_count={200: 3, 500: 1},
            total_users=1,
            total_duration_ms=800.0,
            mttfb_average_ms=12.0,
            mttfb_percentiles={"p50": 11.0},
            tps_average=5.0,
            tps_percentiles={"p50": 4.0},
            url="http://target.test/load",
        )
    )


def test_list_empty(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["--db", str(tmp_path / "cli.duckdb"), "list"]) == 0
    assert "No runs stored" in capsys.readouterr().out


def test_show_and_delete(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    db = tmp_path / "cli.duckdb"
    run_id = _store_one(db)
    assert main(["--db", str(db), "show", str(run_id)]) == 0
    assert "Total Requests: 4" in capsys.readouterr().out
    assert main(["--db", str(db), "delete", str(run_id)]) == 0
    assert main(["--db", str(db), "show", str(run_id)]) == 1
    assert "not found" in capsys.readouterr().out


def test_run_requires_target() -> None:
    with pytest.raises(SystemExit):
        main(["run"])


def test_store_errors_are_reported(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x")
    assert main(["--db", str(blocker / "cli.duckdb"), "list"]) == 1
    assert "Result store error" in capsys.readouterr().out
