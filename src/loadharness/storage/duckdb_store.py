from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

import duckdb
import pandas as pd

from loadharness.metrics import AggregateResult


class PersistenceError(Exception):
    pass


class ResultRepository(Protocol):
    def save(self, result: AggregateResult) -> int:
        ...

    def fetch(self, run_id: int) -> AggregateResult | None:
        ...


_COLUMNS = (
    "id, created_at, updated_at, deleted_at, url, method, total_requests, total_errors, "
    "total_success, status_code_count, total_users, total_duration, mttfb_average, "
    "mttfb_percentiles, tps_average, tps_percentiles"
)


@dataclass(slots=True)
class Storage:
    db_path: Path

    def __post_init__(self) -> None:
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._init_schema()
        except (OSError, duckdb.Error) as exc:
            msg = f"Cannot initialise result store at {self.db_path}"
            raise PersistenceError(msg) from exc

    def _connect(self) -> duckdb.DuckDBPyConnection:
        return duckdb.connect(str(self.db_path))

    def _init_schema(self) -> None:
        with self._connect() as con:
            con.execute("CREATE SEQUENCE IF NOT EXISTS run_results_id_seq START 1;")
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS run_results (
                    id BIGINT PRIMARY KEY DEFAULT nextval('run_results_id_seq'),
                    created_at TIMESTAMP,
                    updated_at TIMESTAMP,
                    deleted_at TIMESTAMP,
                    url TEXT,
                    method TEXT,
                    total_requests INTEGER,
                    total_errors INTEGER,
                    total_success INTEGER,
                    status_code_count TEXT,
                    total_users INTEGER,
                    total_duration BIGINT,
                    mttfb_average BIGINT,
                    mttfb_percentiles TEXT,
                    tps_average DOUBLE,
                    tps_percentiles TEXT
                );
                """
            )

    def save(self, result: AggregateResult) -> int:
        record = result.to_record()
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        try:
            with self._connect() as con:
                row = con.execute(
                    """
                    INSERT INTO run_results (
                        created_at, updated_at, deleted_at, url, method, total_requests,
                        total_errors, total_success, status_code_count, total_users,
                        total_duration, mttfb_average, mttfb_percentiles, tps_average,
                        tps_percentiles
                    ) VALUES (?, ?, NULL, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    RETURNING id
                    """,
                    [
                        now,
                        now,
                        record["url"],
                        record["method"],
                        record["total_requests"],
                        record["total_errors"],
                        record["total_success"],
                        json.dumps(record["status_code_count"]),
                        record["total_users"],
                        record["total_duration"],
                        record["mttfb_average"],
                        json.dumps(record["mttfb_percentiles"]),
                        record["tps_average"],
                        json.dumps(record["tps_percentiles"]),
                    ],
                ).fetchone()
        except duckdb.Error as exc:
            msg = f"Failed to store run for {result.url}"
            raise PersistenceError(msg) from exc
        if not row:
            msg = f"No id assigned to run for {result.url}"
            raise PersistenceError(msg)
        return int(row[0])

    def fetch(self, run_id: int) -> AggregateResult | None:
        try:
            with self._connect() as con:
                row = con.execute(
                    f"SELECT {_COLUMNS} FROM run_results WHERE id = ? AND deleted_at IS NULL",
                    [run_id],
                ).fetchone()
        except duckdb.Error as exc:
            msg = f"Failed to load run {run_id}"
            raise PersistenceError(msg) from exc
        if not row:
            return None
        return _row_to_result(row)

    def soft_delete(self, run_id: int) -> bool:
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        try:
            with self._connect() as con:
                found = con.execute(
                    "SELECT COUNT(*) FROM run_results WHERE id = ? AND deleted_at IS NULL",
                    [run_id],
                ).fetchone()
                if not found or found[0] == 0:
                    return False
                con.execute(
                    "UPDATE run_results SET deleted_at = ?, updated_at = ? WHERE id = ?",
                    [now, now, run_id],
                )
        except duckdb.Error as exc:
            msg = f"Failed to delete run {run_id}"
            raise PersistenceError(msg) from exc
        return True

    def list_runs(self) -> pd.DataFrame:
        try:
            with self._connect() as con:
                return con.execute(
                    """
                    SELECT id, created_at, url, method, total_requests, total_errors,
                           total_users, total_duration, tps_average
                    FROM run_results
                    WHERE deleted_at IS NULL
                    ORDER BY id DESC
                    """
                ).fetchdf()
        except duckdb.Error as exc:
            msg = "Failed to list runs"
            raise PersistenceError(msg) from exc


def _row_to_result(row: tuple[Any, ...]) -> AggregateResult:
    (
        run_id,
        _created_at,
        _updated_at,
        _deleted_at,
        url,
        method,
        total_requests,
        total_errors,
        total_success,
        status_code_count,
        total_users,
        total_duration,
        mttfb_average,
        mttfb_percentiles,
        tps_average,
        tps_percentiles,
    ) = row
    return AggregateResult(
        total_requests=total_requests,
        total_errors=total_errors,
        total_success=total_success,
        status_code_count={int(k): v for k, v in json.loads(status_code_count).items()},
        total_users=total_users,
        total_duration_ms=float(total_duration),
        mttfb_average_ms=float(mttfb_average),
        mttfb_percentiles={k: float(v) for k, v in json.loads(mttfb_percentiles).items()},
        tps_average=tps_average,
        tps_percentiles={k: float(v) for k, v in json.loads(tps_percentiles).items()},
        url=url,
        method=method,
        run_id=int(run_id),
    )
