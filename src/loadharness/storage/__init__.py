from __future__ import annotations

from loadharness.config import DatabaseConfig
from loadharness.storage.duckdb_store import PersistenceError, ResultRepository, Storage


def default_storage(config: DatabaseConfig | None = None) -> Storage:
    return Storage((config or DatabaseConfig()).path)


__all__ = ["PersistenceError", "ResultRepository", "Storage", "default_storage"]
