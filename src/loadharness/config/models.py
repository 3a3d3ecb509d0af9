from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping


@dataclass(frozen=True, slots=True)
class RunRequest:
    url: str
    virtual_users: int
    requests_per_user: int
    method: str = "POST"  # accepted, not honored: the executor always POSTs

    def __post_init__(self) -> None:
        if not self.url:
            msg = "Run URL must not be empty"
            raise ValueError(msg)
        if self.virtual_users < 0:
            msg = f"virtual_users must be >= 0, got {self.virtual_users}"
            raise ValueError(msg)
        if self.requests_per_user < 0:
            msg = f"requests_per_user must be >= 0, got {self.requests_per_user}"
            raise ValueError(msg)

    @property
    def max_measurements(self) -> int:
        return self.virtual_users * self.requests_per_user


@dataclass(frozen=True, slots=True)
class HttpClientConfig:
    max_connections: int = 100
    max_keepalive_connections: int = 100
    keepalive_expiry_sec: float = 90.0
    timeout_sec: float = 10.0


@dataclass(frozen=True, slots=True)
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8080


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    path: Path = Path(".loadharness/loadharness.duckdb")


@dataclass(frozen=True, slots=True)
class AppConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    http: HttpClientConfig = field(default_factory=HttpClientConfig)

    def to_metadata(self) -> Mapping[str, Any]:
        return {
            "server": {"host": self.server.host, "port": self.server.port},
            "database": {"path": str(self.database.path)},
            "http": {
                "max_connections": self.http.max_connections,
                "max_keepalive_connections": self.http.max_keepalive_connections,
                "keepalive_expiry_sec": self.http.keepalive_expiry_sec,
                "timeout_sec": self.http.timeout_sec,
            },
        }
