from __future__ import annotations

from loadharness.config.models import (
    AppConfig,
    DatabaseConfig,
    HttpClientConfig,
    RunRequest,
    ServerConfig,
)

__all__ = [
    "AppConfig",
    "DatabaseConfig",
    "HttpClientConfig",
    "RunRequest",
    "ServerConfig",
]
