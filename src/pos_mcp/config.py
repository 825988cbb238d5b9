# POS MCP Server
# File: config.py
# Version: v1

"""Configuration loading for the POS MCP Server."""

from __future__ import annotations

from dataclasses import dataclass
import os


def _parse_bool_env(name: str, default: bool = False) -> bool:
    """Parse a boolean-like environment variable.

    Accepts 1/0, true/false, yes/no, on/off (case-insensitive).
    """
    val = os.getenv(name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "on"}


def _parse_int_env(
    name: str,
    default: int,
    min_value: int | None = None,
    max_value: int | None = None,
) -> int:
    """Parse an int environment variable with clamping and safe fallback."""
    raw = os.getenv(name)
    if raw is None or not str(raw).strip():
        value = int(default)
    else:
        try:
            value = int(str(raw).strip())
        except ValueError:
            value = int(default)

    if min_value is not None and value < min_value:
        value = min_value
    if max_value is not None and value > max_value:
        value = max_value

    return value


@dataclass
class PosConfig:
    """Connection settings and guardrails for the POS database gateway."""

    host: str = "localhost"
    port: int = 3306
    user: str = "developer"
    password: str = "developer"
    database: str = ""

    connection_limit: int = 10
    connect_timeout: int = 10

    # Tool guardrails
    max_rows: int = 100
    acquire_timeout_seconds: int = 30
    query_timeout_seconds: int = 30
    max_pending: int = 0
    shutdown_grace_seconds: int = 10

    mock_mode: bool = False
    debug: bool = False

    @property
    def log_level(self) -> str:
        return "DEBUG" if self.debug else "INFO"

    @classmethod
    def from_env(cls) -> "PosConfig":
        """Create configuration from environment variables."""
        return cls(
            host=os.getenv("MYSQL_HOST") or "localhost",
            port=_parse_int_env("MYSQL_PORT", default=3306, min_value=1, max_value=65535),
            user=os.getenv("MYSQL_USER") or "developer",
            password=os.getenv("MYSQL_PASSWORD") or "developer",
            database=os.getenv("MYSQL_DATABASE") or "",
            connection_limit=_parse_int_env(
                "MYSQL_CONNECTION_LIMIT", default=10, min_value=1, max_value=100
            ),
            connect_timeout=_parse_int_env(
                "MYSQL_CONNECT_TIMEOUT", default=10, min_value=1, max_value=300
            ),
            max_rows=_parse_int_env("POS_MAX_ROWS", default=100, min_value=1, max_value=10000),
            acquire_timeout_seconds=_parse_int_env(
                "POS_ACQUIRE_TIMEOUT_SECONDS", default=30, min_value=1, max_value=3600
            ),
            query_timeout_seconds=_parse_int_env(
                "POS_QUERY_TIMEOUT_SECONDS", default=30, min_value=1, max_value=3600
            ),
            max_pending=_parse_int_env("POS_MAX_PENDING", default=0, min_value=0, max_value=100000),
            shutdown_grace_seconds=_parse_int_env(
                "POS_SHUTDOWN_GRACE_SECONDS", default=10, min_value=0, max_value=600
            ),
            mock_mode=_parse_bool_env("POS_MOCK_MODE", default=False),
            debug=_parse_bool_env("DEBUG", default=False),
        )

    def describe(self) -> str:
        """Human-readable target used in log lines (never includes the password)."""
        if self.mock_mode:
            return "mock POS database"
        return f"{self.database or '<default>'}@{self.host}:{self.port}"
