"""Runtime settings read from the environment.

Every process (API server, MCP adapter, CLI) builds one ``Settings`` via
``load_settings()``; nothing else reads ``os.environ`` directly.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS: tuple[str, ...] = ("http://localhost:5173", "http://localhost:5174")


def _parse_csv(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        logger.warning("Unparseable %s=%r, falling back to %d", name, raw, default)
        return default


@dataclass(frozen=True)
class Settings:
    database_path: Path = Path("database.sqlite")
    auth_base_url: str = "http://localhost:3000"
    cors_origins: list[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 3000
    mcp_port: int = 4000
    api_base_url: str = "http://localhost:3000/api"
    api_key: str = ""
    environment: str = "development"
    log_dir: Path | None = None
    session_ttl_days: int = 7

    @property
    def is_test(self) -> bool:
        return self.environment == "test"


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Build ``Settings`` from *env* (default ``os.environ``)."""
    env = os.environ if env is None else env

    cors_raw = env.get("CORS_ORIGINS", "")
    cors_origins = _parse_csv(cors_raw) or list(DEFAULT_CORS_ORIGINS)

    session_ttl_days = _env_int(env, "SESSION_TTL_DAYS", 7)
    if session_ttl_days < 1:
        logger.warning("SESSION_TTL_DAYS must be positive, got %d; using 7", session_ttl_days)
        session_ttl_days = 7

    log_dir_raw = env.get("LOG_DIR", "").strip()

    return Settings(
        database_path=Path(env.get("DATABASE_PATH", "").strip() or "database.sqlite"),
        auth_base_url=env.get("AUTH_BASE_URL", "").strip() or "http://localhost:3000",
        cors_origins=cors_origins,
        host=env.get("HOST", "").strip() or "0.0.0.0",  # noqa: S104
        port=_env_int(env, "PORT", 3000),
        mcp_port=_env_int(env, "MCP_PORT", 4000),
        api_base_url=(env.get("API_BASE_URL", "").strip() or "http://localhost:3000/api").rstrip("/"),
        api_key=env.get("ISSUES_TRACKER_API_KEY", "").strip(),
        environment=env.get("ISSUES_TRACKER_ENV", "").strip().lower() or "development",
        log_dir=Path(log_dir_raw) if log_dir_raw else None,
        session_ttl_days=session_ttl_days,
    )
