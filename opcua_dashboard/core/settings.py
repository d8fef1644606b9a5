from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import List


def _env_bool(key: str, default: str = "1") -> bool:
    return os.getenv(key, default).strip().lower() not in ("0", "false", "no", "off")


def _env_int(key: str, default: str) -> int:
    raw = os.getenv(key, default)
    try:
        return int(str(raw).strip())
    except ValueError:
        return int(default)


def _env_float(key: str, default: str) -> float:
    raw = os.getenv(key, default)
    try:
        return float(str(raw).strip())
    except ValueError:
        return float(default)


def _env_list(key: str, default: str = "") -> List[str]:
    raw = os.getenv(key, default).strip()
    if not raw:
        return []
    if raw == "*":
        return ["*"]
    if raw.startswith("["):
        try:
            v = json.loads(raw)
            if isinstance(v, list):
                return [str(x) for x in v if str(x).strip()]
        except json.JSONDecodeError:
            pass
    return [x.strip() for x in raw.split(",") if x.strip()]


@dataclass(frozen=True, slots=True)
class Settings:
    env: str = field(default_factory=lambda: os.getenv("ENV", "dev").strip())
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").strip().upper())

    # Database
    database_url: str = field(default_factory=lambda: os.getenv("DATABASE_URL", "sqlite:///./opcua_dashboard.db"))
    db_echo: bool = field(default_factory=lambda: _env_bool("DB_ECHO", "0"))
    # NOTE: In production, use Alembic migrations (alembic upgrade head). AUTO_CREATE_DB is a dev/test escape hatch.
    auto_create_db: bool = field(default_factory=lambda: _env_bool("AUTO_CREATE_DB", "0"))

    # The dashboard UI is usually served from another origin in development.
    cors_allow_origins: List[str] = field(default_factory=lambda: _env_list("CORS_ALLOW_ORIGINS", "*"))
    cors_allow_methods: List[str] = field(default_factory=lambda: _env_list("CORS_ALLOW_METHODS", "GET,POST,PUT,DELETE,OPTIONS"))
    cors_allow_headers: List[str] = field(default_factory=lambda: _env_list("CORS_ALLOW_HEADERS", "Content-Type"))

    # Upload
    max_upload_bytes: int = field(default_factory=lambda: _env_int("MAX_UPLOAD_BYTES", str(5 * 1024 * 1024)))

    # Bit rows synthesized for multi-bit registers uploaded without bit metadata
    bit_fallback_enabled: bool = field(default_factory=lambda: _env_bool("BIT_FALLBACK_ENABLED", "1"))
    bit_fallback_suffixes: List[str] = field(default_factory=lambda: _env_list("BIT_FALLBACK_SUFFIXES", "_BC"))
    bit_fallback_count: int = field(default_factory=lambda: _env_int("BIT_FALLBACK_COUNT", "8"))

    # Simulated live values
    enable_live_simulation: bool = field(default_factory=lambda: _env_bool("ENABLE_LIVE_SIMULATION", "1"))
    live_update_interval_s: float = field(default_factory=lambda: _env_float("LIVE_UPDATE_INTERVAL_S", "1"))

    opcua_namespace_index: int = field(default_factory=lambda: _env_int("OPCUA_NAMESPACE_INDEX", "2"))
