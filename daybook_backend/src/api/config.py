from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class AppConfig:
    """
    Application configuration loaded from environment variables.

    Env vars:
    - PERSISTENCE_BACKEND: 'memory' (default) or 'sqlite'
    - SQLITE_DB_PATH: path to sqlite db file. Default './data/daybook.db'
    - CORS_ALLOW_ORIGINS: comma-separated list of allowed origins; '*' by default
    - ENABLE_BASIC_AUTH: 'true' to enable optional HTTP Basic Auth (default: false)
    - BASIC_AUTH_USERNAME: username for basic auth (required when ENABLE_BASIC_AUTH=true)
    - BASIC_AUTH_PASSWORD: password for basic auth (required when ENABLE_BASIC_AUTH=true)
    - REMINDER_CHECK_ENABLED: run the reminder check loop with the app (default: true)
    - REMINDER_CHECK_INTERVAL_SECONDS: seconds between reminder checks (default: 60)
    - NOTIFICATION_OUTBOX_SIZE: max queued notifications awaiting the client (default: 100)
    - LOG_LEVEL: root log level name (default: INFO)
    - HOST / PORT: bind address for run.py (default: 127.0.0.1 / 8000)
    """

    persistence_backend: str
    sqlite_db_path: str
    cors_allow_origins: List[str]
    enable_basic_auth: bool
    basic_auth_username: Optional[str]
    basic_auth_password: Optional[str]
    reminder_check_enabled: bool = True
    reminder_check_interval_seconds: float = 60.0
    notification_outbox_size: int = 100
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8000


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name, default)
    if value is None or value == "":
        return default
    return value


def _parse_bool(value: str, default: bool = False) -> bool:
    v = value.strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_positive_float(value: str, default: float) -> float:
    try:
        parsed = float(value.strip())
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _parse_positive_int(value: str, default: int) -> int:
    try:
        parsed = int(value.strip())
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _parse_origins(origins_value: str) -> List[str]:
    """
    Parse CORS origins from env. Supports:
    - '*' to allow all origins
    - Comma-separated list of origins
    """
    value = origins_value.strip()
    if value == "*":
        return ["*"]
    return [o.strip() for o in value.split(",") if o.strip()]


# PUBLIC_INTERFACE
def get_config() -> AppConfig:
    """Return application configuration loaded from environment variables."""
    backend = _get_env("PERSISTENCE_BACKEND", "memory").strip().lower()
    if backend not in {"memory", "sqlite"}:
        # Fallback to memory if unsupported
        backend = "memory"

    sqlite_path = _get_env("SQLITE_DB_PATH", "./data/daybook.db").strip()
    origins = _parse_origins(_get_env("CORS_ALLOW_ORIGINS", "*"))

    enable_basic_auth = _parse_bool(_get_env("ENABLE_BASIC_AUTH", "false"), False)
    basic_user = os.getenv("BASIC_AUTH_USERNAME") if enable_basic_auth else None
    basic_pass = os.getenv("BASIC_AUTH_PASSWORD") if enable_basic_auth else None

    return AppConfig(
        persistence_backend=backend,
        sqlite_db_path=sqlite_path,
        cors_allow_origins=origins,
        enable_basic_auth=enable_basic_auth,
        basic_auth_username=basic_user,
        basic_auth_password=basic_pass,
        reminder_check_enabled=_parse_bool(_get_env("REMINDER_CHECK_ENABLED", "true"), True),
        reminder_check_interval_seconds=_parse_positive_float(
            _get_env("REMINDER_CHECK_INTERVAL_SECONDS", "60"), 60.0
        ),
        notification_outbox_size=_parse_positive_int(_get_env("NOTIFICATION_OUTBOX_SIZE", "100"), 100),
        log_level=_get_env("LOG_LEVEL", "INFO").strip().upper(),
        host=_get_env("HOST", "127.0.0.1").strip(),
        port=_parse_positive_int(_get_env("PORT", "8000"), 8000),
    )
