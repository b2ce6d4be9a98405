from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from assistline.core.env import load_env


PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_USER_DATA_DIR = Path.home() / ".assistline" / "data"

DEFAULT_RESPONSE_DEADLINE_HOURS = 2


@dataclass(frozen=True)
class Settings:
    environment: str  # development, production, staging, test
    data_dir: Path
    database_url_async: str
    database_url_sync: str
    sql_echo: bool
    log_level: str
    log_json: bool
    log_file: str
    timezone: str
    response_deadline_hours: int
    auto_escalation_enabled: bool
    escalation_interval_seconds: int
    max_recurrence_occurrences: int
    api_docs_enabled: bool
    db_pool_size: int
    db_max_overflow: int
    db_pool_timeout: int
    db_pool_recycle: int


def _get_int(name: str, default: int, *, minimum: Optional[int] = None) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw.strip())
    except (TypeError, ValueError):
        return default
    if minimum is not None and value < minimum:
        return default
    return value


def _get_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


load_env()


def _default_data_dir() -> Path:
    env_dir = os.getenv("DATA_DIR")
    if env_dir and env_dir.strip():
        return Path(env_dir).expanduser()
    return DEFAULT_USER_DATA_DIR


def _normalize_sqlite_url(url: str, *, async_driver: bool) -> str:
    if not url:
        return url
    prefix = "sqlite+aiosqlite" if async_driver else "sqlite"
    if url.startswith("sqlite+aiosqlite") or url.startswith("sqlite"):
        path = url.split("///", maxsplit=1)[-1]
        return f"{prefix}:///{path}"
    return url


def _resolve_timezone(raw: str) -> str:
    name = (raw or "").strip() or "UTC"
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logging.warning("Unknown TZ %r, falling back to UTC", name)
        return "UTC"
    return name


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    environment = os.getenv("ENVIRONMENT", "development").strip().lower()
    if environment not in {"development", "production", "staging", "test"}:
        environment = "development"

    data_dir = _default_data_dir()
    data_dir.mkdir(parents=True, exist_ok=True)

    db_url_env = (os.getenv("DATABASE_URL") or "").strip()
    raw_db_url = db_url_env or f"sqlite+aiosqlite:///{data_dir / 'assistline.db'}"

    sync_url = raw_db_url
    if raw_db_url.startswith("sqlite"):
        sync_url = _normalize_sqlite_url(raw_db_url, async_driver=False)
    elif raw_db_url.startswith("postgresql+asyncpg"):
        sync_url = raw_db_url.replace("+asyncpg", "")
    async_url = _normalize_sqlite_url(raw_db_url, async_driver=True)

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"
    log_json = _get_bool("LOG_JSON", default=False)
    log_file = os.getenv("LOG_FILE", "").strip()
    if not log_file:
        log_dir = data_dir / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = str(log_dir / "assistline.log")

    return Settings(
        environment=environment,
        data_dir=data_dir,
        database_url_async=async_url,
        database_url_sync=sync_url,
        sql_echo=os.getenv("SQL_ECHO", "0") in {"1", "true", "True"},
        log_level=log_level,
        log_json=log_json,
        log_file=log_file,
        timezone=_resolve_timezone(os.getenv("TZ", "UTC")),
        response_deadline_hours=_get_int(
            "RESPONSE_DEADLINE_HOURS", DEFAULT_RESPONSE_DEADLINE_HOURS, minimum=1
        ),
        auto_escalation_enabled=_get_bool("AUTO_ESCALATION_ENABLED", default=False),
        escalation_interval_seconds=_get_int("ESCALATION_INTERVAL_SECONDS", 300, minimum=10),
        max_recurrence_occurrences=_get_int("MAX_RECURRENCE_OCCURRENCES", 26, minimum=1),
        api_docs_enabled=_get_bool("API_DOCS_ENABLED", default=environment != "production"),
        db_pool_size=_get_int("DB_POOL_SIZE", 20, minimum=1),
        db_max_overflow=_get_int("DB_MAX_OVERFLOW", 10, minimum=0),
        db_pool_timeout=_get_int("DB_POOL_TIMEOUT", 30, minimum=1),
        db_pool_recycle=_get_int("DB_POOL_RECYCLE", 3600, minimum=60),
    )
