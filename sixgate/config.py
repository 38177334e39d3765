"""
Shared configuration for SixGate.
"""

from __future__ import annotations

import logging
import os

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("sixgate")


def _get_bool(env_name: str, default: bool) -> bool:
    value = os.environ.get(env_name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(env_name: str, default: int) -> int:
    value = os.environ.get(env_name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_float(env_name: str, default: float) -> float:
    value = os.environ.get(env_name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


SERVICE_VERSION = "0.1.0"

# Database settings
DB_BACKEND = os.environ.get("DB_BACKEND", "postgres").strip().lower()
SQLITE_PATH = os.environ.get("SQLITE_PATH", "/data/sixgate.db")
DATABASE_URL = os.environ.get("DATABASE_URL")

# Database initialization controls
AUTO_MIGRATE_ON_STARTUP = _get_bool("AUTO_MIGRATE_ON_STARTUP", True)

# Result-size caps
DEFAULT_ENTITY_LIMIT = _get_int("SIXGATE_DEFAULT_ENTITY_LIMIT", 50)
MAX_ENTITY_LIMIT = _get_int("SIXGATE_MAX_ENTITY_LIMIT", 1000)
DEFAULT_TRANSACTION_LIMIT = _get_int("SIXGATE_DEFAULT_TRANSACTION_LIMIT", 100)
MAX_TRANSACTION_LIMIT = _get_int("SIXGATE_MAX_TRANSACTION_LIMIT", 1000)
RAW_TRANSACTION_PREVIEW = _get_int("SIXGATE_RAW_TRANSACTION_PREVIEW", 50)
RELATIONSHIP_LEVEL1_LIMIT = _get_int("SIXGATE_RELATIONSHIP_LEVEL1_LIMIT", 100)
RELATIONSHIP_LEVEL2_LIMIT = _get_int("SIXGATE_RELATIONSHIP_LEVEL2_LIMIT", 50)
MAX_RELATIONSHIP_DEPTH = _get_int("SIXGATE_MAX_RELATIONSHIP_DEPTH", 2)

# Smart codes
SMART_CODE_SEARCH_LIMIT = _get_int("SIXGATE_SMART_CODE_SEARCH_LIMIT", 10)
SMART_CODE_SCAN_LIMIT = _get_int("SIXGATE_SMART_CODE_SCAN_LIMIT", 5000)
DEFAULT_GL_LINE_SMART_CODE = os.environ.get(
    "SIXGATE_DEFAULT_GL_LINE_SMART_CODE",
    "HERA.ACCOUNTING.GL.LINE.v1",
).strip()

# Ledger & aggregation
GL_TOLERANCE = _get_float("SIXGATE_GL_TOLERANCE", 0.01)
DEFAULT_LOOKBACK_DAYS = _get_int("SIXGATE_DEFAULT_LOOKBACK_DAYS", 30)
WEEK_START = os.environ.get("SIXGATE_WEEK_START", "sunday").strip().lower()

# Input limits
MAX_SHORT_TEXT_LENGTH = _get_int("SIXGATE_MAX_SHORT_TEXT_LENGTH", 255)
MAX_METADATA_BYTES = _get_int("SIXGATE_MAX_METADATA_BYTES", 20000)
MAX_LIST_ITEMS = _get_int("SIXGATE_MAX_LIST_ITEMS", 50)
MAX_TRANSACTION_LINES = _get_int("SIXGATE_MAX_TRANSACTION_LINES", 500)
TOOL_INVENTORY_RETRY_SECONDS = _get_int("SIXGATE_TOOL_INVENTORY_RETRY_SECONDS", 5)


def validate_and_prepare_config() -> None:
    """Validate configuration and apply derived settings at startup."""
    global DATABASE_URL

    errors = []
    if DB_BACKEND not in {"postgres", "sqlite"}:
        errors.append("DB_BACKEND must be 'postgres' or 'sqlite'")

    if WEEK_START not in {"sunday", "monday"}:
        errors.append("SIXGATE_WEEK_START must be 'sunday' or 'monday'")

    if GL_TOLERANCE < 0:
        errors.append("SIXGATE_GL_TOLERANCE must not be negative")

    if MAX_RELATIONSHIP_DEPTH < 1:
        errors.append("SIXGATE_MAX_RELATIONSHIP_DEPTH must be at least 1")

    if RAW_TRANSACTION_PREVIEW > MAX_TRANSACTION_LIMIT:
        errors.append(
            "SIXGATE_RAW_TRANSACTION_PREVIEW must not exceed SIXGATE_MAX_TRANSACTION_LIMIT"
        )

    if not DATABASE_URL:
        if DB_BACKEND == "sqlite":
            if not SQLITE_PATH:
                errors.append("SQLITE_PATH environment variable is required for sqlite")
            else:
                DATABASE_URL = f"sqlite:///{SQLITE_PATH}"
        else:
            errors.append("DATABASE_URL environment variable is required")
    else:
        url_lower = DATABASE_URL.lower()
        is_sqlite_url = url_lower.startswith("sqlite")
        if DB_BACKEND == "sqlite" and not is_sqlite_url:
            errors.append("DATABASE_URL must be a sqlite URL when DB_BACKEND=sqlite")
        if DB_BACKEND == "postgres" and is_sqlite_url:
            errors.append("DATABASE_URL must be a postgres URL when DB_BACKEND=postgres")

    if errors:
        raise RuntimeError("Configuration invalid: " + "; ".join(errors))
