"""Environment-driven settings.

Values are read on every call so tests can override them with monkeypatch.
"""

from __future__ import annotations

import os
from pathlib import Path

DEFAULT_AUDIT_DB_PATH = str(Path("instance") / "audit.db")
DEFAULT_RECALC_INTERVAL_S = 60.0
DEFAULT_TIMEOUT_S = 10.0
DEFAULT_PARSE_TIMEOUT_S = 15.0


def _env_float(name: str, default: float, min_value: float, max_value: float) -> float:
    try:
        parsed = float(os.environ.get(name, default))
    except (TypeError, ValueError):
        parsed = default
    return max(min_value, min(max_value, parsed))


def secret_key() -> str:
    return os.environ.get("APP_SECRET_KEY", "dev-only-change-me")


def audit_db_path() -> str:
    return os.environ.get("SAFENIGHT_AUDIT_DB_PATH", DEFAULT_AUDIT_DB_PATH)


def audit_key() -> bytes:
    # Falls back to the app secret so a bare dev setup still signs entries.
    return os.environ.get("SAFENIGHT_AUDIT_KEY", secret_key()).encode("utf-8")


def recalc_interval_s() -> float:
    return _env_float("SAFENIGHT_RECALC_INTERVAL_S", DEFAULT_RECALC_INTERVAL_S, 1.0, 3600.0)


def location_timeout_s() -> float:
    return _env_float("SAFENIGHT_LOCATION_TIMEOUT_S", DEFAULT_TIMEOUT_S, 0.1, 120.0)


def audit_timeout_s() -> float:
    return _env_float("SAFENIGHT_AUDIT_TIMEOUT_S", DEFAULT_TIMEOUT_S, 0.1, 120.0)


def notify_timeout_s() -> float:
    return _env_float("SAFENIGHT_NOTIFY_TIMEOUT_S", DEFAULT_TIMEOUT_S, 0.1, 120.0)


def parse_timeout_s() -> float:
    return _env_float("SAFENIGHT_PARSE_TIMEOUT_S", DEFAULT_PARSE_TIMEOUT_S, 0.1, 120.0)


def log_level() -> str:
    return os.environ.get("SAFENIGHT_LOG_LEVEL", "INFO").upper()
