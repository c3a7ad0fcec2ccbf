# backend/posledger/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # One local database per terminal (backend/instance/posledger.sqlite3)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///posledger.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    TERMINAL_ID = os.environ.get("TERMINAL_ID", "TERMINAL-01")

    # Cash rounding: grand totals are rounded to the nearest multiple of this (minor units)
    CASH_DENOMINATION_CENTS = int(os.environ.get("CASH_DENOMINATION_CENTS", "5"))

    # Outbox delivery
    SYNC_REMOTE_URL = os.environ.get("SYNC_REMOTE_URL")
    SYNC_TIMEOUT_SECONDS = float(os.environ.get("SYNC_TIMEOUT_SECONDS", "10"))
    SYNC_MAX_RETRIES = int(os.environ.get("SYNC_MAX_RETRIES", "10"))
    SYNC_BACKOFF_BASE_SECONDS = float(os.environ.get("SYNC_BACKOFF_BASE_SECONDS", "2"))
    SYNC_BACKOFF_MAX_SECONDS = float(os.environ.get("SYNC_BACKOFF_MAX_SECONDS", "300"))
    SYNC_INTERVAL_SECONDS = int(os.environ.get("SYNC_INTERVAL_SECONDS", "60"))
    SYNC_SCHEDULER_ENABLED = _env_bool("SYNC_SCHEDULER_ENABLED", False)
    CONNECTIVITY_PROBE_URL = os.environ.get("CONNECTIVITY_PROBE_URL")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
