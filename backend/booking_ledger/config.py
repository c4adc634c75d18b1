# backend/booking_ledger/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///booking_ledger.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Backing store must give up instead of blocking an event indefinitely
    STORE_TIMEOUT_SECONDS = float(os.environ.get("STORE_TIMEOUT_SECONDS", "5"))
    WRITE_RETRY_ATTEMPTS = int(os.environ.get("WRITE_RETRY_ATTEMPTS", "3"))

    # Zone that defines an appointment's calendar day
    SCHEDULE_TIMEZONE = os.environ.get("SCHEDULE_TIMEZONE", "UTC")
    DEFAULT_SERVICE_DURATION_MINUTES = 60

    FIFO_BATCH_CONSUMPTION = _env_bool("FIFO_BATCH_CONSUMPTION", False)


def engine_options_for(uri: str, timeout_seconds: float) -> dict:
    """Driver-level timeouts so a stuck store fails the whole event."""
    if uri.startswith("sqlite"):
        return {"connect_args": {"timeout": timeout_seconds}}
    if uri.startswith("postgresql"):
        ms = int(timeout_seconds * 1000)
        return {
            "connect_args": {
                "connect_timeout": max(1, int(timeout_seconds)),
                "options": f"-c statement_timeout={ms} -c lock_timeout={ms}",
            },
            "pool_pre_ping": True,
        }
    return {"pool_pre_ping": True}
