# backend/shopsync/config.py
from __future__ import annotations
import os


def _int_env(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///shopsync.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Push admission control: batches above this record count get 413
    SYNC_MAX_BATCH_RECORDS = _int_env("SYNC_MAX_BATCH_RECORDS", 500)
    SYNC_MAX_LINE_ITEMS = _int_env("SYNC_MAX_LINE_ITEMS", 200)
    # Records not reached before the deadline are reported as skipped ("timeout")
    SYNC_PUSH_DEADLINE_SECONDS = float(os.environ.get("SYNC_PUSH_DEADLINE_SECONDS", "25"))
    # Returned server_time lags the clock by this much so rows whose write was
    # still uncommitted during a pull are picked up by the next delta.
    # Must exceed the longest write transaction.
    SYNC_WATERMARK_OVERLAP_SECONDS = float(os.environ.get("SYNC_WATERMARK_OVERLAP_SECONDS", "60"))

    PAGE_SIZE = _int_env("PAGE_SIZE", 50)

    # "net 15" default payment terms
    INVOICE_DEFAULT_TERMS_DAYS = _int_env("INVOICE_DEFAULT_TERMS_DAYS", 15)

    SESSION_ABSOLUTE_TIMEOUT_HOURS = _int_env("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24)
    SESSION_IDLE_TIMEOUT_HOURS = _int_env("SESSION_IDLE_TIMEOUT_HOURS", 2)

    BCRYPT_ROUNDS = _int_env("BCRYPT_ROUNDS", 12)

    RECEIPTS_DIR = os.environ.get("RECEIPTS_DIR", "instance/receipts")
    RECEIPT_MAX_BYTES = _int_env("RECEIPT_MAX_BYTES", 2 * 1024 * 1024)

    # Request body cap for every route; sized so a full push batch
    # (SYNC_MAX_BATCH_RECORDS records of SYNC_MAX_LINE_ITEMS lines) fits
    MAX_CONTENT_LENGTH = _int_env("MAX_CONTENT_LENGTH", 64 * 1024 * 1024)
