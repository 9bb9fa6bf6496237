# Overview: Application configuration loaded by the app factory.

# backend/posbooks/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///posbooks.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Reference numbers: generate-then-insert attempts on unique conflicts
    REFERENCE_RETRY_ATTEMPTS = int(os.environ.get("REFERENCE_RETRY_ATTEMPTS", "5"))
    REFERENCE_RETRY_BACKOFF = float(os.environ.get("REFERENCE_RETRY_BACKOFF", "0.05"))

    # Scheduled invoice generator (hourly by default)
    SCHEDULER_INTERVAL_MINUTES = int(os.environ.get("SCHEDULER_INTERVAL_MINUTES", "60"))
    SCHEDULER_TENANT_TIMEOUT_SECONDS = int(os.environ.get("SCHEDULER_TENANT_TIMEOUT_SECONDS", "300"))

    DEFAULT_INVOICE_DUE_DAYS = 30

    # Max allowed |debits - credits| (system currency) before a posting group is flagged
    BALANCE_TOLERANCE = "0.01"
