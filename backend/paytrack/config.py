# backend/paytrack/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/paytrack.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///paytrack.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Recorded on audit rows when a request carries no actor
    PAYTRACK_DEFAULT_ACTOR = os.environ.get("PAYTRACK_DEFAULT_ACTOR", "system")

    PAYTRACK_FORECAST_MONTHS = int(os.environ.get("PAYTRACK_FORECAST_MONTHS", "6"))
    PAYTRACK_FORECAST_MAX_MONTHS = int(os.environ.get("PAYTRACK_FORECAST_MAX_MONTHS", "24"))

    # How far back actual payment records are read for the paid buckets
    PAYTRACK_CASHFLOW_MONTHS_BACK = int(os.environ.get("PAYTRACK_CASHFLOW_MONTHS_BACK", "6"))
