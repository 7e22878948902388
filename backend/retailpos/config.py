# backend/retailpos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/retailpos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///retailpos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Daily reports are keyed by the store's local calendar date
    STORE_TIMEZONE = os.environ.get("STORE_TIMEZONE", "Asia/Kolkata")

    INVOICE_PREFIX = os.environ.get("INVOICE_PREFIX", "INV")

    # One loyalty point per this many currency units of grand total
    LOYALTY_POINT_VALUE = int(os.environ.get("LOYALTY_POINT_VALUE", "100"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    STORE_TIMEZONE = "UTC"
