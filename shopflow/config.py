# shopflow/config.py
from __future__ import annotations
import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in instance/shopflow.sqlite3 unless DATABASE_URL is set
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///shopflow.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Used only when seeding the store configuration row
    SHOPFLOW_DEFAULT_STORE_NAME = os.environ.get("SHOPFLOW_DEFAULT_STORE_NAME", "My Store")
    SHOPFLOW_DEFAULT_INVOICE_PREFIX = os.environ.get("SHOPFLOW_DEFAULT_INVOICE_PREFIX", "INV-")
    SHOPFLOW_DEFAULT_TAX_RATE = os.environ.get("SHOPFLOW_DEFAULT_TAX_RATE", "0")
    SHOPFLOW_DEFAULT_CURRENCY = os.environ.get("SHOPFLOW_DEFAULT_CURRENCY", "USD")


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    LOG_LEVEL = "WARNING"
