# adrms/config.py
from __future__ import annotations

import os
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()


def _env(key: str, default: str = "") -> str:
    return (os.environ.get(key) or default).strip()


def _env_int(key: str, default: int) -> int:
    try:
        return int(_env(key, str(default)))
    except ValueError:
        return default


def engine_options(uri: str) -> dict:
    """Bounded pool for server databases; SQLite keeps SQLAlchemy's defaults."""
    if (uri or "").startswith("sqlite"):
        return {}
    return {
        "pool_size": _env_int("DB_POOL_SIZE", 10),
        "max_overflow": _env_int("DB_MAX_OVERFLOW", 5),
        "pool_pre_ping": True,
    }


class Config:
    SQLALCHEMY_DATABASE_URI = _env("DATABASE_URL", "sqlite:///adrms.db")
    SQLALCHEMY_ENGINE_OPTIONS = engine_options(SQLALCHEMY_DATABASE_URI)
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    JWT_SECRET_KEY = _env("JWT_SECRET_KEY", "adrms-dev-secret-change-in-production")
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=_env_int("JWT_ACCESS_TOKEN_HOURS", 24))

    CORS_ALLOWED_ORIGINS = [
        o.strip().rstrip("/")
        for o in _env("CORS_ALLOWED_ORIGINS", "http://localhost:3000").split(",")
        if o.strip()
    ]

    MAX_CONTENT_LENGTH = _env_int("MAX_UPLOAD_MB", 16) * 1024 * 1024

    # spreadsheet import
    IMPORT_CHUNK_SIZE = _env_int("IMPORT_CHUNK_SIZE", 500)
    HEADER_SCAN_ROWS = _env_int("HEADER_SCAN_ROWS", 10)
    HEADER_MIN_CELLS = _env_int("HEADER_MIN_CELLS", 5)

    RECORDS_PAGE_SIZE = _env_int("RECORDS_PAGE_SIZE", 20)
    LOG_LEVEL = _env("LOG_LEVEL", "INFO").upper()


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS: dict = {}
    JWT_SECRET_KEY = "test-secret-key-with-enough-length-for-hs256"
    IMPORT_CHUNK_SIZE = 50
