# backend/config.py
import os
from datetime import timedelta


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")
    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", "dev-jwt-secret-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "mysql+pymysql://root:@localhost/weaklink"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # 🔐 JWT config
    JWT_TOKEN_LOCATION = ["headers"]     # where to look for tokens
    JWT_HEADER_NAME = "Authorization"    # header name
    JWT_HEADER_TYPE = "Bearer"           # expected prefix
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(days=7)  # dev: 7 days

    # App watcher cadence (device side)
    POLL_INTERVAL_SECONDS = _env_float("POLL_INTERVAL_SECONDS", 5.0)
    PROBE_TIMEOUT_SECONDS = _env_float("PROBE_TIMEOUT_SECONDS", 3.0)
    STORE_TIMEOUT_SECONDS = _env_float("STORE_TIMEOUT_SECONDS", 5.0)
    STORE_WRITE_RETRIES = int(_env_float("STORE_WRITE_RETRIES", 1))

    # Day boundaries for daily losers / monthly rollups
    STATS_TIMEZONE = os.environ.get("STATS_TIMEZONE", "UTC")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    JWT_SECRET_KEY = "test-jwt-secret-that-is-long-enough-for-hs256"
    STATS_TIMEZONE = "UTC"
