"""Application settings, read from ``TASKAPI_*`` environment variables."""

import os

ENV_PREFIX = "TASKAPI"


def _env(suffix, default=None):
    value = os.getenv(f"{ENV_PREFIX}_{suffix}")
    if value is None or value.strip() == "":
        return default
    return value


def _env_int(suffix, default):
    raw = _env(suffix)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class Config:
    SQLALCHEMY_DATABASE_URI = _env("DATABASE_URL", "sqlite:///tasks.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # page size used when a GET on the collection gives no limit (0 = unbounded)
    TASKS_DEFAULT_LIMIT = _env_int("TASKS_DEFAULT_LIMIT", 100)
    USERS_DEFAULT_LIMIT = _env_int("USERS_DEFAULT_LIMIT", 0)

    LOG_LEVEL = _env("LOG_LEVEL", "INFO")
    LOG_FILE = _env("LOG_FILE")
