from __future__ import annotations

import os


def _database_url() -> str:
    url = os.getenv("DATABASE_URL", "sqlite:///newlab.db")
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    NOTIFICATIONS_PAGE_SIZE = int(os.getenv("NOTIFICATIONS_PAGE_SIZE", "50"))
