"""Engine, session factory and declarative base for RestoMap.

SQLite is the default store. Lambda only allows writes under /tmp, so the
database file goes there when running on Lambda or in production.
"""

from __future__ import annotations

import os
from typing import Any, Dict, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, declarative_base, sessionmaker


def _running_on_lambda() -> bool:
    return bool(os.environ.get("AWS_LAMBDA_FUNCTION_NAME")) or os.environ.get("ENVIRONMENT") == "production"


def database_url() -> str:
    configured = os.environ.get("SQLALCHEMY_DATABASE_URL")
    if configured:
        return configured
    if _running_on_lambda():
        return "sqlite:////tmp/restomap.db"
    return "sqlite:///./restomap.db"


SQLALCHEMY_DATABASE_URL = database_url()
IS_SQLITE = SQLALCHEMY_DATABASE_URL.startswith("sqlite")

# Requests are served from a thread pool, so SQLite connections cross threads
_connect_args: Dict[str, Any] = {"check_same_thread": False} if IS_SQLITE else {}

engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args=_connect_args, pool_pre_ping=True)

if IS_SQLITE:

    @event.listens_for(engine, "connect")
    def _sqlite_foreign_keys(dbapi_connection, connection_record):  # type: ignore[no-untyped-def]
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=True)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session for FastAPI dependencies"""
    with SessionLocal() as db:
        yield db
