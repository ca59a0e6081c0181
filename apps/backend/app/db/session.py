"""Database engine management."""

from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from app.core.config import get_settings


@lru_cache
def get_engine() -> Engine:
    """
    Get the process-wide sync engine.

    Requests run in FastAPI's threadpool and check out one pooled
    connection each for the whole request.
    """
    settings = get_settings()
    return create_engine(
        settings.database_url,
        echo=settings.echo_sql,
        pool_pre_ping=True,
    )
