"""
Engine and session setup for the catalog database.

Public API:
    create_catalog_engine(url) → Engine
    init_db(engine) → None
    make_session_factory(engine) → sessionmaker
"""

import logging

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from storage.models import Base

logger = logging.getLogger(__name__)

# Seconds a SQLite writer waits on a locked database before failing.
SQLITE_BUSY_TIMEOUT: float = 30.0


def create_catalog_engine(url: str, echo: bool = False) -> Engine:
    """
    Create an engine for *url*.

    SQLite connections are shared across worker threads; an in-memory
    database uses a single static connection so every session sees the
    same data.
    """
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT}
        if url in ("sqlite://", "sqlite:///:memory:"):
            return create_engine(
                url, echo=echo, connect_args=connect_args, poolclass=StaticPool
            )
        return create_engine(url, echo=echo, connect_args=connect_args)

    return create_engine(url, echo=echo, pool_pre_ping=True)


def init_db(engine: Engine) -> None:
    """Create any missing catalog tables and indexes."""
    Base.metadata.create_all(engine)
    logger.info(f"Catalog schema ready on {engine.url.render_as_string(hide_password=True)}")


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False)
