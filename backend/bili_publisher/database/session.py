"""
Database engine and session factories.
"""

import logging
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from bili_publisher.config import get_database_url
from bili_publisher.db_base import Base

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def get_engine() -> Engine:
    """Get or create the process-wide engine."""
    global _engine
    if _engine is None:
        url = get_database_url()
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        _engine = create_engine(url, pool_pre_ping=True, connect_args=connect_args)
        logger.info(
            "Database engine created",
            extra={"dialect": _engine.dialect.name},
        )
    return _engine


def get_session_factory() -> sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
    return _session_factory


def init_db(engine: Optional[Engine] = None) -> None:
    """Create tables if they do not exist."""
    # Import models so they register with Base
    from bili_publisher.models import BiliCredential  # noqa: F401

    Base.metadata.create_all(bind=engine or get_engine())


def get_db_session() -> Generator[Session, None, None]:
    """
    FastAPI dependency yielding a session per request.

    Vault operations commit their own single-row changes, so anything
    still pending when the request fails is rolled back.
    """
    session = get_session_factory()()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
