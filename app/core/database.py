"""
Database engine and session management.
"""
import os
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool

from app.core.config import settings

DATABASE_URL = settings.DATABASE_URL


def build_engine(url: str) -> Engine:
    """
    Create an engine for ``url``.

    SQLite is used for local runs and has no use for a server-side pool;
    every other backend gets a pre-pinged QueuePool.
    """
    echo = os.getenv("SQL_ECHO", "false").lower() == "true"
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False}, echo=echo)
    return create_engine(
        url,
        poolclass=QueuePool,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
        echo=echo,
    )


engine = build_engine(DATABASE_URL)

# Session factory shared by request handlers, scheduler jobs and the error recorder
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency yielding a session that is closed after the request.

    Usage:
        @router.get("/endpoint")
        def endpoint(db: Session = Depends(get_db)):
            ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine | None = None) -> None:
    """Create any missing tables."""
    from app.models.models import Base
    Base.metadata.create_all(bind=bind or engine, checkfirst=True)
