"""
Maijjd - Account Database

Engine and session wiring for the account store. SQLite URLs get a single
shared connection (in-memory databases vanish with their connection);
anything else gets a pre-pinged pool.
"""

from typing import Callable, Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from maijjd.config import settings


def get_engine(url: Optional[str] = None, echo: bool = False) -> Engine:
    url = url or settings.DATABASE_URL
    if url.startswith("sqlite"):
        return create_engine(
            url, echo=echo, connect_args={"check_same_thread": False}, poolclass=StaticPool,
        )
    return create_engine(url, echo=echo, pool_size=5, max_overflow=10, pool_pre_ping=True)


def init_db(engine: Engine) -> None:
    """Create the account and login-attempt tables if missing."""
    from maijjd.auth.models import Account, LoginAttempt  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session_factory(engine: Engine) -> Callable[[], Session]:
    # Accounts outlive the commit that saved them (response rendering, queued sends)
    return lambda: Session(engine, expire_on_commit=False)


def ping(engine: Engine) -> bool:
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        return False
