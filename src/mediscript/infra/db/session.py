from __future__ import annotations

from collections.abc import Callable
from typing import Tuple

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from src.mediscript.infra.db.models import Base

SessionFactory = Callable[[], Session]


def create_sqlalchemy_session_factory(database_url: str) -> Tuple[Engine, SessionFactory]:
    """Create an engine and a Session factory for ``database_url``.

    Tables are created if missing. In-memory SQLite URLs share one
    connection so every session sees the same database.
    """

    if database_url == "sqlite://" or (database_url.startswith("sqlite") and ":memory:" in database_url):
        engine = create_engine(
            database_url,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(database_url, future=True)

    # In a real deployment this should be handled by migrations.
    Base.metadata.create_all(engine)

    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, class_=Session)
    return engine, SessionLocal
