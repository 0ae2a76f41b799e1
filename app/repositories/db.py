from contextlib import contextmanager
from typing import Callable, Iterator, TypeVar

import anyio
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker, DeclarativeBase
from sqlalchemy.pool import StaticPool
from app.core.config import settings

T = TypeVar("T")


class Base(DeclarativeBase):
    pass


# SQLite in development: allow the connection to be used from worker threads
kwargs = {"pool_pre_ping": True}
if settings.database_url.startswith("sqlite"):
    kwargs["connect_args"] = {"check_same_thread": False}
    # In memory every session must share the same connection
    if settings.database_url == "sqlite:///:memory:":
        kwargs["poolclass"] = StaticPool

engine = create_engine(settings.database_url, **kwargs)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@contextmanager
def db_session(factory: sessionmaker = SessionLocal) -> Iterator[Session]:
    db = factory()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


async def run_in_session(factory: sessionmaker, fn: Callable[[Session], T]) -> T:
    """Runs blocking ORM work in a worker thread with a fresh session."""

    def _call() -> T:
        with db_session(factory) as db:
            return fn(db)

    return await anyio.to_thread.run_sync(_call)


LIKE_ESCAPE = "\\"


def contains_pattern(term: str) -> str:
    """Substring LIKE pattern; ``%`` and ``_`` typed by the user match literally.

    Pair it with ``escape=LIKE_ESCAPE``.
    """
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"
