from contextlib import contextmanager
from typing import Any, Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker


def get_engine(sqlite_path: str, base: Optional[Any] = None) -> Engine:
    """Create an engine for ``sqlite_path`` (``:memory:`` allowed), creating tables of ``base``."""
    engine_url = f"sqlite:///{sqlite_path}"
    engine = create_engine(engine_url, future=True)
    if base is not None:
        base.metadata.create_all(engine)
    return engine


def get_session(sqlite_path: str, base: Optional[Any] = None) -> Session:
    """Get a SQLAlchemy session (caller must close it)."""
    engine = get_engine(sqlite_path, base)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)()


@contextmanager
def session_context(sqlite_path: str, base: Optional[Any] = None) -> Generator[Session, None, None]:
    """
    Context manager for SQLAlchemy sessions.

    Rolls back on error and always closes the session. Commits are left to
    the caller.

    Usage:
        with session_context(sqlite_path, Base) as session:
            # use session
            session.commit()
    """
    session = get_session(sqlite_path, base)
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
