from __future__ import annotations

import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Generator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from trademate.models import Base

SessionFactory = Callable[[], Session]

DATA_DIR = Path(__file__).parent / "data"

_lock = threading.Lock()
_engine: Engine | None = None
_SessionLocal: sessionmaker | None = None


def default_db_path() -> Path:
    env = os.environ.get("TRADEMATE_DB_PATH")
    return Path(env) if env else DATA_DIR / "trademate.db"


def database_url(db_path: str | Path | None = None) -> str:
    """Resolve the engine URL.

    An explicit *db_path* wins, then ``TRADEMATE_DATABASE_URL``, then a SQLite
    file at :func:`default_db_path`.
    """
    if db_path is None:
        env_url = os.environ.get("TRADEMATE_DATABASE_URL")
        if env_url:
            return env_url
    path = Path(db_path) if db_path is not None else default_db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{path}"


def make_engine(url: str) -> Engine:
    # synthesizer fetches run on worker threads
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


def init_db(db_path: str | Path | None = None) -> None:
    global _engine, _SessionLocal
    engine = make_engine(database_url(db_path))
    Base.metadata.create_all(engine)
    with _lock:
        if _engine is not None:
            _engine.dispose()
        _engine = engine
        _SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_session() -> Session:
    with _lock:
        factory = _SessionLocal
    if factory is None:
        raise RuntimeError("init_db() has not been called")
    return factory()


@contextmanager
def session_scope(factory: SessionFactory | None = None) -> Generator[Session, None, None]:
    """Open a session, roll back if the block raises, always close.

    Commits are left to the caller. Pass *factory* to open sessions from
    something other than the module-level engine, e.g. a test ``sessionmaker``::

        with session_scope(factory) as session:
            ...
    """
    session = (factory or get_session)()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def session_generator() -> Generator[Session, None, None]:
    """Session for FastAPI ``Depends()``."""
    with session_scope() as session:
        yield session
