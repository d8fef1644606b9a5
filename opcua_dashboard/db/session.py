from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool, StaticPool


@dataclass(frozen=True)
class DBRuntime:
    engine: Engine
    SessionLocal: sessionmaker


def create_engine_and_sessionmaker(database_url: str, *, echo: bool = False) -> DBRuntime:
    """Create SQLAlchemy engine + sessionmaker.

    Notes:
      - SQLite needs check_same_thread=False: the value simulator reads from a
        scheduler thread while FastAPI serves requests from its threadpool.
      - ``sqlite://`` (in-memory) keeps one shared connection so every session
        sees the same database.
    """
    is_sqlite = database_url.startswith("sqlite")
    in_memory = is_sqlite and (database_url in ("sqlite://", "sqlite:///:memory:"))

    connect_args: dict = {}
    engine_kwargs: dict = dict(echo=echo, future=True)
    if is_sqlite:
        connect_args["check_same_thread"] = False
        connect_args.setdefault("timeout", 5)
        engine_kwargs["poolclass"] = StaticPool if in_memory else NullPool
    else:
        engine_kwargs["pool_pre_ping"] = True
    engine_kwargs["connect_args"] = connect_args

    engine = create_engine(database_url, **engine_kwargs)

    if is_sqlite and not in_memory:
        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection, connection_record):  # pragma: no cover
            cursor = dbapi_connection.cursor()
            try:
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.execute("PRAGMA synchronous=NORMAL")
                cursor.execute("PRAGMA busy_timeout=5000")
            finally:
                cursor.close()

    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    return DBRuntime(engine=engine, SessionLocal=SessionLocal)
