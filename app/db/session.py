"""Database engine setup.

Every request-scoped unit of work gets its own ``Session`` from
``SessionLocal``; the database is the only coordination point between
concurrent webhook deliveries.

For test runs (ENV=test) the engine falls back to in-memory SQLite when
DATABASE_URL is unset or points at ``:memory:``.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings

raw_url = settings.DATABASE_URL or "sqlite:///./storage/dev.db"

if raw_url.startswith("postgresql"):
    engine = create_engine(
        raw_url,
        future=True,
        pool_size=5,
        max_overflow=10,
        pool_recycle=3600,
        pool_pre_ping=True,
        # Bound every statement; webhook handlers must never block indefinitely
        connect_args={"options": "-c statement_timeout=15000"},
    )
elif raw_url.startswith("sqlite") and ":memory:" in raw_url:
    raw_url = "sqlite:///file:planet_db?mode=memory&cache=shared&uri=true"
    engine = create_engine(raw_url, future=True, connect_args={"check_same_thread": False})
else:
    engine = create_engine(raw_url, future=True)


def _sqlite_on_connect(dbapi_connection, connection_record):  # pragma: no cover - driver hook
    # Hand transaction control to SQLAlchemy so SAVEPOINT nests properly
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _sqlite_on_begin(conn):  # pragma: no cover - driver hook
    # A StaticPool connection may be shared by several sessions
    if not conn.connection.dbapi_connection.in_transaction:
        conn.exec_driver_sql("BEGIN")


def configure_sqlite(target_engine) -> None:
    """Enable foreign keys and working SAVEPOINTs on a pysqlite engine."""
    event.listen(target_engine, "connect", _sqlite_on_connect)
    event.listen(target_engine, "begin", _sqlite_on_begin)


if engine.dialect.name == "sqlite":
    configure_sqlite(engine)


SessionLocal = sessionmaker(bind=engine, class_=Session, expire_on_commit=False, autoflush=False)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
