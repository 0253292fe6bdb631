from __future__ import annotations

from typing import Generator

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from app.core.settings import settings


def enable_sqlite_savepoints(engine: Engine) -> Engine:
    """Let SQLAlchemy emit BEGIN itself so SAVEPOINT works on pysqlite."""

    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def build_engine(database_url: str) -> Engine:
    """Create an engine with pool tuning for Postgres and thread-safe SQLite."""
    engine_kwargs: dict = {"pool_pre_ping": True}
    if database_url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        return enable_sqlite_savepoints(create_engine(database_url, **engine_kwargs))
    engine_kwargs.update(
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_recycle=settings.db_pool_recycle,
    )
    return create_engine(database_url, **engine_kwargs)


def build_session_factory(bind: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        bind=bind,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        class_=Session,
    )


engine = build_engine(settings.database_url)
SessionLocal = build_session_factory(engine)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
