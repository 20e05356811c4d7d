from sqlmodel import SQLModel, create_engine, Session
from sqlalchemy import event
import os
import sqlite3

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./app.db")
SQL_ECHO = os.getenv("SQL_ECHO", "0").lower() in ("1", "true", "yes")


def make_engine(url: str, echo: bool = False):
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
    eng = create_engine(url, echo=echo, connect_args=connect_args)
    event.listen(eng, "connect", _set_sqlite_pragmas)
    return eng


def _set_sqlite_pragmas(dbapi_connection, _connection_record):
    if not isinstance(dbapi_connection, sqlite3.Connection):
        return
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.execute("PRAGMA busy_timeout=30000;")
    finally:
        cursor.close()


engine = make_engine(DATABASE_URL, echo=SQL_ECHO)


def init_db(bind=None):
    # import for side effect: table registration on SQLModel.metadata
    from assessments import models  # noqa: F401
    SQLModel.metadata.create_all(bind or engine)


def get_session():
    return Session(engine, expire_on_commit=False)


def session_factory(bind):
    """Build a get_session-style callable bound to another engine."""
    def _factory():
        return Session(bind, expire_on_commit=False)
    return _factory
