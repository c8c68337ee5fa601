"""SQLAlchemy engine factory and session factory.

This module provides:

* ``create_shop_engine``   -- Create a SA engine from a URL with pool bounds.
* ``engine_from_settings`` -- Same, reading URL, pool bounds and TLS mode
  from :class:`~shop_spine.core.settings.Settings`.
* ``ShopSession``          -- Session with ``expire_on_commit=False``.
* ``shop_session_factory`` -- ``sessionmaker`` producing ``ShopSession``.
* ``write_session``        -- Session in a write transaction (write lock on SQLite).

SQLite is used for local runs and tests.  pysqlite's own transaction
handling is switched off and SQLAlchemy emits ``BEGIN`` itself.  Reads use a
plain deferred ``BEGIN`` and never wait on a writer (WAL).  Write
transactions opened through :func:`write_session` or with
``WRITE_LOCK_OPTIONS`` start with ``BEGIN IMMEDIATE`` so concurrent writers
serialize on the database lock, the same guarantee ``SELECT ... FOR UPDATE``
gives on PostgreSQL.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine as _sa_create_engine
from sqlalchemy import event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from shop_spine.core.settings import Settings

# Execution option read by the SQLite "begin" listener
WRITE_LOCK = "shop_write_lock"
WRITE_LOCK_OPTIONS: dict[str, Any] = {WRITE_LOCK: True}


def _is_sqlite_memory(url: str) -> bool:
    database = make_url(url).database
    return database in (None, "", ":memory:")


def create_shop_engine(
    url: str = "sqlite:///shop.db",
    *,
    echo: bool = False,
    pool_size: int | None = None,
    max_overflow: int | None = None,
    pool_timeout: float | None = None,
    pool_recycle: int | None = None,
    **kwargs: Any,
) -> Engine:
    """Create a SQLAlchemy engine with sane defaults.

    Parameters
    ----------
    url:
        Database URL (``sqlite:///…``, ``postgresql+psycopg://…``, etc.)
    echo:
        If ``True``, log all SQL through the ``sqlalchemy.engine`` logger.
    pool_size, max_overflow, pool_timeout, pool_recycle:
        Connection pool parameters (ignored for in-memory SQLite).
    **kwargs:
        Extra arguments forwarded to ``sqlalchemy.create_engine``.
    """
    pool_kwargs: dict[str, Any] = {}
    if pool_size is not None:
        pool_kwargs["pool_size"] = pool_size
    if max_overflow is not None:
        pool_kwargs["max_overflow"] = max_overflow
    if pool_timeout is not None:
        pool_kwargs["pool_timeout"] = pool_timeout
    if pool_recycle is not None:
        pool_kwargs["pool_recycle"] = pool_recycle

    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        if _is_sqlite_memory(url):
            # SingletonThreadPool takes no sizing arguments
            pool_kwargs = {}

        engine = _sa_create_engine(url, echo=echo, **pool_kwargs, **kwargs)

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
            # Let SQLAlchemy emit BEGIN itself (see _begin)
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine, "begin")
        def _begin(conn: Any) -> None:
            if conn.get_execution_options().get(WRITE_LOCK):
                conn.exec_driver_sql("BEGIN IMMEDIATE")
            else:
                conn.exec_driver_sql("BEGIN")

        return engine

    kwargs.setdefault("pool_pre_ping", True)
    return _sa_create_engine(url, echo=echo, **pool_kwargs, **kwargs)


def engine_from_settings(settings: Settings) -> Engine:
    """Build the application engine from settings."""
    kwargs: dict[str, Any] = {}
    if settings.db_ssl_mode and settings.database_backend == "postgresql":
        kwargs["connect_args"] = {"sslmode": settings.db_ssl_mode}

    return create_shop_engine(
        settings.database_url,
        echo=settings.db_echo,
        pool_size=settings.db_pool_min_size,
        max_overflow=settings.db_pool_max_overflow,
        pool_timeout=settings.db_pool_acquire_timeout_seconds,
        pool_recycle=settings.db_pool_idle_timeout_seconds,
        **kwargs,
    )


class ShopSession(Session):
    """Pre-configured session with ``expire_on_commit=False``.

    Prevents lazy-load surprises after commit, so objects returned by the
    services stay readable once their session is closed.
    """

    def __init__(self, bind: Engine | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("expire_on_commit", False)
        super().__init__(bind=bind, **kwargs)


def shop_session_factory(engine: Engine) -> sessionmaker[ShopSession]:
    """Return a ``sessionmaker`` bound to *engine* that produces ``ShopSession`` instances."""
    # sessionmaker passes its own expire_on_commit default through to class_
    return sessionmaker(bind=engine, class_=ShopSession, expire_on_commit=False)


@contextmanager
def write_session(session_factory: sessionmaker[Any]) -> Iterator[Session]:
    """Yield a session inside a write transaction, committed on exit.

    On SQLite the transaction starts with ``BEGIN IMMEDIATE``; elsewhere the
    option is inert and row locks come from ``SELECT ... FOR UPDATE``.
    """
    with session_factory() as session, session.begin():
        session.connection(execution_options=WRITE_LOCK_OPTIONS)
        yield session
