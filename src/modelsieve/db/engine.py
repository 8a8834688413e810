# src/modelsieve/db/engine.py
from __future__ import annotations

import os
import threading
import weakref
from contextlib import nullcontext
from dataclasses import dataclass
from pathlib import Path
from typing import ContextManager, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url

from modelsieve.config.settings import settings


@dataclass(frozen=True)
class DBPingResult:
    ok: bool
    dialect: str
    detail: str


def resolve_db_url(db_url: Optional[str] = None) -> str:
    """Explicit argument, then DATABASE_URL, then settings.db_url."""
    return db_url or os.getenv("DATABASE_URL") or settings.db_url


def _ensure_parent_dir(url: str) -> None:
    # file-backed DuckDB/SQLite fail on a missing directory
    database = make_url(url).database
    if database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)


def build_engine(db_url: Optional[str] = None) -> Engine:
    """
    Build a SQLAlchemy Engine for the run history store.

    DuckDB is the default. SQLite connections are shared across request and
    worker threads, and wait on locked writers instead of failing at once.
    """
    url = resolve_db_url(db_url)
    backend = make_url(url).get_backend_name()

    if backend == "postgresql":
        return create_engine(url, future=True, pool_pre_ping=True)

    _ensure_parent_dir(url)
    if backend == "sqlite":
        return create_engine(
            url,
            future=True,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
    return create_engine(url, future=True)


_write_locks: "weakref.WeakKeyDictionary[Engine, threading.Lock]" = weakref.WeakKeyDictionary()
_write_locks_guard = threading.Lock()


def write_lock(engine: Engine) -> ContextManager:
    """
    Process-wide lock for write transactions on single-writer backends.

    DuckDB aborts concurrent updates of the same row with a transaction
    conflict, so its writers take turns; other dialects get a no-op context.
    """
    if engine.dialect.name != "duckdb":
        return nullcontext()
    with _write_locks_guard:
        lock = _write_locks.get(engine)
        if lock is None:
            lock = _write_locks[engine] = threading.Lock()
    return lock


def ping_db(engine: Engine) -> DBPingResult:
    """
    Lightweight DB connectivity check.
    Must NEVER return None (health endpoint depends on this).
    """
    dialect = engine.dialect.name
    try:
        with engine.connect() as conn:
            conn.execute(text("select 1")).scalar_one()
        return DBPingResult(ok=True, dialect=dialect, detail="ok")
    except Exception as e:
        return DBPingResult(ok=False, dialect=dialect, detail=f"{type(e).__name__}: {e}")
