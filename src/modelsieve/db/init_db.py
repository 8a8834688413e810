from __future__ import annotations

from sqlalchemy.engine import Connection, Engine

from modelsieve.db.schema import Base


def _commit_raw(conn: Connection) -> None:
    # DuckDB only persists DDL issued on a plain connection after a DBAPI commit
    raw = conn.connection
    if hasattr(raw, "commit"):
        raw.commit()


def init_db(engine: Engine) -> None:
    """
    Recreate saved_filters and filter_runs from scratch (all rows are lost).

    DDL runs on a plain connection rather than ``engine.begin()``; DuckDB does
    not cope well with dropping tables and their indexes inside one managed
    transaction.
    """
    conn = engine.connect()
    try:
        Base.metadata.drop_all(bind=conn)
        Base.metadata.create_all(bind=conn)
        _commit_raw(conn)
    finally:
        conn.close()


def ensure_db(engine: Engine) -> None:
    """Create missing tables; existing data is left alone."""
    conn = engine.connect()
    try:
        Base.metadata.create_all(bind=conn, checkfirst=True)
        _commit_raw(conn)
    finally:
        conn.close()
