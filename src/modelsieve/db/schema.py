# src/modelsieve/db/schema.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import BigInteger, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _uuid() -> str:
    return str(uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class SavedFilter(Base):
    """
    Live filter definition. The evaluation path only ever writes
    usage_count and last_used_at.
    """
    __tablename__ = "saved_filters"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    owner_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    team_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    visibility: Mapped[str] = mapped_column(String, nullable=False, default="private")  # private/team/public

    rules_json: Mapped[str] = mapped_column(Text, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    last_used_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    usage_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class FilterRun(Base):
    """
    One row per filter evaluation. Append-only history: the filter definition
    is denormalized into filter_snapshot_json at execution time.
    """
    __tablename__ = "filter_runs"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    filter_id: Mapped[str] = mapped_column(String, nullable=False, index=True)

    executed_by: Mapped[str] = mapped_column(String, nullable=False)
    executed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    duration_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    filter_snapshot_json: Mapped[str] = mapped_column(Text, nullable=False)

    # inputs
    model_list_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    limit_used: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    model_ids_filter_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # results
    total_evaluated: Mapped[int] = mapped_column(Integer, nullable=False)
    match_count: Mapped[int] = mapped_column(Integer, nullable=False)
    results_json: Mapped[str] = mapped_column(Text, nullable=False)

    # external storage references (offloaded payloads)
    artifacts_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
