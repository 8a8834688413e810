from __future__ import annotations

import json
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.engine import Connection, Engine

from modelsieve.db.schema import FilterRun
from modelsieve.models.domain import FilterRunRow

_t = FilterRun.__table__


def _loads(value: str | None) -> Any:
    return json.loads(value) if value is not None else None


def _to_row(m) -> FilterRunRow:
    return FilterRunRow(
        id=m["id"],
        filter_id=m["filter_id"],
        executed_by=m["executed_by"],
        executed_at=m["executed_at"],
        duration_ms=m["duration_ms"],
        filter_snapshot=json.loads(m["filter_snapshot_json"]),
        model_list=_loads(m["model_list_json"]),
        limit_used=m["limit_used"],
        model_ids_filter=_loads(m["model_ids_filter_json"]),
        total_evaluated=int(m["total_evaluated"]),
        match_count=int(m["match_count"]),
        results=json.loads(m["results_json"]),
        artifacts=_loads(m["artifacts_json"]),
        created_at=m["created_at"],
    )


class FilterRunsRepo:
    """
    Repository for the `filter_runs` table.

    Responsibility:
    - insert runs (write-once, no update path)
    - fetch one run / page through a filter's history

    Keeps SQL isolated so services stay testable and readable.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    @staticmethod
    def insert(conn: Connection, row: FilterRunRow) -> str:
        conn.execute(
            _t.insert().values(
                id=row.id,
                filter_id=row.filter_id,
                executed_by=row.executed_by,
                executed_at=row.executed_at,
                duration_ms=row.duration_ms,
                filter_snapshot_json=json.dumps(row.filter_snapshot),
                model_list_json=json.dumps(row.model_list) if row.model_list is not None else None,
                limit_used=row.limit_used,
                model_ids_filter_json=(
                    json.dumps(row.model_ids_filter) if row.model_ids_filter is not None else None
                ),
                total_evaluated=row.total_evaluated,
                match_count=row.match_count,
                results_json=json.dumps(row.results),
                artifacts_json=json.dumps(row.artifacts) if row.artifacts is not None else None,
                created_at=row.created_at,
            )
        )
        return row.id

    def get_run(self, filter_id: str, run_id: str) -> FilterRunRow | None:
        with self._engine.connect() as conn:
            m = (
                conn.execute(
                    select(_t).where(_t.c.id == run_id, _t.c.filter_id == filter_id)
                )
                .mappings()
                .first()
            )
        return _to_row(m) if m is not None else None

    def list_runs(self, filter_id: str, limit: int = 20, offset: int = 0) -> list[FilterRunRow]:
        """Newest first; id breaks ties so paging is stable."""
        with self._engine.connect() as conn:
            rows = (
                conn.execute(
                    select(_t)
                    .where(_t.c.filter_id == filter_id)
                    .order_by(_t.c.executed_at.desc(), _t.c.id)
                    .limit(limit)
                    .offset(offset)
                )
                .mappings()
                .all()
            )
        return [_to_row(m) for m in rows]

    def count_runs(self, filter_id: str) -> int:
        with self._engine.connect() as conn:
            return int(
                conn.execute(
                    select(func.count()).select_from(_t).where(_t.c.filter_id == filter_id)
                ).scalar_one()
            )
