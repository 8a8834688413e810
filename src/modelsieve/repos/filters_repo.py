from __future__ import annotations

import json
from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.engine import Connection, Engine

from modelsieve.db.schema import SavedFilter, utcnow
from modelsieve.models.domain import SavedFilterRow

_t = SavedFilter.__table__


def _to_row(m) -> SavedFilterRow:
    return SavedFilterRow(
        id=m["id"],
        owner_id=m["owner_id"],
        team_id=m["team_id"],
        name=m["name"],
        description=m["description"],
        visibility=m["visibility"],
        rules=json.loads(m["rules_json"]),
        version=int(m["version"]),
        created_at=m["created_at"],
        updated_at=m["updated_at"],
        last_used_at=m["last_used_at"],
        usage_count=int(m["usage_count"]),
    )


class SavedFiltersRepo:
    """
    Repository for the `saved_filters` table.

    Responsibility:
    - seed/edit filters (CLI, tests)
    - fetch a filter for evaluation
    - atomic usage increment inside the caller's transaction
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def create(
        self,
        owner_id: str,
        name: str,
        rules: list[dict],
        description: str | None = None,
        visibility: str = "private",
        team_id: str | None = None,
    ) -> SavedFilterRow:
        now = utcnow()
        values = {
            "id": str(uuid4()),
            "owner_id": owner_id,
            "team_id": team_id,
            "name": name,
            "description": description,
            "visibility": visibility,
            "rules_json": json.dumps(rules),
            "version": 1,
            "created_at": now,
            "updated_at": now,
            "last_used_at": None,
            "usage_count": 0,
        }
        with self._engine.begin() as conn:
            conn.execute(_t.insert().values(**values))
        return _to_row(values)

    def get(self, filter_id: str) -> SavedFilterRow | None:
        with self._engine.connect() as conn:
            m = conn.execute(select(_t).where(_t.c.id == filter_id)).mappings().first()
        return _to_row(m) if m is not None else None

    def update_rules(self, filter_id: str, rules: list[dict]) -> SavedFilterRow | None:
        """Replace rules and bump version. Recorded runs keep their own snapshot."""
        with self._engine.begin() as conn:
            conn.execute(
                update(_t)
                .where(_t.c.id == filter_id)
                .values(
                    rules_json=json.dumps(rules),
                    version=_t.c.version + 1,
                    updated_at=utcnow(),
                )
            )
        return self.get(filter_id)

    @staticmethod
    def increment_usage(conn: Connection, filter_id: str, now: datetime) -> Optional[int]:
        """
        usage_count += 1 evaluated by the database, not read-modify-write.
        Returns the new count, or None when the filter no longer exists.
        """
        new_count = conn.execute(
            update(_t)
            .where(_t.c.id == filter_id)
            .values(usage_count=_t.c.usage_count + 1, last_used_at=now)
            .returning(_t.c.usage_count)
        ).scalar_one_or_none()
        return int(new_count) if new_count is not None else None
