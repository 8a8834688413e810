"""Usage tracker for saved filters."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.engine import Connection

from modelsieve.db.schema import utcnow
from modelsieve.errors import NotFoundError
from modelsieve.repos.filters_repo import SavedFiltersRepo


class UsageTracker:
    def increment_usage(self, conn: Connection, filter_id: str, now: datetime | None = None) -> int:
        """
        Bump usage_count/last_used_at on the caller's transaction.
        Raises NotFoundError if the filter disappeared, which rolls the
        transaction (and its run insert) back.
        """
        count = SavedFiltersRepo.increment_usage(conn, filter_id, now or utcnow())
        if count is None:
            raise NotFoundError("Filter", filter_id)
        return count
