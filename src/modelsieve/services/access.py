"""Visibility predicate consumed before any evaluation or run lookup."""

from __future__ import annotations

from modelsieve.models.domain import Caller, SavedFilterRow


def can_access_filter(caller: Caller, saved_filter: SavedFilterRow) -> bool:
    """
    | visibility | owner | team member | anyone else |
    | private    | allow | deny        | deny        |
    | team       | allow | allow       | deny        |
    | public     | allow | allow       | allow       |
    """
    if saved_filter.owner_id == caller.user_id:
        return True
    if saved_filter.visibility == "public":
        return True
    if (
        saved_filter.visibility == "team"
        and saved_filter.team_id
        and caller.team_id == saved_filter.team_id
    ):
        return True
    return False
