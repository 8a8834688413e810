from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, Mapping, Optional, TypeVar

from modelsieve.errors import ModelSieveError

OPERATORS = ("eq", "ne", "gt", "gte", "lt", "lte", "in", "contains")
CLAUSE_KINDS = ("hard", "soft")
VISIBILITIES = ("private", "team", "public")

# Candidate model: untyped field -> value lookup
ModelRecord = Mapping[str, Any]

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Value-or-error pair returned by services for expected failures."""

    value: Optional[T] = None
    error: Optional[ModelSieveError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ModelSieveError) -> "Outcome[T]":
        return cls(error=error)


@dataclass(frozen=True)
class Caller:
    user_id: str
    team_id: str | None = None


@dataclass(frozen=True)
class RuleClause:
    field: str
    operator: str
    value: Any
    kind: str  # hard/soft
    weight: float | None = None

    @property
    def effective_weight(self) -> float:
        if self.kind != "soft":
            return 0.0
        return 1.0 if self.weight is None else float(self.weight)

    def describe(self) -> str:
        return f"{self.field} {self.operator} {_render(self.value)}"

    def to_wire(self) -> dict:
        out = {
            "field": self.field,
            "operator": self.operator,
            "value": self.value,
            "type": self.kind,
        }
        if self.kind == "soft":
            out["weight"] = self.effective_weight
        return out


@dataclass(frozen=True)
class ClauseResult:
    field: str
    operator: str
    kind: str
    matched: bool
    reason: str

    def to_dict(self) -> dict:
        return {
            "field": self.field,
            "operator": self.operator,
            "kind": self.kind,
            "matched": self.matched,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class EvaluationResult:
    model_id: str
    model_name: str
    match: bool
    matched_all_hard: bool
    score: float
    failed_hard_count: int
    passed_soft_count: int
    total_soft_count: int
    rationale: str
    clause_results: tuple[ClauseResult, ...] = ()

    def to_dict(self) -> dict:
        """Wire/persisted shape (camelCase keys)."""
        return {
            "modelId": self.model_id,
            "modelName": self.model_name,
            "match": self.match,
            "matchedAllHard": self.matched_all_hard,
            "score": self.score,
            "failedHardCount": self.failed_hard_count,
            "passedSoftCount": self.passed_soft_count,
            "totalSoftCount": self.total_soft_count,
            "rationale": self.rationale,
            "clauseResults": [c.to_dict() for c in self.clause_results],
        }


@dataclass(frozen=True)
class FilterSnapshot:
    id: str
    name: str
    description: str | None
    visibility: str
    rules: tuple[dict, ...]
    version: int

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "visibility": self.visibility,
            "rules": [dict(r) for r in self.rules],
            "version": self.version,
        }


@dataclass(frozen=True)
class SavedFilterRow:
    id: str
    owner_id: str
    team_id: str | None
    name: str
    description: str | None
    visibility: str
    rules: list[dict]
    version: int
    created_at: datetime
    updated_at: datetime
    last_used_at: datetime | None
    usage_count: int


@dataclass(frozen=True)
class RunMeta:
    """Request inputs stored alongside a run for reproducibility."""

    executed_by: str
    duration_ms: int
    limit_used: int | None = None
    model_ids_filter: list[str] | None = None
    model_list: list[dict] | None = None


@dataclass(frozen=True)
class FilterRunRow:
    id: str
    filter_id: str
    executed_by: str
    executed_at: datetime
    duration_ms: int | None
    filter_snapshot: dict
    model_list: list[dict] | None
    limit_used: int | None
    model_ids_filter: list[str] | None
    total_evaluated: int
    match_count: int
    results: list[dict]
    artifacts: dict | None
    created_at: datetime


@dataclass(frozen=True)
class EvaluateResponseData:
    filter_id: str
    filter_name: str
    run_id: str
    results: list[EvaluationResult] = field(default_factory=list)
    total_evaluated: int = 0
    match_count: int = 0
    duration_ms: int = 0


def _render(value: Any) -> str:
    try:
        return json.dumps(value, sort_keys=True)
    except (TypeError, ValueError):
        return repr(value)
