"""API schemas. Wire format is camelCase; Python attributes stay snake_case."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        protected_namespaces=(),
    )


class EvaluateRequest(CamelModel):
    model_ids: Optional[list[str]] = None
    limit: Optional[int] = None


class ClauseResultOut(CamelModel):
    field: str
    operator: str
    kind: str
    matched: bool
    reason: str


class EvaluationResultOut(CamelModel):
    model_id: str
    model_name: str
    match: bool
    matched_all_hard: bool
    score: float
    failed_hard_count: int
    passed_soft_count: int
    total_soft_count: int
    rationale: str
    clause_results: list[ClauseResultOut] = []


class EvaluateResponse(CamelModel):
    filter_id: str
    filter_name: str
    run_id: str
    results: list[EvaluationResultOut]
    total_evaluated: int
    match_count: int
    duration_ms: int


class FilterSnapshotOut(CamelModel):
    id: str
    name: str
    description: Optional[str]
    visibility: str
    rules: list[dict[str, Any]]
    version: int


class RunSummaryOut(CamelModel):
    id: str
    filter_id: str
    executed_by: str
    executed_at: datetime
    duration_ms: Optional[int]
    filter_snapshot: FilterSnapshotOut
    limit_used: Optional[int]
    model_ids_filter: Optional[list[str]]
    total_evaluated: int
    match_count: int
    artifacts: Optional[dict[str, str]]


class RunOut(RunSummaryOut):
    model_list: Optional[list[dict[str, Any]]]
    results: list[EvaluationResultOut]
    created_at: datetime


class RunListResponse(CamelModel):
    runs: list[RunSummaryOut]
    total: int
    page: int
    page_size: int
