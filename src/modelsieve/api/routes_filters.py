"""Filter evaluation and run history routes."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from modelsieve.api.deps import get_caller, get_evaluation_service
from modelsieve.api.errors import error_response
from modelsieve.api.schemas import (
    EvaluateRequest,
    EvaluateResponse,
    EvaluationResultOut,
    RunListResponse,
    RunOut,
    RunSummaryOut,
)
from modelsieve.models.domain import Caller, FilterRunRow
from modelsieve.services import filter_evaluation as fe

router = APIRouter(prefix="/filters", tags=["filters"])


def _run_fields(run: FilterRunRow) -> dict:
    return {
        "id": run.id,
        "filter_id": run.filter_id,
        "executed_by": run.executed_by,
        "executed_at": run.executed_at,
        "duration_ms": run.duration_ms,
        "filter_snapshot": run.filter_snapshot,
        "limit_used": run.limit_used,
        "model_ids_filter": run.model_ids_filter,
        "total_evaluated": run.total_evaluated,
        "match_count": run.match_count,
        "artifacts": run.artifacts,
    }


@router.post("/{filter_id}/evaluate", response_model=EvaluateResponse)
def evaluate_filter(
    filter_id: str,
    payload: Optional[EvaluateRequest] = None,
    caller: Caller = Depends(get_caller),
    service: fe.FilterEvaluationService = Depends(get_evaluation_service),
):
    payload = payload or EvaluateRequest()
    outcome = service.evaluate_filter(
        filter_id,
        caller,
        fe.EvaluateRequest(model_ids=payload.model_ids, limit=payload.limit),
    )
    if not outcome.ok:
        return error_response(outcome.error)

    data = outcome.value
    return EvaluateResponse(
        filter_id=data.filter_id,
        filter_name=data.filter_name,
        run_id=data.run_id,
        results=[EvaluationResultOut.model_validate(r.to_dict()) for r in data.results],
        total_evaluated=data.total_evaluated,
        match_count=data.match_count,
        duration_ms=data.duration_ms,
    )


@router.get("/{filter_id}/runs", response_model=RunListResponse)
def list_runs(
    filter_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100, alias="pageSize"),
    caller: Caller = Depends(get_caller),
    service: fe.FilterEvaluationService = Depends(get_evaluation_service),
):
    outcome = service.list_runs(filter_id, caller, page=page, page_size=page_size)
    if not outcome.ok:
        return error_response(outcome.error)

    run_page = outcome.value
    return RunListResponse(
        runs=[RunSummaryOut.model_validate(_run_fields(r)) for r in run_page.runs],
        total=run_page.total,
        page=run_page.page,
        page_size=run_page.page_size,
    )


@router.get("/{filter_id}/runs/{run_id}", response_model=RunOut)
def get_run(
    filter_id: str,
    run_id: str,
    caller: Caller = Depends(get_caller),
    service: fe.FilterEvaluationService = Depends(get_evaluation_service),
):
    outcome = service.get_run(filter_id, run_id, caller)
    if not outcome.ok:
        return error_response(outcome.error)

    run = outcome.value
    return RunOut.model_validate(
        {
            **_run_fields(run),
            "model_list": run.model_list,
            "results": run.results,
            "created_at": run.created_at,
        }
    )
