"""Evaluate-a-saved-filter workflow and run history lookups."""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, List, Optional, Sequence, Tuple
from uuid import uuid4

import structlog
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from modelsieve.config.settings import settings
from modelsieve.db.engine import write_lock
from modelsieve.db.schema import utcnow
from modelsieve.errors import (
    AccessDeniedError,
    ModelSieveError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from modelsieve.models.domain import (
    Caller,
    EvaluateResponseData,
    EvaluationResult,
    FilterRunRow,
    Outcome,
    RuleClause,
    RunMeta,
    SavedFilterRow,
)
from modelsieve.repos.filters_repo import SavedFiltersRepo
from modelsieve.repos.runs_repo import FilterRunsRepo
from modelsieve.services.access import can_access_filter
from modelsieve.services.catalog import ModelCatalog
from modelsieve.services.evaluator import evaluate_all
from modelsieve.services.rules import parse_rules
from modelsieve.services.run_recorder import RunRecorder, compact_model
from modelsieve.services.usage import UsageTracker

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class EvaluateRequest:
    model_ids: Optional[List[str]] = None
    limit: Any = None


@dataclass(frozen=True)
class RunPage:
    runs: List[FilterRunRow]
    total: int
    page: int
    page_size: int


def clamp_limit(
    limit: Any,
    default: int = settings.default_limit,
    maximum: int = settings.max_limit,
) -> Tuple[int, Optional[ValidationError]]:
    """None -> default; otherwise clamp an integer into [1, maximum]."""
    if limit is None:
        return min(max(default, 1), maximum), None
    if isinstance(limit, bool) or not isinstance(limit, int):
        return 0, ValidationError("limit", "limit must be an integer")
    return min(max(limit, 1), maximum), None


def _validate_model_ids(model_ids: Any) -> Optional[ValidationError]:
    if model_ids is None:
        return None
    if not isinstance(model_ids, (list, tuple)) or not all(isinstance(m, str) for m in model_ids):
        return ValidationError("modelIds", "modelIds must be an array of strings")
    return None


def _is_write_conflict(exc: DBAPIError) -> bool:
    msg = str(exc.orig if exc.orig is not None else exc).lower()
    return "conflict" in msg or "database is locked" in msg or "could not serialize" in msg


class FilterEvaluationService:
    """
    access gate -> catalog -> evaluator -> run + usage (one transaction).

    Expected failures come back as ``Outcome.failure``; nothing is raised for
    validation, missing filters, access denial, catalog or persistence errors.
    """

    def __init__(
        self,
        engine: Engine,
        catalog: ModelCatalog,
        recorder: RunRecorder | None = None,
        usage: UsageTracker | None = None,
        workers: int = settings.evaluation_workers,
        persist_max_attempts: int = settings.persist_max_attempts,
        persist_backoff_s: float = settings.persist_backoff_s,
        store_model_list: bool = settings.store_model_list,
        sleep_fn: Callable[[float], None] = time.sleep,
    ) -> None:
        self.engine = engine
        self.catalog = catalog
        self.filters = SavedFiltersRepo(engine)
        self.runs = FilterRunsRepo(engine)
        self.recorder = recorder or RunRecorder()
        self.usage = usage or UsageTracker()
        self.workers = workers
        self.persist_max_attempts = max(1, persist_max_attempts)
        self.persist_backoff_s = persist_backoff_s
        self.store_model_list = store_model_list
        self.sleep_fn = sleep_fn

    def _load_accessible(self, filter_id: str, caller: Caller) -> Outcome[SavedFilterRow]:
        saved = self.filters.get(filter_id)
        if saved is None:
            return Outcome.failure(NotFoundError("Filter", filter_id))
        if not can_access_filter(caller, saved):
            log.info("filter_access_denied", filter_id=filter_id, user_id=caller.user_id)
            return Outcome.failure(AccessDeniedError())
        return Outcome.success(saved)

    def evaluate_filter(
        self,
        filter_id: str,
        caller: Caller,
        request: EvaluateRequest | None = None,
    ) -> Outcome[EvaluateResponseData]:
        request = request or EvaluateRequest()
        started = time.perf_counter()
        log.debug("filter_evaluation_started", filter_id=filter_id, user_id=caller.user_id)

        limit, err = clamp_limit(request.limit)
        err = err or _validate_model_ids(request.model_ids)
        if err is not None:
            return Outcome.failure(err)

        loaded = self._load_accessible(filter_id, caller)
        if not loaded.ok:
            return Outcome.failure(loaded.error)
        saved = loaded.value

        rules, err = parse_rules(saved.rules)
        if err is not None:
            return Outcome.failure(err)

        try:
            models = self.catalog.list_models()
        except ModelSieveError as e:
            return Outcome.failure(e)

        if request.model_ids:
            wanted = set(request.model_ids)
            models = [m for m in models if str(m.get("id")) in wanted]
        models = models[:limit]

        results = evaluate_all(rules, models, workers=self.workers)
        duration_ms = int((time.perf_counter() - started) * 1000)

        meta = RunMeta(
            executed_by=caller.user_id,
            duration_ms=duration_ms,
            limit_used=limit,
            model_ids_filter=list(request.model_ids) if request.model_ids else None,
            model_list=[compact_model(m) for m in models] if self.store_model_list else None,
        )

        try:
            run = self._persist(saved, rules, results, meta)
        except ModelSieveError as e:
            return Outcome.failure(e)

        match_count = run.match_count
        log.info(
            "filter_evaluated",
            filter_id=saved.id,
            run_id=run.id,
            total_evaluated=len(results),
            match_count=match_count,
            duration_ms=duration_ms,
        )
        return Outcome.success(
            EvaluateResponseData(
                filter_id=saved.id,
                filter_name=saved.name,
                run_id=run.id,
                results=list(results),
                total_evaluated=len(results),
                match_count=match_count,
                duration_ms=duration_ms,
            )
        )

    def _persist(
        self,
        saved: SavedFilterRow,
        rules: Sequence[RuleClause],
        results: Sequence[EvaluationResult],
        meta: RunMeta,
    ) -> FilterRunRow:
        """
        Usage increment + run insert commit together or not at all.
        Write conflicts retry the whole transaction; anything else is fatal.
        """
        run_id = str(uuid4())
        executed_at = utcnow()
        attempts = 0
        backoff = self.persist_backoff_s
        while True:
            try:
                return self._write_once(saved, rules, results, meta, run_id, executed_at)
            except DBAPIError as e:
                attempts += 1
                if not _is_write_conflict(e) or attempts >= self.persist_max_attempts:
                    log.error("run_persist_failed", filter_id=saved.id, attempts=attempts, error=str(e))
                    raise PersistenceError("Failed to record filter run", {"filter_id": saved.id}) from e
                log.warning("run_persist_conflict", filter_id=saved.id, attempt=attempts, backoff_s=backoff)
                self.sleep_fn(backoff)
                backoff *= 2
            except SQLAlchemyError as e:
                log.error("run_persist_failed", filter_id=saved.id, error=str(e))
                raise PersistenceError("Failed to record filter run", {"filter_id": saved.id}) from e
            except OSError as e:
                # artifact offload
                log.error("run_artifact_write_failed", filter_id=saved.id, error=str(e))
                raise PersistenceError("Failed to store run artifacts", {"filter_id": saved.id}) from e

    def _write_once(
        self,
        saved: SavedFilterRow,
        rules: Sequence[RuleClause],
        results: Sequence[EvaluationResult],
        meta: RunMeta,
        run_id: str,
        executed_at: datetime,
    ) -> FilterRunRow:
        run = None
        try:
            with write_lock(self.engine), self.engine.begin() as conn:
                self.usage.increment_usage(conn, saved.id, executed_at)
                run = self.recorder.record_run(
                    conn, saved, rules, results, meta, run_id=run_id, executed_at=executed_at
                )
        except Exception:
            # rolled back; offloaded payloads must not outlive it
            self.recorder.discard(run)
            raise
        return run

    def list_runs(
        self,
        filter_id: str,
        caller: Caller,
        page: int = 1,
        page_size: int = 20,
    ) -> Outcome[RunPage]:
        loaded = self._load_accessible(filter_id, caller)
        if not loaded.ok:
            return Outcome.failure(loaded.error)

        page = max(1, page)
        page_size = min(max(1, page_size), 100)
        runs = self.runs.list_runs(filter_id, limit=page_size, offset=(page - 1) * page_size)
        total = self.runs.count_runs(filter_id)
        return Outcome.success(RunPage(runs=runs, total=total, page=page, page_size=page_size))

    def get_run(self, filter_id: str, run_id: str, caller: Caller) -> Outcome[FilterRunRow]:
        loaded = self._load_accessible(filter_id, caller)
        if not loaded.ok:
            return Outcome.failure(loaded.error)

        run = self.runs.get_run(filter_id, run_id)
        if run is None:
            return Outcome.failure(NotFoundError("Filter run", run_id))
        try:
            return Outcome.success(self.recorder.hydrate(run))
        except (OSError, ValueError) as e:
            log.error("run_artifact_read_failed", run_id=run_id, error=str(e))
            return Outcome.failure(
                PersistenceError("Failed to load run artifacts", {"run_id": run_id})
            )
