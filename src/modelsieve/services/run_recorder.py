"""Run recorder: turn an evaluation into an immutable filter_runs row."""

from __future__ import annotations

import copy
import json
from dataclasses import replace
from datetime import datetime
from typing import Sequence
from uuid import uuid4

import structlog
from sqlalchemy.engine import Connection

from modelsieve.config.settings import settings
from modelsieve.db.schema import utcnow
from modelsieve.models.domain import (
    EvaluationResult,
    FilterRunRow,
    FilterSnapshot,
    ModelRecord,
    RuleClause,
    RunMeta,
    SavedFilterRow,
)
from modelsieve.repos.runs_repo import FilterRunsRepo
from modelsieve.services.artifacts import ArtifactStore
from modelsieve.services.rules import rules_to_wire

log = structlog.get_logger(__name__)


def build_snapshot(saved_filter: SavedFilterRow, rules: Sequence[RuleClause]) -> FilterSnapshot:
    """Value copy of the live filter; later edits never reach it."""
    return FilterSnapshot(
        id=saved_filter.id,
        name=saved_filter.name,
        description=saved_filter.description,
        visibility=saved_filter.visibility,
        rules=tuple(copy.deepcopy(rules_to_wire(rules))),
        version=saved_filter.version,
    )


def compact_model(model: ModelRecord) -> dict:
    return {
        "modelId": str(model.get("id", "")),
        "name": model.get("name"),
        "provider": model.get("provider"),
    }


class RunRecorder:
    """
    Builds and inserts one run per evaluation.

    The insert happens on the caller's connection so it commits (or rolls back)
    together with the usage counter update. Result payloads larger than
    ``threshold_bytes`` go to the artifact store when one is configured.
    """

    def __init__(
        self,
        artifact_store: ArtifactStore | None = None,
        threshold_bytes: int = settings.artifact_threshold_bytes,
    ) -> None:
        self.artifact_store = artifact_store
        self.threshold_bytes = threshold_bytes

    def _offload(self, run_id: str, results: list[dict], model_list: list[dict] | None):
        artifacts: dict[str, str] = {}
        if self.artifact_store is None:
            return results, model_list, None

        size = len(json.dumps(results)) + len(json.dumps(model_list or []))
        if size <= self.threshold_bytes:
            return results, model_list, None

        try:
            artifacts["full_results"] = self.artifact_store.write(f"runs/{run_id}/results", results)
            if model_list is not None:
                artifacts["model_list"] = self.artifact_store.write(f"runs/{run_id}/models", model_list)
                model_list = []
        except OSError:
            for uri in artifacts.values():
                self.artifact_store.delete(uri)
            raise
        log.info("run_payload_offloaded", run_id=run_id, size_bytes=size)
        return [], model_list, artifacts

    def record_run(
        self,
        conn: Connection,
        saved_filter: SavedFilterRow,
        rules: Sequence[RuleClause],
        results: Sequence[EvaluationResult],
        meta: RunMeta,
        run_id: str | None = None,
        executed_at: datetime | None = None,
    ) -> FilterRunRow:
        run_id = run_id or str(uuid4())
        executed_at = executed_at or utcnow()

        result_dicts = [r.to_dict() for r in results]
        model_list = [dict(m) for m in meta.model_list] if meta.model_list is not None else None
        stored_results, stored_models, artifacts = self._offload(run_id, result_dicts, model_list)

        run = FilterRunRow(
            id=run_id,
            filter_id=saved_filter.id,
            executed_by=meta.executed_by,
            executed_at=executed_at,
            duration_ms=meta.duration_ms,
            filter_snapshot=build_snapshot(saved_filter, rules).to_dict(),
            model_list=stored_models,
            limit_used=meta.limit_used,
            model_ids_filter=list(meta.model_ids_filter) if meta.model_ids_filter else None,
            total_evaluated=len(results),
            match_count=sum(1 for r in results if r.match),
            results=stored_results,
            artifacts=artifacts,
            created_at=executed_at,
        )
        try:
            FilterRunsRepo.insert(conn, run)
        except Exception:
            self.discard(run)
            raise
        return run

    def discard(self, run: FilterRunRow | None) -> None:
        """Remove offloaded payloads of a run whose transaction did not commit."""
        if run is None or not run.artifacts or self.artifact_store is None:
            return
        for uri in run.artifacts.values():
            self.artifact_store.delete(uri)
        log.info("run_artifacts_discarded", run_id=run.id, count=len(run.artifacts))

    def hydrate(self, run: FilterRunRow) -> FilterRunRow:
        """Inline any offloaded payloads for a run read back from the DB."""
        if not run.artifacts or self.artifact_store is None:
            return run
        results = run.results
        model_list = run.model_list
        if "full_results" in run.artifacts:
            results = self.artifact_store.read(run.artifacts["full_results"])
        if "model_list" in run.artifacts:
            model_list = self.artifact_store.read(run.artifacts["model_list"])
        return replace(run, results=results, model_list=model_list)
