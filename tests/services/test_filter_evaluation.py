"""Evaluate-a-saved-filter workflow against a real DuckDB file."""

from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError

from modelsieve.errors import CatalogUnavailableError
from modelsieve.models.domain import Caller
from modelsieve.repos.runs_repo import FilterRunsRepo
from modelsieve.services.artifacts import LocalArtifactStore
from modelsieve.services.catalog import StaticModelCatalog
from modelsieve.services.filter_evaluation import (
    EvaluateRequest,
    FilterEvaluationService,
    clamp_limit,
)
from modelsieve.services.run_recorder import RunRecorder

OWNER = Caller(user_id="user-1")


class _BrokenCatalog:
    def list_models(self):
        raise CatalogUnavailableError("Failed to fetch models: 503")


class _FlakyRecorder(RunRecorder):
    """Inserts the run, then fails the first ``failures`` transactions."""

    def __init__(self, message: str, failures: int = 1, **kwargs):
        super().__init__(**kwargs)
        self.message = message
        self.failures = failures
        self.calls = 0

    def record_run(self, conn, *args, **kwargs):
        run = super().record_run(conn, *args, **kwargs)
        self.calls += 1
        if self.calls <= self.failures:
            raise OperationalError("INSERT INTO filter_runs", {}, Exception(self.message))
        return run


def _service(engine, models, **kwargs) -> FilterEvaluationService:
    kwargs.setdefault("sleep_fn", lambda _s: None)
    return FilterEvaluationService(engine, StaticModelCatalog(tuple(models)), **kwargs)


def test_evaluate_records_run_and_usage(engine, models, filters_repo, openai_filter):
    service = _service(engine, models)

    outcome = service.evaluate_filter(openai_filter.id, OWNER, EvaluateRequest())

    assert outcome.ok, outcome.error
    data = outcome.value
    assert data.filter_id == openai_filter.id
    assert data.filter_name == "OpenAI only"
    assert data.total_evaluated == 3
    assert data.match_count == 1
    assert [r.model_id for r in data.results] == ["gpt-4", "claude-3", "llama-3-70b"]
    assert [r.match for r in data.results] == [True, False, False]
    assert data.duration_ms >= 0

    saved = filters_repo.get(openai_filter.id)
    assert saved.usage_count == 1
    assert saved.last_used_at is not None

    run = FilterRunsRepo(engine).get_run(openai_filter.id, data.run_id)
    assert run is not None
    assert run.executed_by == "user-1"
    assert run.total_evaluated == 3
    assert run.match_count == 1
    assert run.limit_used == 50
    assert run.filter_snapshot["rules"][0]["value"] == "openai"
    assert [m["modelId"] for m in run.model_list] == ["gpt-4", "claude-3", "llama-3-70b"]
    assert run.results[0]["modelId"] == "gpt-4"


def test_snapshot_survives_filter_edit(engine, models, filters_repo, openai_filter):
    service = _service(engine, models)
    run_id = service.evaluate_filter(openai_filter.id, OWNER).value.run_id

    filters_repo.update_rules(
        openai_filter.id,
        [{"field": "provider", "operator": "eq", "value": "anthropic", "type": "hard"}],
    )
    second = service.evaluate_filter(openai_filter.id, OWNER).value

    first_run = service.get_run(openai_filter.id, run_id, OWNER).value
    second_run = service.get_run(openai_filter.id, second.run_id, OWNER).value
    assert first_run.filter_snapshot["rules"][0]["value"] == "openai"
    assert first_run.filter_snapshot["version"] == 1
    assert second_run.filter_snapshot["rules"][0]["value"] == "anthropic"
    assert second_run.filter_snapshot["version"] == 2
    assert [r.match for r in second.results] == [False, True, False]


@pytest.mark.parametrize("requested,expected", [(1000, 500), (0, 1), (-5, 1), (2, 2), (None, 50)])
def test_limit_is_clamped(engine, models, openai_filter, requested, expected):
    service = _service(engine, models)
    data = service.evaluate_filter(openai_filter.id, OWNER, EvaluateRequest(limit=requested)).value

    assert data.total_evaluated == min(expected, len(models))
    run = FilterRunsRepo(engine).get_run(openai_filter.id, data.run_id)
    assert run.limit_used == expected


@pytest.mark.parametrize("bad", ["abc", 2.5, True])
def test_non_integer_limit_is_rejected(engine, models, openai_filter, bad):
    outcome = _service(engine, models).evaluate_filter(
        openai_filter.id, OWNER, EvaluateRequest(limit=bad)
    )
    assert outcome.error.code == "VALIDATION_ERROR"
    assert outcome.error.details["field"] == "limit"


def test_clamp_limit_defaults():
    assert clamp_limit(None, default=50, maximum=500) == (50, None)
    assert clamp_limit(501, default=50, maximum=500) == (500, None)


def test_model_ids_narrow_and_keep_catalog_order(engine, models, openai_filter):
    service = _service(engine, models)
    data = service.evaluate_filter(
        openai_filter.id,
        OWNER,
        EvaluateRequest(model_ids=["llama-3-70b", "gpt-4", "unknown"]),
    ).value

    assert [r.model_id for r in data.results] == ["gpt-4", "llama-3-70b"]
    run = FilterRunsRepo(engine).get_run(openai_filter.id, data.run_id)
    assert run.model_ids_filter == ["llama-3-70b", "gpt-4", "unknown"]


def test_invalid_model_ids_rejected(engine, models, openai_filter):
    outcome = _service(engine, models).evaluate_filter(
        openai_filter.id, OWNER, EvaluateRequest(model_ids=["gpt-4", 7])
    )
    assert outcome.error.details["field"] == "modelIds"


def test_missing_filter_is_not_found(engine, models):
    outcome = _service(engine, models).evaluate_filter("nope", OWNER)
    assert outcome.error.code == "NOT_FOUND"
    assert outcome.error.status_code == 404


def test_private_filter_denied_without_side_effects(engine, models, filters_repo, openai_filter):
    outcome = _service(engine, models).evaluate_filter(openai_filter.id, Caller("intruder", "t9"))

    assert outcome.error.code == "FORBIDDEN"
    assert filters_repo.get(openai_filter.id).usage_count == 0
    assert FilterRunsRepo(engine).count_runs(openai_filter.id) == 0


def test_team_filter_visible_to_team_member(engine, models, filters_repo):
    saved = filters_repo.create(
        owner_id="lead",
        name="Team pick",
        rules=[{"field": "openWeights", "operator": "eq", "value": True, "type": "hard"}],
        visibility="team",
        team_id="t1",
    )
    outcome = _service(engine, models).evaluate_filter(saved.id, Caller("member", "t1"))
    assert outcome.ok
    assert outcome.value.match_count == 1


def test_invalid_stored_rules(engine, models, filters_repo):
    saved = filters_repo.create(
        owner_id="user-1",
        name="broken",
        rules=[{"field": "provider", "operator": "like", "value": "open%", "type": "hard"}],
    )
    outcome = _service(engine, models).evaluate_filter(saved.id, OWNER)
    assert outcome.error.code == "VALIDATION_ERROR"
    assert outcome.error.details["field"] == "rules[0].operator"
    assert filters_repo.get(saved.id).usage_count == 0


def test_catalog_failure_records_nothing(engine, filters_repo, openai_filter):
    service = FilterEvaluationService(engine, _BrokenCatalog())
    outcome = service.evaluate_filter(openai_filter.id, OWNER)

    assert outcome.error.code == "CATALOG_UNAVAILABLE"
    assert filters_repo.get(openai_filter.id).usage_count == 0
    assert FilterRunsRepo(engine).count_runs(openai_filter.id) == 0


def test_persistence_failure_rolls_back_run_and_usage(engine, models, filters_repo, openai_filter):
    recorder = _FlakyRecorder("disk I/O error", failures=10)
    service = _service(engine, models, recorder=recorder)

    outcome = service.evaluate_filter(openai_filter.id, OWNER)

    assert outcome.error.code == "PERSISTENCE_ERROR"
    assert recorder.calls == 1
    assert filters_repo.get(openai_filter.id).usage_count == 0
    assert FilterRunsRepo(engine).count_runs(openai_filter.id) == 0


def test_write_conflict_is_retried(engine, models, filters_repo, openai_filter):
    sleeps = []
    recorder = _FlakyRecorder("Transaction conflict on update", failures=2)
    service = _service(
        engine, models, recorder=recorder, persist_backoff_s=0.1, sleep_fn=sleeps.append
    )

    outcome = service.evaluate_filter(openai_filter.id, OWNER)

    assert outcome.ok
    assert recorder.calls == 3
    assert sleeps == [0.1, 0.2]
    assert filters_repo.get(openai_filter.id).usage_count == 1
    assert FilterRunsRepo(engine).count_runs(openai_filter.id) == 1


def test_write_conflict_gives_up_after_max_attempts(engine, models, openai_filter):
    recorder = _FlakyRecorder("database is locked", failures=10)
    service = _service(engine, models, recorder=recorder, persist_max_attempts=3)

    outcome = service.evaluate_filter(openai_filter.id, OWNER)

    assert outcome.error.code == "PERSISTENCE_ERROR"
    assert recorder.calls == 3


def test_large_payload_offloaded_and_hydrated(engine, models, openai_filter, tmp_path):
    store = LocalArtifactStore(tmp_path / "artifacts")
    service = _service(engine, models, recorder=RunRecorder(artifact_store=store, threshold_bytes=10))

    data = service.evaluate_filter(openai_filter.id, OWNER).value

    raw = FilterRunsRepo(engine).get_run(openai_filter.id, data.run_id)
    assert raw.results == []
    assert raw.model_list == []
    assert set(raw.artifacts) == {"full_results", "model_list"}
    assert raw.artifacts["full_results"].startswith("file://")
    assert raw.total_evaluated == 3

    hydrated = service.get_run(openai_filter.id, data.run_id, OWNER).value
    assert [r["modelId"] for r in hydrated.results] == ["gpt-4", "claude-3", "llama-3-70b"]
    assert len(hydrated.model_list) == 3


def test_small_payload_stays_inline(engine, models, openai_filter, tmp_path):
    store = LocalArtifactStore(tmp_path / "artifacts")
    service = _service(engine, models, recorder=RunRecorder(artifact_store=store))

    data = service.evaluate_filter(openai_filter.id, OWNER).value
    raw = FilterRunsRepo(engine).get_run(openai_filter.id, data.run_id)
    assert raw.artifacts is None
    assert len(raw.results) == 3


def test_list_runs_paginates_newest_first(engine, models, openai_filter):
    service = _service(engine, models)
    run_ids = [service.evaluate_filter(openai_filter.id, OWNER).value.run_id for _ in range(3)]

    page = service.list_runs(openai_filter.id, OWNER, page=1, page_size=2).value
    assert page.total == 3
    assert page.page_size == 2
    assert len(page.runs) == 2

    rest = service.list_runs(openai_filter.id, OWNER, page=2, page_size=2).value
    listed = [r.id for r in page.runs + rest.runs]
    assert sorted(listed) == sorted(run_ids)

    clamped = service.list_runs(openai_filter.id, OWNER, page=1, page_size=1000).value
    assert clamped.page_size == 100


def test_run_lookups_respect_access(engine, models, openai_filter):
    service = _service(engine, models)
    run_id = service.evaluate_filter(openai_filter.id, OWNER).value.run_id
    stranger = Caller("stranger")

    assert service.list_runs(openai_filter.id, stranger).error.code == "FORBIDDEN"
    assert service.get_run(openai_filter.id, run_id, stranger).error.code == "FORBIDDEN"
    missing = service.get_run(openai_filter.id, "no-such-run", OWNER)
    assert missing.error.code == "NOT_FOUND"
    assert missing.error.message == "Filter run not found"


def test_failed_insert_discards_offloaded_payloads(
    engine, models, filters_repo, openai_filter, tmp_path, monkeypatch
):
    root = tmp_path / "artifacts"
    recorder = RunRecorder(artifact_store=LocalArtifactStore(root), threshold_bytes=10)
    service = _service(engine, models, recorder=recorder)

    def _broken_insert(conn, row):
        raise OperationalError("INSERT INTO filter_runs", {}, Exception("disk I/O error"))

    monkeypatch.setattr(FilterRunsRepo, "insert", staticmethod(_broken_insert))

    outcome = service.evaluate_filter(openai_filter.id, OWNER)

    assert outcome.error.code == "PERSISTENCE_ERROR"
    assert list(root.rglob("*.json")) == []
    assert filters_repo.get(openai_filter.id).usage_count == 0


def test_retried_conflict_keeps_only_committed_payloads(engine, models, openai_filter, tmp_path):
    root = tmp_path / "artifacts"
    recorder = _FlakyRecorder(
        "Transaction conflict on update",
        failures=1,
        artifact_store=LocalArtifactStore(root),
        threshold_bytes=10,
    )
    service = _service(engine, models, recorder=recorder)

    data = service.evaluate_filter(openai_filter.id, OWNER).value

    hydrated = service.get_run(openai_filter.id, data.run_id, OWNER).value
    assert len(hydrated.results) == 3
    assert sorted(p.name for p in root.rglob("*.json")) == ["models.json", "results.json"]


def test_unreadable_artifact_is_reported_not_raised(engine, models, openai_filter, tmp_path):
    root = tmp_path / "run artifacts"
    store = LocalArtifactStore(root)
    service = _service(engine, models, recorder=RunRecorder(artifact_store=store, threshold_bytes=10))
    run_id = service.evaluate_filter(openai_filter.id, OWNER).value.run_id

    raw = FilterRunsRepo(engine).get_run(openai_filter.id, run_id)
    store.delete(raw.artifacts["full_results"])

    outcome = service.get_run(openai_filter.id, run_id, OWNER)
    assert outcome.error.code == "PERSISTENCE_ERROR"
    assert outcome.error.details["run_id"] == run_id
