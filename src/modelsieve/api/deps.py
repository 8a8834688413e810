"""API dependencies."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.engine import Engine

from modelsieve.config.settings import settings
from modelsieve.db.engine import build_engine, resolve_db_url
from modelsieve.db.init_db import ensure_db
from modelsieve.errors import AuthenticationError
from modelsieve.models.domain import Caller
from modelsieve.services.artifacts import ArtifactStore, LocalArtifactStore
from modelsieve.services.catalog import HttpModelCatalog, ModelCatalog
from modelsieve.services.filter_evaluation import FilterEvaluationService
from modelsieve.services.run_recorder import RunRecorder


@lru_cache(maxsize=None)
def _engine_for(db_url: str) -> Engine:
    engine = build_engine(db_url)
    ensure_db(engine)
    return engine


def get_engine() -> Engine:
    return _engine_for(resolve_db_url())


def get_catalog(request: Request) -> ModelCatalog:
    # one cache per process, created with the app
    return HttpModelCatalog(url=settings.catalog_url, cache=request.app.state.catalog_cache)


def get_artifact_store() -> Optional[ArtifactStore]:
    if not settings.artifact_dir:
        return None
    return LocalArtifactStore(Path(settings.artifact_dir))


def get_caller(
    x_user_id: Optional[str] = Header(None),
    x_team_id: Optional[str] = Header(None),
) -> Caller:
    """
    Development stand-in for the real auth layer: identity comes from
    X-User-Id / X-Team-Id headers.
    """
    if not x_user_id:
        raise AuthenticationError()
    return Caller(user_id=x_user_id, team_id=x_team_id or None)


def get_evaluation_service(
    engine: Engine = Depends(get_engine),
    catalog: ModelCatalog = Depends(get_catalog),
    artifact_store: Optional[ArtifactStore] = Depends(get_artifact_store),
) -> FilterEvaluationService:
    recorder = RunRecorder(
        artifact_store=artifact_store,
        threshold_bytes=settings.artifact_threshold_bytes,
    )
    return FilterEvaluationService(engine=engine, catalog=catalog, recorder=recorder)
