"""Global test fixtures."""

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from modelsieve.api.main import app  # noqa: E402
from modelsieve.api.rate_limit import RateLimiter  # noqa: E402
from modelsieve.db.engine import build_engine  # noqa: E402
from modelsieve.db.schema import Base  # noqa: E402
from modelsieve.repos.filters_repo import SavedFiltersRepo  # noqa: E402

MODELS = [
    {
        "id": "gpt-4",
        "name": "GPT-4",
        "provider": "openai",
        "inputCost": 0.03,
        "outputCost": 0.06,
        "contextWindow": 128000,
        "modalities": ["text", "image"],
        "capabilities": ["reasoning", "tools"],
        "openWeights": False,
        "releaseDate": "2023-03-14",
    },
    {
        "id": "claude-3",
        "name": "Claude 3",
        "provider": "anthropic",
        "inputCost": 0.015,
        "outputCost": 0.075,
        "contextWindow": 200000,
        "modalities": ["text", "image"],
        "capabilities": ["reasoning", "tools", "vision"],
        "openWeights": False,
        "releaseDate": "2024-03-04",
    },
    {
        "id": "llama-3-70b",
        "name": "Llama 3 70B",
        "provider": "meta",
        "inputCost": 0.0009,
        "outputCost": 0.0009,
        "contextWindow": 8192,
        "modalities": ["text"],
        "capabilities": ["tools"],
        "openWeights": True,
        "releaseDate": "2024-04-18",
    },
]


@pytest.fixture(autouse=True)
def _relax_rate_limit():
    # Ensure tests are not impacted by rate limiting unless explicitly set.
    app.state.rate_limiter = RateLimiter(limit_per_min=10_000, time_fn=lambda: 0)
    app.state.catalog_cache.clear()
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def models():
    return [dict(m) for m in MODELS]


@pytest.fixture
def engine(tmp_path):
    eng = build_engine(f"duckdb:///{tmp_path / 'modelsieve_test.duckdb'}")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def filters_repo(engine):
    return SavedFiltersRepo(engine)


@pytest.fixture
def openai_filter(filters_repo):
    return filters_repo.create(
        owner_id="user-1",
        name="OpenAI only",
        description="hard provider match",
        rules=[{"field": "provider", "operator": "eq", "value": "openai", "type": "hard"}],
    )
