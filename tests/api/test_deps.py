"""Engine resolution for the API dependencies."""

from modelsieve.api import deps


def test_get_engine_honours_database_url(tmp_path, monkeypatch):
    db_url = f"sqlite:///{tmp_path / 'env.db'}"
    monkeypatch.setenv("DATABASE_URL", db_url)
    deps._engine_for.cache_clear()
    try:
        engine = deps.get_engine()
        assert engine.dialect.name == "sqlite"
        assert engine.url.database == str(tmp_path / "env.db")
    finally:
        deps._engine_for.cache_clear()


def test_get_engine_reuses_engine_per_url(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'same.db'}")
    deps._engine_for.cache_clear()
    try:
        assert deps.get_engine() is deps.get_engine()
    finally:
        deps._engine_for.cache_clear()
