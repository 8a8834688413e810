from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized config.

    Key idea:
    - read from env first (so tests/CI can override),
    - otherwise default to local dev values.
    """

    model_config = SettingsConfigDict(env_prefix="MODELSIEVE_", extra="ignore")

    # DuckDB file by default (portable, zero-setup)
    db_url: str = "duckdb:///data/modelsieve.duckdb"

    # Evaluate request limits
    default_limit: int = 50
    max_limit: int = 500

    # Model catalog (external collaborator)
    catalog_url: str = "http://localhost:3000/api/models"
    catalog_timeout_s: float = 10.0
    catalog_max_attempts: int = 3
    catalog_backoff_s: float = 0.5
    catalog_cache_ttl_s: float = 3600.0

    # 1 = evaluate models sequentially
    evaluation_workers: int = 1

    # Run + usage transaction retries on write conflicts
    persist_max_attempts: int = 5
    persist_backoff_s: float = 0.05

    # Large result sets are offloaded when an artifact dir is set
    artifact_dir: str | None = None
    artifact_threshold_bytes: int = 1_000_000
    store_model_list: bool = True

    rate_limit_per_min: int = 60

    log_level: str = "info"
    log_json: bool = False


settings = Settings()
