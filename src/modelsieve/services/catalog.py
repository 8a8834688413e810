from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

import httpx
import structlog

from modelsieve.config.settings import settings
from modelsieve.errors import CatalogUnavailableError
from modelsieve.services.cache import MODELS_KEY, TTLCache

log = structlog.get_logger(__name__)


class ModelCatalog(Protocol):
    """Source of candidate model records."""

    def list_models(self) -> list[dict]:
        """Return every known model as a flat attribute dict with an ``id``."""
        raise NotImplementedError


@dataclass(frozen=True)
class StaticModelCatalog:
    """Fixed in-memory catalog (CLI files, tests)."""

    models: tuple[dict, ...] = ()

    def list_models(self) -> list[dict]:
        return [dict(m) for m in self.models]


def extract_models(payload: Any) -> list[dict]:
    """Accept `{"models": [...]}` or a bare list; keep only objects with an id."""
    if isinstance(payload, dict):
        payload = payload.get("models", []) or []
    if not isinstance(payload, list):
        return []
    return [m for m in payload if isinstance(m, dict) and m.get("id") is not None]


@dataclass
class HttpModelCatalog:
    """
    Pull the model list from the catalog endpoint.

    Design:
    - Sync client (simple for CLI + tests)
    - Dependency injection via `client` makes it testable without real HTTP
    - bounded retries with exponential backoff, then CatalogUnavailableError
    - results cached in the injected TTLCache
    """

    url: str = settings.catalog_url
    cache: TTLCache | None = None
    timeout_s: float = settings.catalog_timeout_s
    max_attempts: int = settings.catalog_max_attempts
    backoff_s: float = settings.catalog_backoff_s
    cache_ttl_s: float = settings.catalog_cache_ttl_s
    client: httpx.Client | None = None
    sleep_fn: Callable[[float], None] = field(default=time.sleep, repr=False)

    def _fetch_once(self) -> list[dict]:
        close_client = False
        client = self.client
        if client is None:
            client = httpx.Client(timeout=self.timeout_s)
            close_client = True
        try:
            r = client.get(self.url)
            r.raise_for_status()
            payload = r.json()
        finally:
            if close_client:
                client.close()
        return extract_models(payload)

    def list_models(self) -> list[dict]:
        if self.cache is not None:
            cached = self.cache.get(MODELS_KEY)
            if cached is not None:
                return [dict(m) for m in cached]

        attempts = 0
        backoff = self.backoff_s
        while True:
            try:
                models = self._fetch_once()
                break
            except (httpx.HTTPError, ValueError) as e:
                attempts += 1
                if attempts >= self.max_attempts:
                    log.error("catalog_fetch_failed", url=self.url, attempts=attempts, error=str(e))
                    raise CatalogUnavailableError(f"Failed to fetch models: {e}") from e
                log.warning("catalog_fetch_retry", url=self.url, attempt=attempts, backoff_s=backoff)
                self.sleep_fn(backoff)
                backoff *= 2

        if self.cache is not None:
            self.cache.purge_expired()
            self.cache.set(MODELS_KEY, models, ttl_s=self.cache_ttl_s)
        return [dict(m) for m in models]
