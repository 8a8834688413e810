from __future__ import annotations

import os

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from modelsieve import __version__
from modelsieve.api.deps import get_engine
from modelsieve.api.errors import register_error_handlers
from modelsieve.api.rate_limit import RateLimiter
from modelsieve.api.routes_filters import router as filters_router
from modelsieve.config.settings import settings
from modelsieve.db.engine import ping_db
from modelsieve.logging_config import configure_logging
from modelsieve.services.cache import TTLCache

configure_logging(settings.log_level, settings.log_json)
log = structlog.get_logger(__name__)

app = FastAPI(title="modelsieve", version=__version__)
limit = int(os.getenv("RATE_LIMIT_PER_MIN", settings.rate_limit_per_min))
app.state.rate_limiter = RateLimiter(limit_per_min=limit)
app.state.catalog_cache = TTLCache(default_ttl_s=settings.catalog_cache_ttl_s)

# Local dev CORS
cors_env = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000")
cors_origins = [o.strip() for o in cors_env.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# API routes under /api
app.include_router(filters_router, prefix="/api")


@app.middleware("http")
async def rate_limit_middleware(request: Request, call_next):
    limiter: RateLimiter = request.app.state.rate_limiter
    key = request.headers.get("x-user-id") or (request.client.host if request.client else "unknown")
    if not limiter.allow(key):
        log.warning("rate_limited", key=key, path=request.url.path)
        return JSONResponse(
            status_code=429,
            content={"error": {"code": "RATE_LIMITED", "message": "Rate limit exceeded", "details": {}}},
            headers={"Retry-After": str(limiter.seconds_until_reset())},
        )
    return await call_next(request)


@app.get("/api/health")
def health(engine: Engine = Depends(get_engine)) -> dict:
    db = ping_db(engine)
    return {
        "status": "ok" if db.ok else "degraded",
        "version": __version__,
        "db": {"ok": db.ok, "dialect": db.dialect, "detail": db.detail},
    }
