"""Map ModelSieveError (and request validation) onto JSON error responses."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from modelsieve.errors import ModelSieveError, ValidationError


def error_response(error: ModelSieveError) -> JSONResponse:
    return JSONResponse(
        status_code=error.status_code,
        content=error.to_response().model_dump(),
    )


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ModelSieveError)
    async def _modelsieve_error(request: Request, exc: ModelSieveError):
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        # loc looks like ("body", "limit")
        loc = [str(p) for p in first.get("loc", ()) if p != "body"]
        field = ".".join(loc) or "body"
        err = ValidationError(
            field,
            first.get("msg", "Invalid request"),
            {"errors": [{"loc": list(map(str, e.get("loc", ()))), "msg": e.get("msg")} for e in errors]},
        )
        return JSONResponse(status_code=422, content=err.to_response().model_dump())
