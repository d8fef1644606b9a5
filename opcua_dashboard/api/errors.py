from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from opcua_dashboard.services.normalization import ConfigStructureError

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(HTTPException)
    async def http_exception_handler(_, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "detail": exc.detail,
                "error": {"type": "http", "status": exc.status_code, "detail": exc.detail},
            },
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content={
                "detail": "Validation error",
                "error": {"type": "validation", "issues": jsonable_issues(exc.errors())},
            },
        )

    @app.exception_handler(ConfigStructureError)
    async def config_structure_handler(_, exc: ConfigStructureError):
        logger.warning("Rejected PLC configuration: %s", exc)
        return JSONResponse(
            status_code=400,
            content={
                "detail": str(exc),
                "error": {"type": "config", "detail": str(exc)},
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(_, exc: Exception):
        logger.exception("Unhandled error: %s", exc)
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error",
                "error": {"type": "internal"},
            },
        )


def jsonable_issues(issues: list) -> list:
    """Pydantic error dicts may carry the raw exception under ``ctx``."""
    out = []
    for issue in issues:
        item = dict(issue)
        ctx = item.get("ctx")
        if isinstance(ctx, dict):
            item["ctx"] = {k: (v if isinstance(v, (str, int, float, bool, type(None))) else str(v)) for k, v in ctx.items()}
        out.append(item)
    return out
