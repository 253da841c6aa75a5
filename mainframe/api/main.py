"""
mainframe.api.main — FastAPI application entry point
======================================================

Run with::

    uvicorn mainframe.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from mainframe.api.deps import get_engine  # noqa: E402
from mainframe.api.routes.mainframe import router as mainframe_router  # noqa: E402
from mainframe.database.engine import init_db  # noqa: E402
from mainframe.errors import (  # noqa: E402
    ConflictError,
    InvariantViolation,
    MainframeError,
    NotFoundError,
    TransientStoreError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Error class → HTTP status; first match wins
_ERROR_STATUS: tuple[tuple[type[MainframeError], int], ...] = (
    (ValidationError, 422),
    (NotFoundError, 404),
    (ConflictError, 400),
    (TransientStoreError, 503),
    (InvariantViolation, 500),
)


def _cors_origins() -> list[str]:
    """Allowed CORS origins from ``CORS_ALLOW_ORIGINS`` (comma-separated)."""
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if not raw:
        return []
    return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — create tables and seed catalogs."""
    engine = get_engine()
    init_db(engine)
    logger.info("Mainframe API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("Mainframe API shutting down")


app = FastAPI(
    title="Mainframe Widget API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(MainframeError)
async def mainframe_error_handler(request: Request, exc: MainframeError) -> JSONResponse:
    """Map service errors to the widget's JSON error envelope."""
    status_code = next(
        (code for cls, code in _ERROR_STATUS if isinstance(exc, cls)), 500,
    )
    if status_code >= 500:
        logger.error(
            "%s on %s (op=%s user=%s)",
            exc.code, request.url.path, exc.operation, exc.user_id, exc_info=exc,
        )
    body = {"success": False, "message": exc.message, "code": exc.code}
    if isinstance(exc, ValidationError) and exc.fields:
        body["errors"] = exc.fields
    return JSONResponse(status_code=status_code, content=body)


app.include_router(mainframe_router)


@app.get("/health")
def health():
    return {"status": "ok"}
