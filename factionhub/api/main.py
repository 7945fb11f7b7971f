"""
factionhub.api.main — FastAPI application entry point
======================================================

Run with::

    uvicorn factionhub.api.main:app --reload --port 8000
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

from factionhub.api.auth import router as auth_router  # noqa: E402
from factionhub.api.deps import get_engine  # noqa: E402
from factionhub.api.routes.logs import router as logs_router  # noqa: E402
from factionhub.api.routes.members import router as members_router  # noqa: E402
from factionhub.api.routes.regulations import router as regulations_router  # noqa: E402
from factionhub.api.routes.wars import router as wars_router  # noqa: E402
from factionhub.database.engine import init_db  # noqa: E402
from factionhub.errors import (  # noqa: E402
    ConflictError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
)
logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle: warm the DB engine and seed defaults."""
    engine = get_engine()
    init_db(engine)
    logger.info("Faction Hub API started, engine ready (%s)", engine.url.database)
    yield
    logger.info("Faction Hub API shutting down")


app = FastAPI(
    title="Faction Hub API",
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


# ---------------------------------------------------------------------------
# Typed failures → HTTP
# ---------------------------------------------------------------------------
@app.exception_handler(ValidationError)
async def _validation_error(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": exc.message, "errors": [e.to_dict() for e in exc.errors]},
    )


@app.exception_handler(PermissionDenied)
async def _permission_denied(request: Request, exc: PermissionDenied):
    return JSONResponse(status_code=403, content={"error": str(exc)})


@app.exception_handler(NotFoundError)
async def _not_found(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"error": str(exc)})


@app.exception_handler(ConflictError)
async def _conflict(request: Request, exc: ConflictError):
    logger.info("Conflict on %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=409, content={"error": exc.message, "state": exc.state})


# Mount routers.  Static /wars/... paths must be registered before
# /wars/{ref} so "regulations" and "user" are not read as war refs.
app.include_router(auth_router, prefix="/api")
app.include_router(regulations_router, prefix="/api")
app.include_router(logs_router, prefix="/api")
app.include_router(wars_router, prefix="/api")
app.include_router(members_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
