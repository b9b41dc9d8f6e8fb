"""Sync Studio — FastAPI application entry point.

All routers are mounted here.  Run with ``uvicorn sync_studio.main:app``.
"""
from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sync_studio.routers import music, sync, system
from sync_studio.routers.system import VERSION
from sync_studio.services.shared.config import get_config
from sync_studio.services.shared.logging import setup_logging_from_config

_config = get_config()
setup_logging_from_config(_config)

app = FastAPI(
    title="Sync Studio",
    version=VERSION,
    description="AI music studio backend: music library and Sync Party shared listening rooms.",
)

# ── CORS ──────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=_config.get("cors.allow_origins", ["http://localhost:3000"]),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(sync.router,   prefix="/api/sync",   tags=["Sync"])
app.include_router(music.router,  prefix="/api/music",  tags=["Music"])
app.include_router(system.router, prefix="/api/system", tags=["System"])


# ── Error handlers ────────────────────────────────────────────────────────────
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed sync requests are a 400 like any other missing field."""
    if request.url.path.startswith("/api/sync"):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": "Invalid request", "errors": jsonable_encoder(exc.errors())},
        )
    return await request_validation_exception_handler(request, exc)
