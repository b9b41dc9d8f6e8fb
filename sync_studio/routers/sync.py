"""Sync router — Sync Party session coordinator.

All four operations live on one path and are keyed by the room code
(case-insensitive).  Update is a sparse merge and is not restricted to the
host: only the host's client writes, by convention.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field

from sync_studio.services.shared.config import get_config
from sync_studio.services.sync.errors import (
    CodeGenerationError,
    SessionExpiredError,
    SessionNotFoundError,
)
from sync_studio.services.sync.store import SessionStore

logger = logging.getLogger("sync_studio.routers.sync")
router = APIRouter()

# ── Module-level singleton (lazy init) ────────────────────────────────────────
_store: Optional[SessionStore] = None


def _get_store() -> SessionStore:
    global _store
    if _store is None:
        cfg = get_config()
        db_path = cfg.get_env("SYNC_STUDIO_DB_PATH") or str(cfg.get_path("storage.db_path"))
        _store = SessionStore(
            db_path=db_path,
            ttl_hours=cfg.get("sync.ttl_hours", 24),
            max_code_attempts=cfg.get("sync.max_code_attempts", 10),
            code_length=cfg.get("sync.code_length", 6),
            code_alphabet=cfg.get("sync.code_alphabet", "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"),
        )
    return _store


# ── Pydantic models ───────────────────────────────────────────────────────────


class CreateSessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    host_id: Optional[str] = Field(default=None, alias="hostId")


class UpdateSessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: Optional[str] = None
    current_track_ref: Optional[str] = Field(default=None, alias="currentTrackRef")
    is_playing: Optional[bool] = Field(default=None, alias="isPlaying")
    current_time: Optional[float] = Field(default=None, alias="currentTime")


# ── Helpers ───────────────────────────────────────────────────────────────────


def _require_code(code: Optional[str]) -> str:
    if not code or not code.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Code is required",
        )
    return code


def _session_error(exc: Exception) -> HTTPException:
    if isinstance(exc, SessionExpiredError):
        return HTTPException(status_code=status.HTTP_410_GONE, detail="Session expired")
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")


# ── Endpoints ─────────────────────────────────────────────────────────────────


@router.get("")
async def get_session(code: Optional[str] = None) -> Dict[str, Any]:
    """Return the room snapshot.  ``lastUpdate`` is an opaque change token."""
    code = _require_code(code)
    try:
        session = _get_store().get(code)
    except (SessionNotFoundError, SessionExpiredError) as exc:
        raise _session_error(exc) from exc
    return session.to_public_dict()


@router.post("")
async def create_session(request: CreateSessionRequest) -> Dict[str, Any]:
    """Create a room that expires 24 hours from now."""
    if not request.host_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="hostId is required",
        )
    try:
        session = _get_store().create(request.host_id)
    except CodeGenerationError as exc:
        logger.error("Session creation failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create session",
        ) from exc
    public = session.to_public_dict()
    return {"code": public["code"], "hostId": public["hostId"], "expiresAt": public["expiresAt"]}


@router.put("")
async def update_session(request: UpdateSessionRequest) -> Dict[str, Any]:
    """Merge the supplied fields into the room state.

    Omitted fields keep their value.  An explicit ``currentTrackRef: null``
    clears the track; ``null`` for ``isPlaying`` or ``currentTime`` counts as
    omitted.
    """
    code = _require_code(request.code)
    changes: Dict[str, Any] = {}
    if "current_track_ref" in request.model_fields_set:
        changes["current_track_ref"] = request.current_track_ref
    if request.is_playing is not None:
        changes["is_playing"] = request.is_playing
    if request.current_time is not None:
        changes["current_time"] = request.current_time
    try:
        session = _get_store().update(code, **changes)
    except (SessionNotFoundError, SessionExpiredError) as exc:
        raise _session_error(exc) from exc
    return session.to_public_dict()


@router.delete("")
async def delete_session(code: Optional[str] = None) -> Dict[str, bool]:
    """Remove the room.  Deleting a missing room still succeeds."""
    code = _require_code(code)
    _get_store().delete(code)
    return {"success": True}
