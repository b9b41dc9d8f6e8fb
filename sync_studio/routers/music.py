"""Music router — the library that sync sessions reference by track id."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from sync_studio.services.library.library import (
    InvalidTrackError,
    MusicLibrary,
    TrackNotFoundError,
)
from sync_studio.services.shared.config import get_config

logger = logging.getLogger("sync_studio.routers.music")
router = APIRouter()

_library: Optional[MusicLibrary] = None


def _get_library() -> MusicLibrary:
    global _library
    if _library is None:
        cfg = get_config()
        db_path = cfg.get_env("SYNC_STUDIO_DB_PATH") or str(cfg.get_path("storage.db_path"))
        _library = MusicLibrary(db_path=db_path)
    return _library


class AddTrackRequest(BaseModel):
    title: str = ""
    audio_url: Optional[str] = None
    video_url: Optional[str] = None
    image_url: Optional[str] = None
    tags: str = ""
    lyrics: str = ""
    status: str = "complete"
    source: str = "generated"          # "generated" | "youtube"
    external_id: Optional[str] = None  # video id for imports


@router.get("")
async def get_music(id: Optional[str] = None) -> Union[List[Dict[str, Any]], Dict[str, Any]]:
    """List the library, newest first, or return one track when ``id`` is given."""
    lib = _get_library()
    if id:
        try:
            return lib.get_track(id).to_dict()
        except TrackNotFoundError as exc:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Music not found",
            ) from exc
    return [t.to_dict() for t in lib.list_tracks()]


@router.post("", status_code=status.HTTP_201_CREATED)
async def add_music(request: AddTrackRequest) -> Dict[str, Any]:
    """Register a generated song or an imported video-platform track."""
    try:
        track = _get_library().add_track(**request.model_dump())
    except InvalidTrackError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return track.to_dict()


@router.delete("")
async def delete_music(id: Optional[str] = None) -> Dict[str, bool]:
    if not id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="id is required")
    try:
        _get_library().delete_track(id)
    except TrackNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Music not found",
        ) from exc
    return {"success": True}
