"""Music library — the track records a sync session's track reference points at.

Tracks are either generated songs or imports from a video platform; both are
stored the same way and addressed by ``id``.
"""
from __future__ import annotations

import logging
import sqlite3
import time
import uuid
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger("sync_studio.library")

TRACK_SOURCES = ("generated", "youtube")


class LibraryError(Exception):
    """Music library failure."""


class TrackNotFoundError(LibraryError):
    """No track with the requested id."""


class InvalidTrackError(LibraryError):
    """Track payload failed validation."""


@dataclass
class Track:
    id: str
    title: str
    audio_url: Optional[str] = None
    video_url: Optional[str] = None
    image_url: Optional[str] = None
    tags: str = ""
    lyrics: str = ""
    status: str = "complete"        # "submitted" | "streaming" | "complete" | "error"
    source: str = "generated"       # one of TRACK_SOURCES
    external_id: Optional[str] = None   # video id for imports
    created_at: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Track":
        known = {k: data[k] for k in cls.__dataclass_fields__ if k in data}
        return cls(**known)


class MusicLibrary:
    """SQLite-backed track table, sharing the database file with the sessions."""

    _CREATE_TABLE = """
    CREATE TABLE IF NOT EXISTS music (
        id          TEXT PRIMARY KEY,
        title       TEXT NOT NULL,
        audio_url   TEXT,
        video_url   TEXT,
        image_url   TEXT,
        tags        TEXT NOT NULL DEFAULT '',
        lyrics      TEXT NOT NULL DEFAULT '',
        status      TEXT NOT NULL DEFAULT 'complete',
        source      TEXT NOT NULL DEFAULT 'generated',
        external_id TEXT,
        created_at  REAL NOT NULL
    )
    """

    def __init__(self, db_path: str = "data/sync_studio.db"):
        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.execute(self._CREATE_TABLE)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def add_track(
        self,
        title: str,
        audio_url: Optional[str] = None,
        video_url: Optional[str] = None,
        image_url: Optional[str] = None,
        tags: str = "",
        lyrics: str = "",
        status: str = "complete",
        source: str = "generated",
        external_id: Optional[str] = None,
    ) -> Track:
        """Register a track and return it with its new id.

        Raises:
            InvalidTrackError: Empty title or unknown source.
        """
        if not title or not title.strip():
            raise InvalidTrackError("title is required")
        if source not in TRACK_SOURCES:
            raise InvalidTrackError(f"source must be one of {TRACK_SOURCES}, got {source!r}")
        track = Track(
            id=str(uuid.uuid4()),
            title=title.strip(),
            audio_url=audio_url,
            video_url=video_url,
            image_url=image_url,
            tags=tags,
            lyrics=lyrics,
            status=status,
            source=source,
            external_id=external_id,
            created_at=time.time(),
        )
        row = track.to_dict()
        with self._connect() as conn:
            conn.execute(
                f"INSERT INTO music ({', '.join(row)}) VALUES ({', '.join('?' for _ in row)})",
                tuple(row.values()),
            )
        logger.info("Added %s track %s (%s)", source, track.id, track.title)
        return track

    def get_track(self, track_id: str) -> Track:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM music WHERE id=?", (track_id,)).fetchone()
        if row is None:
            raise TrackNotFoundError(f"Track {track_id!r} not found.")
        return Track.from_dict(dict(row))

    def list_tracks(self) -> List[Track]:
        """All tracks, newest first."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM music ORDER BY created_at DESC, rowid DESC"
            ).fetchall()
        return [Track.from_dict(dict(r)) for r in rows]

    def delete_track(self, track_id: str) -> None:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM music WHERE id=?", (track_id,))
        if not cur.rowcount:
            raise TrackNotFoundError(f"Track {track_id!r} not found.")
