"""Data types for the Sync Party protocol."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def micros_to_iso(micros: int) -> str:
    """Render an integer microsecond timestamp as an exact ISO-8601 token."""
    return (_EPOCH + timedelta(microseconds=micros)).isoformat(timespec="microseconds")


def seconds_to_iso(seconds: float) -> str:
    return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat(timespec="seconds")


class SyncRole(str, Enum):
    HOST = "host"
    GUEST = "guest"


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass
class SyncSession:
    """Durable record of one shared-listening room."""
    code: str
    host_id: str
    current_track_ref: Optional[str]
    is_playing: bool
    current_time: float
    last_update: int        # microseconds since the epoch; change token only
    expires_at: float       # epoch seconds

    def last_update_token(self) -> str:
        return micros_to_iso(self.last_update)

    def to_public_dict(self) -> Dict[str, Any]:
        return {
            "code":            self.code,
            "hostId":          self.host_id,
            "currentTrackRef": self.current_track_ref,
            "isPlaying":       self.is_playing,
            "currentTime":     self.current_time,
            "lastUpdate":      self.last_update_token(),
            "expiresAt":       seconds_to_iso(self.expires_at),
        }


@dataclass
class CreatedSession:
    code: str
    host_id: str
    expires_at: str

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "CreatedSession":
        return cls(code=data["code"], host_id=data["hostId"], expires_at=data["expiresAt"])


@dataclass
class SessionSnapshot:
    """Client-side view of a session as returned by a read or update."""
    code: str
    host_id: Optional[str]
    current_track_ref: Optional[str]
    is_playing: bool
    current_time: float
    last_update: Optional[str]

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "SessionSnapshot":
        return cls(
            code=data["code"],
            host_id=data.get("hostId"),
            current_track_ref=data.get("currentTrackRef"),
            is_playing=bool(data.get("isPlaying", False)),
            current_time=float(data.get("currentTime") or 0.0),
            last_update=data.get("lastUpdate"),
        )


@dataclass
class PendingSync:
    """Reconciliation target waiting for its track to appear in the library."""
    track_ref: str
    current_time: float
    is_playing: bool
