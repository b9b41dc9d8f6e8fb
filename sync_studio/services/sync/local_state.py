"""Per-device persisted sync state.

Holds a stable participant id (generated once, reused across rooms) and the
last room code plus role flag, so a restarted participant can resume its room.
The participant id only answers "am I the host?"; it is not a credential.
"""
from __future__ import annotations

import json
import logging
import secrets
import string
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger("sync_studio.sync.local_state")

_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_participant_id() -> str:
    return "user_" + "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))


class LocalState:
    """JSON-file key/value store.  ``path=None`` keeps everything in memory."""

    def __init__(self, path: Optional[str] = None):
        self._path = Path(path).expanduser() if path else None
        self._data: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        if self._path is None or not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable state file %s: %s", self._path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(self._data, indent=2), encoding="utf-8")

    @property
    def participant_id(self) -> str:
        pid = self._data.get("participant_id")
        if not pid:
            pid = new_participant_id()
            self._data["participant_id"] = pid
            self._save()
        return pid

    @property
    def session_code(self) -> Optional[str]:
        return self._data.get("session_code")

    @property
    def is_host(self) -> bool:
        return bool(self._data.get("is_host", False))

    def save_session(self, code: str, is_host: bool) -> None:
        self._data["session_code"] = code
        self._data["is_host"] = is_host
        self._save()

    def clear_session(self) -> None:
        self._data.pop("session_code", None)
        self._data.pop("is_host", None)
        self._save()
