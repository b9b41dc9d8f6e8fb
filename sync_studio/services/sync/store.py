"""SQLite-backed session store for Sync Party rooms.

One row per room.  Expiry is lazy: a read or update that finds an expired row
deletes it and reports the session as expired; nothing sweeps in the
background.
"""
from __future__ import annotations

import logging
import sqlite3
import time
from pathlib import Path
from typing import Any, Callable, Optional

from sync_studio.services.sync.codes import (
    CODE_ALPHABET,
    CODE_LENGTH,
    CodeFactory,
    generate_code,
    normalize_code,
)
from sync_studio.services.sync.errors import (
    CodeGenerationError,
    SessionExpiredError,
    SessionNotFoundError,
)
from sync_studio.services.sync.types import SyncSession

logger = logging.getLogger("sync_studio.sync.store")

DEFAULT_TTL_HOURS = 24
DEFAULT_MAX_CODE_ATTEMPTS = 10

_UNSET: Any = object()


class SessionStore:
    """Durable store of ``SyncSession`` rows.

    Each operation opens its own connection, so one instance can be shared by
    FastAPI's worker threads.  ``clock`` returns epoch seconds and is
    injectable for expiry tests; ``code_factory`` likewise for collision tests.
    """

    _CREATE_TABLE = """
    CREATE TABLE IF NOT EXISTS sync_sessions (
        code              TEXT PRIMARY KEY,
        host_id           TEXT NOT NULL,
        current_track_ref TEXT,
        is_playing        INTEGER NOT NULL DEFAULT 0,
        position_sec      REAL NOT NULL DEFAULT 0.0,
        last_update       INTEGER NOT NULL,
        expires_at        REAL NOT NULL,
        created_at        REAL NOT NULL
    )
    """

    def __init__(
        self,
        db_path: str = "data/sync_studio.db",
        ttl_hours: float = DEFAULT_TTL_HOURS,
        max_code_attempts: int = DEFAULT_MAX_CODE_ATTEMPTS,
        code_length: int = CODE_LENGTH,
        code_alphabet: str = CODE_ALPHABET,
        clock: Callable[[], float] = time.time,
        code_factory: Optional[CodeFactory] = None,
    ):
        self._db_path = db_path
        self._ttl_seconds = ttl_hours * 3600
        self._max_code_attempts = max_code_attempts
        self._clock = clock
        self._code_factory = code_factory or (lambda: generate_code(code_length, code_alphabet))
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    # ── private ──────────────────────────────────────────────────────────────

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute(self._CREATE_TABLE)

    def _now_micros(self) -> int:
        return int(self._clock() * 1_000_000)

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> SyncSession:
        return SyncSession(
            code=row["code"],
            host_id=row["host_id"],
            current_track_ref=row["current_track_ref"],
            is_playing=bool(row["is_playing"]),
            current_time=row["position_sec"],
            last_update=row["last_update"],
            expires_at=row["expires_at"],
        )

    def _fetch(self, conn: sqlite3.Connection, code: str) -> Optional[sqlite3.Row]:
        return conn.execute(
            "SELECT * FROM sync_sessions WHERE code=?", (code,)
        ).fetchone()

    def _fetch_live(self, conn: sqlite3.Connection, code: str) -> sqlite3.Row:
        """Return the row for ``code``, deleting it first if it has expired."""
        row = self._fetch(conn, code)
        if row is None:
            raise SessionNotFoundError(f"Session {code!r} not found.")
        if self._clock() > row["expires_at"]:
            conn.execute("DELETE FROM sync_sessions WHERE code=?", (code,))
            conn.commit()
            logger.info("Session %s expired; removed on access", code)
            raise SessionExpiredError(f"Session {code!r} expired.")
        return row

    # ── public ───────────────────────────────────────────────────────────────

    def create(self, host_id: str) -> SyncSession:
        """Create a new session owned by ``host_id``.

        Raises:
            CodeGenerationError: If every candidate code was taken by a live
                session.
        """
        now = self._clock()
        expires_at = now + self._ttl_seconds
        with self._connect() as conn:
            for attempt in range(1, self._max_code_attempts + 1):
                code = normalize_code(self._code_factory())
                existing = self._fetch(conn, code)
                if existing is not None:
                    if now <= existing["expires_at"]:
                        logger.debug("Code %s in use (attempt %d)", code, attempt)
                        continue
                    conn.execute("DELETE FROM sync_sessions WHERE code=?", (code,))
                try:
                    conn.execute(
                        """INSERT INTO sync_sessions
                           (code, host_id, current_track_ref, is_playing, position_sec,
                            last_update, expires_at, created_at)
                           VALUES (?, ?, NULL, 0, 0.0, ?, ?, ?)""",
                        (code, host_id, int(now * 1_000_000), expires_at, now),
                    )
                    conn.commit()
                except sqlite3.IntegrityError:
                    # Another request inserted the same code between check and insert.
                    conn.rollback()
                    continue
                logger.info("Created session %s for host %s", code, host_id)
                return self._row_to_session(self._fetch(conn, code))
        raise CodeGenerationError(
            f"No free session code after {self._max_code_attempts} attempts."
        )

    def get(self, code: str) -> SyncSession:
        """Return the live session for ``code``.

        Raises:
            SessionNotFoundError: No session with this code.
            SessionExpiredError: The session expired (and has now been deleted).
        """
        code = normalize_code(code)
        with self._connect() as conn:
            return self._row_to_session(self._fetch_live(conn, code))

    def update(
        self,
        code: str,
        current_track_ref: Any = _UNSET,
        is_playing: Optional[bool] = None,
        current_time: Optional[float] = None,
    ) -> SyncSession:
        """Merge the given fields into the session and advance ``last_update``.

        Omitted fields keep their stored value.  ``current_track_ref`` may be
        passed as ``None`` to clear the track.  The marker becomes
        ``max(now, previous + 1)`` in a single statement so it strictly
        increases even for same-tick writes.
        """
        code = normalize_code(code)
        assignments = []
        params: list = []
        if current_track_ref is not _UNSET:
            assignments.append("current_track_ref=?")
            params.append(current_track_ref)
        if is_playing is not None:
            assignments.append("is_playing=?")
            params.append(1 if is_playing else 0)
        if current_time is not None:
            assignments.append("position_sec=?")
            params.append(float(current_time))
        assignments.append("last_update=MAX(?, last_update + 1)")
        params.append(self._now_micros())

        with self._connect() as conn:
            self._fetch_live(conn, code)
            conn.execute(
                f"UPDATE sync_sessions SET {', '.join(assignments)} WHERE code=?",
                (*params, code),
            )
            conn.commit()
            row = self._fetch(conn, code)
        if row is None:
            # Deleted by a concurrent teardown between the check and the write.
            raise SessionNotFoundError(f"Session {code!r} not found.")
        return self._row_to_session(row)

    def delete(self, code: str) -> bool:
        """Remove the session.  Returns False when there was nothing to remove."""
        code = normalize_code(code)
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM sync_sessions WHERE code=?", (code,))
        if cur.rowcount:
            logger.info("Deleted session %s", code)
        return bool(cur.rowcount)

    def count(self) -> int:
        """Number of stored rows, expired ones included."""
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM sync_sessions").fetchone()[0]
