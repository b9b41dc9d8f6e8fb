"""Sync client — one per participant.

State machine::

    DISCONNECTED -> CONNECTING -> CONNECTED(role=HOST|GUEST) -> DISCONNECTED

While connected, every participant polls the coordinator and reconciles its
player to the room state.  The host additionally pushes its own state
(debounced on change, plus a periodic offset heartbeat while playing).  Only
the host writes; guests only read.

Errors never leave the client in a distinct state: the last user-facing
message is kept in ``error`` and the state stays whatever it was (or drops
back to DISCONNECTED when the room is gone).
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from sync_studio.services.library.library import Track
from sync_studio.services.player.player import Player
from sync_studio.services.sync.api_client import StudioAPIClient
from sync_studio.services.sync.codes import (
    CODE_ALPHABET,
    CODE_LENGTH,
    is_well_formed,
    normalize_code,
)
from sync_studio.services.sync.errors import (
    SessionExpiredError,
    SessionNotFoundError,
    SyncError,
)
from sync_studio.services.sync.local_state import LocalState
from sync_studio.services.sync.types import (
    ConnectionState,
    PendingSync,
    SessionSnapshot,
    SyncRole,
)

if TYPE_CHECKING:
    from sync_studio.services.shared.config import Config

logger = logging.getLogger("sync_studio.sync.client")

# ── User-facing messages ──────────────────────────────────────────────────────
MSG_CREATE_FAILED   = "Could not create room"
MSG_BAD_CODE        = "Invalid room code"
MSG_NOT_FOUND       = "Room not found"
MSG_EXPIRED         = "Room expired"
MSG_JOIN_FAILED     = "Could not join room"
MSG_SESSION_ENDED   = "Session ended"
MSG_SESSION_EXPIRED = "Session expired"


@dataclass
class SyncSettings:
    poll_interval: float = 1.5
    push_debounce: float = 0.3
    heartbeat_interval: float = 5.0
    settle_delay: float = 0.5
    drift_threshold: float = 3.0
    request_timeout: float = 5.0
    code_length: int = CODE_LENGTH
    code_alphabet: str = CODE_ALPHABET

    @classmethod
    def from_config(cls, config: "Config") -> "SyncSettings":
        """Timings come from ``client.*``; code shape from the server's ``sync.*``."""
        defaults = cls()
        timings = {
            name: float(config.get(f"client.{name}", getattr(defaults, name)))
            for name in _TIMING_FIELDS
        }
        return cls(
            **timings,
            code_length=int(config.get("sync.code_length", defaults.code_length)),
            code_alphabet=str(config.get("sync.code_alphabet", defaults.code_alphabet)),
        )


_TIMING_FIELDS = (
    "poll_interval",
    "push_debounce",
    "heartbeat_interval",
    "settle_delay",
    "drift_threshold",
    "request_timeout",
)


class SyncClient:
    """Participant side of a Sync Party room.

    Args:
        api: HTTP client for the coordinator.
        player: The process's player context; reconciliation drives it and the
            host's pushes read from it.
        local_state: Persisted participant id and last room.
        settings: Timing and drift tunables.
        clock: Monotonic clock used for the reconcile-suppression window.
    """

    def __init__(
        self,
        api: StudioAPIClient,
        player: Player,
        local_state: LocalState,
        settings: Optional[SyncSettings] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._api = api
        self._player = player
        self._local = local_state
        self._settings = settings or SyncSettings()
        self._clock = clock

        self.state = ConnectionState.DISCONNECTED
        self.role: Optional[SyncRole] = None
        self.code: Optional[str] = None
        self.error: Optional[str] = None
        self.pending: Optional[PendingSync] = None
        # While set and in the future, poll results are not reconciled: a push
        # from this client is in flight and the poll may be reading it back.
        self.suppress_reconcile_until: Optional[float] = None

        self._last_token: Optional[str] = None
        self._epoch = 0
        self._pushes_in_flight = 0
        self._pushes_done = 0
        self._poll_task: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._debounce_task: Optional[asyncio.Task] = None
        self._debounce_fired = False

        self._attach_listeners()

    # ── properties ───────────────────────────────────────────────────────────

    @property
    def participant_id(self) -> str:
        return self._local.participant_id

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def is_host(self) -> bool:
        return self.is_connected and self.role is SyncRole.HOST

    # ── connection lifecycle ─────────────────────────────────────────────────

    async def create_and_connect(self) -> Optional[str]:
        """Create a room as host.  Returns the room code, or None on failure."""
        if self.state is not ConnectionState.DISCONNECTED:
            await self.leave()
        self.state = ConnectionState.CONNECTING
        self.error = None
        try:
            created = await self._api.create_session(self.participant_id)
        except SyncError as exc:
            logger.warning("Room creation failed: %s", exc)
            self.state = ConnectionState.DISCONNECTED
            self.error = MSG_CREATE_FAILED
            return None

        self._connect(created.code, SyncRole.HOST)
        self._schedule_push()
        return created.code

    async def join_and_connect(self, code: str) -> bool:
        """Join an existing room.  Returns False, with ``error`` set, on failure."""
        code = normalize_code(code)
        if not is_well_formed(code, self._settings.code_length, self._settings.code_alphabet):
            self.error = MSG_BAD_CODE
            return False
        if self.state is not ConnectionState.DISCONNECTED:
            await self.leave()
        self.state = ConnectionState.CONNECTING
        self.error = None
        try:
            snapshot = await self._api.read_session(code)
        except SessionNotFoundError:
            return self._join_failed(MSG_NOT_FOUND)
        except SessionExpiredError:
            return self._join_failed(MSG_EXPIRED)
        except SyncError as exc:
            logger.warning("Joining %s failed: %s", code, exc)
            return self._join_failed(MSG_JOIN_FAILED)

        role = SyncRole.HOST if snapshot.host_id == self.participant_id else SyncRole.GUEST
        self._connect(snapshot.code, role)
        self._last_token = snapshot.last_update
        await self.reconcile(snapshot)
        return True

    async def resume(self) -> bool:
        """Reconnect to the persisted room, if it still exists.

        The persisted role is reused.  A room that is gone is forgotten; a
        network failure leaves the persisted room for the next attempt.
        """
        code = self._local.session_code
        if not code or self.state is not ConnectionState.DISCONNECTED:
            return False
        try:
            snapshot = await self._api.read_session(code)
        except (SessionNotFoundError, SessionExpiredError):
            logger.info("Persisted room %s is gone", code)
            self._local.clear_session()
            return False
        except SyncError as exc:
            logger.info("Could not verify persisted room %s: %s", code, exc)
            return False

        role = SyncRole.HOST if self._local.is_host else SyncRole.GUEST
        self._connect(snapshot.code, role)
        self._last_token = snapshot.last_update
        if role is SyncRole.GUEST:
            await self.reconcile(snapshot)
        return True

    async def leave(self) -> None:
        """Leave the room.  A host's leave deletes the room for everyone."""
        code, was_host = self.code, self.is_host
        self._teardown(None)
        if was_host and code:
            try:
                await self._api.delete_session(code)
            except SyncError as exc:
                logger.warning("Could not delete room %s: %s", code, exc)
            else:
                logger.info("Closed room %s", code)

    def detach(self) -> None:
        """Stop all background work without forgetting the persisted room.

        For process shutdown: a later ``resume()`` picks the room back up,
        on this client or a new one.
        """
        self._cancel_tasks()
        self._epoch += 1
        self.state = ConnectionState.DISCONNECTED
        self._detach_listeners()

    def _attach_listeners(self) -> None:
        self._detach_listeners()
        self._player.add_change_listener(self._on_player_change)
        self._player.add_library_listener(self._on_library_change)

    def _detach_listeners(self) -> None:
        self._player.remove_change_listener(self._on_player_change)
        self._player.remove_library_listener(self._on_library_change)

    def _join_failed(self, message: str) -> bool:
        self.state = ConnectionState.DISCONNECTED
        self.error = message
        return False

    def _connect(self, code: str, role: SyncRole) -> None:
        self._epoch += 1
        self.code = code
        self.role = role
        self.state = ConnectionState.CONNECTED
        self.error = None
        self.pending = None
        self._local.save_session(code, role is SyncRole.HOST)
        self._attach_listeners()
        logger.info("Connected to room %s as %s", code, role.value)

        loop = asyncio.get_running_loop()
        self._poll_task = loop.create_task(self._poll_loop(self._epoch))
        if role is SyncRole.HOST:
            self._heartbeat_task = loop.create_task(self._heartbeat_loop(self._epoch))

    def _teardown(self, message: Optional[str]) -> None:
        self._cancel_tasks()
        self._epoch += 1
        self._local.clear_session()
        self.state = ConnectionState.DISCONNECTED
        self.role = None
        self.code = None
        self.pending = None
        self._last_token = None
        self.error = message

    def _cancel_tasks(self) -> None:
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        for task in (self._poll_task, self._heartbeat_task, self._debounce_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._poll_task = self._heartbeat_task = self._debounce_task = None

    def _room_gone(self, exc: SyncError) -> None:
        message = MSG_SESSION_EXPIRED if isinstance(exc, SessionExpiredError) else MSG_SESSION_ENDED
        logger.info("Room %s ended: %s", self.code, exc)
        self._teardown(message)

    # ── polling ──────────────────────────────────────────────────────────────

    async def _poll_loop(self, epoch: int) -> None:
        while epoch == self._epoch:
            await asyncio.sleep(self._settings.poll_interval)
            if epoch != self._epoch:
                break
            await self.poll_once()

    async def poll_once(self) -> bool:
        """Read the room once.  Returns True if a new snapshot was reconciled."""
        if not self.is_connected:
            return False
        epoch, code = self._epoch, self.code
        pushes_done = self._pushes_done
        try:
            snapshot = await self._api.read_session(code)
        except (SessionNotFoundError, SessionExpiredError) as exc:
            if epoch == self._epoch:
                self._room_gone(exc)
            return False
        except SyncError as exc:
            logger.debug("Poll of %s failed, retrying next tick: %s", code, exc)
            return False

        if epoch != self._epoch:
            return False
        if self._pushes_done != pushes_done:
            # One of our pushes landed while the read was out; the reply may
            # predate it.
            logger.debug("Dropping poll of %s that raced an own push", code)
            return False
        if snapshot.last_update == self._last_token:
            return False
        if self._is_stale(snapshot.last_update):
            return False
        self._last_token = snapshot.last_update
        if self.reconcile_suppressed():
            logger.debug("Skipping reconcile of %s while own push is in flight", code)
            return False
        await self.reconcile(snapshot)
        return True

    def _is_stale(self, token: Optional[str]) -> bool:
        # Tokens are fixed-width UTC ISO-8601 strings, so they order as text.
        last = self._last_token
        return token is not None and last is not None and token < last

    def reconcile_suppressed(self) -> bool:
        until = self.suppress_reconcile_until
        return until is not None and self._clock() < until

    # ── reconciliation ───────────────────────────────────────────────────────

    async def reconcile(self, snapshot: SessionSnapshot) -> None:
        """Bring the local player in line with ``snapshot``.

        Idempotent: a snapshot the player already matches changes nothing.
        """
        player = self._player
        ref = snapshot.current_track_ref

        if ref and ref != player.current_track_id:
            track = player.find_track(ref)
            if track is None:
                self.pending = PendingSync(
                    track_ref=ref,
                    current_time=snapshot.current_time,
                    is_playing=snapshot.is_playing,
                )
                logger.info("Track %s not in local library; refreshing", ref)
                try:
                    await player.refresh_library()
                except SyncError as exc:
                    logger.debug("Library refresh failed: %s", exc)
                return
            self.pending = None
            await self._apply_target(track, snapshot.current_time, snapshot.is_playing)
            return

        self.pending = None
        if player.current_track is None:
            return
        if snapshot.is_playing != player.is_playing:
            player.toggle_play()
        if abs(snapshot.current_time - player.current_time) > self._settings.drift_threshold:
            player.seek(snapshot.current_time)

    async def resolve_pending(self) -> bool:
        """Apply the pending sync if its track is now in the library."""
        pending = self.pending
        if pending is None:
            return False
        track = self._player.find_track(pending.track_ref)
        if track is None:
            return False
        self.pending = None
        logger.info("Resolved pending sync to track %s", pending.track_ref)
        await self._apply_target(track, pending.current_time, pending.is_playing)
        return True

    async def _on_library_change(self, tracks: List[Track]) -> None:
        await self.resolve_pending()

    async def _apply_target(self, track: Track, position: float, playing: bool) -> None:
        epoch = self._epoch
        self._player.play_track(track)
        await asyncio.sleep(self._settings.settle_delay)
        if epoch != self._epoch:
            return
        self._player.seek(position)
        if self._player.is_playing != playing:
            self._player.toggle_play()

    # ── host pushes ──────────────────────────────────────────────────────────

    def _local_fields(self) -> Dict[str, Any]:
        return {
            "currentTrackRef": self._player.current_track_id,
            "isPlaying":       self._player.is_playing,
            "currentTime":     self._player.current_time,
        }

    async def push_state(self, **fields: Any) -> bool:
        """Write state to the room (host only).

        With no arguments the full local state is sent; otherwise only the
        given wire fields.  Returns True if the coordinator accepted it.
        """
        if not self.is_host:
            return False
        payload = fields or self._local_fields()
        epoch, code = self._epoch, self.code

        self._pushes_in_flight += 1
        self.suppress_reconcile_until = self._clock() + self._settings.request_timeout
        try:
            snapshot = await self._api.update_session(code, **payload)
        except (SessionNotFoundError, SessionExpiredError) as exc:
            if epoch == self._epoch:
                self._room_gone(exc)
            return False
        except SyncError as exc:
            logger.debug("Push to %s failed: %s", code, exc)
            return False
        finally:
            self._pushes_in_flight -= 1
            if self._pushes_in_flight == 0:
                self.suppress_reconcile_until = None

        self._pushes_done += 1
        if epoch == self._epoch and not self._is_stale(snapshot.last_update):
            # Our own write; the next poll should not treat it as news.
            self._last_token = snapshot.last_update
        return True

    async def heartbeat_once(self) -> bool:
        """Push just the current offset, if the host is playing."""
        if not self.is_host or not self._player.is_playing:
            return False
        return await self.push_state(currentTime=self._player.current_time)

    async def _heartbeat_loop(self, epoch: int) -> None:
        while epoch == self._epoch:
            await asyncio.sleep(self._settings.heartbeat_interval)
            if epoch != self._epoch:
                break
            await self.heartbeat_once()

    def _on_player_change(self, reason: str) -> None:
        if self.is_host:
            self._schedule_push()

    def _schedule_push(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = self._debounce_task
        if task is not None and not task.done() and not self._debounce_fired:
            task.cancel()
        self._debounce_fired = False
        self._debounce_task = loop.create_task(self._debounced_push(self._epoch))

    async def _debounced_push(self, epoch: int) -> None:
        await asyncio.sleep(self._settings.push_debounce)
        if epoch != self._epoch:
            return
        self._debounce_fired = True
        await self.push_state()
