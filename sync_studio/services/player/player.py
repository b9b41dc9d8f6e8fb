"""Player context — the one playback object a participant process owns.

Built once per process and handed to whatever needs it (the sync client, the
CLI).  It keeps the transport state, a position that advances with the clock
while playing, and a snapshot of the music library used to resolve track ids.
"""
from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable, List, Optional, Protocol

from sync_studio.services.library.library import Track

logger = logging.getLogger("sync_studio.player")

ChangeListener = Callable[[str], None]
LibraryListener = Callable[[List[Track]], Awaitable[None]]


class LibrarySource(Protocol):
    async def fetch_tracks(self) -> List[Track]:
        ...


class Player:
    """Headless playback state.

    Change listeners receive a reason string: ``"track"``, ``"transport"`` or
    ``"seek"``.  They fire on explicit actions only, not while the position
    simply advances.  Library listeners are awaited after every library
    replacement.
    """

    def __init__(
        self,
        library_source: Optional[LibrarySource] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._source = library_source
        self._clock = clock
        self._library: List[Track] = []
        self._track: Optional[Track] = None
        self._playing = False
        self._position = 0.0
        self._anchor = clock()
        self._change_listeners: List[ChangeListener] = []
        self._library_listeners: List[LibraryListener] = []

    # ── listeners ────────────────────────────────────────────────────────────

    def add_change_listener(self, listener: ChangeListener) -> None:
        self._change_listeners.append(listener)

    def remove_change_listener(self, listener: ChangeListener) -> None:
        if listener in self._change_listeners:
            self._change_listeners.remove(listener)

    def add_library_listener(self, listener: LibraryListener) -> None:
        self._library_listeners.append(listener)

    def remove_library_listener(self, listener: LibraryListener) -> None:
        if listener in self._library_listeners:
            self._library_listeners.remove(listener)

    def _emit(self, reason: str) -> None:
        for listener in list(self._change_listeners):
            listener(reason)

    # ── state ────────────────────────────────────────────────────────────────

    @property
    def library(self) -> List[Track]:
        return list(self._library)

    @property
    def current_track(self) -> Optional[Track]:
        return self._track

    @property
    def current_track_id(self) -> Optional[str]:
        return self._track.id if self._track else None

    @property
    def is_playing(self) -> bool:
        return self._playing

    @property
    def current_time(self) -> float:
        if self._playing:
            return self._position + (self._clock() - self._anchor)
        return self._position

    def find_track(self, track_id: str) -> Optional[Track]:
        for track in self._library:
            if track.id == track_id:
                return track
        return None

    # ── transport ────────────────────────────────────────────────────────────

    def play_track(self, track: Track) -> None:
        """Load ``track`` from the start and play it."""
        self._track = track
        self._position = 0.0
        self._anchor = self._clock()
        self._playing = True
        logger.debug("Playing %s (%s)", track.id, track.title)
        self._emit("track")

    def toggle_play(self) -> None:
        if self._track is None:
            return
        self._position = self.current_time
        self._anchor = self._clock()
        self._playing = not self._playing
        self._emit("transport")

    def seek(self, seconds: float) -> None:
        self._position = max(0.0, float(seconds))
        self._anchor = self._clock()
        self._emit("seek")

    # ── library ──────────────────────────────────────────────────────────────

    async def set_library(self, tracks: List[Track]) -> None:
        self._library = list(tracks)
        for listener in list(self._library_listeners):
            await listener(self.library)

    async def refresh_library(self) -> List[Track]:
        """Reload the library snapshot from the configured source."""
        if self._source is None:
            return self.library
        tracks = await self._source.fetch_tracks()
        logger.debug("Library refreshed: %d tracks", len(tracks))
        await self.set_library(tracks)
        return self.library
