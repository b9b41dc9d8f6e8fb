"""Shared test fixtures for Sync Studio."""
import asyncio
import shutil
import tempfile
from pathlib import Path
from typing import Any, Generator, List, Optional

import pytest
import yaml

from sync_studio.services.library.library import MusicLibrary, Track
from sync_studio.services.sync.errors import TransientNetworkError
from sync_studio.services.sync.store import SessionStore
from sync_studio.services.sync.types import CreatedSession, SessionSnapshot


@pytest.fixture(scope="session")
def project_root() -> Path:
    return Path(__file__).parent.parent.parent


@pytest.fixture
def tmp_dir() -> Generator[Path, None, None]:
    d = Path(tempfile.mkdtemp())
    yield d
    shutil.rmtree(d, ignore_errors=True)


@pytest.fixture
def sample_settings(tmp_dir: Path) -> Path:
    """Write a minimal settings.yaml to a temp dir and return its path."""
    settings = {
        "storage": {"db_path": str(tmp_dir / "sync_studio.db")},
        "sync": {
            "code_length": 6,
            "code_alphabet": "ABCDEFGHJKLMNPQRSTUVWXYZ23456789",
            "ttl_hours": 24,
            "max_code_attempts": 10,
        },
        "client": {
            "server_url": "http://localhost:8000",
            "poll_interval": 1.5,
            "push_debounce": 0.3,
            "heartbeat_interval": 5.0,
            "settle_delay": 0.5,
            "drift_threshold": 3.0,
            "request_timeout": 5.0,
            "state_file": str(tmp_dir / "client_state.json"),
        },
        "logging": {"level": "DEBUG", "file": str(tmp_dir / "test.log")},
    }
    cfg_path = tmp_dir / "settings.yaml"
    cfg_path.write_text(yaml.dump(settings))
    return cfg_path


# ─────────────────────────────────────────────────────────────────────────────
# Clock / storage fixtures
# ─────────────────────────────────────────────────────────────────────────────


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_clock():
    """Factory for extra independent clocks."""
    return FakeClock


@pytest.fixture
def db_path(tmp_dir: Path) -> str:
    return str(tmp_dir / "sync_studio.db")


@pytest.fixture
def session_store(db_path: str, fake_clock: FakeClock) -> SessionStore:
    return SessionStore(db_path=db_path, clock=fake_clock)


@pytest.fixture
def music_library(db_path: str) -> MusicLibrary:
    return MusicLibrary(db_path=db_path)


# ─────────────────────────────────────────────────────────────────────────────
# Sync client collaborators
# ─────────────────────────────────────────────────────────────────────────────


class StaticLibrarySource:
    """Player library source returning whatever ``tracks`` currently holds."""

    def __init__(self, tracks: Optional[List[Track]] = None):
        self.tracks: List[Track] = list(tracks or [])
        self.fetches = 0

    async def fetch_tracks(self) -> List[Track]:
        self.fetches += 1
        return list(self.tracks)


class StoreBackedAPI:
    """Stand-in for ``StudioAPIClient`` that talks to a SessionStore directly.

    Set ``offline = True`` to make every call fail with TransientNetworkError.
    Set ``read_gate`` or ``update_gate`` to an ``asyncio.Event`` to hold those
    calls in flight until the event is set.  ``reply_gate`` instead lets a
    read fetch the row at once and holds only its reply.
    """

    def __init__(self, store: SessionStore):
        self.store = store
        self.offline = False
        self.calls: List[str] = []
        self.read_gate: Optional[asyncio.Event] = None
        self.update_gate: Optional[asyncio.Event] = None
        self.reply_gate: Optional[asyncio.Event] = None

    def _check(self, name: str) -> None:
        self.calls.append(name)
        if self.offline:
            raise TransientNetworkError("connection refused")

    async def create_session(self, host_id: str) -> CreatedSession:
        self._check("create")
        return CreatedSession.from_payload(self.store.create(host_id).to_public_dict())

    async def read_session(self, code: str) -> SessionSnapshot:
        self._check("read")
        if self.read_gate is not None:
            await self.read_gate.wait()
        snapshot = SessionSnapshot.from_payload(self.store.get(code).to_public_dict())
        if self.reply_gate is not None:
            await self.reply_gate.wait()
        return snapshot

    async def update_session(self, code: str, **fields: Any) -> SessionSnapshot:
        self._check("update")
        if self.update_gate is not None:
            await self.update_gate.wait()
        changes = {}
        if "currentTrackRef" in fields:
            changes["current_track_ref"] = fields["currentTrackRef"]
        if "isPlaying" in fields:
            changes["is_playing"] = fields["isPlaying"]
        if "currentTime" in fields:
            changes["current_time"] = fields["currentTime"]
        return SessionSnapshot.from_payload(self.store.update(code, **changes).to_public_dict())

    async def delete_session(self, code: str) -> None:
        self._check("delete")
        self.store.delete(code)


@pytest.fixture
def store_api(session_store: SessionStore) -> StoreBackedAPI:
    return StoreBackedAPI(session_store)


@pytest.fixture
def library_source() -> StaticLibrarySource:
    return StaticLibrarySource()


def make_track(track_id: str, title: str = "") -> Track:
    return Track(id=track_id, title=title or f"Song {track_id}", audio_url=f"https://cdn.example/{track_id}.mp3")


@pytest.fixture
def track_factory():
    return make_track


# ─────────────────────────────────────────────────────────────────────────────
# FastAPI app with isolated storage
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def isolated_app(session_store: SessionStore, music_library: MusicLibrary, monkeypatch):
    """The Sync Studio app with its router singletons pointed at temp storage."""
    from sync_studio.main import app
    from sync_studio.routers import music as music_router
    from sync_studio.routers import sync as sync_router

    monkeypatch.setattr(sync_router, "_store", session_store)
    monkeypatch.setattr(music_router, "_library", music_library)
    return app


@pytest.fixture
def api_client(isolated_app):
    """FastAPI TestClient over the isolated app."""
    from fastapi.testclient import TestClient
    with TestClient(isolated_app) as c:
        yield c
