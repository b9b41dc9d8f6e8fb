"""HTTP client for the Sync Studio API, used by participants.

Maps coordinator responses onto the sync error taxonomy: 404 ->
``SessionNotFoundError``, 410 -> ``SessionExpiredError``, 400 ->
``SyncValidationError``; connection failures, timeouts and 5xx ->
``TransientNetworkError``.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from sync_studio.services.library.library import Track
from sync_studio.services.sync.codes import normalize_code
from sync_studio.services.sync.errors import (
    SessionExpiredError,
    SessionNotFoundError,
    SyncValidationError,
    TransientNetworkError,
)
from sync_studio.services.sync.types import CreatedSession, SessionSnapshot

logger = logging.getLogger("sync_studio.sync.api_client")

_SYNC_PATH = "/api/sync"
_MUSIC_PATH = "/api/music"


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        return str(body.get("detail", body))
    return str(body)


class StudioAPIClient:
    """Async wrapper around ``httpx.AsyncClient``.

    Pass ``transport`` to route requests somewhere other than the network,
    e.g. ``httpx.ASGITransport(app=app)`` to talk to an in-process server.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._http = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "StudioAPIClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ── private ──────────────────────────────────────────────────────────────

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise TransientNetworkError(f"{method} {path} failed: {exc}") from exc

        if response.status_code == 404:
            raise SessionNotFoundError(_detail(response))
        if response.status_code == 410:
            raise SessionExpiredError(_detail(response))
        if response.status_code == 400:
            raise SyncValidationError(_detail(response))
        if response.is_error:
            raise TransientNetworkError(
                f"{method} {path} returned {response.status_code}: {_detail(response)}"
            )
        return response.json()

    # ── sessions ─────────────────────────────────────────────────────────────

    async def create_session(self, host_id: str) -> CreatedSession:
        data = await self._request("POST", _SYNC_PATH, json={"hostId": host_id})
        return CreatedSession.from_payload(data)

    async def read_session(self, code: str) -> SessionSnapshot:
        data = await self._request("GET", _SYNC_PATH, params={"code": normalize_code(code)})
        return SessionSnapshot.from_payload(data)

    async def update_session(self, code: str, **fields: Any) -> SessionSnapshot:
        """Send a sparse update.

        Keyword names are the wire names: ``currentTrackRef``, ``isPlaying``,
        ``currentTime``.  Only the keywords given are sent.
        """
        body: Dict[str, Any] = {"code": normalize_code(code), **fields}
        data = await self._request("PUT", _SYNC_PATH, json=body)
        return SessionSnapshot.from_payload(data)

    async def delete_session(self, code: str) -> None:
        await self._request("DELETE", _SYNC_PATH, params={"code": normalize_code(code)})

    # ── music ────────────────────────────────────────────────────────────────

    async def list_music(self) -> List[Track]:
        data = await self._request("GET", _MUSIC_PATH)
        return [Track.from_dict(item) for item in data]


class HttpMusicLibrary:
    """Player library source backed by ``GET /api/music``."""

    def __init__(self, api: StudioAPIClient):
        self._api = api

    async def fetch_tracks(self) -> List[Track]:
        return await self._api.list_music()
