"""Error taxonomy shared by the session coordinator and the sync client."""
from __future__ import annotations


class SyncError(Exception):
    """Base class for sync-party failures."""


class SessionNotFoundError(SyncError):
    """No session exists for the code (never created, or already torn down)."""


class SessionExpiredError(SyncError):
    """The session existed but is past its expiry instant."""


class SyncValidationError(SyncError):
    """A request was missing a required field."""


class CodeGenerationError(SyncError):
    """Every candidate room code collided with a live session."""


class TransientNetworkError(SyncError):
    """Request failure not reported by the server as one of the above."""
