"""System router — health and runtime configuration."""
from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter

from sync_studio.services.shared.config import get_config

logger = logging.getLogger("sync_studio.routers.system")
router = APIRouter()

VERSION = "1.0.0"


@router.get("/health")
async def health_check() -> Dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok", "version": VERSION}


@router.get("/client-settings")
async def client_settings() -> Dict[str, Any]:
    """Timing tunables participants should use for polling and pushes."""
    cfg = get_config()
    return {
        "pollInterval":      cfg.get("client.poll_interval", 1.5),
        "pushDebounce":      cfg.get("client.push_debounce", 0.3),
        "heartbeatInterval": cfg.get("client.heartbeat_interval", 5.0),
        "driftThreshold":    cfg.get("client.drift_threshold", 3.0),
        "codeLength":        cfg.get("sync.code_length", 6),
    }
