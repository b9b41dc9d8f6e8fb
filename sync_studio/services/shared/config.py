"""Configuration manager for Sync Studio.

Dot-notation access into ``config/settings.yaml`` plus a ``.env`` priority
chain:
  1. settings.yaml               (defaults)
  2. Repository-root ``.env``    (loaded into the environment, no override)
  3. Environment variables       (highest priority, read via ``get_env``)
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config" / "settings.yaml"

_config_instance: Optional["Config"] = None


class Config:
    """Configuration with dot-notation access and env override."""

    def __init__(self, config_path: str):
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        with open(path) as f:
            self._data: dict = yaml.safe_load(f)
        if not isinstance(self._data, dict):
            raise ValueError(f"Config file must be a YAML mapping, got: {type(self._data)}")
        self._load_env()

    # ── private ──────────────────────────────────────────────────────────────

    def _load_env(self) -> None:
        local_env = Path(__file__).parent.parent.parent.parent / ".env"
        if local_env.exists():
            load_dotenv(local_env, override=False)

    # ── public ───────────────────────────────────────────────────────────────

    def get(self, key: str, default: Any = None) -> Any:
        """Dot-notation access into the YAML tree.

        Example::

            config.get("sync.ttl_hours")             # 24
            config.get("client.drift_threshold")     # 3.0
            config.get("missing.key", "fallback")    # "fallback"
        """
        keys = key.split(".")
        val: Any = self._data
        for k in keys:
            if isinstance(val, dict) and k in val:
                val = val[k]
            else:
                return default
        return val

    def get_path(self, key: str) -> Path:
        """Return a config value as a Path object.

        Relative paths are resolved against the package directory.
        Raises KeyError if the key does not exist.
        """
        val = self.get(key)
        if val is None:
            raise KeyError(f"Config key not found: {key}")
        path = Path(str(val))
        if not path.is_absolute():
            path = Path(__file__).parent.parent.parent / path
        return path

    def get_env(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Return an environment variable value."""
        return os.environ.get(name, default)


# ── module-level singleton ────────────────────────────────────────────────────


def get_config(config_path: Optional[str] = None) -> Config:
    """Return the singleton Config instance.

    The first call without ``config_path`` loads ``SYNC_STUDIO_CONFIG`` if set,
    else the bundled ``config/settings.yaml``.  Later calls return the
    existing instance.
    """
    global _config_instance
    if _config_instance is None:
        if config_path is None:
            config_path = os.environ.get("SYNC_STUDIO_CONFIG", str(DEFAULT_CONFIG_PATH))
        _config_instance = Config(config_path)
    return _config_instance


def reset_config() -> None:
    """Clear the singleton (mainly for testing)."""
    global _config_instance
    _config_instance = None
