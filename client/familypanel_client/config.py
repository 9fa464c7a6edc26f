"""Client configuration.

Loads settings from client_config.json in the user's config directory and
from environment variables. Timeouts and delays are in seconds.
"""

from __future__ import annotations

import json
import os
import sys
from dataclasses import asdict, dataclass
from pathlib import Path

_DEFAULT_SERVER = "http://localhost:8000"
_DEFAULT_API_PREFIX = "/api/v1"
_INIT_TIMEOUT = 10.0  # startup watchdog
_PROFILE_TIMEOUT = 5.0  # per profile-lookup attempt
_PROFILE_RETRIES = 2  # extra attempts after the first
_PROFILE_RETRY_DELAY = 0.2


def _config_dir() -> Path:
    """Return the directory that stores persistent client state."""
    if sys.platform == "win32":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    d = base / "FamilyPanel"
    d.mkdir(parents=True, exist_ok=True)
    return d


@dataclass
class ClientConfig:
    """Runtime configuration for the Family Panel client."""

    server_url: str = _DEFAULT_SERVER
    api_prefix: str = _DEFAULT_API_PREFIX
    init_timeout: float = _INIT_TIMEOUT
    profile_timeout: float = _PROFILE_TIMEOUT
    profile_retries: int = _PROFILE_RETRIES
    profile_retry_delay: float = _PROFILE_RETRY_DELAY

    @property
    def api_base(self) -> str:
        return f"{self.server_url.rstrip('/')}{self.api_prefix}"

    # -- Persistence ----------------------------------------------------------

    @classmethod
    def load(cls) -> ClientConfig:
        """Load config from disk, falling back to defaults + env vars."""
        cfg = cls()
        path = _config_dir() / "client_config.json"

        if path.exists():
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            for key, val in data.items():
                if hasattr(cfg, key):
                    setattr(cfg, key, val)

        # Environment overrides
        if env := os.environ.get("FAMILYPANEL_SERVER_URL"):
            cfg.server_url = env

        return cfg

    def save(self) -> None:
        """Persist current config to disk."""
        path = _config_dir() / "client_config.json"
        with open(path, "w", encoding="utf-8") as f:
            json.dump(asdict(self), f, indent=2)
