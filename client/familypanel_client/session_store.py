"""Persists the current session next to the client config.

Only the newest session is kept. A restarted client reads it back so the
first auth notification can already carry a signed-in user.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from .config import _config_dir
from .models import Session

log = logging.getLogger(__name__)


class SessionStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or (_config_dir() / "session.json")

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Session | None:
        if not self._path.exists():
            return None
        try:
            with open(self._path, encoding="utf-8") as f:
                return Session.from_payload(json.load(f))
        except (ValueError, KeyError, TypeError) as exc:
            log.warning("Ignoring unreadable session file %s: %s", self._path, exc)
            return None

    def save(self, session: Session) -> None:
        with open(self._path, "w", encoding="utf-8") as f:
            json.dump(session.to_payload(), f, indent=2)
        log.debug("Session saved to %s", self._path)

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)
