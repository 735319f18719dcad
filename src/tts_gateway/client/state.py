"""JSON persistence for the terminal client's state."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from ..schemas.client_state import MAX_HISTORY, AppState, HistoryEntry

logger = logging.getLogger(__name__)

DEFAULT_STATE_PATH = Path.home() / ".cache" / "tts-gateway" / "state.json"


def default_state_path() -> Path:
    override = os.getenv("TTS_GATEWAY_STATE")
    return Path(override).expanduser() if override else DEFAULT_STATE_PATH


class StateStore:
    """Loads and saves :class:`AppState` as a single JSON document."""

    def __init__(self, path: Optional[Path] = None):
        self._path = path or default_state_path()
        self._cached: Optional[AppState] = None

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> AppState:
        if self._cached is not None:
            return self._cached

        if self._path.exists():
            try:
                data = json.loads(self._path.read_text(encoding="utf-8"))
                self._cached = AppState.model_validate(data)
                logger.debug("Loaded client state from %s", self._path)
            except (OSError, json.JSONDecodeError, ValidationError) as exc:
                logger.warning("Failed to load client state: %s, using defaults", exc)
                self._cached = AppState()
        else:
            self._cached = AppState()

        return self._cached

    def save(self, state: AppState) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(state.model_dump_json(indent=2), encoding="utf-8")
        self._cached = state
        logger.debug("Saved client state to %s", self._path)

    def record_history(self, state: AppState, entry: HistoryEntry) -> None:
        """Insert ``entry`` at the front, evicting the oldest beyond the bound."""
        state.generation_history.insert(0, entry)
        del state.generation_history[MAX_HISTORY:]


__all__ = ["DEFAULT_STATE_PATH", "StateStore", "default_state_path"]
