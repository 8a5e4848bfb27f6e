"""JSON persistence for monitor windows and undelivered notifications."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)

STATE_VERSION = 1


def default_state() -> Dict[str, Any]:
    return {"version": STATE_VERSION, "monitors": {}, "outbox": []}


class StateStore:
    def __init__(self, path: str):
        self.path = Path(path)

    def load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return default_state()
        try:
            state = json.loads(self.path.read_text("utf-8"))
        except Exception as e:
            logger.warning(f"Failed to load state file {self.path}: {e}")
            return default_state()
        if not isinstance(state, dict) or state.get("version") != STATE_VERSION:
            logger.warning(f"Ignoring state file {self.path} with unexpected format")
            return default_state()
        state.setdefault("monitors", {})
        state.setdefault("outbox", [])
        return state

    def save(self, state: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(state, indent=2, sort_keys=True), "utf-8")
        tmp_path.replace(self.path)


class MemoryStateStore(StateStore):
    """Keeps state in process memory, for warm Lambda containers and tests."""

    def __init__(self) -> None:
        self._state: Dict[str, Any] = default_state()

    def load(self) -> Dict[str, Any]:
        return json.loads(json.dumps(self._state))

    def save(self, state: Dict[str, Any]) -> None:
        self._state = json.loads(json.dumps(state))
