"""Persisted game state: current game, game id and selected expansions.

Stored as a small JSON file in the data directory and rewritten atomically
on every change.
"""

import json
import logging
import tempfile
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from src.expansion_names import BASE_EXPANSION_NAME
from src.models import GameType

logger = logging.getLogger(__name__)

GAME_STATE_FILE = "game_state.json"
NO_GAME_ID = -1


@dataclass
class GameState:
    """Snapshot of the persisted state."""

    current_game: GameType | None = None
    game_id: int = NO_GAME_ID
    selected_expansions: dict[str, list[str]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "current_game": self.current_game.value if self.current_game else None,
            "game_id": self.game_id,
            "selected_expansions": self.selected_expansions,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GameState":
        current = data.get("current_game")
        selected = data.get("selected_expansions") or {}
        return cls(
            current_game=GameType.from_string(current) if current else None,
            game_id=int(data.get("game_id", NO_GAME_ID)),
            selected_expansions={k: list(v) for k, v in selected.items() if isinstance(v, list)},
        )


def _with_base(names: list[str]) -> list[str]:
    """Deduplicate, keeping order, with BASE always first."""
    rest = [n for n in dict.fromkeys(names) if n != BASE_EXPANSION_NAME]
    return [BASE_EXPANSION_NAME, *rest]


class GameStateStore:
    """Reads and writes the game state file."""

    def __init__(self, path: Path):
        """Initialize game state store.

        Args:
            path: JSON file holding the state
        """
        self.path = path
        self._lock = threading.Lock()
        self._state = self._load()

    def _load(self) -> GameState:
        if not self.path.exists():
            return GameState()
        try:
            with open(self.path) as f:
                return GameState.from_dict(json.load(f))
        except (json.JSONDecodeError, IOError, ValueError, TypeError, AttributeError):
            logger.warning("Unreadable game state at %s; starting fresh", self.path)
            return GameState()

    def _write_atomic(self) -> None:
        """Write the state file using write-to-temp-then-rename."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_fd, temp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".game_state_", suffix=".tmp")
        try:
            with open(temp_fd, "w") as f:
                json.dump(self._state.to_dict(), f)
            Path(temp_path).replace(self.path)
        except Exception:
            try:
                Path(temp_path).unlink()
            except OSError:
                pass
            raise

    def snapshot(self) -> GameState:
        with self._lock:
            return GameState.from_dict(self._state.to_dict())

    @property
    def current_game(self) -> GameType | None:
        with self._lock:
            return self._state.current_game

    def set_current_game(self, game_type: GameType) -> None:
        with self._lock:
            self._state.current_game = game_type
            self._write_atomic()

    @property
    def game_id(self) -> int:
        with self._lock:
            return self._state.game_id

    def get_selected_expansions(self, game_type: GameType) -> list[str]:
        """Selected expansions of a game; BASE is always selected."""
        with self._lock:
            return _with_base(self._state.selected_expansions.get(game_type.value, []))

    def set_selected_expansions(self, game_type: GameType, names: list[str]) -> list[str]:
        """Replace the selection. BASE is added if missing.

        Returns:
            The stored selection
        """
        selection = _with_base(names)
        with self._lock:
            self._state.selected_expansions[game_type.value] = selection
            self._write_atomic()
        return selection

    def add_expansion(self, game_type: GameType, name: str) -> None:
        self.set_selected_expansions(game_type, [*self.get_selected_expansions(game_type), name])

    def remove_expansion(self, game_type: GameType, name: str) -> bool:
        """Deselect an expansion. The base game cannot be removed.

        Returns:
            True if the expansion was selected and is now removed
        """
        if name == BASE_EXPANSION_NAME:
            logger.info("Refusing to deselect the base game")
            return False
        current = self.get_selected_expansions(game_type)
        if name not in current:
            return False
        self.set_selected_expansions(game_type, [n for n in current if n != name])
        return True

    def new_game(self, game_type: GameType) -> int:
        """Start a new game; the id is the current time in epoch milliseconds."""
        game_id = int(time.time() * 1000)
        with self._lock:
            self._state.current_game = game_type
            self._state.game_id = game_id
            self._write_atomic()
        logger.info("New %s game %d", game_type.value, game_id)
        return game_id

    def clear(self) -> None:
        with self._lock:
            self._state = GameState()
            self._write_atomic()
