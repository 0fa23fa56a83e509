"""Single entry point for collaborators: store, migration, decks and game state.

A ``Companion`` owns one store handle for its data directory and builds the
per-game deck engines lazily, the first time a deck of that game is used.
"""

import logging
import os
import random
import threading
from functools import partial
from pathlib import Path
from typing import Sequence

from src.card_store import DATABASE_NAME, CardStore, StoreHandle
from src.deck_adapters import ArkhamDeckAdapter, EldritchDeckAdapter
from src.deck_manager import DeckManager
from src.exporter import DatabaseExporter
from src.game_state import GAME_STATE_FILE, GameStateStore
from src.health import HealthReport, check_health
from src.initializer import STORE_IMAGE_NAME, DatabaseInitializer, MigrationStats, copy_store_image
from src.models import (
    ENCOUNTERED_DISCARDED,
    NEIGHBORHOOD_DECK_PREFIX,
    GameType,
    UnifiedCard,
    parse_neighborhood_deck,
)
from src.procedural import SEED_PATH
from src.selection import SelectionResolver, SelectionResult

logger = logging.getLogger(__name__)

DATA_DIR_ENV = "CTHULHU_COMPANION_DATA_DIR"
DEFAULT_DATA_DIR = Path("./data")


def default_data_dir() -> Path:
    """Data directory from the environment, else ./data."""
    value = os.environ.get(DATA_DIR_ENV)
    return Path(value) if value else DEFAULT_DATA_DIR


def game_for_deck(name: str) -> GameType:
    """Arkham decks are named ``neighborhood_<id>``; every other deck is an Eldritch region."""
    if name.startswith(NEIGHBORHOOD_DECK_PREFIX):
        return GameType.ARKHAM
    return GameType.ELDRITCH


class Companion:
    """Game state facade over one data directory."""

    def __init__(
        self,
        data_dir: Path | None = None,
        assets_dir: Path | None = None,
        seed_path: Path = SEED_PATH,
        rng: random.Random | None = None,
    ):
        """Initialize companion.

        Args:
            data_dir: Directory holding the store and game state
                (defaults to $CTHULHU_COMPANION_DATA_DIR or ./data)
            assets_dir: Bundled assets (defaults to data_dir/assets)
            seed_path: Seed for procedural Arkham generation
            rng: Random source shared by the decks and the selection resolver
        """
        self.data_dir = data_dir or default_data_dir()
        self.assets_dir = assets_dir or self.data_dir / "assets"
        self._rng = rng or random.Random()

        self.handle = StoreHandle(
            self.data_dir / DATABASE_NAME,
            before_open=partial(copy_store_image, self.assets_dir / STORE_IMAGE_NAME),
        )
        self.game_state = GameStateStore(self.data_dir / GAME_STATE_FILE)
        self.initializer = DatabaseInitializer(
            self.handle, self.data_dir, assets_dir=self.assets_dir, seed_path=seed_path
        )
        self.exporter = DatabaseExporter(self.handle, self.data_dir)

        self._lock = threading.Lock()
        self._decks: dict[GameType, DeckManager] = {}
        self._arkham: ArkhamDeckAdapter | None = None
        self._eldritch: EldritchDeckAdapter | None = None

    def __enter__(self) -> "Companion":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        """Flush deck writes and close the store."""
        with self._lock:
            managers = list(self._decks.values())
            self._decks.clear()
            self._arkham = None
            self._eldritch = None
        for manager in managers:
            manager.close()
        self.handle.close()

    @property
    def store(self) -> CardStore:
        return self.handle.get()

    # ------------------------------------------------------------------
    # Decks
    # ------------------------------------------------------------------

    def _ensure_decks(self, game_type: GameType) -> DeckManager:
        with self._lock:
            manager = self._decks.get(game_type)
            if manager is not None:
                return manager
            manager = DeckManager(self.store, game_type, self._rng)
            if game_type == GameType.ARKHAM:
                self._arkham = ArkhamDeckAdapter(
                    self.store, manager, self.game_state, SelectionResolver(self.store, self._rng)
                )
                self._arkham.initialize()
            else:
                self._eldritch = EldritchDeckAdapter(self.store, manager, self.game_state)
                self._eldritch.initialize()
            self._decks[game_type] = manager
            return manager

    def decks(self, game_type: GameType) -> DeckManager:
        """Deck engine of a game, built on first use."""
        return self._ensure_decks(game_type)

    def arkham(self) -> ArkhamDeckAdapter:
        self._ensure_decks(GameType.ARKHAM)
        assert self._arkham is not None
        return self._arkham

    def eldritch(self) -> EldritchDeckAdapter:
        self._ensure_decks(GameType.ELDRITCH)
        assert self._eldritch is not None
        return self._eldritch

    def _reload(self, game_type: GameType | None = None) -> None:
        """Rebuild already-loaded decks from the store."""
        with self._lock:
            loaded = [g for g in self._decks if game_type is None or g == game_type]
        for game in loaded:
            if game == GameType.ARKHAM:
                self.arkham().initialize()
            else:
                self.eldritch().initialize()

    def get_deck(self, name: str, game_type: GameType | None = None) -> list[UnifiedCard]:
        """Shuffled copy of a deck; empty if no such deck exists."""
        return self.decks(game_type or game_for_deck(name)).get_deck(name)

    def draw_card(self, name: str, game_type: GameType | None = None) -> UnifiedCard | None:
        game = game_type or game_for_deck(name)
        if game == GameType.ARKHAM:
            nei = parse_neighborhood_deck(name)
            if nei is not None:
                return self.arkham().draw_neighborhood_card(nei)
        return self.decks(game).draw_card(name)

    def discard_card(
        self,
        deck_name: str,
        card_id: str,
        status: str = ENCOUNTERED_DISCARDED,
        game_type: GameType | None = None,
    ) -> bool:
        """Discard a card of a deck by id, including one drawn from it.

        Returns:
            False if the card is not loaded in that deck or the store rejected
            the new status
        """
        manager = self.decks(game_type or game_for_deck(deck_name))
        card = manager.find_card(card_id, deck_name)
        if card is None:
            logger.info("No card %s in deck %s", card_id, deck_name)
            return False
        return manager.discard_card(card, status)

    def shuffle(self, deck_name: str, game_type: GameType | None = None, full: bool = False) -> bool:
        """Shuffle a deck; ``full`` also resets every card of it in the store.

        Returns:
            False if no such deck exists
        """
        manager = self.decks(game_type or game_for_deck(deck_name))
        if not manager.has_deck(deck_name):
            return False
        if full:
            manager.shuffle_full_deck(deck_name)
        else:
            manager.shuffle_deck(deck_name)
        return True

    def get_discard_pile(self, game_type: GameType) -> list[UnifiedCard]:
        return self.decks(game_type).get_discard_pile()

    def select_other_world_card(
        self, location_id: int | None, color_ids: Sequence[int]
    ) -> SelectionResult:
        return self.arkham().select_other_world_card(location_id, color_ids)

    # ------------------------------------------------------------------
    # Store
    # ------------------------------------------------------------------

    def initialize_database(self, force: bool = False) -> tuple[int, int]:
        """Populate the store; returns (arkham_count, eldritch_count)."""
        counts = self.initializer.initialize_database(force)
        self._reload()
        return counts

    def initialize_database_with_stats(self, force: bool = False) -> MigrationStats:
        stats = self.initializer.initialize_database_with_stats(force)
        self._reload()
        return stats

    def get_card_count(self, game_type: GameType | None = None) -> int:
        return self.store.get_card_count(game_type)

    def has_cards(self, game_type: GameType | None = None) -> bool:
        return self.store.has_cards(game_type)

    def get_expansion_names(self, game_type: GameType) -> list[str]:
        return self.store.get_expansion_names(game_type)

    def export_store_to(self, dest_path: Path) -> bool:
        return self.exporter.export_to_path(dest_path)

    def export_timestamped(self) -> Path | None:
        return self.exporter.export_timestamped()

    def health_check(self) -> HealthReport:
        return check_health(self.handle.db_path)

    def database_status(self) -> str:
        return self.initializer.database_status()

    # ------------------------------------------------------------------
    # Game state
    # ------------------------------------------------------------------

    def get_selected_expansions(self, game_type: GameType) -> list[str]:
        return self.game_state.get_selected_expansions(game_type)

    def set_selected_expansions(self, game_type: GameType, names: Sequence[str]) -> list[str]:
        """Replace a game's selected expansions and rebuild its decks if loaded."""
        selection = self.game_state.set_selected_expansions(game_type, list(names))
        self._reload(game_type)
        return selection

    def new_game(self, game_type: GameType) -> int:
        """Start a new game with a fresh id and rebuilt decks."""
        game_id = self.game_state.new_game(game_type)
        self._reload(game_type)
        return game_id
