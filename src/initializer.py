"""Populate the unified store on first run.

Each game is migrated independently through an ordered list of sources:

1. A bundled store image, copied into place before the store is first opened
2. A legacy single-game database found at one of several candidate paths
3. Eldritch only: the bundled XML corpus
4. Arkham only: procedural generation into a scratch store

A game that already has cards is skipped unless ``force`` is set, in which
case only that game's cards are cleared first.
"""

import logging
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from src.card_store import DATABASE_NAME, StoreHandle
from src.legacy_import import (
    arkham_candidate_paths,
    eldritch_candidate_paths,
    find_legacy_database,
    migrate_arkham_database,
    migrate_eldritch_database,
)
from src.models import GameType
from src.procedural import SEED_PATH, migrate_arkham_from_scratch
from src.xml_import import XML_ASSET_NAME, migrate_eldritch_xml

logger = logging.getLogger(__name__)

STORE_IMAGE_NAME = DATABASE_NAME


def copy_store_image(image_path: Path, db_path: Path) -> bool:
    """Copy a bundled store image to ``db_path`` if the store is missing or empty.

    The copy is written to a temporary file first and renamed into place.

    Returns:
        True if the image was copied
    """
    if db_path.exists() and db_path.stat().st_size > 0:
        return False
    if not image_path.is_file() or image_path.stat().st_size == 0:
        logger.debug("No store image at %s", image_path)
        return False

    db_path.parent.mkdir(parents=True, exist_ok=True)
    temp_fd, temp_path = tempfile.mkstemp(dir=db_path.parent, prefix=".image_", suffix=".tmp")
    try:
        with open(temp_fd, "wb") as dest, open(image_path, "rb") as src:
            shutil.copyfileobj(src, dest)
        Path(temp_path).replace(db_path)
    except OSError:
        logger.error("Failed to copy store image %s", image_path, exc_info=True)
        try:
            Path(temp_path).unlink()
        except OSError:
            pass
        return False

    logger.info("Copied store image %s to %s", image_path, db_path)
    return True


@dataclass
class MigrationStats:
    """Outcome of a full initialization."""

    arkham_count: int = 0
    eldritch_count: int = 0
    arkham_expansions: list[str] = field(default_factory=list)
    eldritch_expansions: list[str] = field(default_factory=list)
    eldritch_regions: list[str] = field(default_factory=list)
    success: bool = True
    error_message: str | None = None

    @property
    def total_count(self) -> int:
        return self.arkham_count + self.eldritch_count

    def summary(self) -> str:
        lines = [
            "Migration Summary",
            "-" * 40,
            f"  Arkham cards:   {self.arkham_count:,}",
            f"  Eldritch cards: {self.eldritch_count:,}",
            f"  Total:          {self.total_count:,}",
            f"  Arkham expansions:   {', '.join(self.arkham_expansions) or 'none'}",
            f"  Eldritch expansions: {', '.join(self.eldritch_expansions) or 'none'}",
            f"  Eldritch regions:    {', '.join(self.eldritch_regions) or 'none'}",
            f"  Status: {'OK' if self.success else 'FAILED'}",
        ]
        if self.error_message:
            lines.append(f"  Error: {self.error_message}")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "arkham_count": self.arkham_count,
            "eldritch_count": self.eldritch_count,
            "total_count": self.total_count,
            "arkham_expansions": self.arkham_expansions,
            "eldritch_expansions": self.eldritch_expansions,
            "eldritch_regions": self.eldritch_regions,
            "success": self.success,
            "error_message": self.error_message,
        }


class DatabaseInitializer:
    """Runs the per-game migration fallbacks against one store."""

    def __init__(
        self,
        handle: StoreHandle,
        data_dir: Path,
        assets_dir: Path | None = None,
        seed_path: Path = SEED_PATH,
        arkham_db_path: Path | None = None,
        eldritch_db_path: Path | None = None,
    ):
        """Initialize migration entry point.

        Args:
            handle: Store handle to populate
            data_dir: Data directory (legacy sources and scratch files live here)
            assets_dir: Bundled assets directory (defaults to data_dir/assets)
            seed_path: Seed for procedural Arkham generation
            arkham_db_path: Explicit legacy Arkham database, tried first
            eldritch_db_path: Explicit legacy Eldritch database, tried first
        """
        self._handle = handle
        self.data_dir = data_dir
        self.assets_dir = assets_dir or data_dir / "assets"
        self.seed_path = seed_path
        self.arkham_db_path = arkham_db_path
        self.eldritch_db_path = eldritch_db_path
        self.last_error: str | None = None

    def _prepare(self, game_type: GameType, force: bool) -> int | None:
        """Return the existing count when migration should be skipped."""
        store = self._handle.get()
        if store.has_cards(game_type):
            if not force:
                count = store.get_card_count(game_type)
                logger.info("%s already has %d cards; skipping migration", game_type.value, count)
                return count
            logger.info("Force re-initializing %s", game_type.value)
            store.clear_cards(game_type)
        return None

    def import_arkham_cards(self, force: bool = False) -> int:
        """Migrate Arkham cards: legacy database, else procedural generation.

        Returns:
            Number of Arkham cards in the store afterwards (0 on failure)
        """
        try:
            existing = self._prepare(GameType.ARKHAM, force)
            if existing is not None:
                return existing

            store = self._handle.get()
            legacy = find_legacy_database(arkham_candidate_paths(self.data_dir, self.arkham_db_path))
            if legacy is not None:
                count = migrate_arkham_database(legacy, store)
                if count > 0:
                    return count
                logger.warning("Legacy Arkham database %s yielded no cards", legacy)

            return migrate_arkham_from_scratch(store, self.data_dir, self.seed_path)
        except Exception as e:
            self.last_error = f"Arkham migration failed: {e}"
            logger.error("Arkham migration failed", exc_info=True)
            return 0

    def import_eldritch_cards(self, force: bool = False) -> int:
        """Migrate Eldritch cards: legacy database, else the XML corpus.

        Returns:
            Number of Eldritch cards in the store afterwards (0 on failure)
        """
        try:
            existing = self._prepare(GameType.ELDRITCH, force)
            if existing is not None:
                return existing

            store = self._handle.get()
            legacy = find_legacy_database(eldritch_candidate_paths(self.data_dir, self.eldritch_db_path))
            if legacy is not None:
                count = migrate_eldritch_database(legacy, store)
                if count > 0:
                    return count
                logger.warning("Legacy Eldritch database %s yielded no cards", legacy)

            return migrate_eldritch_xml(self.assets_dir / XML_ASSET_NAME, store)
        except Exception as e:
            self.last_error = f"Eldritch migration failed: {e}"
            logger.error("Eldritch migration failed", exc_info=True)
            return 0

    def initialize_database(self, force: bool = False) -> tuple[int, int]:
        """Migrate both games.

        Returns:
            Tuple of (arkham_count, eldritch_count)
        """
        self.last_error = None
        arkham = self.import_arkham_cards(force)
        eldritch = self.import_eldritch_cards(force)
        logger.info("Store initialized: %d Arkham, %d Eldritch cards", arkham, eldritch)
        return arkham, eldritch

    def initialize_database_with_stats(self, force: bool = False) -> MigrationStats:
        arkham, eldritch = self.initialize_database(force)
        store = self._handle.get()
        return MigrationStats(
            arkham_count=arkham,
            eldritch_count=eldritch,
            arkham_expansions=store.get_expansion_names(GameType.ARKHAM),
            eldritch_expansions=store.get_expansion_names(GameType.ELDRITCH),
            eldritch_regions=store.get_regions(GameType.ELDRITCH),
            success=self.last_error is None,
            error_message=self.last_error,
        )

    def database_status(self) -> str:
        """Human-readable store status."""
        store = self._handle.get()
        total = store.get_card_count()
        arkham = store.get_card_count(GameType.ARKHAM)
        eldritch = store.get_card_count(GameType.ELDRITCH)
        lines = [
            f"Database: {store.get_database_path()}",
            f"Schema version: {store.get_schema_version()}",
            f"Total cards: {total:,}",
            f"  Arkham:   {arkham:,}",
            f"  Eldritch: {eldritch:,}",
        ]
        if total != arkham + eldritch:
            lines.append("WARNING: card count mismatch")
        return "\n".join(lines)
