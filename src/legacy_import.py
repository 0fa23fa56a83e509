"""Import from legacy single-game databases.

Each game used to ship its own SQLite database. This module finds those files
and copies their contents into the unified CardStore:

- Eldritch: one flat ``cards`` table.
- Arkham: a normalized schema (Expansion, Neighborhood, Location, Encounter,
  Color, Card and junction tables) migrated in dependency order.

Every stage returns a count and logs instead of raising, so a damaged stage
does not stop the stages after it.
"""

import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from src.card_store import CardStore
from src.expansion_names import (
    BASE_EXPANSION_NAME,
    canonical_name,
    canonical_name_for_id,
    normalize_base,
)
from src.models import (
    DEFAULT_EXPANSION,
    ENCOUNTERED_NONE,
    Color,
    Encounter,
    GameType,
    Location,
    Neighborhood,
    UnifiedCard,
)

logger = logging.getLogger(__name__)

ELDRITCH_DB_NAME = "eldritch_cards.db"
ARKHAM_DB_NAME = "ahDB"
ELDRITCH_SIBLING_PACKAGE = "com.poquets.eldritch"
ARKHAM_SIBLING_PACKAGE = "com.poquets.arkham"


def legacy_dir(data_dir: Path) -> Path:
    return data_dir / "legacy"


def eldritch_candidate_paths(data_dir: Path, explicit: Path | None = None) -> list[Path]:
    """Candidate locations of a legacy Eldritch database, in priority order."""
    candidates = [] if explicit is None else [explicit]
    candidates.append(legacy_dir(data_dir) / ELDRITCH_DB_NAME)
    candidates.append(legacy_dir(data_dir) / ELDRITCH_SIBLING_PACKAGE / "databases" / ELDRITCH_DB_NAME)
    return candidates


def arkham_candidate_paths(data_dir: Path, explicit: Path | None = None) -> list[Path]:
    """Candidate locations of a legacy Arkham database, in priority order."""
    candidates = [] if explicit is None else [explicit]
    candidates.append(legacy_dir(data_dir) / ARKHAM_DB_NAME)
    candidates.append(legacy_dir(data_dir) / ARKHAM_SIBLING_PACKAGE / "databases" / ARKHAM_DB_NAME)
    return candidates


def find_legacy_database(candidates: list[Path]) -> Path | None:
    """Return the first candidate that exists and is not empty."""
    for path in candidates:
        try:
            if path.is_file() and path.stat().st_size > 0:
                logger.info("Found legacy database at %s", path)
                return path
        except OSError as e:
            logger.debug("Cannot inspect %s: %s", path, e)
    return None


def _open_read_only(path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(f"{path.resolve().as_uri()}?mode=ro", uri=True)
    conn.row_factory = sqlite3.Row
    return conn


def _optional(row: sqlite3.Row, column: str, default: Any = None) -> Any:
    """Read a column that older legacy schemas may lack."""
    if column not in row.keys():
        return default
    value = row[column]
    return default if value is None else value


# ----------------------------------------------------------------------
# Eldritch
# ----------------------------------------------------------------------


def migrate_eldritch_database(legacy_path: Path, store: CardStore) -> int:
    """Copy every card of a legacy Eldritch database into the store.

    Args:
        legacy_path: Path to the legacy ``eldritch_cards.db``
        store: Destination store

    Returns:
        Number of cards inserted
    """
    try:
        conn = _open_read_only(legacy_path)
    except sqlite3.Error:
        logger.error("Cannot open legacy Eldritch database %s", legacy_path, exc_info=True)
        return 0

    try:
        rows = conn.execute("SELECT * FROM cards").fetchall()
    except sqlite3.Error:
        logger.error("Cannot read cards from %s", legacy_path, exc_info=True)
        return 0
    finally:
        conn.close()

    cards: list[UnifiedCard] = []
    skipped = 0
    for row in rows:
        card_id = _optional(row, "card_id")
        region = _optional(row, "region")
        if card_id is None or region is None:
            skipped += 1
            continue
        cards.append(
            UnifiedCard(
                game_type=GameType.ELDRITCH,
                card_id=str(card_id),
                expansion=normalize_base(_optional(row, "expansion", DEFAULT_EXPANSION)),
                card_name=_optional(row, "card_name"),
                encountered=_optional(row, "encountered", ENCOUNTERED_NONE),
                region=region,
                top_header=_optional(row, "top_header"),
                top_encounter=_optional(row, "top_encounter"),
                middle_header=_optional(row, "middle_header"),
                middle_encounter=_optional(row, "middle_encounter"),
                bottom_header=_optional(row, "bottom_header"),
                bottom_encounter=_optional(row, "bottom_encounter"),
            )
        )
    if skipped:
        logger.warning("Skipped %d legacy Eldritch rows without card_id or region", skipped)

    for expansion in sorted({card.expansion for card in cards}):
        store.get_or_create_expansion(GameType.ELDRITCH, expansion, expansion)

    inserted = store.insert_cards(cards)
    logger.info("Migrated %d Eldritch cards from %s", inserted, legacy_path)
    return inserted


# ----------------------------------------------------------------------
# Arkham
# ----------------------------------------------------------------------


@dataclass
class _ExpansionRef:
    exp_id: int
    name: str


class _ArkhamExpansions:
    """Legacy expansion id -> unified expansion, created on first reference."""

    def __init__(self, store: CardStore):
        self._store = store
        self._declared: dict[int, tuple[str, str | None]] = {}
        self._resolved: dict[int, _ExpansionRef] = {}

    def load(self, conn: sqlite3.Connection) -> None:
        try:
            rows = conn.execute("SELECT * FROM Expansion").fetchall()
        except sqlite3.Error:
            logger.error("Cannot read legacy Expansion table", exc_info=True)
            return
        for row in rows:
            self._declared[int(row["expID"])] = (
                canonical_name(row["expName"]),
                _optional(row, "expIconPath"),
            )
        for legacy_id in self._declared:
            self.resolve(legacy_id)

    def resolve(self, legacy_id: int | None) -> _ExpansionRef:
        """Unified expansion for a legacy id; unknown ids map by the synonym table or to BASE."""
        if legacy_id is None:
            legacy_id = 1
        if legacy_id in self._resolved:
            return self._resolved[legacy_id]

        if legacy_id in self._declared:
            name, icon = self._declared[legacy_id]
        else:
            name, icon = canonical_name_for_id(legacy_id) or BASE_EXPANSION_NAME, None
            logger.debug("Legacy expansion %d referenced before declaration; using %r", legacy_id, name)

        exp_id = self._store.get_or_create_expansion(GameType.ARKHAM, str(legacy_id), name, icon)
        ref = _ExpansionRef(exp_id, name)
        self._resolved[legacy_id] = ref
        return ref


def _read_rows(conn: sqlite3.Connection, sql: str, stage: str) -> list[sqlite3.Row]:
    try:
        return conn.execute(sql).fetchall()
    except sqlite3.Error:
        logger.error("Cannot read legacy %s", stage, exc_info=True)
        return []


def _migrate_neighborhoods(conn, store: CardStore, expansions: _ArkhamExpansions) -> int:
    rows = _read_rows(
        conn,
        "SELECT NeighborhoodID, Name, ExpansionID, CardPath, ButtonPath FROM Neighborhood",
        "neighborhoods",
    )
    neighborhoods = [
        Neighborhood(
            nei_id=row["NeighborhoodID"],
            exp_id=expansions.resolve(row["ExpansionID"]).exp_id,
            name=row["Name"],
            card_path=row["CardPath"],
            button_path=row["ButtonPath"],
        )
        for row in rows
    ]
    return store.insert_neighborhoods(neighborhoods)


def _migrate_locations(conn, store: CardStore, expansions: _ArkhamExpansions) -> int:
    rows = _read_rows(
        conn,
        "SELECT locID, locName, neiID, locExpID, locButtonPath, sort FROM Location",
        "locations",
    )
    locations = [
        Location(
            loc_id=row["locID"],
            exp_id=expansions.resolve(row["locExpID"]).exp_id if row["locExpID"] is not None else None,
            nei_id=row["neiID"],
            name=row["locName"],
            button_path=row["locButtonPath"],
            sort=row["sort"] or 0,
        )
        for row in rows
    ]
    return store.insert_locations(locations)


def _migrate_colors(conn, store: CardStore, expansions: _ArkhamExpansions) -> int:
    rows = _read_rows(
        conn, "SELECT colorID, colorExpID, colorName, colorButtonPath FROM Color", "colors"
    )
    colors = [
        Color(
            color_id=row["colorID"],
            exp_id=expansions.resolve(row["colorExpID"]).exp_id,
            name=row["colorName"],
            button_path=row["colorButtonPath"],
        )
        for row in rows
    ]
    return store.insert_colors(colors)


def _migrate_location_colors(conn, store: CardStore) -> int:
    rows = _read_rows(
        conn, "SELECT locToColorLocID, locToColorColorID FROM LocationToColor", "location colors"
    )
    return store.link_locations_to_colors((row[0], row[1]) for row in rows)


def _migrate_encounters(conn, store: CardStore) -> int:
    rows = _read_rows(conn, "SELECT encID, locID, encText FROM Encounter", "encounters")
    return store.insert_encounters(
        Encounter(enc_id=row["encID"], loc_id=row["locID"], text=row["encText"]) for row in rows
    )


def _migrate_arkham_cards(conn, store: CardStore, expansions: _ArkhamExpansions) -> int:
    """Insert one unified card per (card, expansion membership)."""
    rows = _read_rows(
        conn,
        """
        SELECT c.cardID, c.neiID, GROUP_CONCAT(cte.expID) AS expansions
        FROM Card c
        LEFT JOIN CardToExpansion cte ON c.cardID = cte.cardID
        GROUP BY c.cardID, c.neiID
        """,
        "cards",
    )
    cards: list[UnifiedCard] = []
    for row in rows:
        memberships = row["expansions"] or "1"
        for token in memberships.split(","):
            token = token.strip()
            try:
                legacy_id = int(token)
            except ValueError:
                logger.warning("Card %s has malformed expansion id %r", row["cardID"], token)
                continue
            cards.append(
                UnifiedCard(
                    game_type=GameType.ARKHAM,
                    card_id=str(row["cardID"]),
                    expansion=expansions.resolve(legacy_id).name,
                    neighborhood_id=row["neiID"],
                )
            )
    return store.insert_cards(cards)


def _link_card_encounters(conn, store: CardStore) -> int:
    rows = _read_rows(conn, "SELECT cardID, encID FROM CardToEncounter", "card encounters")
    return store.link_cards_to_encounters((str(row[0]), row[1]) for row in rows)


def _link_card_colors(conn, store: CardStore) -> int:
    rows = _read_rows(
        conn, "SELECT cardToColorCardID, cardToColorColorID FROM CardToColor", "card colors"
    )
    return store.link_cards_to_colors((str(row[0]), row[1]) for row in rows)


def migrate_arkham_database(legacy_path: Path, store: CardStore) -> int:
    """Run the Arkham ETL from a legacy database into the store.

    Order: expansions, neighborhoods, locations, colors, location-color
    links, encounters, cards, card-encounter links, card-color links.

    Args:
        legacy_path: Path to the legacy ``ahDB`` (or a scratch store)
        store: Destination store

    Returns:
        Number of cards inserted
    """
    try:
        conn = _open_read_only(legacy_path)
    except sqlite3.Error:
        logger.error("Cannot open legacy Arkham database %s", legacy_path, exc_info=True)
        return 0

    try:
        expansions = _ArkhamExpansions(store)
        expansions.load(conn)
        logger.debug("Neighborhoods: %d", _migrate_neighborhoods(conn, store, expansions))
        logger.debug("Locations: %d", _migrate_locations(conn, store, expansions))
        logger.debug("Colors: %d", _migrate_colors(conn, store, expansions))
        logger.debug("Location colors: %d", _migrate_location_colors(conn, store))
        logger.debug("Encounters: %d", _migrate_encounters(conn, store))
        inserted = _migrate_arkham_cards(conn, store, expansions)
        logger.debug("Card encounters: %d", _link_card_encounters(conn, store))
        logger.debug("Card colors: %d", _link_card_colors(conn, store))
    finally:
        conn.close()

    logger.info("Migrated %d Arkham cards from %s", inserted, legacy_path)
    return inserted
