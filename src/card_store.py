"""Unified card store using SQLite.

Holds the cards of both games plus the Arkham reference tables (expansions,
neighborhoods, locations, encounters, colors) in one file-backed database.
All queries use parameterized statements. Every public operation runs under a
single readers-writer lock; reads are best-effort and return an empty result
instead of raising when SQLite reports an error.
"""

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Callable, Iterable, Sequence

from src.models import (
    DEFAULT_EXPANSION,
    ENCOUNTERED_NONE,
    CardEncounter,
    Color,
    Encounter,
    Expansion,
    Failed,
    GameType,
    Ignored,
    Inserted,
    InsertReport,
    Location,
    Neighborhood,
    UnifiedCard,
)
from src.query_builder import CardQuery
from src.rwlock import ReadWriteLock

logger = logging.getLogger(__name__)

DATABASE_NAME = "cthulhu_companion.db"
SCHEMA_VERSION = 2

# Number of ignored rows echoed to the log after a bulk insert
_IGNORED_LOG_LIMIT = 5

# Additive schema statements keyed by the version that introduced them.
# Upgrading from version N applies every entry above N in order.
_SCHEMA: dict[int, list[str]] = {
    1: [
        """
        CREATE TABLE IF NOT EXISTS expansions (
            exp_id INTEGER PRIMARY KEY AUTOINCREMENT,
            game_type TEXT NOT NULL,
            exp_name TEXT NOT NULL,
            exp_icon_path TEXT,
            UNIQUE(game_type, exp_name)
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS unified_cards (
            _id INTEGER PRIMARY KEY AUTOINCREMENT,
            game_type TEXT NOT NULL,
            card_id TEXT NOT NULL,
            expansion TEXT NOT NULL DEFAULT 'BASE',
            card_name TEXT,
            encountered TEXT DEFAULT 'NONE',
            card_data TEXT,
            neighborhood_id INTEGER,  -- Arkham
            location_id INTEGER,  -- Arkham
            encounter_id INTEGER,  -- Arkham
            region TEXT,  -- Eldritch
            top_header TEXT,
            top_encounter TEXT,
            middle_header TEXT,
            middle_encounter TEXT,
            bottom_header TEXT,
            bottom_encounter TEXT,
            UNIQUE(game_type, card_id, expansion)
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_game_type ON unified_cards(game_type)",
        "CREATE INDEX IF NOT EXISTS idx_expansion ON unified_cards(expansion)",
        "CREATE INDEX IF NOT EXISTS idx_region ON unified_cards(region)",
    ],
    2: [
        """
        CREATE TABLE IF NOT EXISTS neighborhoods (
            nei_id INTEGER PRIMARY KEY,
            exp_id INTEGER NOT NULL REFERENCES expansions(exp_id),
            nei_name TEXT,
            nei_card_path TEXT,
            nei_button_path TEXT
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS locations (
            loc_id INTEGER PRIMARY KEY,
            exp_id INTEGER REFERENCES expansions(exp_id),
            nei_id INTEGER REFERENCES neighborhoods(nei_id),  -- NULL for other worlds
            loc_name TEXT,
            loc_button_path TEXT,
            loc_sort INTEGER NOT NULL DEFAULT 0
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS encounters (
            enc_id INTEGER PRIMARY KEY,
            loc_id INTEGER NOT NULL REFERENCES locations(loc_id),
            enc_text TEXT
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS card_to_encounter (
            cte_card_id TEXT NOT NULL,
            cte_enc_id INTEGER NOT NULL REFERENCES encounters(enc_id),
            game_type TEXT NOT NULL,
            PRIMARY KEY (cte_card_id, cte_enc_id, game_type)
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS colors (
            color_id INTEGER PRIMARY KEY,
            exp_id INTEGER NOT NULL REFERENCES expansions(exp_id),
            color_name TEXT,
            color_button_path TEXT
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS location_to_color (
            ltc_loc_id INTEGER NOT NULL REFERENCES locations(loc_id),
            ltc_color_id INTEGER NOT NULL REFERENCES colors(color_id),
            PRIMARY KEY (ltc_loc_id, ltc_color_id)
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS card_to_color (
            ctc_card_id TEXT NOT NULL,
            ctc_color_id INTEGER NOT NULL REFERENCES colors(color_id),
            game_type TEXT NOT NULL,
            PRIMARY KEY (ctc_card_id, ctc_color_id, game_type)
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_locations_nei ON locations(nei_id)",
        "CREATE INDEX IF NOT EXISTS idx_encounters_loc ON encounters(loc_id)",
    ],
}


def _placeholders(values: Sequence[Any]) -> str:
    return ", ".join("?" for _ in values)


def _dedupe(records: Iterable[Any], key: Callable[[Any], Any]) -> list[Any]:
    """Drop repeated records, keeping the first occurrence of each key."""
    seen: dict[Any, Any] = {}
    for record in records:
        seen.setdefault(key(record), record)
    return list(seen.values())


def _card_from_row(row: sqlite3.Row) -> UnifiedCard | None:
    """Decode a card row; None for a row with an unknown game type."""
    try:
        return UnifiedCard.from_row(row)
    except ValueError:
        logger.warning("Skipping undecodable card row %s/%s", row["game_type"], row["card_id"])
        return None


class CardStore:
    """SQLite-backed unified card store."""

    def __init__(self, db_path: Path):
        """Open (and create or upgrade) the store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._lock = ReadWriteLock()
        # Shared across worker threads; the readers-writer lock serializes writers
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._create_tables()

    def _create_tables(self) -> None:
        """Apply every schema version above the stored ``user_version``."""
        cursor = self._conn.cursor()
        current = cursor.execute("PRAGMA user_version").fetchone()[0]

        # A copied image may predate user_version; IF NOT EXISTS makes this safe
        for version in range(current + 1, SCHEMA_VERSION + 1):
            logger.info("Upgrading card store schema to version %d", version)
            for statement in _SCHEMA[version]:
                cursor.execute(statement)

        if current < SCHEMA_VERSION:
            cursor.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
        self._conn.commit()

    def close(self) -> None:
        """Close database connection."""
        with self._lock.write_locked():
            self._conn.close()

    def __enter__(self) -> "CardStore":
        """Enter context manager."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit context manager and close connection."""
        self.close()

    @property
    def lock(self) -> ReadWriteLock:
        return self._lock

    # ------------------------------------------------------------------
    # Low-level helpers. Callers hold no lock; each helper takes its own.
    # ------------------------------------------------------------------

    def _fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        with self._lock.read_locked():
            try:
                return self._conn.execute(sql, params).fetchall()
            except sqlite3.Error:
                logger.error("Card store read failed: %s", sql.strip().splitlines()[0], exc_info=True)
                return []

    def _fetch_one(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Row | None:
        with self._lock.read_locked():
            try:
                return self._conn.execute(sql, params).fetchone()
            except sqlite3.Error:
                logger.error("Card store read failed: %s", sql.strip().splitlines()[0], exc_info=True)
                return None

    def _scalar(self, sql: str, params: Sequence[Any] = ()) -> int:
        row = self._fetch_one(sql, params)
        return int(row[0]) if row is not None and row[0] is not None else 0

    def _execute_write(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run a single write statement.

        Returns:
            Number of affected rows, or -1 if the statement failed
        """
        with self._lock.write_locked():
            try:
                cursor = self._conn.execute(sql, params)
                self._conn.commit()
                return cursor.rowcount
            except sqlite3.Error:
                self._conn.rollback()
                logger.error("Card store write failed: %s", sql.strip().splitlines()[0], exc_info=True)
                return -1

    def _execute_batch(self, sql: str, rows: Iterable[Sequence[Any]]) -> int:
        """Run one statement for many rows in a single transaction.

        Rows that violate a constraint are skipped and logged; the batch commits.

        Returns:
            Number of rows written
        """
        written = 0
        failed = 0
        with self._lock.write_locked():
            cursor = self._conn.cursor()
            cursor.execute("BEGIN TRANSACTION")
            try:
                for params in rows:
                    try:
                        cursor.execute(sql, params)
                        written += cursor.rowcount
                    except sqlite3.Error as e:
                        failed += 1
                        logger.warning("Skipping row %r: %s", params, e)
                self._conn.commit()
            except sqlite3.Error:
                self._conn.rollback()
                logger.error("Batch write rolled back", exc_info=True)
                return 0
        if failed:
            logger.info("Batch write: %d written, %d failed", written, failed)
        return written

    # ------------------------------------------------------------------
    # Store information
    # ------------------------------------------------------------------

    def get_database_path(self) -> Path:
        return self.db_path

    def get_schema_version(self) -> int:
        return self._scalar("PRAGMA user_version")

    def get_table_names(self) -> list[str]:
        """Get list of table names in database."""
        rows = self._fetch_all("SELECT name FROM sqlite_master WHERE type='table'")
        return [row[0] for row in rows]

    def get_card_count(self, game_type: GameType | None = None) -> int:
        """Get number of cards, optionally for one game."""
        if game_type is None:
            return self._scalar("SELECT COUNT(*) FROM unified_cards")
        return self._scalar(
            "SELECT COUNT(*) FROM unified_cards WHERE game_type = ?", (game_type.value,)
        )

    def has_cards(self, game_type: GameType | None = None) -> bool:
        return self.get_card_count(game_type) > 0

    def clear_all_cards(self) -> int:
        """Delete every card and every card link. Reference tables are kept.

        Returns:
            Number of cards deleted
        """
        with self._lock.write_locked():
            cursor = self._conn.cursor()
            cursor.execute("BEGIN TRANSACTION")
            try:
                deleted = cursor.execute("DELETE FROM unified_cards").rowcount
                cursor.execute("DELETE FROM card_to_encounter")
                cursor.execute("DELETE FROM card_to_color")
                self._conn.commit()
            except sqlite3.Error:
                self._conn.rollback()
                logger.error("Failed to clear cards", exc_info=True)
                return 0
        logger.info("Cleared %d cards", deleted)
        return deleted

    def clear_cards(self, game_type: GameType) -> int:
        """Delete the cards and card links of one game only.

        Returns:
            Number of cards deleted
        """
        with self._lock.write_locked():
            cursor = self._conn.cursor()
            cursor.execute("BEGIN TRANSACTION")
            try:
                deleted = cursor.execute(
                    "DELETE FROM unified_cards WHERE game_type = ?", (game_type.value,)
                ).rowcount
                cursor.execute("DELETE FROM card_to_encounter WHERE game_type = ?", (game_type.value,))
                cursor.execute("DELETE FROM card_to_color WHERE game_type = ?", (game_type.value,))
                self._conn.commit()
            except sqlite3.Error:
                self._conn.rollback()
                logger.error("Failed to clear %s cards", game_type.value, exc_info=True)
                return 0
        logger.info("Cleared %d %s cards", deleted, game_type.value)
        return deleted

    def backup_to(self, dest_path: Path) -> bool:
        """Write a consistent copy of the store to ``dest_path``."""
        with self._lock.read_locked():
            try:
                dest = sqlite3.connect(dest_path)
                try:
                    self._conn.backup(dest)
                finally:
                    dest.close()
                return True
            except sqlite3.Error:
                logger.error("Backup to %s failed", dest_path, exc_info=True)
                return False

    # ------------------------------------------------------------------
    # Cards
    # ------------------------------------------------------------------

    _INSERT_CARD_SQL = """
        INSERT OR IGNORE INTO unified_cards (
            game_type, card_id, expansion, card_name, encountered, card_data,
            neighborhood_id, location_id, encounter_id,
            region, top_header, top_encounter, middle_header, middle_encounter,
            bottom_header, bottom_encounter
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    """

    def _card_to_params(self, card: UnifiedCard) -> tuple:
        """Extract card data as SQL parameters.

        Only the attribute group of the card's own game is written.
        """
        arkham = card.game_type == GameType.ARKHAM
        return (
            card.game_type.value,
            card.card_id,
            card.expansion or DEFAULT_EXPANSION,
            card.card_name,
            card.encountered or ENCOUNTERED_NONE,
            card.card_data,
            card.neighborhood_id if arkham else None,
            card.location_id if arkham else None,
            card.encounter_id if arkham else None,
            None if arkham else card.region,
            None if arkham else card.top_header,
            None if arkham else card.top_encounter,
            None if arkham else card.middle_header,
            None if arkham else card.middle_encounter,
            None if arkham else card.bottom_header,
            None if arkham else card.bottom_encounter,
        )

    def insert_card(self, card: UnifiedCard) -> bool:
        """Insert a single card.

        Returns:
            True if a new row was written
        """
        return self.insert_cards([card]) == 1

    def insert_cards(self, cards: Iterable[UnifiedCard]) -> int:
        """Insert cards, skipping duplicates.

        Args:
            cards: Cards to insert

        Returns:
            Number of cards actually inserted
        """
        return self.insert_cards_with_outcomes(cards).inserted_count

    def insert_cards_with_outcomes(self, cards: Iterable[UnifiedCard]) -> InsertReport:
        """Insert cards in one transaction and report what happened to each row.

        A card that already exists for (game_type, card_id, expansion) is
        ``Ignored``. A card that cannot be written is ``Failed``; the rest of the
        batch still commits. Never raises for per-row problems.

        Args:
            cards: Cards to insert

        Returns:
            InsertReport with one outcome per input card, in input order
        """
        cards = list(cards)
        report = InsertReport()
        if not cards:
            return report

        with self._lock.write_locked():
            cursor = self._conn.cursor()
            cursor.execute("BEGIN TRANSACTION")
            try:
                for card in cards:
                    if not card.card_id:
                        report.outcomes.append(Failed(card, "card_id is required"))
                        continue
                    try:
                        cursor.execute(self._INSERT_CARD_SQL, self._card_to_params(card))
                    except sqlite3.Error as e:
                        report.outcomes.append(Failed(card, str(e)))
                        continue
                    if cursor.rowcount == 1:
                        report.outcomes.append(Inserted(card))
                    else:
                        report.outcomes.append(
                            Ignored(card, "duplicate (game_type, card_id, expansion)")
                        )
                self._conn.commit()
            except sqlite3.Error as e:
                self._conn.rollback()
                logger.error("Bulk insert rolled back", exc_info=True)
                return InsertReport([Failed(card, f"transaction rolled back: {e}") for card in cards])

        logger.info(
            "Inserted %d cards (%d ignored, %d failed)",
            report.inserted_count, report.ignored_count, report.failed_count,
        )
        for outcome in report.ignored[:_IGNORED_LOG_LIMIT]:
            logger.debug("Ignored %s: %s", outcome.card.key, outcome.reason)
        for outcome in report.failed:
            logger.warning("Failed to insert %s: %s", outcome.card.key, outcome.error)
        return report

    def get_card(
        self, game_type: GameType, card_id: str, expansion: str = DEFAULT_EXPANSION
    ) -> UnifiedCard | None:
        """Get one card by its unique key.

        Returns:
            Card or None if not found
        """
        row = self._fetch_one(
            "SELECT * FROM unified_cards WHERE game_type = ? AND card_id = ? AND expansion = ?",
            (game_type.value, card_id, expansion),
        )
        return _card_from_row(row) if row else None

    def query_cards(self, query: CardQuery) -> list[UnifiedCard]:
        """Run a card filter, ordered by card_id. Undecodable rows are skipped."""
        sql, params = query.build()
        cards = (_card_from_row(row) for row in self._fetch_all(sql, params))
        return [card for card in cards if card is not None]

    def count_cards(self, query: CardQuery) -> int:
        sql, params = query.build_count()
        return self._scalar(sql, params)

    def get_cards_by_game_type(self, game_type: GameType) -> list[UnifiedCard]:
        return self.query_cards(CardQuery(game_type))

    def get_cards_by_expansion(self, game_type: GameType, expansion: str) -> list[UnifiedCard]:
        return self.query_cards(CardQuery(game_type).expansion(expansion))

    def get_cards_by_region(self, game_type: GameType, region: str) -> list[UnifiedCard]:
        return self.query_cards(CardQuery(game_type).region(region))

    def get_cards_by_expansion_and_region(
        self, game_type: GameType, expansion: str, region: str
    ) -> list[UnifiedCard]:
        return self.query_cards(CardQuery(game_type).expansion(expansion).region(region))

    def get_cards_by_neighborhood(
        self, neighborhood_id: int | None, expansions: list[str] | None = None
    ) -> list[UnifiedCard]:
        """Arkham cards of one neighborhood (None for other-world cards)."""
        query = CardQuery(GameType.ARKHAM).neighborhood(neighborhood_id)
        if expansions is not None:
            query.expansions(expansions)
        return self.query_cards(query)

    def get_unencountered_cards(
        self,
        game_type: GameType,
        expansion: str | None = None,
        region: str | None = None,
    ) -> list[UnifiedCard]:
        query = CardQuery(game_type).only_unencountered()
        if expansion is not None:
            query.expansion(expansion)
        if region is not None:
            query.region(region)
        return self.query_cards(query)

    def update_encountered(
        self, game_type: GameType, card_id: str, expansion: str, status: str
    ) -> bool:
        """Set the encountered status of a single card.

        Returns:
            True if exactly one card was updated
        """
        affected = self._execute_write(
            """
            UPDATE unified_cards SET encountered = ?
            WHERE game_type = ? AND card_id = ? AND expansion = ?
            """,
            (status, game_type.value, card_id, expansion),
        )
        return affected == 1

    def reset_encountered_status(
        self,
        game_type: GameType,
        expansion: str | None = None,
        region: str | None = None,
        neighborhood_id: int | None = None,
        other_world: bool = False,
    ) -> int:
        """Set every card in scope back to ``NONE``.

        Scope filters combine; with none given the whole game is reset.
        ``other_world`` limits the reset to cards without a neighborhood.

        Returns:
            Number of cards reset (0 on error)
        """
        sql = "UPDATE unified_cards SET encountered = ? WHERE game_type = ?"
        params: list[Any] = [ENCOUNTERED_NONE, game_type.value]
        if expansion is not None:
            sql += " AND expansion = ?"
            params.append(expansion)
        if region is not None:
            sql += " AND region = ?"
            params.append(region)
        if neighborhood_id is not None:
            sql += " AND neighborhood_id = ?"
            params.append(neighborhood_id)
        if other_world:
            sql += " AND neighborhood_id IS NULL"
        affected = self._execute_write(sql, params)
        return max(affected, 0)

    def get_regions(self, game_type: GameType = GameType.ELDRITCH) -> list[str]:
        rows = self._fetch_all(
            """
            SELECT DISTINCT region FROM unified_cards
            WHERE game_type = ? AND region IS NOT NULL
            ORDER BY region ASC
            """,
            (game_type.value,),
        )
        return [row[0] for row in rows]

    # ------------------------------------------------------------------
    # Expansions
    # ------------------------------------------------------------------

    def get_or_create_expansion(
        self,
        game_type: GameType,
        legacy_id: str,
        name: str | None = None,
        icon_path: str | None = None,
    ) -> int:
        """Look up an expansion by legacy id, then by name; insert it if missing.

        Args:
            game_type: Game the expansion belongs to
            legacy_id: Identifier used by the legacy source
            name: Display name; stored as the expansion name when given
            icon_path: Optional icon asset path

        Returns:
            Expansion id, or -1 on error
        """
        stored_name = name or legacy_id
        with self._lock.write_locked():
            try:
                row = self._conn.execute(
                    """
                    SELECT exp_id FROM expansions
                    WHERE game_type = ? AND (exp_name = ? OR exp_name = ?)
                    ORDER BY CASE WHEN exp_name = ? THEN 0 ELSE 1 END
                    LIMIT 1
                    """,
                    (game_type.value, legacy_id, stored_name, legacy_id),
                ).fetchone()
                if row is not None:
                    return row[0]

                cursor = self._conn.execute(
                    "INSERT INTO expansions (game_type, exp_name, exp_icon_path) VALUES (?, ?, ?)",
                    (game_type.value, stored_name, icon_path),
                )
                self._conn.commit()
                logger.debug("Created %s expansion %r (%d)", game_type.value, stored_name, cursor.lastrowid)
                return cursor.lastrowid
            except sqlite3.Error:
                self._conn.rollback()
                logger.error("get_or_create_expansion failed for %r", stored_name, exc_info=True)
                return -1

    def get_expansions(self, game_type: GameType) -> list[Expansion]:
        rows = self._fetch_all(
            "SELECT * FROM expansions WHERE game_type = ? ORDER BY exp_name ASC",
            (game_type.value,),
        )
        return [
            Expansion(row["exp_id"], GameType(row["game_type"]), row["exp_name"], row["exp_icon_path"])
            for row in rows
        ]

    def get_expansion_id(self, game_type: GameType, name: str) -> int | None:
        row = self._fetch_one(
            "SELECT exp_id FROM expansions WHERE game_type = ? AND exp_name = ?",
            (game_type.value, name),
        )
        return row[0] if row else None

    def get_expansion_names(self, game_type: GameType) -> list[str]:
        """Expansion names for a game, sorted.

        Falls back to the distinct expansions found on cards when the expansion
        table has no entries for the game.
        """
        names = [expansion.name for expansion in self.get_expansions(game_type)]
        if names:
            return names
        rows = self._fetch_all(
            "SELECT DISTINCT expansion FROM unified_cards WHERE game_type = ? ORDER BY expansion ASC",
            (game_type.value,),
        )
        return [row[0] for row in rows]

    # ------------------------------------------------------------------
    # Arkham reference tables
    # ------------------------------------------------------------------

    def insert_neighborhoods(self, neighborhoods: Iterable[Neighborhood]) -> int:
        return self._execute_batch(
            """
            INSERT OR REPLACE INTO neighborhoods
                (nei_id, exp_id, nei_name, nei_card_path, nei_button_path)
            VALUES (?, ?, ?, ?, ?)
            """,
            ((n.nei_id, n.exp_id, n.name, n.card_path, n.button_path) for n in neighborhoods),
        )

    def insert_neighborhood(self, neighborhood: Neighborhood) -> bool:
        return self.insert_neighborhoods([neighborhood]) == 1

    def insert_locations(self, locations: Iterable[Location]) -> int:
        return self._execute_batch(
            """
            INSERT OR REPLACE INTO locations
                (loc_id, exp_id, nei_id, loc_name, loc_button_path, loc_sort)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            ((l.loc_id, l.exp_id, l.nei_id, l.name, l.button_path, l.sort) for l in locations),
        )

    def insert_location(self, location: Location) -> bool:
        return self.insert_locations([location]) == 1

    def insert_encounters(self, encounters: Iterable[Encounter]) -> int:
        return self._execute_batch(
            "INSERT OR REPLACE INTO encounters (enc_id, loc_id, enc_text) VALUES (?, ?, ?)",
            ((e.enc_id, e.loc_id, e.text) for e in encounters),
        )

    def insert_encounter(self, encounter: Encounter) -> bool:
        return self.insert_encounters([encounter]) == 1

    def insert_colors(self, colors: Iterable[Color]) -> int:
        return self._execute_batch(
            """
            INSERT OR REPLACE INTO colors (color_id, exp_id, color_name, color_button_path)
            VALUES (?, ?, ?, ?)
            """,
            ((c.color_id, c.exp_id, c.name, c.button_path) for c in colors),
        )

    def insert_color(self, color: Color) -> bool:
        return self.insert_colors([color]) == 1

    def link_locations_to_colors(self, links: Iterable[tuple[int, int]]) -> int:
        """Link (location id, color id) pairs."""
        return self._execute_batch(
            "INSERT OR REPLACE INTO location_to_color (ltc_loc_id, ltc_color_id) VALUES (?, ?)",
            links,
        )

    def link_cards_to_encounters(
        self, links: Iterable[tuple[str, int]], game_type: GameType = GameType.ARKHAM
    ) -> int:
        """Link (card id, encounter id) pairs."""
        return self._execute_batch(
            """
            INSERT OR REPLACE INTO card_to_encounter (cte_card_id, cte_enc_id, game_type)
            VALUES (?, ?, ?)
            """,
            ((card_id, enc_id, game_type.value) for card_id, enc_id in links),
        )

    def link_cards_to_colors(
        self, links: Iterable[tuple[str, int]], game_type: GameType = GameType.ARKHAM
    ) -> int:
        """Link (card id, color id) pairs."""
        return self._execute_batch(
            """
            INSERT OR REPLACE INTO card_to_color (ctc_card_id, ctc_color_id, game_type)
            VALUES (?, ?, ?)
            """,
            ((card_id, color_id, game_type.value) for card_id, color_id in links),
        )

    @staticmethod
    def _row_to_neighborhood(row: sqlite3.Row) -> Neighborhood:
        return Neighborhood(
            row["nei_id"], row["exp_id"], row["nei_name"], row["nei_card_path"], row["nei_button_path"]
        )

    @staticmethod
    def _row_to_location(row: sqlite3.Row) -> Location:
        return Location(
            row["loc_id"], row["exp_id"], row["nei_id"], row["loc_name"],
            row["loc_button_path"], row["loc_sort"],
        )

    @staticmethod
    def _row_to_encounter(row: sqlite3.Row) -> Encounter:
        return Encounter(row["enc_id"], row["loc_id"], row["enc_text"])

    @staticmethod
    def _row_to_color(row: sqlite3.Row) -> Color:
        return Color(row["color_id"], row["exp_id"], row["color_name"], row["color_button_path"])

    def get_neighborhoods(self, exp_ids: Sequence[int] | None = None) -> list[Neighborhood]:
        """Neighborhoods ordered by name, optionally limited to some expansions.

        A neighborhood is also listed when one of its locations belongs to a
        selected expansion; each neighborhood appears once.
        """
        if exp_ids is None:
            rows = self._fetch_all("SELECT * FROM neighborhoods ORDER BY nei_name ASC, nei_id ASC")
        elif not exp_ids:
            return []
        else:
            marks = _placeholders(exp_ids)
            rows = self._fetch_all(
                f"""
                SELECT n.* FROM neighborhoods n
                LEFT JOIN locations l ON l.nei_id = n.nei_id
                WHERE n.exp_id IN ({marks}) OR l.exp_id IN ({marks})
                ORDER BY n.nei_name ASC, n.nei_id ASC
                """,
                [*exp_ids, *exp_ids],
            )
        return _dedupe((self._row_to_neighborhood(r) for r in rows), key=lambda n: n.nei_id)

    def get_neighborhood(self, nei_id: int) -> Neighborhood | None:
        row = self._fetch_one("SELECT * FROM neighborhoods WHERE nei_id = ?", (nei_id,))
        return self._row_to_neighborhood(row) if row else None

    def get_locations_by_neighborhood(
        self, nei_id: int, exp_ids: Sequence[int] | None = None
    ) -> list[Location]:
        """Locations of a neighborhood, ordered by sort order then name."""
        sql = "SELECT DISTINCT * FROM locations WHERE nei_id = ?"
        params: list[Any] = [nei_id]
        if exp_ids is not None:
            if not exp_ids:
                return []
            sql += f" AND (exp_id IS NULL OR exp_id IN ({_placeholders(exp_ids)}))"
            params.extend(exp_ids)
        sql += " ORDER BY loc_sort ASC, loc_name ASC"
        rows = self._fetch_all(sql, params)
        return _dedupe((self._row_to_location(r) for r in rows), key=lambda l: l.loc_id)

    def get_location(self, loc_id: int) -> Location | None:
        row = self._fetch_one("SELECT * FROM locations WHERE loc_id = ?", (loc_id,))
        return self._row_to_location(row) if row else None

    def get_other_world_locations(
        self,
        exp_ids: Sequence[int] | None = None,
        exclude_ids: Sequence[int] | None = None,
    ) -> list[Location]:
        """Locations with no neighborhood.

        Args:
            exp_ids: Expansion ids to include; the Arkham base expansion is
                always included. None means every expansion.
            exclude_ids: Location ids that are never returned, whatever the filter

        Returns:
            Locations ordered by sort order then name, each listed once
        """
        sql = """
            SELECT l.* FROM locations l
            LEFT JOIN expansions e ON e.exp_id = l.exp_id
            WHERE l.nei_id IS NULL
        """
        params: list[Any] = []
        if exp_ids is not None:
            sql += " AND (l.exp_id IS NULL OR e.exp_name = ?"
            params.append(DEFAULT_EXPANSION)
            if exp_ids:
                sql += f" OR l.exp_id IN ({_placeholders(exp_ids)})"
                params.extend(exp_ids)
            sql += ")"
        if exclude_ids:
            sql += f" AND l.loc_id NOT IN ({_placeholders(exclude_ids)})"
            params.extend(exclude_ids)
        sql += " ORDER BY l.loc_sort ASC, l.loc_name ASC"
        rows = self._fetch_all(sql, params)
        return _dedupe((self._row_to_location(r) for r in rows), key=lambda l: l.loc_id)

    def get_encounters_by_location(self, loc_id: int) -> list[Encounter]:
        rows = self._fetch_all(
            "SELECT * FROM encounters WHERE loc_id = ? ORDER BY enc_id ASC", (loc_id,)
        )
        return [self._row_to_encounter(r) for r in rows]

    def get_encounters_for_card(
        self, card_id: str, game_type: GameType = GameType.ARKHAM
    ) -> list[Encounter]:
        rows = self._fetch_all(
            """
            SELECT e.* FROM encounters e
            JOIN card_to_encounter cte ON cte.cte_enc_id = e.enc_id
            WHERE cte.cte_card_id = ? AND cte.game_type = ?
            ORDER BY e.enc_id ASC
            """,
            (card_id, game_type.value),
        )
        return _dedupe((self._row_to_encounter(r) for r in rows), key=lambda e: e.enc_id)

    def get_colors(self, exp_ids: Sequence[int] | None = None) -> list[Color]:
        sql = "SELECT * FROM colors"
        params: list[Any] = []
        if exp_ids is not None:
            if not exp_ids:
                return []
            sql += f" WHERE exp_id IN ({_placeholders(exp_ids)})"
            params.extend(exp_ids)
        sql += " ORDER BY color_name ASC, color_id ASC"
        return [self._row_to_color(r) for r in self._fetch_all(sql, params)]

    def get_colors_for_location(self, loc_id: int) -> list[Color]:
        rows = self._fetch_all(
            """
            SELECT c.* FROM colors c
            JOIN location_to_color ltc ON ltc.ltc_color_id = c.color_id
            WHERE ltc.ltc_loc_id = ?
            ORDER BY c.color_name ASC
            """,
            (loc_id,),
        )
        return _dedupe((self._row_to_color(r) for r in rows), key=lambda c: c.color_id)

    def get_card_ids_for_color(
        self, color_id: int, game_type: GameType = GameType.ARKHAM
    ) -> list[str]:
        rows = self._fetch_all(
            """
            SELECT ctc_card_id FROM card_to_color
            WHERE ctc_color_id = ? AND game_type = ?
            ORDER BY ctc_card_id ASC
            """,
            (color_id, game_type.value),
        )
        return [row[0] for row in rows]

    def find_encounters_by_location_and_colors(
        self,
        location_id: int,
        color_ids: Sequence[int],
        game_type: GameType = GameType.ARKHAM,
    ) -> list[CardEncounter]:
        """Find the encounters of cards matching a location and any of some colors.

        Stage one selects the cards that own an encounter at ``location_id``
        and are linked to at least one of ``color_ids``. Stage two returns every
        encounter those cards own, at any location: a matched card is
        evaluated in full.

        Returns:
            (card id, encounter) pairs ordered by card id then encounter id.
            Empty when no color is given or nothing matches.
        """
        if not color_ids:
            return []
        rows = self._fetch_all(
            f"""
            SELECT DISTINCT cte.cte_card_id AS card_id, e.*
            FROM card_to_encounter cte
            JOIN encounters e ON e.enc_id = cte.cte_enc_id
            WHERE cte.game_type = ? AND cte.cte_card_id IN (
                SELECT at_loc.cte_card_id
                FROM card_to_encounter at_loc
                JOIN encounters loc_enc ON loc_enc.enc_id = at_loc.cte_enc_id
                WHERE at_loc.game_type = ? AND loc_enc.loc_id = ?
                INTERSECT
                SELECT ctc.ctc_card_id FROM card_to_color ctc
                WHERE ctc.game_type = ? AND ctc.ctc_color_id IN ({_placeholders(color_ids)})
            )
            ORDER BY cte.cte_card_id ASC, e.enc_id ASC
            """,
            [game_type.value, game_type.value, location_id, game_type.value, *color_ids],
        )
        return [CardEncounter(row["card_id"], self._row_to_encounter(row)) for row in rows]


class StoreHandle:
    """Owns the single CardStore of a process and opens it exactly once.

    Construct one handle at startup and pass it to every component that needs
    the store.
    """

    def __init__(self, db_path: Path, before_open: Callable[[Path], Any] | None = None):
        """Initialize handle.

        Args:
            db_path: Path to SQLite database file
            before_open: Optional hook run once, before the first connection,
                e.g. to copy a bundled store image into place
        """
        self.db_path = db_path
        self._before_open = before_open
        self._store: CardStore | None = None
        self._lock = threading.Lock()

    def get(self) -> CardStore:
        """Return the store, opening it on first use."""
        store = self._store
        if store is not None:
            return store
        with self._lock:
            if self._store is None:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                if self._before_open is not None:
                    self._before_open(self.db_path)
                self._store = CardStore(self.db_path)
            return self._store

    @property
    def is_open(self) -> bool:
        return self._store is not None

    def close(self) -> None:
        with self._lock:
            if self._store is not None:
                self._store.close()
                self._store = None
