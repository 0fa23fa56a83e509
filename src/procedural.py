"""Generate Arkham data from scratch when no legacy database exists.

Builds a disposable store with the legacy Arkham schema, fills it from the
bundled seed, then runs the normal legacy ETL against it. The seed is streamed
with ijson one section at a time.
"""

import logging
import sqlite3
from pathlib import Path
from typing import Any, Iterator

import ijson

from src.card_store import CardStore
from src.legacy_import import migrate_arkham_database

logger = logging.getLogger(__name__)

SEED_PATH = Path(__file__).parent / "data" / "arkham_seed.json"
SCRATCH_DB_NAME = "temp_arkham.db"

# Schema of the legacy Arkham database
LEGACY_ARKHAM_SCHEMA = [
    "CREATE TABLE IF NOT EXISTS Expansion (expID INTEGER PRIMARY KEY, expName TEXT, expIconPath TEXT)",
    """CREATE TABLE IF NOT EXISTS Neighborhood (
        NeighborhoodID INTEGER PRIMARY KEY, ExpansionID INTEGER NOT NULL, Name TEXT,
        CardPath TEXT, ButtonPath TEXT,
        FOREIGN KEY (ExpansionID) REFERENCES Expansion (expID))""",
    """CREATE TABLE IF NOT EXISTS Location (
        locID INTEGER PRIMARY KEY, locExpID INTEGER NULL, locName TEXT, neiID INTEGER NULL,
        locButtonPath TEXT NULL, sort INTEGER NOT NULL,
        FOREIGN KEY (locExpID) REFERENCES Expansion (expID),
        FOREIGN KEY (neiID) REFERENCES Neighborhood (NeighborhoodID))""",
    """CREATE TABLE IF NOT EXISTS Encounter (
        encID INTEGER PRIMARY KEY, encText TEXT, locID INTEGER NOT NULL,
        FOREIGN KEY (locID) REFERENCES Location (locID))""",
    """CREATE TABLE IF NOT EXISTS Card (
        cardID INTEGER PRIMARY KEY, neiID INTEGER NULL,
        FOREIGN KEY (neiID) REFERENCES Neighborhood (NeighborhoodID))""",
    """CREATE TABLE IF NOT EXISTS CardToExpansion (
        cardID INTEGER NOT NULL, expID INTEGER NOT NULL,
        FOREIGN KEY (cardID) REFERENCES Card (cardID),
        FOREIGN KEY (expID) REFERENCES Expansion (expID))""",
    """CREATE TABLE IF NOT EXISTS CardToEncounter (
        cardID INTEGER NOT NULL, encID INTEGER NOT NULL,
        FOREIGN KEY (cardID) REFERENCES Card (cardID),
        FOREIGN KEY (encID) REFERENCES Encounter (encID))""",
    """CREATE TABLE IF NOT EXISTS Color (
        colorID INTEGER PRIMARY KEY, colorExpID INTEGER NOT NULL, colorName TEXT,
        colorButtonPath TEXT,
        FOREIGN KEY (colorExpID) REFERENCES Expansion (expID))""",
    """CREATE TABLE IF NOT EXISTS LocationToColor (
        locToColorLocID INTEGER NOT NULL, locToColorColorID INTEGER NOT NULL,
        FOREIGN KEY (locToColorLocID) REFERENCES Location (locID),
        FOREIGN KEY (locToColorColorID) REFERENCES Color (colorID))""",
    """CREATE TABLE IF NOT EXISTS CardToColor (
        cardToColorCardID INTEGER NOT NULL, cardToColorColorID INTEGER NOT NULL,
        FOREIGN KEY (cardToColorCardID) REFERENCES Card (cardID),
        FOREIGN KEY (cardToColorColorID) REFERENCES Color (colorID))""",
]


def create_legacy_arkham_schema(conn: sqlite3.Connection) -> None:
    for statement in LEGACY_ARKHAM_SCHEMA:
        conn.execute(statement)


def _seed_items(seed_path: Path, section: str) -> Iterator[Any]:
    """Stream the items of one top-level array in the seed."""
    with open(seed_path, "rb") as f:
        yield from ijson.items(f, f"{section}.item")


def _fetch_expansions(conn: sqlite3.Connection, seed_path: Path) -> None:
    conn.executemany(
        "INSERT INTO Expansion (expID, expName, expIconPath) VALUES (?, ?, ?)",
        ((e["expID"], e["expName"], e.get("expIconPath")) for e in _seed_items(seed_path, "expansions")),
    )


def _fetch_neighborhoods(conn: sqlite3.Connection, seed_path: Path) -> None:
    conn.executemany(
        """INSERT INTO Neighborhood (NeighborhoodID, ExpansionID, Name, CardPath, ButtonPath)
        VALUES (?, ?, ?, ?, ?)""",
        (
            (n["id"], n["expansion"], n["name"], n.get("cardPath"), n.get("buttonPath"))
            for n in _seed_items(seed_path, "neighborhoods")
        ),
    )


def _fetch_locations(conn: sqlite3.Connection, seed_path: Path) -> None:
    conn.executemany(
        """INSERT INTO Location (locID, locExpID, locName, neiID, locButtonPath, sort)
        VALUES (?, ?, ?, ?, ?, ?)""",
        (
            (l["id"], l.get("expansion"), l["name"], l.get("neighborhood"), l.get("buttonPath"), l.get("sort", 0))
            for l in _seed_items(seed_path, "locations")
        ),
    )


def _fetch_colors(conn: sqlite3.Connection, seed_path: Path) -> None:
    conn.executemany(
        "INSERT INTO Color (colorID, colorExpID, colorName, colorButtonPath) VALUES (?, ?, ?, ?)",
        (
            (c["id"], c["expansion"], c["name"], c.get("buttonPath"))
            for c in _seed_items(seed_path, "colors")
        ),
    )
    conn.executemany(
        "INSERT INTO LocationToColor (locToColorLocID, locToColorColorID) VALUES (?, ?)",
        ((pair[0], pair[1]) for pair in _seed_items(seed_path, "location_colors")),
    )


def _fetch_cards(conn: sqlite3.Connection, seed_path: Path) -> None:
    """Insert cards with their expansions, encounters and colors.

    Encounters are written after the card that owns them, so this relies on
    foreign key checks being off.
    """
    for card in _seed_items(seed_path, "cards"):
        card_id = card["id"]
        conn.execute("INSERT INTO Card (cardID, neiID) VALUES (?, ?)", (card_id, card.get("neighborhood")))
        for exp_id in card.get("expansions", []):
            conn.execute("INSERT INTO CardToExpansion (cardID, expID) VALUES (?, ?)", (card_id, exp_id))
        for color_id in card.get("colors", []):
            conn.execute(
                "INSERT INTO CardToColor (cardToColorCardID, cardToColorColorID) VALUES (?, ?)",
                (card_id, color_id),
            )
        for encounter in card.get("encounters", []):
            conn.execute(
                "INSERT INTO CardToEncounter (cardID, encID) VALUES (?, ?)", (card_id, encounter["id"])
            )
            conn.execute(
                "INSERT INTO Encounter (encID, encText, locID) VALUES (?, ?, ?)",
                (encounter["id"], encounter["text"], encounter["location"]),
            )


def generate_legacy_arkham_data(conn: sqlite3.Connection, seed_path: Path = SEED_PATH) -> None:
    """Fill a legacy-schema connection from the seed. The caller owns the transaction."""
    _fetch_expansions(conn, seed_path)
    _fetch_neighborhoods(conn, seed_path)
    _fetch_locations(conn, seed_path)
    _fetch_colors(conn, seed_path)
    _fetch_cards(conn, seed_path)


def build_scratch_store(scratch_path: Path, seed_path: Path = SEED_PATH) -> int:
    """Create a legacy Arkham database at ``scratch_path`` and fill it.

    Generation runs in one transaction with foreign key checks off. Checks are
    turned back on afterwards and any violations are logged.

    Returns:
        Number of generated cards (0 on failure)
    """
    if scratch_path.exists():
        scratch_path.unlink()

    conn = sqlite3.connect(scratch_path)
    try:
        create_legacy_arkham_schema(conn)
        conn.commit()

        conn.execute("PRAGMA foreign_keys = OFF")
        conn.execute("BEGIN TRANSACTION")
        try:
            generate_legacy_arkham_data(conn, seed_path)
            conn.commit()
        except Exception:
            conn.rollback()
            raise

        conn.execute("PRAGMA foreign_keys = ON")
        violations = conn.execute("PRAGMA foreign_key_check").fetchall()
        if violations:
            logger.warning("Generated Arkham data has %d foreign key violations", len(violations))

        return conn.execute("SELECT COUNT(*) FROM Card").fetchone()[0]
    except (sqlite3.Error, OSError, ijson.JSONError, KeyError):
        logger.error("Failed to generate Arkham data into %s", scratch_path, exc_info=True)
        return 0
    finally:
        conn.close()


def migrate_arkham_from_scratch(
    store: CardStore, work_dir: Path, seed_path: Path = SEED_PATH
) -> int:
    """Generate a scratch legacy store, migrate it, then delete it.

    Args:
        store: Destination store
        work_dir: Directory for the scratch database
        seed_path: Seed to generate from

    Returns:
        Number of Arkham cards inserted into the store
    """
    work_dir.mkdir(parents=True, exist_ok=True)
    scratch_path = work_dir / SCRATCH_DB_NAME
    try:
        generated = build_scratch_store(scratch_path, seed_path)
        logger.info("Generated %d legacy Arkham cards", generated)
        if generated == 0:
            return 0
        return migrate_arkham_database(scratch_path, store)
    finally:
        for path in (scratch_path, scratch_path.with_name(scratch_path.name + "-journal")):
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Could not delete scratch database %s: %s", path, e)
