"""Shared test fixtures for the Cthulhu companion card store."""

import sqlite3
import tempfile
from pathlib import Path
from typing import Iterator

import pytest

from src.card_store import CardStore
from src.models import GameType, UnifiedCard
from src.procedural import migrate_arkham_from_scratch


@pytest.fixture
def arkham_cards() -> list[UnifiedCard]:
    """Three neighborhood cards: two in neighborhood 1, one in neighborhood 2."""
    return [
        UnifiedCard(GameType.ARKHAM, "1", "BASE", neighborhood_id=1),
        UnifiedCard(GameType.ARKHAM, "2", "BASE", neighborhood_id=1),
        UnifiedCard(GameType.ARKHAM, "3", "BASE", neighborhood_id=2),
    ]


@pytest.fixture
def eldritch_cards() -> list[UnifiedCard]:
    """Eldritch cards covering a location region, expeditions and a hyphenated region.

    - A1, A2: AMERICAS location encounters (BASE)
    - X1, X3: expeditions to The Amazon; X2: expedition to The Pyramids
    - D1: a DREAM-QUEST card
    - X3 belongs to FORSAKEN_LORE, everything else to BASE
    """
    return [
        UnifiedCard(
            GameType.ELDRITCH, "A1", "BASE", region="AMERICAS",
            top_header="Arkham", top_encounter="You walk the streets of Arkham.",
            middle_header="San Francisco", middle_encounter="The docks are busy.",
            bottom_header="Buenos Aires", bottom_encounter="A tango hall beckons.",
        ),
        UnifiedCard(
            GameType.ELDRITCH, "A2", "BASE", region="AMERICAS",
            top_header="Arkham", top_encounter="The library is open late.",
        ),
        UnifiedCard(
            GameType.ELDRITCH, "X1", "BASE", region="EXPEDITION",
            top_header="The Amazon", middle_header="PASS", bottom_header="FAIL",
        ),
        UnifiedCard(
            GameType.ELDRITCH, "X2", "BASE", region="EXPEDITION",
            top_header="The Pyramids", middle_header="PASS", bottom_header="FAIL",
        ),
        UnifiedCard(
            GameType.ELDRITCH, "X3", "FORSAKEN_LORE", region="EXPEDITION",
            top_header="The Amazon", middle_header="PASS", bottom_header="FAIL",
        ),
        UnifiedCard(
            GameType.ELDRITCH, "D1", "BASE", region="DREAM-QUEST",
            top_header="Kadath", middle_header="PASS", bottom_header="FAIL",
        ),
    ]


@pytest.fixture
def store() -> Iterator[CardStore]:
    """Empty card store in a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        card_store = CardStore(Path(tmpdir) / "cthulhu_companion.db")
        yield card_store
        card_store.close()


@pytest.fixture
def seeded_store() -> Iterator[CardStore]:
    """Card store holding the Arkham data generated from the bundled seed."""
    with tempfile.TemporaryDirectory() as tmpdir:
        card_store = CardStore(Path(tmpdir) / "cthulhu_companion.db")
        migrate_arkham_from_scratch(card_store, Path(tmpdir))
        yield card_store
        card_store.close()


ELDRITCH_XML = """<?xml version="1.0" encoding="utf-8"?>
<CARDS>
  <BASE>
    <LOCATIONS>
      <AMERICAS>
        <TOP_HEADER>Arkham</TOP_HEADER>
        <MIDDLE_HEADER>San Francisco</MIDDLE_HEADER>
        <BOTTOM_HEADER>Buenos Aires</BOTTOM_HEADER>
        <CARD id="AM1">
          <TOP>  The streets are quiet.  </TOP>
          <MIDDLE>The docks are busy.</MIDDLE>
          <BOTTOM>A tango hall beckons.</BOTTOM>
        </CARD>
        <CARD id="AM2">
          <TOP>The library is open late.</TOP>
          <MIDDLE>   </MIDDLE>
          <BOTTOM>Rain falls.</BOTTOM>
        </CARD>
        <CARD>
          <TOP>No id, skipped.</TOP>
        </CARD>
      </AMERICAS>
    </LOCATIONS>
    <GATES>
      <CARD id="G1">
        <NAME>The Abyss</NAME>
        <TOP>Darkness surrounds you.</TOP>
        <MIDDLE>You find your way out.</MIDDLE>
        <BOTTOM>You are lost.</BOTTOM>
      </CARD>
    </GATES>
    <EXPEDITIONS>
      <CARD id="E1">
        <NAME>The Amazon</NAME>
        <TOP>The river winds on.</TOP>
        <MIDDLE>You find a ruin.</MIDDLE>
        <BOTTOM>Fever takes you.</BOTTOM>
      </CARD>
    </EXPEDITIONS>
    <RESEARCH>
      <TOP_HEADER>City</TOP_HEADER>
      <MIDDLE_HEADER>Wilderness</MIDDLE_HEADER>
      <BOTTOM_HEADER>Sea</BOTTOM_HEADER>
      <AZATHOTH>
        <CARD id="R1">
          <TOP>A cultist talks.</TOP>
        </CARD>
      </AZATHOTH>
      <CTHULHU>
        <CARD id="R2">
          <TOP>Dreams of R'lyeh.</TOP>
        </CARD>
      </CTHULHU>
    </RESEARCH>
  </BASE>
  <FORSAKEN_LORE>
    <DISASTER>
      <CARD id="DS1">
        <TOP>The ground shakes.</TOP>
      </CARD>
    </DISASTER>
    <DEVASTATION>
      <ANY>
        <CARD id="DV1">
          <TOP_HEADER>Ruins</TOP_HEADER>
          <TOP>All is lost.</TOP>
        </CARD>
      </ANY>
    </DEVASTATION>
    <SPECIAL>
      <THE_HUNT>
        <CARD id="S1">
          <TOP_HEADER>Hunter</TOP_HEADER>
          <TOP>Something follows you.</TOP>
        </CARD>
      </THE_HUNT>
    </SPECIAL>
  </FORSAKEN_LORE>
  <THE_DREAMLANDS>
    <DREAM-QUEST>
      <CARD id="DQ1">
        <NAME>Kadath</NAME>
        <TOP>The onyx castle looms.</TOP>
      </CARD>
    </DREAM-QUEST>
  </THE_DREAMLANDS>
</CARDS>
"""


@pytest.fixture
def eldritch_xml() -> str:
    """Small XML corpus touching every category shape."""
    return ELDRITCH_XML


def _make_legacy_eldritch_db(path: Path, rows: list[tuple]) -> Path:
    conn = sqlite3.connect(path)
    conn.execute(
        """
        CREATE TABLE cards (
            _id INTEGER PRIMARY KEY AUTOINCREMENT,
            card_id TEXT, expansion TEXT, region TEXT, encountered TEXT,
            top_header TEXT, top_encounter TEXT
        )
        """
    )
    conn.executemany(
        """
        INSERT INTO cards (card_id, expansion, region, encountered, top_header, top_encounter)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        rows,
    )
    conn.commit()
    conn.close()
    return path


@pytest.fixture
def legacy_eldritch_db():
    """Factory writing a legacy Eldritch database with a flat ``cards`` table.

    Rows are (card_id, expansion, region, encountered, top_header, top_encounter).
    """
    return _make_legacy_eldritch_db
