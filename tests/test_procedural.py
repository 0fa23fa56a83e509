"""Tests for generating Arkham data from the bundled seed."""

import sqlite3
import tempfile
from pathlib import Path

from src.card_store import CardStore
from src.models import GameType
from src.procedural import SCRATCH_DB_NAME, build_scratch_store, migrate_arkham_from_scratch


class TestBuildScratchStore:
    """Test the legacy-schema scratch database."""

    def test_generates_seed_cards(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            scratch = Path(tmpdir) / SCRATCH_DB_NAME
            assert build_scratch_store(scratch) == 12

            conn = sqlite3.connect(scratch)
            try:
                assert conn.execute("SELECT COUNT(*) FROM Location").fetchone()[0] == 18
                assert conn.execute("SELECT COUNT(*) FROM Encounter").fetchone()[0] == 31
                assert conn.execute("PRAGMA foreign_key_check").fetchall() == []
            finally:
                conn.close()

    def test_replaces_existing_scratch_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            scratch = Path(tmpdir) / SCRATCH_DB_NAME
            scratch.write_bytes(b"stale")
            assert build_scratch_store(scratch) == 12

    def test_broken_seed(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            seed = Path(tmpdir) / "seed.json"
            seed.write_text('{"expansions": [{"expID": 1}]}')
            assert build_scratch_store(Path(tmpdir) / SCRATCH_DB_NAME, seed) == 0


class TestMigrateFromScratch:
    """Test the full generate-then-migrate path."""

    def test_cards_land_in_store(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with CardStore(Path(tmpdir) / "store.db") as store:
                # Card 7 belongs to two expansions
                assert migrate_arkham_from_scratch(store, Path(tmpdir)) == 13
                assert store.get_card_count(GameType.ARKHAM) == 13
                assert not (Path(tmpdir) / SCRATCH_DB_NAME).exists()

    def test_expansion_names_are_canonical(self, seeded_store):
        assert seeded_store.get_expansion_names(GameType.ARKHAM) == [
            "BASE", "Curse of the Dark Pharaoh", "Dunwich Horror",
        ]

    def test_neighborhood_membership(self, seeded_store):
        third = seeded_store.get_cards_by_neighborhood(3)
        assert sorted((c.card_id, c.expansion) for c in third) == [
            ("5", "BASE"),
            ("7", "BASE"),
            ("7", "Curse of the Dark Pharaoh"),
        ]
        assert [c.card_id for c in seeded_store.get_cards_by_neighborhood(None)] == [
            "201", "202", "203", "204", "205",
        ]

    def test_missing_seed(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with CardStore(Path(tmpdir) / "store.db") as store:
                assert migrate_arkham_from_scratch(store, Path(tmpdir), Path(tmpdir) / "nope.json") == 0
                assert not (Path(tmpdir) / SCRATCH_DB_NAME).exists()
