"""Tests for the Companion facade."""

import os
import random
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from src.card_store import CardStore
from src.companion import DATA_DIR_ENV, DEFAULT_DATA_DIR, Companion, default_data_dir, game_for_deck
from src.initializer import STORE_IMAGE_NAME
from src.models import GameType, UnifiedCard
from src.selection import Matched
from src.xml_import import XML_ASSET_NAME


@pytest.fixture
def companion(eldritch_xml):
    """Companion over a fresh data directory with the XML corpus bundled."""
    with tempfile.TemporaryDirectory() as tmpdir:
        assets = Path(tmpdir) / "assets"
        assets.mkdir()
        (assets / XML_ASSET_NAME).write_text(eldritch_xml, encoding="utf-8")
        with Companion(Path(tmpdir), rng=random.Random(11)) as instance:
            instance.initialize_database()
            yield instance


class TestHelpers:
    """Test module-level helpers."""

    def test_game_for_deck(self):
        assert game_for_deck("neighborhood_3") == GameType.ARKHAM
        assert game_for_deck("neighborhood_-1") == GameType.ARKHAM
        assert game_for_deck("DREAM-QUEST") == GameType.ELDRITCH

    def test_default_data_dir_from_environment(self):
        with patch.dict(os.environ, {DATA_DIR_ENV: "/srv/cthulhu"}):
            assert default_data_dir() == Path("/srv/cthulhu")

    def test_default_data_dir_fallback(self):
        with patch.dict(os.environ, {}, clear=True):
            assert default_data_dir() == DEFAULT_DATA_DIR


class TestCompanionStore:
    """Test store-level operations."""

    def test_initialize_counts(self, companion):
        assert companion.get_card_count(GameType.ARKHAM) == 13
        assert companion.get_card_count(GameType.ELDRITCH) == 10
        assert companion.has_cards()

    def test_second_initialize_is_a_no_op(self, companion):
        assert companion.initialize_database() == (13, 10)

    def test_stats(self, companion):
        stats = companion.initialize_database_with_stats(force=True)
        assert stats.success
        assert stats.total_count == 23

    def test_expansion_names(self, companion):
        assert companion.get_expansion_names(GameType.ELDRITCH) == [
            "BASE", "FORSAKEN_LORE", "THE_DREAMLANDS",
        ]

    def test_health_and_export(self, companion):
        assert companion.health_check().healthy

        path = companion.export_timestamped()
        assert path is not None and path.exists()
        with CardStore(path) as copy:
            assert copy.get_card_count() == 23

    def test_database_status(self, companion):
        assert "Total cards: 23" in companion.database_status()

    def test_store_image_is_used(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            assets = Path(tmpdir) / "assets"
            assets.mkdir()
            with CardStore(assets / STORE_IMAGE_NAME) as image:
                image.insert_card(UnifiedCard(GameType.ARKHAM, "1", neighborhood_id=1))

            with Companion(Path(tmpdir) / "data", assets_dir=assets) as instance:
                assert instance.get_card_count() == 1


class TestCompanionDecks:
    """Test deck operations routed by deck name."""

    def test_get_deck(self, companion):
        assert sorted(c.card_id for c in companion.get_deck("AMERICAS")) == ["AM1", "AM2"]
        assert companion.get_deck("NOWHERE") == []

    def test_draw_neighborhood_card(self, companion):
        card = companion.draw_card("neighborhood_1")
        assert card.card_id in {"1", "2"}

    def test_draw_eldritch_card(self, companion):
        assert companion.draw_card("DREAM-QUEST") is None
        assert companion.draw_card("GATE").card_id == "G1"

    def test_discard(self, companion):
        assert companion.discard_card("AMERICAS", "AM1", "MIDDLE")
        pile = companion.get_discard_pile(GameType.ELDRITCH)
        assert [c.card_id for c in pile] == ["AM1"]
        assert companion.store.get_card(GameType.ELDRITCH, "AM1").encountered == "MIDDLE"
        assert not companion.discard_card("AMERICAS", "missing")

    def test_shuffle(self, companion):
        assert companion.shuffle("AMERICAS")
        assert companion.shuffle("neighborhood_2", full=True)
        assert not companion.shuffle("NOWHERE")

    def test_selected_expansions_rebuild_decks(self, companion):
        assert companion.get_deck("DISASTER") == []

        selection = companion.set_selected_expansions(GameType.ELDRITCH, ["FORSAKEN_LORE"])
        assert selection == ["BASE", "FORSAKEN_LORE"]
        assert companion.get_selected_expansions(GameType.ELDRITCH) == selection
        assert [c.card_id for c in companion.get_deck("DISASTER")] == ["DS1"]

    def test_new_game(self, companion):
        companion.discard_card("AMERICAS", "AM1")
        game_id = companion.new_game(GameType.ELDRITCH)
        assert game_id > 0
        assert companion.game_state.current_game == GameType.ELDRITCH
        assert companion.game_state.game_id == game_id

    def test_select_other_world_card(self, companion):
        result = companion.select_other_world_card(101, [1])
        assert isinstance(result, Matched)
        assert result.card.card_id == "201"


class TestCompanionDeckLifecycle:
    """Draw, discard and refill the same deck through the facade."""

    def test_eldritch_region(self, companion):
        drawn = [companion.draw_card("AMERICAS") for _ in range(2)]
        for card in drawn:
            assert companion.discard_card("AMERICAS", card.card_id)
        assert sorted(c.card_id for c in companion.get_discard_pile(GameType.ELDRITCH)) == ["AM1", "AM2"]
        assert companion.store.get_card(GameType.ELDRITCH, "AM1").encountered == "DISCARDED"

        refilled = companion.draw_card("AMERICAS")
        assert refilled.card_id in {"AM1", "AM2"}
        assert companion.get_discard_pile(GameType.ELDRITCH) == []

        companion.decks(GameType.ELDRITCH).flush()
        assert companion.store.get_card(GameType.ELDRITCH, "AM2").encountered == "NONE"

    def test_other_world_deck(self, companion):
        drawn = []
        for _ in range(5):
            card = companion.draw_card("neighborhood_-1")
            assert card is not None
            assert companion.discard_card("neighborhood_-1", card.card_id)
            drawn.append(card.card_id)
        assert sorted(drawn) == ["201", "202", "203", "204", "205"]
        assert companion.store.get_card(GameType.ARKHAM, "201").encountered == "DISCARDED"

        refilled = companion.draw_card("neighborhood_-1")
        assert refilled is not None
        assert companion.get_discard_pile(GameType.ARKHAM) == []

    def test_full_shuffle_of_other_world_deck(self, companion):
        card = companion.draw_card("neighborhood_-1")
        companion.discard_card("neighborhood_-1", card.card_id)

        assert companion.shuffle("neighborhood_-1", full=True)
        assert companion.store.get_card(GameType.ARKHAM, card.card_id).encountered == "NONE"
        assert len(companion.get_deck("neighborhood_-1")) == 5

    def test_export_to_directory_fails(self, companion):
        target = companion.data_dir / "somedir"
        target.mkdir()
        assert companion.export_store_to(target) is False
