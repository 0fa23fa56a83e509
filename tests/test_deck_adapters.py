"""Tests for the game-specific deck adapters."""

import random
import tempfile
from pathlib import Path

import pytest

from src.deck_adapters import (
    EMPTY_LOCATION,
    REMOVED_STATUS,
    ArkhamDeckAdapter,
    EldritchDeckAdapter,
    filter_by_expansions,
)
from src.deck_manager import DeckManager
from src.game_state import GAME_STATE_FILE, GameStateStore
from src.models import GameType, UnifiedCard
from src.selection import Matched, SelectionResolver


@pytest.fixture
def game_state():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield GameStateStore(Path(tmpdir) / GAME_STATE_FILE)


@pytest.fixture
def arkham(seeded_store, game_state):
    decks = DeckManager(seeded_store, GameType.ARKHAM, random.Random(5))
    adapter = ArkhamDeckAdapter(
        seeded_store, decks, game_state, SelectionResolver(seeded_store, random.Random(5))
    )
    adapter.initialize()
    yield adapter
    decks.close()


@pytest.fixture
def eldritch(store, eldritch_cards, game_state):
    store.insert_cards(eldritch_cards)
    decks = DeckManager(store, GameType.ELDRITCH, random.Random(5))
    adapter = EldritchDeckAdapter(store, decks, game_state)
    adapter.initialize()
    yield adapter
    decks.close()


def ids(cards):
    return sorted(card.card_id for card in cards)


class TestFilterByExpansions:
    """Test the expansion membership rule."""

    def test_card_in_unselected_expansion_is_dropped(self):
        cards = [
            UnifiedCard(GameType.ARKHAM, "7", "BASE", neighborhood_id=3),
            UnifiedCard(GameType.ARKHAM, "7", "Curse", neighborhood_id=3),
            UnifiedCard(GameType.ARKHAM, "5", "BASE", neighborhood_id=3),
        ]
        memberships = {"7": {"BASE", "Curse"}, "5": {"BASE"}}
        assert ids(filter_by_expansions(cards, memberships, ["BASE"])) == ["5"]

    def test_each_card_once_preferring_base(self):
        cards = [
            UnifiedCard(GameType.ARKHAM, "7", "Curse", neighborhood_id=3),
            UnifiedCard(GameType.ARKHAM, "7", "BASE", neighborhood_id=3),
        ]
        result = filter_by_expansions(cards, {"7": {"BASE", "Curse"}}, ["Curse"])
        assert [(c.card_id, c.expansion) for c in result] == [("7", "BASE")]

    def test_unknown_membership_uses_card_expansion(self):
        card = UnifiedCard(GameType.ARKHAM, "9", "Dunwich Horror", neighborhood_id=2)
        assert filter_by_expansions([card], {}, ["BASE"]) == []
        assert filter_by_expansions([card], {}, ["Dunwich Horror"]) == [card]


class TestArkhamDeckAdapter:
    """Test neighborhood and other-world decks."""

    def test_base_selection(self, arkham):
        assert ids(arkham.get_neighborhood_cards(2)) == ["3", "4"]
        assert ids(arkham.get_neighborhood_cards(3)) == ["5"]
        assert ids(arkham.get_other_world_cards()) == ["201", "202", "203", "204", "205"]

    def test_selecting_an_expansion_rebuilds_decks(self, arkham):
        assert arkham.apply_expansion("Dunwich Horror", True)
        assert ids(arkham.get_neighborhood_cards(2)) == ["3", "4", "6"]

        assert arkham.apply_expansion("Curse of the Dark Pharaoh", True)
        third = arkham.get_neighborhood_cards(3)
        assert ids(third) == ["5", "7"]
        assert all(card.expansion == "BASE" for card in third)

    def test_deselecting(self, arkham):
        arkham.apply_expansion("Dunwich Horror", True)
        assert arkham.apply_expansion("Dunwich Horror", False)
        assert ids(arkham.get_neighborhood_cards(2)) == ["3", "4"]
        assert not arkham.apply_expansion("BASE", False)

    def test_draw_skips_disallowed_cards(self, arkham):
        """Card 7 is also in an unselected expansion and is never drawn."""
        assert arkham.draw_neighborhood_card(3).card_id == "5"
        assert arkham.draw_neighborhood_card(3) is None

    def test_card_in_two_expansions_drawn_once(self, arkham):
        arkham.apply_expansion("Curse of the Dark Pharaoh", True)
        arkham.apply_expansion("Dunwich Horror", True)

        drawn = [arkham.draw_neighborhood_card(3) for _ in range(3)]
        assert drawn[2] is None
        assert sorted((c.card_id, c.expansion) for c in drawn[:2]) == [("5", "BASE"), ("7", "BASE")]

    def test_draw_other_world_card(self, arkham):
        card = arkham.draw_neighborhood_card(-1)
        assert card is not None
        assert card.neighborhood_id is None

    def test_draw_and_discard(self, seeded_store, arkham):
        card = arkham.draw_neighborhood_card(1)
        assert arkham.discard_card(card)
        assert seeded_store.get_card(GameType.ARKHAM, card.card_id).is_encountered

    def test_cards_before_decks_are_loaded(self, seeded_store, game_state):
        decks = DeckManager(seeded_store, GameType.ARKHAM)
        try:
            adapter = ArkhamDeckAdapter(seeded_store, decks, game_state)
            assert ids(adapter.get_neighborhood_cards(1)) == ["1", "2"]
        finally:
            decks.close()

    def test_other_world_locations_exclude_special(self, arkham):
        assert [loc.loc_id for loc in arkham.get_other_world_locations()] == [
            101, 102, 103, 104, 105, 106, 107,
        ]

    def test_other_world_colors(self, arkham):
        assert [c.name for c in arkham.get_other_world_colors()] == ["Blue", "Green", "Red", "Yellow"]

    def test_select_other_world_card(self, arkham):
        result = arkham.select_other_world_card(101, [1])
        assert isinstance(result, Matched)
        assert result.card.card_id == "201"


class TestEldritchDeckAdapter:
    """Test region decks and special-deck lookups."""

    def test_base_only_by_default(self, eldritch):
        assert ids(eldritch.get_deck("EXPEDITION")) == ["X1", "X2"]
        assert eldritch.contains_deck("DREAM-QUEST")

    def test_expedition_location(self, eldritch):
        assert eldritch.get_expedition_location() in {"The Amazon", "The Pyramids"}

    def test_dream_quest_location(self, eldritch):
        assert eldritch.get_dream_quest_location() == "Kadath"

    def test_missing_deck_is_empty(self, eldritch):
        assert eldritch.get_mystic_ruins_location() == EMPTY_LOCATION

    def test_remove_expeditions(self, eldritch):
        assert eldritch.remove_expeditions("The Amazon") == 1
        assert ids(eldritch.get_deck("EXPEDITION")) == ["X2"]
        pile = eldritch.get_discard_pile()
        assert [c.card_id for c in pile] == ["X1"]
        assert pile[0].encountered == REMOVED_STATUS
        assert eldritch.get_expedition_location() == "The Pyramids"

    def test_discard_records_section(self, store, eldritch):
        assert eldritch.discard_card("AMERICAS", "A1", "TOP")
        assert store.get_card(GameType.ELDRITCH, "A1").encountered == "TOP"
        assert not eldritch.discard_card("AMERICAS", "X1", "TOP")

    def test_remove_from_discard(self, eldritch):
        eldritch.discard_card("AMERICAS", "A1", "TOP")
        card = eldritch.get_discard_pile()[0]
        assert eldritch.remove_from_discard(card)
        assert eldritch.get_discard_pile() == []

    def test_special_card_name(self, eldritch):
        card = eldritch.get_deck("DREAM_QUEST")[0]
        assert EldritchDeckAdapter.get_special_card_name(card) == "Kadath"
