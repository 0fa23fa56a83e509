"""Game-specific views over the deck engine.

The Arkham adapter filters neighborhood and other-world cards by the selected
expansions and drives the other-world color selection. The Eldritch adapter
adds the expedition, mystic ruins and dream-quest lookups.
"""

import logging
from typing import Sequence

from src.card_store import CardStore
from src.deck_manager import DeckManager
from src.expansion_names import BASE_EXPANSION_NAME
from src.game_state import GameStateStore
from src.models import (
    OTHER_WORLD_NEIGHBORHOOD,
    Color,
    GameType,
    Location,
    UnifiedCard,
    neighborhood_deck_name,
)
from src.query_builder import CardQuery
from src.selection import SelectionResolver, SelectionResult

logger = logging.getLogger(__name__)

# Other-world locations never offered for selection
EXCLUDED_OTHER_WORLD_LOCATIONS = (499, 500)

EMPTY_LOCATION = "EMPTY"
REMOVED_STATUS = "removed"


def is_allowed(card: UnifiedCard, memberships: dict[str, set[str]], selected: Sequence[str]) -> bool:
    """True if the card belongs to a selected expansion and to no unselected one."""
    chosen = set(selected) | {BASE_EXPANSION_NAME}
    member_of = memberships.get(card.card_id, {card.expansion})
    return bool(member_of & chosen) and not member_of - chosen


def filter_by_expansions(
    cards: Sequence[UnifiedCard],
    memberships: dict[str, set[str]],
    selected: Sequence[str],
) -> list[UnifiedCard]:
    """Keep each card once, and only if every expansion it belongs to is selected.

    Args:
        cards: Candidate rows (one per card and expansion)
        memberships: card_id -> every expansion the card belongs to
        selected: Selected expansion names

    Returns:
        One row per qualifying card, preferring its BASE row, in input order
    """
    result: dict[str, UnifiedCard] = {}
    for card in cards:
        if not is_allowed(card, memberships, selected):
            continue
        existing = result.get(card.card_id)
        if existing is None or (
            card.expansion == BASE_EXPANSION_NAME and existing.expansion != BASE_EXPANSION_NAME
        ):
            result[card.card_id] = card
    return list(result.values())


class ArkhamDeckAdapter:
    """Arkham neighborhood and other-world decks."""

    def __init__(
        self,
        store: CardStore,
        decks: DeckManager,
        game_state: GameStateStore,
        resolver: SelectionResolver | None = None,
    ):
        self._store = store
        self._decks = decks
        self._game_state = game_state
        self._resolver = resolver or SelectionResolver(store)

    @property
    def selected_expansions(self) -> list[str]:
        return self._game_state.get_selected_expansions(GameType.ARKHAM)

    def selected_expansion_ids(self) -> list[int]:
        ids = []
        for name in self.selected_expansions:
            exp_id = self._store.get_expansion_id(GameType.ARKHAM, name)
            if exp_id is not None:
                ids.append(exp_id)
        return ids

    def initialize(self) -> int:
        return self._decks.initialize_decks(self.selected_expansions)

    def _memberships(self, neighborhood_id: int | None) -> dict[str, set[str]]:
        memberships: dict[str, set[str]] = {}
        for card in self._store.get_cards_by_neighborhood(neighborhood_id):
            memberships.setdefault(card.card_id, set()).add(card.expansion)
        return memberships

    def _cards_for(self, neighborhood_id: int | None) -> list[UnifiedCard]:
        deck_name = neighborhood_deck_name(neighborhood_id)
        if self._decks.has_deck(deck_name):
            cards = self._decks.get_deck(deck_name)
        else:
            cards = self._store.query_cards(
                CardQuery(GameType.ARKHAM).neighborhood(neighborhood_id).only_unencountered()
            )
        return filter_by_expansions(cards, self._memberships(neighborhood_id), self.selected_expansions)

    def get_neighborhood_cards(self, neighborhood_id: int) -> list[UnifiedCard]:
        """Drawable cards of a neighborhood under the current expansion selection."""
        return self._cards_for(neighborhood_id)

    def get_other_world_cards(self) -> list[UnifiedCard]:
        return self._cards_for(None)

    def get_other_world_locations(self) -> list[Location]:
        return self._store.get_other_world_locations(
            self.selected_expansion_ids(), EXCLUDED_OTHER_WORLD_LOCATIONS
        )

    def get_other_world_colors(self) -> list[Color]:
        return self._store.get_colors(self.selected_expansion_ids())

    def select_other_world_card(
        self, location_id: int | None, color_ids: Sequence[int]
    ) -> SelectionResult:
        return self._resolver.select(self.get_other_world_cards(), location_id, color_ids)

    def shuffle_neighborhood(self, neighborhood_id: int) -> None:
        self._decks.shuffle_deck(neighborhood_deck_name(neighborhood_id))

    def draw_neighborhood_card(self, neighborhood_id: int) -> UnifiedCard | None:
        """Draw the next card of a neighborhood that the expansion selection allows."""
        memberships = self._memberships(
            None if neighborhood_id == OTHER_WORLD_NEIGHBORHOOD else neighborhood_id
        )
        selected = self.selected_expansions
        return self._decks.draw_matching(
            neighborhood_deck_name(neighborhood_id),
            lambda card: is_allowed(card, memberships, selected),
        )

    def discard_card(self, card: UnifiedCard) -> bool:
        return self._decks.discard_card(card)

    def apply_expansion(self, name: str, enabled: bool) -> bool:
        """Select or deselect an expansion and rebuild the decks.

        Returns:
            False if the change was refused (the base game cannot be deselected)
        """
        if enabled:
            self._game_state.add_expansion(GameType.ARKHAM, name)
        elif not self._game_state.remove_expansion(GameType.ARKHAM, name):
            return False
        self.initialize()
        return True


class EldritchDeckAdapter:
    """Eldritch region decks."""

    EXPEDITION_DECK = "EXPEDITION"
    MYSTIC_RUINS_DECK = "MYSTIC_RUINS"
    DREAM_QUEST_DECK = "DREAM_QUEST"

    def __init__(self, store: CardStore, decks: DeckManager, game_state: GameStateStore):
        self._store = store
        self._decks = decks
        self._game_state = game_state

    @property
    def selected_expansions(self) -> list[str]:
        return self._game_state.get_selected_expansions(GameType.ELDRITCH)

    def initialize(self) -> int:
        return self._decks.initialize_decks(self.selected_expansions)

    def get_deck(self, region: str) -> list[UnifiedCard]:
        return self._decks.get_deck(region)

    def contains_deck(self, region: str) -> bool:
        return self._decks.has_deck(region)

    def shuffle_deck(self, region: str) -> None:
        self._decks.shuffle_deck(region)

    def shuffle_full_deck(self, region: str) -> int:
        return self._decks.shuffle_full_deck(region)

    def discard_card(self, region: str, card_id: str, encountered: str) -> bool:
        """Discard a card by id, recording which section was chosen.

        Returns:
            False if no such card is loaded in that region
        """
        card = self._decks.find_card(card_id, region)
        if card is None:
            logger.warning("No card %s in region %s", card_id, region)
            return False
        return self._decks.discard_card(card, encountered)

    def _top_header(self, deck_name: str) -> str:
        card = self._decks.peek(deck_name)
        if card is None or not card.top_header:
            return EMPTY_LOCATION
        return card.top_header

    def get_expedition_location(self) -> str:
        return self._top_header(self.EXPEDITION_DECK)

    def get_mystic_ruins_location(self) -> str:
        return self._top_header(self.MYSTIC_RUINS_DECK)

    def get_dream_quest_location(self) -> str:
        return self._top_header(self.DREAM_QUEST_DECK)

    def remove_expeditions(self, region: str) -> int:
        """Discard every expedition card that leads to ``region``.

        Returns:
            Number of cards removed
        """
        removed = 0
        for card in self._decks.get_deck(self.EXPEDITION_DECK):
            if card.top_header == region:
                self._decks.discard_card(card, REMOVED_STATUS)
                removed += 1
        return removed

    def get_discard_pile(self) -> list[UnifiedCard]:
        return self._decks.get_discard_pile()

    def remove_from_discard(self, card: UnifiedCard) -> bool:
        return self._decks.remove_from_discard(card)

    @staticmethod
    def get_special_card_name(card: UnifiedCard) -> str | None:
        return card.top_header
