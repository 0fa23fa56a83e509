"""Other-world card selection by location and color.

Given the selected other-world location and colors, pick one matching card
at random. Every "nothing matched" path returns the full deck instead, tagged
as ``NoMatchFallback`` so callers can tell the two outcomes apart.
"""

import logging
import random
from dataclasses import dataclass
from typing import Sequence, Union

from src.card_store import CardStore
from src.models import CardEncounter, GameType, UnifiedCard

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Matched:
    """One card was chosen from the matching encounters."""

    card: UnifiedCard
    encounter: CardEncounter
    candidates: int

    @property
    def cards(self) -> list[UnifiedCard]:
        return [self.card]


@dataclass(frozen=True)
class NoMatchFallback:
    """Nothing matched; the full, unfiltered deck is returned."""

    cards: list[UnifiedCard]
    reason: str


SelectionResult = Union[Matched, NoMatchFallback]


class SelectionResolver:
    """Joins location, color and encounter data to pick an other-world card."""

    def __init__(
        self,
        store: CardStore,
        rng: random.Random | None = None,
        game_type: GameType = GameType.ARKHAM,
    ):
        self._store = store
        self._rng = rng or random.Random()
        self.game_type = game_type

    def select(
        self,
        deck: Sequence[UnifiedCard],
        location_id: int | None,
        color_ids: Sequence[int],
    ) -> SelectionResult:
        """Pick one card of ``deck`` matching the location and any of the colors.

        Args:
            deck: Currently loaded other-world cards
            location_id: Selected other-world location, or None
            color_ids: Selected colors

        Returns:
            ``Matched`` with a single card, or ``NoMatchFallback`` with the whole deck
        """
        full_deck = list(deck)
        if location_id is None or not color_ids:
            return NoMatchFallback(full_deck, "no location or color selected")

        matches = self._store.find_encounters_by_location_and_colors(
            location_id, color_ids, self.game_type
        )
        if not matches:
            logger.debug("No encounters for location %s and colors %s", location_id, list(color_ids))
            return NoMatchFallback(full_deck, "no matching encounter")

        chosen = self._rng.choice(matches)
        card = next((c for c in full_deck if c.card_id == chosen.card_id), None)
        if card is None:
            logger.debug("Matched card %s is not in the loaded deck", chosen.card_id)
            return NoMatchFallback(full_deck, f"card {chosen.card_id} not in deck")

        return Matched(card=card, encounter=chosen, candidates=len(matches))
