"""In-memory decks and discard pile built from the card store.

Decks are keyed by region (Eldritch) or ``neighborhood_<id>`` (Arkham) and
hold unencountered cards. A drawn card is held until it is discarded.
Encountered cards live in one discard pile, most recent first. Only status
changes are written back to the store.

All in-memory mutation of one manager is serialized by a single lock, so a
discard and a draw on the same deck from two threads cannot interleave.
"""

import logging
import random
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable

from src.card_store import CardStore
from src.expansion_names import BASE_EXPANSION_NAME
from src.models import (
    ENCOUNTERED_DISCARDED,
    ENCOUNTERED_NONE,
    OTHER_WORLD_NEIGHBORHOOD,
    GameType,
    UnifiedCard,
    normalize_deck_name,
    parse_neighborhood_deck,
)
from src.query_builder import CardQuery

logger = logging.getLogger(__name__)

DISCARD_STATS_KEY = "DISCARD"


def shuffle_cards(cards: list[Any], rng: random.Random) -> None:
    """Shuffle in place.

    A uniform shuffle followed by a second pass that moves a random element
    from ``[i, n)`` to position ``i`` for each ``i`` up to ``n - 2``. The
    second pass matches the legacy deck order behavior.
    """
    if not cards:
        return
    rng.shuffle(cards)
    for i in range(len(cards) - 1):
        j = rng.randrange(i, len(cards))
        cards.insert(i, cards.pop(j))


def _row_rank(card: UnifiedCard) -> tuple[bool, bool]:
    return (not card.is_encountered, card.expansion != BASE_EXPANSION_NAME)


def merge_expansion_rows(cards: list[UnifiedCard]) -> list[UnifiedCard]:
    """Keep one row per card and deck.

    An Arkham card in several expansions has one row per expansion. The kept
    row is an encountered one if there is one, else the BASE row, so the
    status written on discard is the status read back on reload.
    """
    chosen: dict[tuple[str, str], UnifiedCard] = {}
    for card in cards:
        slot = (card.card_id, card.deck_key())
        current = chosen.get(slot)
        if current is None or _row_rank(card) < _row_rank(current):
            chosen[slot] = card
    return list(chosen.values())


class DeckManager:
    """Decks and discard pile for one game."""

    def __init__(self, store: CardStore, game_type: GameType, rng: random.Random | None = None):
        """Initialize deck manager.

        Args:
            store: Card store the decks are loaded from
            game_type: Game whose cards this manager handles
            rng: Random source (a fresh one if not given)
        """
        self._store = store
        self.game_type = game_type
        self._rng = rng or random.Random()
        self._lock = threading.RLock()
        self._decks: dict[str, list[UnifiedCard]] = {}
        self._discard: list[UnifiedCard] = []
        self._discard_keys: set[tuple[str, str, str]] = set()
        # Drawn and not yet discarded
        self._drawn: dict[tuple[str, str, str], UnifiedCard] = {}
        self._expansions: list[str] | None = None
        # Background writer for refill persistence
        self._writer = ThreadPoolExecutor(max_workers=1, thread_name_prefix="deck-writer")
        self._pending: list[Future] = []

    def close(self) -> None:
        """Finish pending store writes and stop the background writer."""
        self.flush()
        self._writer.shutdown(wait=True)

    def flush(self) -> None:
        """Block until every background store write has finished."""
        with self._lock:
            pending, self._pending = self._pending, []
        wait(pending)

    @property
    def expansions(self) -> list[str] | None:
        return self._expansions

    def _load_cards(self, expansions: list[str] | None) -> list[UnifiedCard]:
        query = CardQuery(self.game_type)
        if expansions is not None:
            query.expansions(expansions)
        return self._store.query_cards(query)

    def initialize_decks(self, expansions: list[str] | None = None) -> int:
        """Rebuild every deck and the discard pile from the store.

        Args:
            expansions: Expansions to load; None loads every expansion.
                The Eldritch base game is always included.

        Returns:
            Number of cards loaded
        """
        if expansions is not None:
            expansions = list(dict.fromkeys(expansions))
            if self.game_type == GameType.ELDRITCH and BASE_EXPANSION_NAME not in expansions:
                expansions.insert(0, BASE_EXPANSION_NAME)

        cards = self._load_cards(expansions)
        if self.game_type == GameType.ARKHAM:
            cards = merge_expansion_rows(cards)

        decks: dict[str, list[UnifiedCard]] = {}
        discard: list[UnifiedCard] = []
        for card in cards:
            deck = decks.setdefault(card.deck_key(), [])
            if card.is_encountered:
                discard.append(card)
            else:
                deck.append(card)
        for deck in decks.values():
            shuffle_cards(deck, self._rng)

        with self._lock:
            self._expansions = expansions
            self._decks = decks
            self._discard = discard
            self._discard_keys = {card.key for card in discard}
            self._drawn = {}

        logger.info(
            "Initialized %d %s decks: %d cards, %d discarded",
            len(decks), self.game_type.value, len(cards), len(discard),
        )
        return len(cards)

    def deck_names(self) -> list[str]:
        with self._lock:
            return sorted(self._decks)

    def has_deck(self, name: str) -> bool:
        with self._lock:
            return normalize_deck_name(name) in self._decks

    def get_deck(self, name: str) -> list[UnifiedCard]:
        """Shuffle a deck and return a copy of its cards (empty if unknown)."""
        key = normalize_deck_name(name)
        with self._lock:
            deck = self._decks.get(key)
            if deck is None:
                return []
            shuffle_cards(deck, self._rng)
            return list(deck)

    def peek(self, name: str) -> UnifiedCard | None:
        """Top card of a deck without shuffling or drawing."""
        with self._lock:
            deck = self._decks.get(normalize_deck_name(name))
            return deck[0] if deck else None

    def shuffle_deck(self, name: str) -> None:
        """Shuffle a deck in place, refilling it first if it is empty."""
        key = normalize_deck_name(name)
        with self._lock:
            if key not in self._decks:
                return
            if not self._decks[key]:
                self.refill_deck(key)
            shuffle_cards(self._decks[key], self._rng)

    def shuffle_all_decks(self) -> None:
        with self._lock:
            for key in list(self._decks):
                self.shuffle_deck(key)

    def shuffle_full_deck(self, name: str) -> int:
        """Reset the encountered status of a whole deck in the store and reload.

        Unlike ``shuffle_deck`` this also returns cards that were never
        loaded into memory (other expansions) to the draw pool.

        Returns:
            Number of cards reset in the store
        """
        key = normalize_deck_name(name)
        if self.game_type == GameType.ARKHAM:
            nei = parse_neighborhood_deck(key)
            if nei is None:
                logger.warning("Not a neighborhood deck: %s", name)
                return 0
            if nei == OTHER_WORLD_NEIGHBORHOOD:
                reset = self._store.reset_encountered_status(GameType.ARKHAM, other_world=True)
            else:
                reset = self._store.reset_encountered_status(GameType.ARKHAM, neighborhood_id=nei)
        else:
            reset = 0
            for region in self._store.get_regions(self.game_type):
                if normalize_deck_name(region) == key:
                    reset += self._store.reset_encountered_status(self.game_type, region=region)

        self.flush()
        self.initialize_decks(self._expansions)
        logger.info("Full reshuffle of %s reset %d cards", key, reset)
        return reset

    def draw_card(self, name: str) -> UnifiedCard | None:
        """Take the top card of a deck, refilling it from the discard pile if empty.

        Returns:
            The drawn card, or None if the deck is unknown or still empty
        """
        key = normalize_deck_name(name)
        with self._lock:
            deck = self._decks.get(key)
            if deck is None:
                return None
            if not deck:
                self.refill_deck(key)
            if not deck:
                return None
            card = deck.pop(0)
            self._drawn[card.key] = card
            return card

    def draw_matching(
        self, name: str, predicate: Callable[[UnifiedCard], bool]
    ) -> UnifiedCard | None:
        """Take the first card of a deck that satisfies ``predicate``.

        Refills an empty deck first, like ``draw_card``. Cards that do not
        match stay in place.
        """
        key = normalize_deck_name(name)
        with self._lock:
            deck = self._decks.get(key)
            if deck is None:
                return None
            if not deck:
                self.refill_deck(key)
            for index, card in enumerate(deck):
                if predicate(card):
                    self._drawn[card.key] = card
                    return deck.pop(index)
            return None

    def discard_card(self, card: UnifiedCard, status: str = ENCOUNTERED_DISCARDED) -> bool:
        """Persist a new encountered status and put the card on the discard pile.

        Returns:
            True if the store accepted the new status
        """
        with self._lock:
            # A pending refill reset must not overwrite this status
            self.flush()
            saved = self._store.update_encountered(card.game_type, card.card_id, card.expansion, status)
            if not saved:
                logger.warning("Could not persist status %s for card %s", status, card.key)

            card.encountered = status
            self._drawn.pop(card.key, None)
            deck = self._decks.get(card.deck_key())
            if deck is not None:
                deck[:] = [c for c in deck if c.key != card.key]
            if card.key in self._discard_keys:
                self._discard = [c for c in self._discard if c.key != card.key]
            self._discard.insert(0, card)
            self._discard_keys.add(card.key)
            return saved

    def _persist_reset(self, cards: list[UnifiedCard]) -> None:
        for card in cards:
            if not self._store.update_encountered(
                card.game_type, card.card_id, card.expansion, ENCOUNTERED_NONE
            ):
                logger.warning("Could not reset status of card %s", card.key)

    def refill_deck(self, name: str) -> int:
        """Move every discarded card of this deck back into it and shuffle.

        The store is updated in the background; call ``flush`` to wait for it.

        Returns:
            Number of cards moved back
        """
        key = normalize_deck_name(name)
        with self._lock:
            returning = [c for c in self._discard if c.deck_key() == key]
            if not returning:
                return 0
            self._discard = [c for c in self._discard if c.deck_key() != key]
            for card in returning:
                self._discard_keys.discard(card.key)
                card.encountered = ENCOUNTERED_NONE

            deck = self._decks.setdefault(key, [])
            deck.extend(returning)
            shuffle_cards(deck, self._rng)
            self._pending.append(self._writer.submit(self._persist_reset, returning))

        logger.debug("Refilled %s with %d cards", key, len(returning))
        return len(returning)

    def get_discard_pile(self) -> list[UnifiedCard]:
        """Discarded cards, most recent first."""
        with self._lock:
            return list(self._discard)

    def is_discarded(self, card: UnifiedCard) -> bool:
        with self._lock:
            return card.key in self._discard_keys

    def remove_from_discard(self, card: UnifiedCard) -> bool:
        """Take a card off the discard pile and return it to the bottom of its deck.

        Returns:
            True if the card was on the discard pile
        """
        with self._lock:
            if card.key not in self._discard_keys:
                return False
            found = next(c for c in self._discard if c.key == card.key)
            self._discard.remove(found)
            self._discard_keys.discard(found.key)
            found.encountered = ENCOUNTERED_NONE
            self._decks.setdefault(found.deck_key(), []).append(found)
            self._store.update_encountered(
                found.game_type, found.card_id, found.expansion, ENCOUNTERED_NONE
            )
            return True

    def find_card(self, card_id: str, deck_name: str | None = None) -> UnifiedCard | None:
        """Find a loaded card by id.

        Looks in one deck (or every deck), then among drawn cards, then on the
        discard pile.
        """
        key = normalize_deck_name(deck_name) if deck_name is not None else None
        with self._lock:
            if key is not None:
                decks = [self._decks.get(key, [])]
            else:
                decks = list(self._decks.values())
            for deck in decks:
                for card in deck:
                    if card.card_id == card_id:
                        return card
            for card in [*self._drawn.values(), *self._discard]:
                if card.card_id == card_id and (key is None or card.deck_key() == key):
                    return card
        return None

    def get_drawn_cards(self) -> list[UnifiedCard]:
        """Cards drawn and not yet discarded, in draw order."""
        with self._lock:
            return list(self._drawn.values())

    def get_deck_stats(self) -> dict[str, int]:
        """Size of every deck, plus the discard pile under ``DISCARD``."""
        with self._lock:
            stats = {key: len(deck) for key, deck in sorted(self._decks.items())}
            stats[DISCARD_STATS_KEY] = len(self._discard)
            return stats

    def card_count(self) -> int:
        """Cards held in memory across all decks and the discard pile."""
        with self._lock:
            return sum(len(deck) for deck in self._decks.values()) + len(self._discard)
