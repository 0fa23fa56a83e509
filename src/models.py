"""Data model for the unified card store.

A single ``UnifiedCard`` row represents a card from either game. Arkham cards use
the neighborhood/location/encounter group; Eldritch cards use the region/header group.
"""

import sqlite3
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Union

ENCOUNTERED_NONE = "NONE"
ENCOUNTERED_DISCARDED = "DISCARDED"
DEFAULT_EXPANSION = "BASE"

SECTIONS = ("TOP", "MIDDLE", "BOTTOM")

NEIGHBORHOOD_DECK_PREFIX = "neighborhood_"
# Deck id of the Arkham other-world cards
OTHER_WORLD_NEIGHBORHOOD = -1


class GameType(str, Enum):
    """The two card catalogs held in the store."""

    ARKHAM = "ARKHAM"
    ELDRITCH = "ELDRITCH"

    @classmethod
    def from_string(cls, value: str) -> "GameType | None":
        """Parse a game type name case-insensitively, returning None if unknown."""
        try:
            return cls(value.strip().upper())
        except (ValueError, AttributeError):
            return None


@dataclass
class UnifiedCard:
    """A card from either game."""

    game_type: GameType
    card_id: str
    expansion: str = DEFAULT_EXPANSION
    card_name: str | None = None
    encountered: str = ENCOUNTERED_NONE
    card_data: str | None = None

    # Arkham
    neighborhood_id: int | None = None
    location_id: int | None = None
    encounter_id: int | None = None

    # Eldritch
    region: str | None = None
    top_header: str | None = None
    top_encounter: str | None = None
    middle_header: str | None = None
    middle_encounter: str | None = None
    bottom_header: str | None = None
    bottom_encounter: str | None = None

    @property
    def key(self) -> tuple[str, str, str]:
        """Uniqueness key: (game_type, card_id, expansion)."""
        return (self.game_type.value, self.card_id, self.expansion)

    @property
    def is_encountered(self) -> bool:
        return (self.encountered or ENCOUNTERED_NONE) != ENCOUNTERED_NONE

    def deck_key(self) -> str:
        """Name of the deck this card belongs to."""
        if self.game_type == GameType.ARKHAM:
            return neighborhood_deck_name(self.neighborhood_id)
        return normalize_deck_name(self.region or "")

    def header_text(self, section: str) -> str | None:
        section = section.upper()
        if section == "TOP":
            return self.top_header
        if section == "MIDDLE":
            return self.middle_header
        if section == "BOTTOM":
            return self.bottom_header
        return None

    def encounter_text(self, section: str) -> str | None:
        section = section.upper()
        if section == "TOP":
            return self.top_encounter
        if section == "MIDDLE":
            return self.middle_encounter
        if section == "BOTTOM":
            return self.bottom_encounter
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization.

        Only the attribute group matching the game type is included.
        """
        data = {
            "game_type": self.game_type.value,
            "card_id": self.card_id,
            "expansion": self.expansion,
            "card_name": self.card_name,
            "encountered": self.encountered,
        }
        if self.card_data is not None:
            data["card_data"] = self.card_data
        if self.game_type == GameType.ARKHAM:
            data["neighborhood_id"] = self.neighborhood_id
            data["location_id"] = self.location_id
            data["encounter_id"] = self.encounter_id
        else:
            data["region"] = self.region
            for section in SECTIONS:
                data[f"{section.lower()}_header"] = self.header_text(section)
                data[f"{section.lower()}_encounter"] = self.encounter_text(section)
        return data

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "UnifiedCard":
        """Build a card from a ``unified_cards`` row.

        The attribute group of the other game is dropped even if the row carries it.
        """
        game_type = GameType(row["game_type"])
        card = cls(
            game_type=game_type,
            card_id=row["card_id"],
            expansion=row["expansion"] or DEFAULT_EXPANSION,
            card_name=row["card_name"],
            encountered=row["encountered"] or ENCOUNTERED_NONE,
            card_data=row["card_data"],
        )
        if game_type == GameType.ARKHAM:
            card.neighborhood_id = row["neighborhood_id"]
            card.location_id = row["location_id"]
            card.encounter_id = row["encounter_id"]
        else:
            card.region = row["region"]
            card.top_header = row["top_header"]
            card.top_encounter = row["top_encounter"]
            card.middle_header = row["middle_header"]
            card.middle_encounter = row["middle_encounter"]
            card.bottom_header = row["bottom_header"]
            card.bottom_encounter = row["bottom_encounter"]
        return card


def neighborhood_deck_name(neighborhood_id: int | None) -> str:
    """``neighborhood_<id>``; other-world cards (no neighborhood) use ``neighborhood_-1``."""
    nei = neighborhood_id if neighborhood_id is not None else OTHER_WORLD_NEIGHBORHOOD
    return f"{NEIGHBORHOOD_DECK_PREFIX}{nei}"


def parse_neighborhood_deck(name: str) -> int | None:
    """Neighborhood id of a ``neighborhood_<id>`` deck name, or None for any other name."""
    if not name.startswith(NEIGHBORHOOD_DECK_PREFIX):
        return None
    try:
        return int(name.removeprefix(NEIGHBORHOOD_DECK_PREFIX))
    except ValueError:
        return None


def normalize_deck_name(name: str) -> str:
    """Region deck names use underscores where legacy regions use hyphens.

    Neighborhood deck names are returned unchanged; the minus sign of
    ``neighborhood_-1`` is part of the id.
    """
    if name.startswith(NEIGHBORHOOD_DECK_PREFIX):
        return name
    return name.replace("-", "_")


@dataclass
class Expansion:
    exp_id: int
    game_type: GameType
    name: str
    icon_path: str | None = None


@dataclass
class Neighborhood:
    nei_id: int
    exp_id: int
    name: str | None
    card_path: str | None = None
    button_path: str | None = None


@dataclass
class Location:
    loc_id: int
    exp_id: int | None
    nei_id: int | None
    name: str | None
    button_path: str | None = None
    sort: int = 0

    @property
    def is_other_world(self) -> bool:
        return self.nei_id is None


@dataclass
class Encounter:
    enc_id: int
    loc_id: int
    text: str | None


@dataclass
class Color:
    color_id: int
    exp_id: int
    name: str | None
    button_path: str | None = None


def record_to_dict(record: Any) -> dict[str, Any]:
    """Convert a record dataclass to a JSON-ready dictionary."""
    data = asdict(record)
    if isinstance(data.get("game_type"), GameType):
        data["game_type"] = data["game_type"].value
    return data


# Per-row results of a bulk insert


@dataclass(frozen=True)
class Inserted:
    card: UnifiedCard


@dataclass(frozen=True)
class Ignored:
    card: UnifiedCard
    reason: str


@dataclass(frozen=True)
class Failed:
    card: UnifiedCard
    error: str


InsertOutcome = Union[Inserted, Ignored, Failed]


@dataclass
class InsertReport:
    """Outcomes of a bulk insert, one per input row."""

    outcomes: list[InsertOutcome] = field(default_factory=list)

    @property
    def inserted(self) -> list[Inserted]:
        return [o for o in self.outcomes if isinstance(o, Inserted)]

    @property
    def ignored(self) -> list[Ignored]:
        return [o for o in self.outcomes if isinstance(o, Ignored)]

    @property
    def failed(self) -> list[Failed]:
        return [o for o in self.outcomes if isinstance(o, Failed)]

    @property
    def inserted_count(self) -> int:
        return len(self.inserted)

    @property
    def ignored_count(self) -> int:
        return len(self.ignored)

    @property
    def failed_count(self) -> int:
        return len(self.failed)


@dataclass
class CardEncounter:
    """An encounter together with the card that owns it."""

    card_id: str
    encounter: Encounter
