"""Expansion name reconciliation.

Legacy sources spell the same expansion several ways ("Base" vs "BASE",
"Pharoah" vs "Pharaoh") and refer to Arkham expansions by numeric id. The
tables below are a compatibility fixture: edit the data, not the lookup code.
"""

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

BASE_EXPANSION_NAME = "BASE"
BASE_LEGACY_ID = 1


@dataclass(frozen=True)
class ExpansionAlias:
    legacy_id: int
    canonical: str
    spellings: tuple[str, ...]


# Arkham legacy expansion ids, their canonical name, and every known spelling
ARKHAM_EXPANSIONS: tuple[ExpansionAlias, ...] = (
    ExpansionAlias(1, "BASE", ("BASE", "Base", "Base Game")),
    ExpansionAlias(2, "Curse of the Dark Pharaoh", ("Curse of the Dark Pharoah", "Curse of the Dark Pharaoh")),
    ExpansionAlias(3, "Dunwich Horror", ("Dunwich Horror",)),
    ExpansionAlias(4, "The King in Yellow", ("The King in Yellow", "King in Yellow")),
    ExpansionAlias(5, "Kingsport Horror", ("Kingsport Horror",)),
    ExpansionAlias(6, "The Black Goat of the Woods", ("Black Goat of the Woods", "The Black Goat of the Woods")),
    ExpansionAlias(7, "Innsmouth Horror", ("Innsmouth Horror",)),
    ExpansionAlias(8, "The Lurker at the Threshold", ("Lurker at the Threshold", "The Lurker at the Threshold")),
    ExpansionAlias(9, "Curse of the Dark Pharaoh Revised", ("Curse of the Dark Pharoah Revised", "Curse of the Dark Pharaoh Revised")),
    ExpansionAlias(10, "Miskatonic Horror", ("Miskatonic Horror",)),
)

# Exact spelling -> legacy id
SYNONYMS: dict[str, int] = {
    spelling: alias.legacy_id
    for alias in ARKHAM_EXPANSIONS
    for spelling in alias.spellings
}

_BY_ID: dict[int, ExpansionAlias] = {alias.legacy_id: alias for alias in ARKHAM_EXPANSIONS}


def is_base(name: str | None) -> bool:
    return name is not None and name.strip().lower() in ("base", "base game")


def normalize_base(name: str | None) -> str:
    """Canonicalize spellings of the base game to ``BASE``; other names pass through."""
    if name is None or is_base(name):
        return BASE_EXPANSION_NAME
    return name


def legacy_id_for(name: str) -> int | None:
    """Map an expansion name to its Arkham legacy id.

    Exact synonyms are tried first, then a case-insensitive substring match in
    either direction. Returns None for a brand-new expansion.
    """
    if name in SYNONYMS:
        return SYNONYMS[name]

    lowered = name.strip().lower()
    if not lowered:
        return None
    for spelling, legacy_id in SYNONYMS.items():
        candidate = spelling.lower()
        if candidate in lowered or lowered in candidate:
            logger.debug("Partial expansion match %r -> %r (%d)", name, spelling, legacy_id)
            return legacy_id
    return None


def canonical_name(name: str | None) -> str:
    """Return the canonical display name for an expansion spelling.

    Unknown names are returned unchanged, trimmed.
    """
    if name is None or is_base(name):
        return BASE_EXPANSION_NAME
    legacy_id = legacy_id_for(name)
    if legacy_id is None:
        return name.strip()
    return _BY_ID[legacy_id].canonical


def canonical_name_for_id(legacy_id: int) -> str | None:
    alias = _BY_ID.get(legacy_id)
    return alias.canonical if alias else None
