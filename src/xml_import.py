"""Parse the bundled Eldritch XML card corpus.

Document grammar: expansion names are top-level elements. Each expansion holds
category elements, and each category holds ``CARD`` leaves carrying an ``id``
attribute and ``TOP`` / ``MIDDLE`` / ``BOTTOM`` text children. Categories use
different shapes:

- LOCATIONS: one child per region with ``*_HEADER`` elements shared by its cards
- GATES, EXPEDITIONS, MYSTIC_RUINS, DREAM-QUEST: named cards (``NAME`` child)
- DISASTER: cards without headers
- RESEARCH: headers on the category, cards grouped under one child per ancient one
- DEVASTATION, SPECIAL: headers on each card; SPECIAL children name the region
"""

import logging
import xml.etree.ElementTree as ET
from pathlib import Path

from src.card_store import CardStore
from src.models import ENCOUNTERED_NONE, GameType, UnifiedCard

logger = logging.getLogger(__name__)

XML_ASSET_NAME = "cards.xml"

# Processing order of expansions in the corpus
EXPANSION_ORDER = (
    "BASE",
    "FORSAKEN_LORE",
    "MOUNTAINS_OF_MADNESS",
    "STRANGE_REMNANTS",
    "UNDER_THE_PYRAMIDS",
    "SIGNS_OF_CARCOSA",
    "THE_DREAMLANDS",
    "CITIES_IN_RUIN",
    "MASKS_OF_NYARLATHOTEP",
)

# Category element -> region of named cards
NAMED_CATEGORIES = {
    "GATES": "GATE",
    "EXPEDITIONS": "EXPEDITION",
    "MYSTIC_RUINS": "MYSTIC_RUINS",
    "DREAM-QUEST": "DREAM-QUEST",
}

_HEADER_TAGS = ("TOP_HEADER", "MIDDLE_HEADER", "BOTTOM_HEADER")


def _text(element: ET.Element | None) -> str | None:
    """Trimmed text of an element; None when missing or blank."""
    if element is None or element.text is None:
        return None
    text = element.text.strip()
    return text or None


def _child_text(element: ET.Element, tag: str) -> str | None:
    return _text(element.find(tag))


def _card(
    node: ET.Element,
    expansion: str,
    region: str,
    headers: tuple[str | None, str | None, str | None] = (None, None, None),
) -> UnifiedCard | None:
    card_id = node.get("id")
    if not card_id:
        return None
    return UnifiedCard(
        game_type=GameType.ELDRITCH,
        card_id=card_id,
        expansion=expansion,
        encountered=ENCOUNTERED_NONE,
        region=region,
        top_header=headers[0],
        top_encounter=_child_text(node, "TOP"),
        middle_header=headers[1],
        middle_encounter=_child_text(node, "MIDDLE"),
        bottom_header=headers[2],
        bottom_encounter=_child_text(node, "BOTTOM"),
    )


def _headers_of(element: ET.Element) -> tuple[str | None, str | None, str | None]:
    top, middle, bottom = (_child_text(element, tag) for tag in _HEADER_TAGS)
    return top, middle, bottom


def _parse_locations(node: ET.Element, expansion: str) -> list[UnifiedCard]:
    cards = []
    for location in node:
        headers = _headers_of(location)
        for card_node in location.findall("CARD"):
            card = _card(card_node, expansion, location.tag, headers)
            if card:
                cards.append(card)
    return cards


def _parse_named(node: ET.Element, region: str, expansion: str) -> list[UnifiedCard]:
    cards = []
    for card_node in node.findall("CARD"):
        card = _card(card_node, expansion, region, (_child_text(card_node, "NAME"), "PASS", "FAIL"))
        if card:
            cards.append(card)
    return cards


def _parse_no_headers(node: ET.Element, region: str, expansion: str) -> list[UnifiedCard]:
    cards = []
    for card_node in node.findall("CARD"):
        card = _card(card_node, expansion, region)
        if card:
            cards.append(card)
    return cards


def _parse_research(node: ET.Element, expansion: str) -> list[UnifiedCard]:
    headers = _headers_of(node)
    cards = []
    for ancient_one in node:
        if ancient_one.tag in _HEADER_TAGS:
            continue
        for card_node in ancient_one.findall("CARD"):
            card = _card(card_node, expansion, "RESEARCH", headers)
            if card:
                cards.append(card)
    return cards


def _parse_special(node: ET.Element, expansion: str, region: str | None = None) -> list[UnifiedCard]:
    cards = []
    for group in node:
        group_region = region or group.tag
        for card_node in group.findall("CARD"):
            card = _card(card_node, expansion, group_region, _headers_of(card_node))
            if card:
                cards.append(card)
    return cards


def parse_expansion(node: ET.Element, expansion: str) -> list[UnifiedCard]:
    """Parse every category of one expansion element."""
    cards: list[UnifiedCard] = []
    for category in node:
        tag = category.tag
        if tag == "LOCATIONS":
            cards.extend(_parse_locations(category, expansion))
        elif tag in NAMED_CATEGORIES:
            cards.extend(_parse_named(category, NAMED_CATEGORIES[tag], expansion))
        elif tag == "RESEARCH":
            cards.extend(_parse_research(category, expansion))
        elif tag == "DISASTER":
            cards.extend(_parse_no_headers(category, "DISASTER", expansion))
        elif tag == "DEVASTATION":
            cards.extend(_parse_special(category, expansion, "DEVASTATION"))
        elif tag == "SPECIAL":
            cards.extend(_parse_special(category, expansion))
        else:
            logger.debug("Ignoring unknown category %s in %s", tag, expansion)
    return cards


def _find_expansion(root: ET.Element, name: str) -> ET.Element | None:
    if root.tag == name:
        return root
    return next(root.iter(name), None)


def parse_corpus(xml_path: Path) -> list[UnifiedCard]:
    """Parse the corpus into cards, expansion by expansion.

    Raises:
        ET.ParseError: If the document is malformed
        OSError: If the file cannot be read
    """
    root = ET.parse(xml_path).getroot()
    cards: list[UnifiedCard] = []
    for name in EXPANSION_ORDER:
        node = _find_expansion(root, name)
        if node is None:
            continue
        expansion_cards = parse_expansion(node, name)
        logger.debug("Parsed %d cards from %s", len(expansion_cards), name)
        cards.extend(expansion_cards)
    return cards


def migrate_eldritch_xml(xml_path: Path, store: CardStore) -> int:
    """Load the XML corpus into the store.

    Returns:
        Number of cards inserted (0 when the corpus is missing or malformed)
    """
    if not xml_path.is_file():
        logger.info("No Eldritch XML corpus at %s", xml_path)
        return 0
    try:
        cards = parse_corpus(xml_path)
    except (ET.ParseError, OSError):
        logger.error("Cannot parse Eldritch XML corpus %s", xml_path, exc_info=True)
        return 0

    for expansion in dict.fromkeys(card.expansion for card in cards):
        store.get_or_create_expansion(GameType.ELDRITCH, expansion, expansion)

    inserted = store.insert_cards(cards)
    logger.info("Migrated %d Eldritch cards from %s", inserted, xml_path)
    return inserted
