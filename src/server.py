"""MCP Server for the Cthulhu companion card store.

Exposes the companion API (store initialization, decks, discard pile, game
state, export and health) as tools over the local stdio transport. Uses the
low-level MCP Server class.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import mcp.types as types
from mcp.server.lowlevel import Server, NotificationOptions
from mcp.server.models import InitializationOptions
import mcp.server.stdio

from src import __version__
from src.companion import Companion, default_data_dir
from src.models import ENCOUNTERED_DISCARDED, GameType, record_to_dict
from src.selection import Matched

logger = logging.getLogger(__name__)

# Server name constant - used in multiple places
SERVER_NAME = "cthulhu-companion"

_GAME_TYPE_SCHEMA = {
    "type": "string",
    "enum": [g.value for g in GameType],
    "description": "Game: ARKHAM or ELDRITCH",
}


@dataclass
class Tool:
    """Tool definition for MCP."""

    name: str
    description: str
    inputSchema: dict[str, Any]


class CompanionServer:
    """Cthulhu companion MCP Server.

    Wraps one ``Companion`` and serializes tool calls so deck state changes
    are never interleaved.
    """

    name = SERVER_NAME
    version = __version__

    def __init__(self, data_dir: Path, assets_dir: Path | None = None):
        """Initialize server.

        Args:
            data_dir: Directory holding the store and game state
            assets_dir: Bundled assets (defaults to data_dir/assets)
        """
        self.data_dir = data_dir
        self.companion = Companion(data_dir, assets_dir=assets_dir)
        self._lock = asyncio.Lock()

    def close(self) -> None:
        """Close server resources synchronously."""
        self.companion.close()

    def __enter__(self) -> "CompanionServer":
        """Enter context manager."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit context manager and close resources."""
        self.close()

    async def __aenter__(self) -> "CompanionServer":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def list_tools(self) -> list[Tool]:
        """List available tools.

        Returns:
            List of tool definitions
        """
        deck_name = {
            "type": "string",
            "description": "Deck name: an Eldritch region (e.g. 'AMERICAS') or 'neighborhood_<id>'",
        }
        return [
            Tool(
                name="initialize_database",
                description="Populate the card store from the bundled and legacy sources. Games that already have cards are skipped unless force is set.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "force": {
                            "type": "boolean",
                            "description": "Clear and re-migrate each game (default false)",
                            "default": False,
                        },
                    },
                },
            ),
            Tool(
                name="card_count",
                description="Number of cards in the store, overall or for one game.",
                inputSchema={
                    "type": "object",
                    "properties": {"game_type": _GAME_TYPE_SCHEMA},
                },
            ),
            Tool(
                name="expansion_names",
                description="Expansion names known for a game.",
                inputSchema={
                    "type": "object",
                    "properties": {"game_type": _GAME_TYPE_SCHEMA},
                    "required": ["game_type"],
                },
            ),
            Tool(
                name="get_selected_expansions",
                description="Expansions selected for a game. The base game is always selected.",
                inputSchema={
                    "type": "object",
                    "properties": {"game_type": _GAME_TYPE_SCHEMA},
                    "required": ["game_type"],
                },
            ),
            Tool(
                name="set_selected_expansions",
                description="Replace the selected expansions of a game and rebuild its decks.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "game_type": _GAME_TYPE_SCHEMA,
                        "expansions": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "Expansion names to select",
                        },
                    },
                    "required": ["game_type", "expansions"],
                },
            ),
            Tool(
                name="get_deck",
                description="Shuffle a deck and list its cards.",
                inputSchema={
                    "type": "object",
                    "properties": {"deck": deck_name},
                    "required": ["deck"],
                },
            ),
            Tool(
                name="draw_card",
                description="Draw the top card of a deck. An empty deck is refilled from its discarded cards first.",
                inputSchema={
                    "type": "object",
                    "properties": {"deck": deck_name},
                    "required": ["deck"],
                },
            ),
            Tool(
                name="discard_card",
                description="Mark a card as encountered and move it to the discard pile.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "deck": deck_name,
                        "card_id": {"type": "string", "description": "Card id"},
                        "status": {
                            "type": "string",
                            "description": f"Encountered status to record (default {ENCOUNTERED_DISCARDED})",
                            "default": ENCOUNTERED_DISCARDED,
                        },
                    },
                    "required": ["deck", "card_id"],
                },
            ),
            Tool(
                name="shuffle_deck",
                description="Shuffle a deck. With full=true every card of the deck is reset to unencountered first.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "deck": deck_name,
                        "full": {"type": "boolean", "default": False},
                    },
                    "required": ["deck"],
                },
            ),
            Tool(
                name="discard_pile",
                description="Discarded cards of a game, most recent first.",
                inputSchema={
                    "type": "object",
                    "properties": {"game_type": _GAME_TYPE_SCHEMA},
                    "required": ["game_type"],
                },
            ),
            Tool(
                name="export_store",
                description="Write a consistent copy of the store. Without a path a timestamped file is written under database_exports/.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "path": {"type": "string", "description": "Destination file (optional)"},
                    },
                },
            ),
            Tool(
                name="health_check",
                description="Check that the store exists, is readable and that per-game card counts add up.",
                inputSchema={"type": "object", "properties": {}},
            ),
            Tool(
                name="select_other_world_card",
                description="Pick an Arkham other-world card by location and colors. Falls back to the full other-world deck when nothing matches.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "location_id": {"type": "integer", "description": "Other-world location id"},
                        "color_ids": {
                            "type": "array",
                            "items": {"type": "integer"},
                            "description": "Selected color ids",
                        },
                    },
                },
            ),
        ]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Execute a tool.

        Args:
            name: Tool name
            arguments: Tool arguments

        Returns:
            Tool result dictionary
        """
        if name == "initialize_database":
            return await self._initialize_database(arguments)
        elif name == "card_count":
            return await self._card_count(arguments)
        elif name == "expansion_names":
            return await self._expansion_names(arguments)
        elif name == "get_selected_expansions":
            return await self._get_selected_expansions(arguments)
        elif name == "set_selected_expansions":
            return await self._set_selected_expansions(arguments)
        elif name == "get_deck":
            return await self._get_deck(arguments)
        elif name == "draw_card":
            return await self._draw_card(arguments)
        elif name == "discard_card":
            return await self._discard_card(arguments)
        elif name == "shuffle_deck":
            return await self._shuffle_deck(arguments)
        elif name == "discard_pile":
            return await self._discard_pile(arguments)
        elif name == "export_store":
            return await self._export_store(arguments)
        elif name == "health_check":
            return await self._health_check(arguments)
        elif name == "select_other_world_card":
            return await self._select_other_world_card(arguments)
        else:
            return {"error": f"Unknown tool: {name}"}

    @staticmethod
    def _game_type(arguments: dict[str, Any], required: bool = True) -> GameType | dict[str, Any] | None:
        """Parse ``game_type``; returns an error dictionary if it is invalid."""
        value = arguments.get("game_type")
        if value is None and not required:
            return None
        game_type = GameType.from_string(value) if isinstance(value, str) else None
        if game_type is None:
            return {
                "error": f"Invalid game_type: {value!r}",
                "hint": "Use ARKHAM or ELDRITCH",
            }
        return game_type

    async def _initialize_database(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Run the migration.

        Returns:
            MigrationStats dictionary
        """
        force = bool(arguments.get("force", False))
        async with self._lock:
            # Migration does blocking file and database I/O
            stats = await asyncio.to_thread(self.companion.initialize_database_with_stats, force)
        return stats.to_dict()

    async def _card_count(self, arguments: dict[str, Any]) -> dict[str, Any]:
        game_type = self._game_type(arguments, required=False)
        if isinstance(game_type, dict):
            return game_type
        async with self._lock:
            count = self.companion.get_card_count(game_type)
        return {"game_type": game_type.value if game_type else None, "card_count": count}

    async def _expansion_names(self, arguments: dict[str, Any]) -> dict[str, Any]:
        game_type = self._game_type(arguments)
        if isinstance(game_type, dict):
            return game_type
        async with self._lock:
            names = self.companion.get_expansion_names(game_type)
        return {"game_type": game_type.value, "expansions": names}

    async def _get_selected_expansions(self, arguments: dict[str, Any]) -> dict[str, Any]:
        game_type = self._game_type(arguments)
        if isinstance(game_type, dict):
            return game_type
        async with self._lock:
            names = self.companion.get_selected_expansions(game_type)
        return {"game_type": game_type.value, "expansions": names}

    async def _set_selected_expansions(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Replace the expansion selection.

        Args:
            arguments: {"game_type": str, "expansions": [str, ...]}

        Returns:
            {"game_type": str, "expansions": [...]} with BASE first
        """
        game_type = self._game_type(arguments)
        if isinstance(game_type, dict):
            return game_type
        expansions = arguments.get("expansions")
        if not isinstance(expansions, list) or not all(isinstance(e, str) for e in expansions):
            return {"error": "'expansions' must be a list of strings"}
        async with self._lock:
            names = self.companion.set_selected_expansions(game_type, expansions)
        return {"game_type": game_type.value, "expansions": names}

    async def _get_deck(self, arguments: dict[str, Any]) -> dict[str, Any]:
        deck = arguments.get("deck")
        if not deck:
            return {"error": "'deck' is required"}
        async with self._lock:
            cards = self.companion.get_deck(deck)
        return {"deck": deck, "cards": [c.to_dict() for c in cards], "count": len(cards)}

    async def _draw_card(self, arguments: dict[str, Any]) -> dict[str, Any]:
        deck = arguments.get("deck")
        if not deck:
            return {"error": "'deck' is required"}
        async with self._lock:
            card = self.companion.draw_card(deck)
        if card is None:
            return {"error": f"No card to draw from deck '{deck}'"}
        return card.to_dict()

    async def _discard_card(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Discard a card.

        Args:
            arguments: {"deck": str, "card_id": str, "status": str}

        Returns:
            {"discarded": bool, ...}
        """
        deck = arguments.get("deck")
        card_id = arguments.get("card_id")
        if not deck or not card_id:
            return {"error": "Both 'deck' and 'card_id' must be provided"}
        status = arguments.get("status") or ENCOUNTERED_DISCARDED
        async with self._lock:
            discarded = self.companion.discard_card(deck, str(card_id), status)
        return {"deck": deck, "card_id": str(card_id), "status": status, "discarded": discarded}

    async def _shuffle_deck(self, arguments: dict[str, Any]) -> dict[str, Any]:
        deck = arguments.get("deck")
        if not deck:
            return {"error": "'deck' is required"}
        full = bool(arguments.get("full", False))
        async with self._lock:
            shuffled = self.companion.shuffle(deck, full=full)
        if not shuffled:
            return {"error": f"Unknown deck: {deck}"}
        return {"deck": deck, "shuffled": True, "full": full}

    async def _discard_pile(self, arguments: dict[str, Any]) -> dict[str, Any]:
        game_type = self._game_type(arguments)
        if isinstance(game_type, dict):
            return game_type
        async with self._lock:
            cards = self.companion.get_discard_pile(game_type)
        return {"game_type": game_type.value, "cards": [c.to_dict() for c in cards], "count": len(cards)}

    async def _export_store(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Export the store.

        Returns:
            {"exported": True, "path": str} or error
        """
        path = arguments.get("path")
        async with self._lock:
            if path:
                dest = Path(path)
                ok = await asyncio.to_thread(self.companion.export_store_to, dest)
            else:
                dest = await asyncio.to_thread(self.companion.export_timestamped)
                ok = dest is not None
        if not ok:
            return {"error": "Export failed", "path": str(path) if path else None}
        return {"exported": True, "path": str(dest)}

    async def _health_check(self, arguments: dict[str, Any]) -> dict[str, Any]:
        async with self._lock:
            report = self.companion.health_check()
        return report.to_dict()

    async def _select_other_world_card(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Select an other-world card.

        Args:
            arguments: {"location_id": int, "color_ids": [int, ...]}

        Returns:
            {"matched": True, "card": {...}, "encounter": {...}} or
            {"matched": False, "reason": str, "cards": [...]}
        """
        location_id = arguments.get("location_id")
        color_ids = arguments.get("color_ids") or []
        if location_id is not None and not isinstance(location_id, int):
            return {"error": "'location_id' must be an integer"}
        if not isinstance(color_ids, list) or not all(isinstance(c, int) for c in color_ids):
            return {"error": "'color_ids' must be a list of integers"}

        async with self._lock:
            result = self.companion.select_other_world_card(location_id, color_ids)

        if isinstance(result, Matched):
            return {
                "matched": True,
                "card": result.card.to_dict(),
                "encounter": record_to_dict(result.encounter.encounter),
                "candidates": result.candidates,
            }
        return {
            "matched": False,
            "reason": result.reason,
            "cards": [c.to_dict() for c in result.cards],
        }


def create_server(data_dir: Path) -> tuple[Server, CompanionServer]:
    """Create MCP server instance.

    Args:
        data_dir: Directory holding the store and game state

    Returns:
        Tuple of (MCP Server, CompanionServer instance for cleanup)
    """
    companion = CompanionServer(data_dir)

    # Create low-level MCP server
    server = Server(SERVER_NAME)

    @server.list_tools()
    async def handle_list_tools() -> list[types.Tool]:
        """Return available tools."""
        tools = companion.list_tools()
        return [
            types.Tool(
                name=t.name,
                description=t.description,
                inputSchema=t.inputSchema,
            )
            for t in tools
        ]

    @server.call_tool()
    async def handle_call_tool(
        name: str, arguments: dict[str, Any]
    ) -> list[types.TextContent]:
        """Handle tool execution."""
        result = await companion.call_tool(name, arguments or {})
        return [
            types.TextContent(
                type="text",
                text=json.dumps(result, default=str),
            )
        ]

    return server, companion


async def run_server(data_dir: Path | None = None) -> None:
    """Run the MCP server.

    Args:
        data_dir: Optional data directory (defaults to $CTHULHU_COMPANION_DATA_DIR or ./data)
    """
    if data_dir is None:
        data_dir = default_data_dir()

    data_dir.mkdir(parents=True, exist_ok=True)

    server, companion = create_server(data_dir)

    try:
        async with mcp.server.stdio.stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                InitializationOptions(
                    server_name=SERVER_NAME,
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                ),
            )
    finally:
        # Ensure cleanup on shutdown
        companion.close()


def main() -> None:
    """Console entry point."""
    asyncio.run(run_server())


if __name__ == "__main__":
    main()
