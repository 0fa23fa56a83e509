"""CLI for initializing and inspecting the Cthulhu companion card store."""

import argparse
import logging
import sys
from pathlib import Path

from src.companion import DATA_DIR_ENV, Companion, default_data_dir
from src.health import format_size
from src.models import GameType


def init_data(data_dir: Path, force: bool = False) -> int:
    """Populate the store and print a migration summary."""
    print("Initializing card store...")
    with Companion(data_dir) as companion:
        stats = companion.initialize_database_with_stats(force)
    print()
    print(stats.summary())
    if not stats.success:
        return 1
    if stats.total_count == 0:
        print()
        print("Error: no cards were imported. Check the legacy and asset directories.")
        return 1
    return 0


def show_status(data_dir: Path) -> int:
    """Show current store status."""
    with Companion(data_dir) as companion:
        print("Cthulhu Companion Data Status")
        print("-" * 40)
        print(companion.database_status())
        print(f"Size: {format_size(companion.exporter.get_database_size())}")
        for game in GameType:
            names = companion.get_expansion_names(game)
            print(f"{game.value.title()} expansions: {', '.join(names) or 'none'}")
        if not companion.has_cards():
            print()
            print("Run 'python -m src.cli init' to populate the store.")
    return 0


def show_health(data_dir: Path) -> int:
    """Print the health report; non-zero exit if the store is unhealthy."""
    with Companion(data_dir) as companion:
        report = companion.health_check()
    print(report.summary())
    if not report.healthy:
        print()
        print("Error: database is unhealthy")
        return 1
    return 0


def export_data(data_dir: Path, dest: Path | None = None) -> int:
    """Export the store to ``dest`` or a timestamped file."""
    with Companion(data_dir) as companion:
        if dest is not None:
            path = dest if companion.export_store_to(dest) else None
        else:
            path = companion.export_timestamped()
        size = companion.exporter.get_database_size()

    if path is None:
        print("Error: export failed")
        return 1
    print(f"Exported to: {path}")
    print(f"  Size: {format_size(size)}")
    return 0


def draw_card(data_dir: Path, deck: str) -> int:
    """Draw one card from a deck and print it."""
    with Companion(data_dir) as companion:
        card = companion.draw_card(deck)
    if card is None:
        print(f"Error: no card to draw from deck '{deck}'")
        return 1

    print(f"{card.card_id} [{card.expansion}]" + (f" {card.card_name}" if card.card_name else ""))
    for section in ("TOP", "MIDDLE", "BOTTOM"):
        header = card.header_text(section)
        text = card.encounter_text(section)
        if header or text:
            print(f"  {header or section}: {text or ''}")
    return 0


def list_expansions(data_dir: Path, game: str) -> int:
    """List known and selected expansions of a game."""
    game_type = GameType.from_string(game)
    if game_type is None:
        print(f"Error: unknown game '{game}' (use arkham or eldritch)")
        return 1
    with Companion(data_dir) as companion:
        names = companion.get_expansion_names(game_type)
        selected = set(companion.get_selected_expansions(game_type))
    for name in names:
        print(f"  [{'x' if name in selected else ' '}] {name}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Cthulhu Companion - Manage the offline encounter card store",
    )

    parser.add_argument(
        "--data-dir",
        type=Path,
        default=default_data_dir(),
        help=f"Directory for storing data (default: ${DATA_DIR_ENV} or ./data)",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Init command
    init_parser = subparsers.add_parser(
        "init",
        help="Populate the card store from bundled and legacy sources",
    )
    init_parser.add_argument(
        "--force",
        action="store_true",
        help="Clear and re-migrate games that already have cards",
    )

    # Status command
    subparsers.add_parser(
        "status",
        help="Show current store status",
    )

    # Health command
    subparsers.add_parser(
        "health",
        help="Check store integrity",
    )

    # Export command
    export_parser = subparsers.add_parser(
        "export",
        help="Export a copy of the store",
    )
    export_parser.add_argument(
        "--dest",
        type=Path,
        help="Destination file (default: database_exports/ with a timestamp)",
    )

    # Draw command
    draw_parser = subparsers.add_parser(
        "draw",
        help="Draw a card from a deck",
    )
    draw_parser.add_argument(
        "deck",
        help="Eldritch region (e.g. AMERICAS) or neighborhood_<id>",
    )

    # Expansions command
    expansions_parser = subparsers.add_parser(
        "expansions",
        help="List expansions of a game",
    )
    expansions_parser.add_argument(
        "game",
        help="arkham or eldritch",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Create data directory
    args.data_dir.mkdir(parents=True, exist_ok=True)

    if args.command == "init":
        return init_data(args.data_dir, args.force)
    elif args.command == "status":
        return show_status(args.data_dir)
    elif args.command == "health":
        return show_health(args.data_dir)
    elif args.command == "export":
        return export_data(args.data_dir, args.dest)
    elif args.command == "draw":
        return draw_card(args.data_dir, args.deck)
    elif args.command == "expansions":
        return list_expansions(args.data_dir, args.game)
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
