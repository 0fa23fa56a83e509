"""Tests for CLI commands."""

import tempfile
from io import StringIO
from pathlib import Path
from unittest.mock import patch

from src.cli import main
from src.health import format_size


def run_cli(tmpdir: str, *args: str) -> tuple[int, str]:
    """Run the CLI against a data directory and capture stdout."""
    with patch("sys.stdout", new_callable=StringIO) as mock_stdout:
        code = main(["--data-dir", tmpdir, *args])
    return code, mock_stdout.getvalue()


class TestFormatSize:
    """Test size formatting used by status and export output."""

    def test_bytes(self):
        assert format_size(512) == "512 B"

    def test_kilobytes(self):
        assert format_size(2048) == "2.00 KB"

    def test_megabytes(self):
        assert format_size(5 * 1024 * 1024) == "5.00 MB"


class TestInitCommand:
    """Test the init command."""

    def test_init_populates_store(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            code, output = run_cli(tmpdir, "init")

            assert code == 0
            assert "Initializing card store..." in output
            assert (Path(tmpdir) / "cthulhu_companion.db").exists()

    def test_init_twice_keeps_cards(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            run_cli(tmpdir, "init")
            code, _ = run_cli(tmpdir, "init", "--force")
            assert code == 0

            _, output = run_cli(tmpdir, "status")
            assert "Total cards: 13" in output


class TestStatusCommand:
    """Test the status command."""

    def test_status_empty_store(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            code, output = run_cli(tmpdir, "status")

            assert code == 0
            assert "Cthulhu Companion Data Status" in output
            assert "python -m src.cli init" in output

    def test_status_after_init(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            run_cli(tmpdir, "init")
            code, output = run_cli(tmpdir, "status")

            assert code == 0
            assert "Dunwich Horror" in output
            assert "src.cli init" not in output


class TestHealthCommand:
    """Test the health command."""

    def test_health_without_cards_fails(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            code, output = run_cli(tmpdir, "health")

            assert code == 1
            assert "Error: database is unhealthy" in output

    def test_health_after_init(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            run_cli(tmpdir, "init")
            code, output = run_cli(tmpdir, "health")

            assert code == 0
            assert "HEALTHY" in output
            assert "Warning: No Eldritch cards found" in output


class TestExportCommand:
    """Test the export command."""

    def test_export_to_destination(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            run_cli(tmpdir, "init")
            dest = Path(tmpdir) / "backup" / "store.db"
            code, output = run_cli(tmpdir, "export", "--dest", str(dest))

            assert code == 0
            assert f"Exported to: {dest}" in output
            assert dest.exists()

    def test_export_timestamped(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            run_cli(tmpdir, "init")
            code, output = run_cli(tmpdir, "export")

            assert code == 0
            assert "database_exports" in output
            assert len(list((Path(tmpdir) / "database_exports").glob("*.db"))) == 1


class TestDrawCommand:
    """Test the draw command."""

    def test_draw_neighborhood_card(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            run_cli(tmpdir, "init")
            code, output = run_cli(tmpdir, "draw", "neighborhood_1")

            assert code == 0
            assert output.split(" ", 1)[0] in {"1", "2"}

    def test_draw_unknown_deck(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            code, output = run_cli(tmpdir, "draw", "NOWHERE")

            assert code == 1
            assert "Error: no card to draw from deck 'NOWHERE'" in output


class TestExpansionsCommand:
    """Test the expansions command."""

    def test_list_expansions(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            run_cli(tmpdir, "init")
            code, output = run_cli(tmpdir, "expansions", "arkham")

            assert code == 0
            assert "[x] BASE" in output
            assert "[ ] Dunwich Horror" in output

    def test_unknown_game(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            code, output = run_cli(tmpdir, "expansions", "chess")

            assert code == 1
            assert "Error: unknown game 'chess'" in output


class TestMainEntry:
    """Test argument handling."""

    def test_no_command_prints_help(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            code, output = run_cli(tmpdir)

            assert code == 0
            assert "Cthulhu Companion" in output
