"""Tests for store export."""

import tempfile
from pathlib import Path

from src.card_store import CardStore, StoreHandle
from src.exporter import EXPORT_DIR_NAME, EXPORT_PREFIX, DatabaseExporter
from src.models import GameType


class TestDatabaseExporter:
    """Test exporting the store."""

    def test_export_to_path(self, eldritch_cards):
        with tempfile.TemporaryDirectory() as tmpdir:
            handle = StoreHandle(Path(tmpdir) / "store.db")
            try:
                handle.get().insert_cards(eldritch_cards)
                dest = Path(tmpdir) / "out" / "nested" / "copy.db"

                assert DatabaseExporter(handle, Path(tmpdir)).export_to_path(dest)
                with CardStore(dest) as copy:
                    assert copy.get_card_count(GameType.ELDRITCH) == len(eldritch_cards)
            finally:
                handle.close()

    def test_existing_destination_is_replaced(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            handle = StoreHandle(Path(tmpdir) / "store.db")
            try:
                dest = Path(tmpdir) / "copy.db"
                dest.write_bytes(b"old export")
                assert DatabaseExporter(handle, Path(tmpdir)).export_to_path(dest)
                assert dest.read_bytes()[:16] == b"SQLite format 3\x00"
            finally:
                handle.close()

    def test_export_timestamped(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            handle = StoreHandle(Path(tmpdir) / "store.db")
            try:
                exporter = DatabaseExporter(handle, Path(tmpdir))
                assert exporter.list_exports() == []

                path = exporter.export_timestamped()
                assert path is not None
                assert path.parent == Path(tmpdir) / EXPORT_DIR_NAME
                assert path.name.startswith(EXPORT_PREFIX)
                assert path.suffix == ".db"
                assert exporter.list_exports() == [path]
            finally:
                handle.close()

    def test_list_exports_newest_first(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            export_dir = Path(tmpdir) / EXPORT_DIR_NAME
            export_dir.mkdir()
            for stamp in ("20240101_000000", "20250101_000000", "20230101_000000"):
                (export_dir / f"{EXPORT_PREFIX}{stamp}.db").touch()
            (export_dir / "unrelated.db").touch()

            exporter = DatabaseExporter(StoreHandle(Path(tmpdir) / "store.db"), Path(tmpdir))
            assert [p.name for p in exporter.list_exports()] == [
                f"{EXPORT_PREFIX}20250101_000000.db",
                f"{EXPORT_PREFIX}20240101_000000.db",
                f"{EXPORT_PREFIX}20230101_000000.db",
            ]

    def test_database_size(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            handle = StoreHandle(Path(tmpdir) / "store.db")
            exporter = DatabaseExporter(handle, Path(tmpdir))
            assert exporter.get_database_size() == 0
            handle.get()
            handle.close()
            assert exporter.get_database_size() > 0

    def test_directory_destination_fails(self):
        """A destination that is a directory is refused without raising."""
        with tempfile.TemporaryDirectory() as tmpdir:
            handle = StoreHandle(Path(tmpdir) / "store.db")
            try:
                dest = Path(tmpdir) / "somedir"
                dest.mkdir()
                assert DatabaseExporter(handle, Path(tmpdir)).export_to_path(dest) is False
                assert dest.is_dir()
            finally:
                handle.close()
