"""Tests for the store health check."""

import tempfile
from pathlib import Path

import pytest

from src.card_store import CardStore
from src.health import HealthReport, check_health, format_size, verify_database
from src.models import GameType, UnifiedCard


class TestFormatSize:
    """Test human-readable sizes."""

    @pytest.mark.parametrize(
        "size, expected",
        [(0, "0 B"), (1023, "1023 B"), (1024, "1.00 KB"), (1536, "1.50 KB"), (5 * 1024 * 1024, "5.00 MB")],
    )
    def test_format_size(self, size, expected):
        assert format_size(size) == expected


class TestCheckHealth:
    """Test health checks against the store file."""

    def test_missing_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            report = check_health(Path(tmpdir) / "missing.db")
            assert not report.exists
            assert not report.healthy
            assert report.issues == ["Database file does not exist"]

    def test_empty_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "store.db"
            path.touch()
            report = check_health(path)
            assert report.exists
            assert report.issues == ["Database file is empty"]

    def test_not_a_database(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "store.db"
            path.write_bytes(b"definitely not sqlite" * 100)
            report = check_health(path)
            assert not report.readable
            assert report.issues == ["Database file is not readable"]

    def test_store_without_cards(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "store.db"
            CardStore(path).close()
            report = check_health(path)
            assert report.readable
            assert report.integrity_ok
            assert report.issues == ["Database contains no cards"]
            assert "No Arkham cards found" in report.warnings

    def test_healthy_store(self, arkham_cards, eldritch_cards):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "store.db"
            with CardStore(path) as store:
                store.insert_cards(arkham_cards + eldritch_cards)

            report = check_health(path)
            assert report.healthy
            assert report.total_count == 9
            assert report.arkham_count == 3
            assert report.eldritch_count == 6
            assert report.warnings == []
            assert report.size_bytes > 0

    def test_report_to_dict_and_summary(self):
        report = HealthReport(exists=True, readable=True, size_bytes=2048, issues=["broken"])
        data = report.to_dict()
        assert data["size"] == "2.00 KB"
        assert data["healthy"] is False
        assert "Status:    UNHEALTHY" in report.summary()
        assert "Issue: broken" in report.summary()


class TestVerifyDatabase:
    """Test the open-store verification."""

    def test_empty_store_fails(self, store):
        assert not verify_database(store)

    def test_store_with_cards_passes(self, store):
        store.insert_card(UnifiedCard(GameType.ARKHAM, "1", neighborhood_id=1))
        assert verify_database(store)
