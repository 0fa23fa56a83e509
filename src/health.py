"""Store health check and integrity verification."""

import logging
import os
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from src.card_store import CardStore
from src.models import GameType

logger = logging.getLogger(__name__)


def format_size(bytes_size: float) -> str:
    """Format bytes as human-readable size."""
    if bytes_size < 1024:
        return f"{int(bytes_size)} B"
    if bytes_size < 1024 * 1024:
        return f"{bytes_size / 1024:.2f} KB"
    return f"{bytes_size / (1024 * 1024):.2f} MB"


@dataclass
class HealthReport:
    """Structured result of a store health check."""

    exists: bool = False
    readable: bool = False
    size_bytes: int = 0
    total_count: int = 0
    arkham_count: int = 0
    eldritch_count: int = 0
    integrity_ok: bool = False
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return not self.issues

    def summary(self) -> str:
        lines = [
            "Database Health",
            "-" * 40,
            f"  Exists:    {'Yes' if self.exists else 'No'}",
            f"  Readable:  {'Yes' if self.readable else 'No'}",
            f"  Size:      {format_size(self.size_bytes)}",
            f"  Cards:     {self.total_count:,} (Arkham {self.arkham_count:,}, Eldritch {self.eldritch_count:,})",
            f"  Integrity: {'OK' if self.integrity_ok else 'FAILED'}",
            f"  Status:    {'HEALTHY' if self.healthy else 'UNHEALTHY'}",
        ]
        for issue in self.issues:
            lines.append(f"  Issue: {issue}")
        for warning in self.warnings:
            lines.append(f"  Warning: {warning}")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "exists": self.exists,
            "readable": self.readable,
            "size_bytes": self.size_bytes,
            "size": format_size(self.size_bytes),
            "total_count": self.total_count,
            "arkham_count": self.arkham_count,
            "eldritch_count": self.eldritch_count,
            "integrity_ok": self.integrity_ok,
            "healthy": self.healthy,
            "issues": self.issues,
            "warnings": self.warnings,
        }


def _count(conn: sqlite3.Connection, game_type: GameType | None = None) -> int:
    if game_type is None:
        row = conn.execute("SELECT COUNT(*) FROM unified_cards").fetchone()
    else:
        row = conn.execute(
            "SELECT COUNT(*) FROM unified_cards WHERE game_type = ?", (game_type.value,)
        ).fetchone()
    return row[0] if row else 0


def check_health(db_path: Path) -> HealthReport:
    """Inspect the store file without modifying it.

    Args:
        db_path: Path to the store

    Returns:
        HealthReport; ``healthy`` is False whenever ``issues`` is non-empty
    """
    report = HealthReport()
    if not db_path.exists():
        report.issues.append("Database file does not exist")
        return report
    report.exists = True

    # Committed pages may still sit in the write-ahead log
    wal_path = db_path.with_name(db_path.name + "-wal")
    report.size_bytes = db_path.stat().st_size + (wal_path.stat().st_size if wal_path.exists() else 0)
    if report.size_bytes == 0:
        report.issues.append("Database file is empty")
        return report

    if not os.access(db_path, os.R_OK):
        report.issues.append("Database file is not readable")
        return report

    try:
        conn = sqlite3.connect(f"{db_path.resolve().as_uri()}?mode=ro", uri=True)
        try:
            report.total_count = _count(conn)
            report.arkham_count = _count(conn, GameType.ARKHAM)
            report.eldritch_count = _count(conn, GameType.ELDRITCH)
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.warning("Health check could not read %s: %s", db_path, e)
        report.issues.append("Database file is not readable")
        return report
    report.readable = True

    report.integrity_ok = report.total_count == report.arkham_count + report.eldritch_count
    if not report.integrity_ok:
        report.issues.append(
            f"Card count mismatch: total {report.total_count} != "
            f"Arkham {report.arkham_count} + Eldritch {report.eldritch_count}"
        )
    if report.total_count == 0:
        report.issues.append("Database contains no cards")
    if report.arkham_count == 0:
        report.warnings.append("No Arkham cards found")
    if report.eldritch_count == 0:
        report.warnings.append("No Eldritch cards found")

    logger.debug("Health check of %s: %d issues", db_path, len(report.issues))
    return report


def verify_database(store: CardStore) -> bool:
    """True if the open store has cards and per-game counts add up."""
    total = store.get_card_count()
    if total == 0:
        return False
    return total == store.get_card_count(GameType.ARKHAM) + store.get_card_count(GameType.ELDRITCH)
