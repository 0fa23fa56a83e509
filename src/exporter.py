"""Copy the store out of the data directory."""

import logging
from datetime import datetime
from pathlib import Path

from src.card_store import StoreHandle

logger = logging.getLogger(__name__)

EXPORT_DIR_NAME = "database_exports"
EXPORT_PREFIX = "cthulhu_companion_"


class DatabaseExporter:
    """Writes consistent copies of the store."""

    def __init__(self, handle: StoreHandle, data_dir: Path):
        """Initialize exporter.

        Args:
            handle: Handle of the store to export
            data_dir: Data directory; timestamped exports go under database_exports/
        """
        self._handle = handle
        self.export_dir = data_dir / EXPORT_DIR_NAME

    def export_to_path(self, dest_path: Path) -> bool:
        """Export the store to ``dest_path``, creating parent directories.

        Returns:
            True on success
        """
        try:
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            if dest_path.exists():
                dest_path.unlink()
        except OSError:
            logger.error("Cannot prepare export destination %s", dest_path, exc_info=True)
            return False

        if not self._handle.get().backup_to(dest_path):
            return False
        logger.info("Exported store to %s", dest_path)
        return True

    def export_timestamped(self) -> Path | None:
        """Export to database_exports/cthulhu_companion_<YYYYmmdd_HHMMSS>.db.

        Returns:
            Path of the export, or None on failure
        """
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        dest = self.export_dir / f"{EXPORT_PREFIX}{stamp}.db"
        return dest if self.export_to_path(dest) else None

    def get_database_size(self) -> int:
        path = self._handle.db_path
        return path.stat().st_size if path.exists() else 0

    def list_exports(self) -> list[Path]:
        """Timestamped exports, newest first."""
        if not self.export_dir.exists():
            return []
        return sorted(self.export_dir.glob(f"{EXPORT_PREFIX}*.db"), reverse=True)
