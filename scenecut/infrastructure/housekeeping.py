import os
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

class HousekeepingService:
    """Removes output files orphaned by interrupted extractions."""

    def cleanup_temp_files(self, directory: Path) -> int:
        """Recursively removes all .tmp files in the directory. Returns the count removed."""
        removed = 0
        if not directory.exists():
            return removed
        for root, dirs, files in os.walk(directory):
            for file in files:
                if file.endswith(".tmp"):
                    try:
                        (Path(root) / file).unlink()
                        removed += 1
                    except OSError as e:
                        logger.warning(f"Failed to remove stale temp file {file}: {e}")
        if removed:
            logger.info(f"HOUSEKEEPING: removed {removed} stale temp file(s) from {directory}")
        return removed
