"""
This module provides the plain text error log for ffmpeg diagnostics.

Console logging goes through loguru. When an error log directory is
configured, the full diagnostic output of every failed sample or full encode
is additionally appended to a text file there, where it is easier to read than
in the scrolled-away console output.
"""

from datetime import datetime
from pathlib import Path
from typing import Optional

from loguru import logger

from ..config.common import ERROR_LOG_FILE_NAME


class ErrorLog:
    """
    Appends human-readable error entries to a text file.

    Each entry is timestamped and followed by a separator line, making the
    file a chronological record of the failures of all runs.
    """

    # A decorative separator line used between entries.
    linesep_marker: str = "=" * 50

    def __init__(self, error_log_dir: Path, filename: str = ERROR_LOG_FILE_NAME):
        """
        Args:
            error_log_dir: The directory where the error log file will be stored.
                           It is created if it does not exist.
            filename: The name of the error log file.
        """
        self.log_dir = error_log_dir.resolve()
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.log_file_path = self.log_dir / filename

    @classmethod
    def from_dir(cls, error_log_dir: Optional[Path]) -> Optional["ErrorLog"]:
        return cls(error_log_dir) if error_log_dir else None

    def write(self, *error_messages: str):
        """
        Appends one entry made of the given message parts.

        If the file cannot be written, the messages are sent to the console
        logger instead so they are not lost.
        """
        if not error_messages:
            return

        content_to_write = (
            f"[{datetime.now().isoformat(timespec='seconds')}]\n"
            + "\n".join(error_messages)
            + "\n"
            + self.linesep_marker
            + "\n"
        )

        try:
            with self.log_file_path.open("a", encoding="utf-8") as f:
                f.write(content_to_write)
        except OSError as e:
            logger.error(f"Failed to write to error log {self.log_file_path}: {e}")
            for msg in error_messages:
                logger.error(f"  - {msg}")
