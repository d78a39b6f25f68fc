"""
Provides the per-directory ledgers that record what happened to each file.

Every directory that contains processed videos gets two plain text files,
`encoded.list` and `failed.list`, holding one basename per line. A basename in
`encoded.list` needs no further action (it was re-encoded, or re-encoding was
judged not worthwhile); a basename in `failed.list` is never retried.

Writes are appends that are flushed to disk immediately, so an interrupted run
keeps every disposition recorded before the interruption and the next run
skips those files during candidate selection. Lines are not deduplicated on
write; readers treat the files as sets.

All ledger access in the application goes through this module.
"""

import os
from pathlib import Path
from typing import Dict, Set

from loguru import logger

from ..config.common import ENCODED_LEDGER_NAME, FAILED_LEDGER_NAME
from ..domain.encode_state import Disposition

LEDGER_FILE_NAMES: Dict[Disposition, str] = {
    Disposition.ENCODED: ENCODED_LEDGER_NAME,
    Disposition.FAILED: FAILED_LEDGER_NAME,
}


class Ledger:
    """
    The two ledger files of a single directory.

    Membership sets are read from disk on first use and kept in sync with
    every append made through this instance.
    """

    def __init__(self, directory: Path):
        self.directory = directory
        self._entries: Dict[Disposition, Set[str]] = {}

    def path_for(self, kind: Disposition) -> Path:
        return self.directory / LEDGER_FILE_NAMES[kind]

    def _load(self, kind: Disposition) -> Set[str]:
        if kind in self._entries:
            return self._entries[kind]
        entries: Set[str] = set()
        path = self.path_for(kind)
        if path.is_file():
            with path.open("r", encoding="utf-8", errors="surrogateescape") as f:
                for line in f:
                    name = line.rstrip("\r\n")
                    if name:
                        entries.add(name)
            logger.trace(f"Loaded {len(entries)} entries from {path}")
        self._entries[kind] = entries
        return entries

    def contains(self, basename: str, kind: Disposition) -> bool:
        return basename in self._load(kind)

    def entries(self, kind: Disposition) -> Set[str]:
        return set(self._load(kind))

    def append(self, basename: str, kind: Disposition):
        """
        Appends `basename` to the ledger of the given kind.

        The file is created if needed. The write is flushed and synced before
        returning.

        Raises:
            ValueError: If the basename contains a line break or a path separator.
        """
        if not basename or "\n" in basename or "\r" in basename or os.sep in basename:
            raise ValueError(f"Not a storable basename: {basename!r}")
        entries = self._load(kind)
        path = self.path_for(kind)
        # A hand-edited file may lack the final newline.
        needs_newline = path.is_file() and path.stat().st_size > 0 and not _ends_with_newline(path)
        with path.open("a", encoding="utf-8", errors="surrogateescape") as f:
            if needs_newline:
                f.write("\n")
            f.write(basename + "\n")
            f.flush()
            os.fsync(f.fileno())
        entries.add(basename)
        logger.debug(f"Recorded '{basename}' in {path}")


def _ends_with_newline(path: Path) -> bool:
    with path.open("rb") as f:
        f.seek(-1, os.SEEK_END)
        return f.read(1) == b"\n"


class LedgerStore:
    """
    Mediates access to the ledgers of every directory touched by a run.
    """

    def __init__(self):
        self._ledgers: Dict[Path, Ledger] = {}

    def ledger_for(self, directory: Path) -> Ledger:
        key = directory.resolve()
        if key not in self._ledgers:
            self._ledgers[key] = Ledger(key)
        return self._ledgers[key]

    def contains(self, directory: Path, basename: str, kind: Disposition) -> bool:
        return self.ledger_for(directory).contains(basename, kind)

    def record(self, directory: Path, basename: str, kind: Disposition):
        self.ledger_for(directory).append(basename, kind)

    def mark_encoded(self, directory: Path, basename: str):
        self.record(directory, basename, Disposition.ENCODED)

    def mark_failed(self, directory: Path, basename: str):
        self.record(directory, basename, Disposition.FAILED)

    def is_resolved(self, directory: Path, basename: str) -> bool:
        """True if the basename is in either ledger of `directory`."""
        ledger = self.ledger_for(directory)
        return ledger.contains(basename, Disposition.ENCODED) or ledger.contains(
            basename, Disposition.FAILED
        )
