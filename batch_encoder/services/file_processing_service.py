"""
Provides the discovery and filtering of candidate files.

This module contains the logic of the first phase of the pipeline, where the
application scans the target directory and decides which files are worth
looking at. The services here are responsible for:
- Finding all video files, either in the top level of the target directory or
  depth-first through all subdirectories.
- Applying the exclusion predicates, in a fixed order, and recording why each
  excluded file was dropped.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set, Tuple

from loguru import logger

from ..config.common import ENCODED_LEDGER_NAME, FAILED_LEDGER_NAME, TEMP_FILE_PREFIX
from ..config.settings import EncoderSettings
from ..config.video import VIDEO_EXTENSIONS
from ..domain.encode_state import Disposition
from ..domain.exceptions import ProbeError
from ..domain.media import MediaFile
from ..utils.format_utils import contains_any_extensions, formatted_size
from .ledger_service import LedgerStore
from .probe_service import MediaProber


class ExclusionReason(str, Enum):
    INCLUDE_PATTERN = "include_pattern"
    TOO_SMALL = "too_small"
    ALREADY_ENCODED = "already_encoded"
    PREVIOUSLY_FAILED = "previously_failed"
    PROBE_FAILED = "probe_failed"
    CODEC_EXCLUDED = "codec_excluded"
    NO_DURATION = "no_duration"


@dataclass
class CandidateScan:
    """
    The result of a scan.

    Attributes:
        candidates: Probed files that passed every predicate, in walk order.
        scanned: Number of video files seen.
        excluded: Number of excluded files per reason.
    """

    candidates: List[MediaFile] = field(default_factory=list)
    scanned: int = 0
    excluded: Dict[ExclusionReason, int] = field(default_factory=dict)

    def count_exclusion(self, reason: ExclusionReason):
        self.excluded[reason] = self.excluded.get(reason, 0) + 1


def _is_video_file(entry: os.DirEntry) -> bool:
    if entry.name.startswith(TEMP_FILE_PREFIX) or entry.name in (ENCODED_LEDGER_NAME, FAILED_LEDGER_NAME):
        return False
    try:
        is_file = entry.is_file()
    except OSError:
        return False
    return is_file and contains_any_extensions(Path(entry.name), VIDEO_EXTENSIONS)


def discover_video_files(
    root: Path, recursive: bool = False, skip_dir: Optional[Path] = None
) -> Iterator[Path]:
    """
    Yields the video files under `root`.

    Entries of each directory are visited in name order. With `recursive`,
    subdirectories are descended into as they are encountered (depth-first);
    otherwise only the top level is listed. Symbolic links to directories are
    not followed. The pipeline's own temporary files are never yielded, and
    `skip_dir` (the backup directory, already resolved) is never descended into.
    """
    try:
        with os.scandir(root) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError as e:
        logger.warning(f"Cannot list directory {root}: {e}")
        return

    for entry in entries:
        if _is_video_file(entry):
            yield Path(entry.path)
        elif recursive:
            try:
                is_dir = entry.is_dir(follow_symlinks=False)
            except OSError:
                continue
            if not is_dir:
                continue
            subdir = Path(entry.path)
            if skip_dir is not None and subdir.resolve() == skip_dir:
                logger.debug(f"Not descending into the backup directory {subdir}")
                continue
            yield from discover_video_files(subdir, recursive=True, skip_dir=skip_dir)


class CandidateFilter:
    """
    Applies the exclusion predicates to discovered files.

    Predicates are evaluated in this order, stopping at the first match:
    include pattern, minimum size, encoded ledger, failed ledger, probe
    failure / missing video codec, disallowed codec, missing duration.
    The cheap checks come first so that ffprobe only runs on files that could
    still become candidates.
    """

    def __init__(self, settings: EncoderSettings, ledgers: LedgerStore, prober: MediaProber):
        self.settings = settings
        self.ledgers = ledgers
        self.prober = prober
        self._include_regex = settings.include_regex
        self._disallowed_codecs = settings.disallowed_codecs

    def evaluate(self, path: Path) -> Tuple[Optional[ExclusionReason], Optional[MediaFile]]:
        """
        Evaluates the predicates for one file.

        Returns:
            `(None, media)` for a candidate, or `(reason, media_or_None)` for
            an excluded file.
        """
        if self._include_regex is not None and not self._include_regex.search(str(path)):
            return ExclusionReason.INCLUDE_PATTERN, None

        try:
            size = path.stat().st_size
        except OSError as e:
            logger.debug(f"Cannot stat {path}: {e}")
            return ExclusionReason.PROBE_FAILED, None
        if self.settings.min_size_bytes > 0 and size < self.settings.min_size_bytes:
            return ExclusionReason.TOO_SMALL, None

        directory, basename = path.parent, path.name
        if self.ledgers.contains(directory, basename, Disposition.ENCODED):
            return ExclusionReason.ALREADY_ENCODED, None
        if self.ledgers.contains(directory, basename, Disposition.FAILED):
            return ExclusionReason.PREVIOUSLY_FAILED, None

        try:
            media = self.prober.probe(path)
        except ProbeError as e:
            logger.warning(f"Skipping unreadable file {basename}: {e}")
            return ExclusionReason.PROBE_FAILED, None
        if not media.vcodec:
            logger.warning(f"Skipping {basename}: no video codec reported")
            return ExclusionReason.PROBE_FAILED, media

        if media.vcodec in self._disallowed_codecs:
            logger.debug(f"Skipping {basename}: already {media.vcodec}")
            return ExclusionReason.CODEC_EXCLUDED, media

        if media.duration <= 0:
            logger.debug(f"Skipping {basename}: no valid duration")
            return ExclusionReason.NO_DURATION, media

        return None, media

    def scan(self) -> CandidateScan:
        """
        Discovers and filters all files under the configured root.

        Returns:
            The `CandidateScan` with the ordered candidate queue.
        """
        scan = CandidateScan()
        seen: Set[Path] = set()
        backup_dir = self.settings.backup_dir.resolve() if self.settings.backup_dir else None
        for path in discover_video_files(self.settings.root, self.settings.recursive, backup_dir):
            resolved = path.resolve()
            if resolved in seen:
                continue
            seen.add(resolved)
            scan.scanned += 1

            reason, media = self.evaluate(path)
            if reason is not None:
                scan.count_exclusion(reason)
                continue
            scan.candidates.append(media)
            logger.trace(
                f"Candidate: {media.filename} ({formatted_size(media.size)}, {media.vcodec})"
            )

        logger.info(
            f"{scan.scanned} video files found / {len(scan.candidates)} will be encoded"
        )
        if scan.excluded:
            summary = ", ".join(f"{reason.value}={count}" for reason, count in scan.excluded.items())
            logger.debug(f"Excluded: {summary}")
        return scan
