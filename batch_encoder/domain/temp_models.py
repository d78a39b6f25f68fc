"""
Defines the transient records of one batch run: the per-candidate
`EncodingTask`, the size estimation results, and the `RunSummary` report.

None of these outlive the run. The ledger is the only durable record of what
happened to a file.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml
from loguru import logger

from .encode_state import Disposition, EncodeEvent, EncodeState, transition
from .media import MediaFile


@dataclass(frozen=True)
class SampleMeasurement:
    """The encoded size of one short probe encode taken at `offset` seconds."""

    offset: int
    size: int


@dataclass(frozen=True)
class EstimationResult:
    """
    The outcome of size estimation for one candidate.

    Attributes:
        samples: The three probe measurements, in offset order.
        median_size: The middle sample size after sorting.
        estimated_size: The extrapolated size of a full encode, in bytes.
        threshold: The size the estimate has to stay below, in bytes.
    """

    samples: Tuple[SampleMeasurement, ...]
    median_size: int
    estimated_size: int
    threshold: float

    @property
    def proceed(self) -> bool:
        return self.estimated_size < self.threshold


class EncodingTask:
    """
    Tracks a single candidate through the encode pipeline.

    The task carries the probed source, the chosen quality parameter, the
    temporary output path and the current state. State changes go through
    `apply()`, which delegates to the pure transition function and keeps a
    history for logging and the run report.

    Attributes:
        media (MediaFile): The probed source file.
        cq (int): The constant-quality value used for samples and full encode.
        temp_output (Path): Where the full encode is written before replacement.
        final_output (Path): Where the encoded file ends up when it is kept.
        state (EncodeState): The current state.
        disposition (Optional[Disposition]): Set once a terminal state is reached.
        estimation (Optional[EstimationResult]): Filled after sampling.
        encoded_size (Optional[int]): Size of the full encode, when one exists.
        last_error_message (Optional[str]): A short description of the last failure.
        history (List[Tuple[EncodeState, EncodeEvent, EncodeState]]): Applied transitions.
    """

    def __init__(self, media: MediaFile, cq: int, temp_output: Path, final_output: Path):
        self.media = media
        self.cq = cq
        self.temp_output = temp_output
        self.final_output = final_output
        self.state: EncodeState = EncodeState.DISCOVERED
        self.disposition: Optional[Disposition] = None
        self.estimation: Optional[EstimationResult] = None
        self.encoded_size: Optional[int] = None
        self.last_error_message: Optional[str] = None
        self.history: List[Tuple[EncodeState, EncodeEvent, EncodeState]] = []
        self.started_at = datetime.now()

    @property
    def is_finished(self) -> bool:
        return self.state.is_terminal

    @property
    def replaces_original(self) -> bool:
        """Whether a kept encode overwrites the source file."""
        return self.final_output == self.media.path

    def apply(self, event: EncodeEvent) -> Optional[Disposition]:
        """
        Applies `event` to the current state.

        Returns:
            The ledger disposition if the task reached a terminal state.
        """
        previous = self.state
        self.state, disposition = transition(previous, event)
        self.history.append((previous, event, self.state))
        logger.trace(
            f"{self.media.filename}: {previous.value} --{event.value}--> {self.state.value}"
        )
        if disposition is not None:
            self.disposition = disposition
        return disposition

    def __repr__(self) -> str:
        return f"EncodingTask({self.media.filename!r}, state={self.state.value})"


@dataclass
class RunSummary:
    """
    Aggregated results of one batch run.

    Attributes:
        scanned: Number of video files seen by the scan.
        candidates: Number of files that passed every exclusion predicate.
        processed: Number of candidates that reached a terminal state.
        states: Count of candidates per terminal state.
        bytes_before: Total original size of the files replaced by their encode.
        bytes_after: Total encoded size of those files. Keep-original runs free
                     no space and leave both at zero.
        errors: Candidates abandoned because of an unexpected error.
        stopped_by_time_budget: Whether the time budget ended the run.
    """

    scanned: int = 0
    candidates: int = 0
    processed: int = 0
    states: Dict[str, int] = field(default_factory=dict)
    bytes_before: int = 0
    bytes_after: int = 0
    errors: int = 0
    stopped_by_time_budget: bool = False
    started_at: datetime = field(default_factory=datetime.now)

    @property
    def bytes_saved(self) -> int:
        return self.bytes_before - self.bytes_after

    def record(self, task: EncodingTask):
        """Counts a finished task."""
        self.processed += 1
        self.states[task.state.value] = self.states.get(task.state.value, 0) + 1
        if (
            task.state == EncodeState.REPLACED
            and task.replaces_original
            and task.encoded_size is not None
        ):
            self.bytes_before += task.media.size
            self.bytes_after += task.encoded_size

    def as_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": datetime.now().isoformat(),
            "scanned": self.scanned,
            "candidates": self.candidates,
            "processed": self.processed,
            "errors": self.errors,
            "stopped_by_time_budget": self.stopped_by_time_budget,
            "states": dict(sorted(self.states.items())),
            "bytes_before": self.bytes_before,
            "bytes_after": self.bytes_after,
            "bytes_saved": self.bytes_saved,
        }

    def dump(self, path: Path):
        """Writes the summary to `path` as YAML."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            yaml.dump(self.as_dict(), f, default_flow_style=False, sort_keys=False, allow_unicode=True)
