"""
Drives one candidate from discovery to its final ledger entry.

The orchestrator owns every side effect of the per-candidate pipeline: sample
encodes, the full encode and its retry, duration validation, the replacement
of the original, and the ledger write. Which step runs next is decided by the
pure transition function in `domain/encode_state.py`; each step here performs
its work and reports the resulting event.

Expected failures (a failed sample, a failed encode, a duration mismatch, an
output that is not smaller) are turned into events and end in a terminal
state with a ledger entry. Anything else propagates to the batch loop after
the temporary files have been removed.
"""

import os
import shutil
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Optional

from loguru import logger

from ..config.common import TEMP_FILE_PREFIX, TEMP_SAMPLE_PREFIX
from ..config.settings import EncoderSettings
from ..config.video import KEEP_ORIGINAL_SUFFIX
from ..domain.encode_state import Disposition, EncodeEvent, EncodeState
from ..domain.exceptions import (
    DurationMismatch,
    FullEncodeFailure,
    ProbeError,
    ReplacementSkipped,
    SampleEncodeFailure,
)
from ..domain.media import MediaFile
from ..domain.temp_models import EncodingTask
from ..utils.format_utils import format_timedelta, formatted_size, reduction_percent
from .encoder_service import EncodeOutcome, FfmpegEncoder, classify_encode_result, output_extension
from .estimation_service import SizeEstimator, is_low_bitrate, select_cq, should_skip
from .ledger_service import LedgerStore
from .logging_service import ErrorLog
from .probe_service import MediaProber


def temp_output_path(media: MediaFile) -> Path:
    return media.directory / f"{TEMP_FILE_PREFIX}{media.path.stem}{output_extension(media.path)}"


def sample_output_path(media: MediaFile) -> Path:
    return media.directory / f"{TEMP_SAMPLE_PREFIX}{media.path.stem}{output_extension(media.path)}"


def keep_original_output_path(media: MediaFile) -> Path:
    """Where the encoded file is placed when the original is kept."""
    return media.directory / f"{media.path.stem}{KEEP_ORIGINAL_SUFFIX}{output_extension(media.path)}"


class EncodeOrchestrator:
    """
    Runs the per-candidate state machine.

    Attributes:
        settings (EncoderSettings): The run configuration.
        ledgers (LedgerStore): Where dispositions are recorded.
        prober (MediaProber): Used to validate the encoded output.
        encoder (FfmpegEncoder): Runs the full encode.
        estimator (SizeEstimator): Runs the sample encodes.
        error_log (Optional[ErrorLog]): Receives ffmpeg diagnostics of failures.
    """

    def __init__(
        self,
        settings: EncoderSettings,
        ledgers: LedgerStore,
        prober: MediaProber,
        encoder: FfmpegEncoder,
        estimator: Optional[SizeEstimator] = None,
        error_log: Optional[ErrorLog] = None,
    ):
        self.settings = settings
        self.ledgers = ledgers
        self.prober = prober
        self.encoder = encoder
        self.error_log = error_log
        self.estimator = estimator or SizeEstimator(settings, encoder, error_log)
        self._steps: Dict[EncodeState, Callable[[EncodingTask], EncodeEvent]] = {
            EncodeState.DISCOVERED: self._check_bitrate,
            EncodeState.SAMPLING: self._estimate,
            EncodeState.FULL_ENCODING: self._full_encode,
            EncodeState.ENCODE_SUCCEEDED: lambda task: EncodeEvent.VALIDATION_STARTED,
            EncodeState.DURATION_VALIDATING: self._validate_duration,
            EncodeState.DURATION_VALIDATED: lambda task: EncodeEvent.COMPARISON_STARTED,
            EncodeState.SIZE_COMPARING: self._compare_and_replace,
        }

    def create_task(self, media: MediaFile) -> EncodingTask:
        if self.settings.keep_original:
            final_output = keep_original_output_path(media)
        else:
            final_output = media.path
        return EncodingTask(
            media=media,
            cq=select_cq(media.width, self.settings),
            temp_output=temp_output_path(media),
            final_output=final_output,
        )

    def process(self, media: MediaFile) -> EncodingTask:
        """
        Runs `media` through the pipeline until it reaches a terminal state.

        Returns:
            The finished `EncodingTask`; its disposition is already recorded.
        """
        task = self.create_task(media)
        try:
            while not task.is_finished:
                event = self._steps[task.state](task)
                disposition = task.apply(event)
                if disposition is not None:
                    self._record(task, disposition)
        finally:
            task.temp_output.unlink(missing_ok=True)
            sample_output_path(media).unlink(missing_ok=True)
        return task

    def _record(self, task: EncodingTask, disposition: Disposition):
        media = task.media
        self.ledgers.record(media.directory, media.filename, disposition)
        if task.state == EncodeState.REPLACED and self.settings.keep_original:
            # The sibling output must not become a candidate on the next run.
            self.ledgers.record(media.directory, task.final_output.name, Disposition.ENCODED)
        elapsed = format_timedelta(datetime.now() - task.started_at)
        logger.debug(
            f"{media.filename}: {task.state.value} -> {disposition.value}.list ({elapsed})"
        )

    # --- Steps ---

    def _check_bitrate(self, task: EncodingTask) -> EncodeEvent:
        media = task.media
        if is_low_bitrate(media, self.settings):
            logger.info(
                f"Bitrate already low ({formatted_size(media.byte_rate)}/s < "
                f"{formatted_size(self.settings.min_byte_rate)}/s), skipping"
            )
            return EncodeEvent.LOW_BITRATE
        return EncodeEvent.BITRATE_OK

    def _estimate(self, task: EncodingTask) -> EncodeEvent:
        media = task.media
        logger.info(f"Encoding samples ({self.settings.sample_duration}s x 3, CQ {task.cq})")
        try:
            task.estimation = self.estimator.estimate(media, task.cq, sample_output_path(media))
        except SampleEncodeFailure as e:
            task.last_error_message = str(e)
            logger.error(f"Test encoding failed for {media.filename}: {e}")
            return EncodeEvent.SAMPLE_FAILED

        if should_skip(task.estimation.estimated_size, media.size, self.settings.min_size_ratio):
            logger.info(
                f"Estimated size >= {self.settings.min_size_ratio:.0%} of original, skipping"
            )
            return EncodeEvent.INSUFFICIENT_BENEFIT
        return EncodeEvent.BENEFIT_PROJECTED

    def _full_encode(self, task: EncodingTask) -> EncodeEvent:
        logger.info(f"Full encoding ({format_timedelta(task.media.duration)})")
        try:
            self._run_full_encode(task)
        except FullEncodeFailure as e:
            task.last_error_message = str(e)
            logger.error(f"Full encoding failed for {task.media.filename}: {e}")
            return EncodeEvent.ENCODE_FAILED
        return EncodeEvent.ENCODE_SUCCEEDED

    def _run_full_encode(self, task: EncodingTask):
        """
        Runs the full encode, retrying once without subtitles on a subtitle
        muxing error.

        Raises:
            FullEncodeFailure: On any other failure, or if the retry fails too.
        """
        media = task.media
        subtitles = True
        while True:
            result = self.encoder.encode(
                media.path,
                task.temp_output,
                task.cq,
                subtitles=subtitles,
                timeout=self.settings.full_encode_timeout,
            )
            outcome = classify_encode_result(result, subtitles_enabled=subtitles)
            if outcome == EncodeOutcome.SUCCESS:
                if not task.temp_output.is_file():
                    raise FullEncodeFailure("ffmpeg reported success but the output file is missing")
                return

            task.temp_output.unlink(missing_ok=True)
            if outcome == EncodeOutcome.RETRY_WITHOUT_SUBTITLES:
                logger.warning(
                    f"Subtitle error while encoding {media.filename}, retrying without subtitles"
                )
                subtitles = False
                continue

            if self.error_log:
                self.error_log.write(
                    f"Full encode failed: {media.path} (rc={result.returncode}, "
                    f"timed_out={result.timed_out}, subtitles={subtitles})",
                    result.stderr.strip(),
                )
            if result.timed_out:
                raise FullEncodeFailure(
                    f"timed out after {format_timedelta(self.settings.full_encode_timeout)}"
                )
            raise FullEncodeFailure(f"ffmpeg exited with rc={result.returncode}")

    def _validate_duration(self, task: EncodingTask) -> EncodeEvent:
        try:
            self._check_duration(task)
        except DurationMismatch as e:
            task.last_error_message = str(e)
            logger.error(f"Duration check failed for {task.media.filename}: {e}")
            task.temp_output.unlink(missing_ok=True)
            return EncodeEvent.DURATION_MISMATCH
        return EncodeEvent.DURATION_MATCHED

    def _check_duration(self, task: EncodingTask):
        """
        Raises:
            DurationMismatch: If the output cannot be probed or its duration
                              is off by more than the tolerance.
        """
        try:
            new_duration = self.prober.probe_duration(task.temp_output)
        except ProbeError as e:
            raise DurationMismatch(f"cannot read duration of the encoded output: {e}") from e
        difference = abs(task.media.duration - new_duration)
        if difference > self.settings.duration_tolerance:
            raise DurationMismatch(
                f"original {task.media.duration}s vs encoded {new_duration}s "
                f"(tolerance {self.settings.duration_tolerance}s)"
            )
        logger.debug(f"Duration OK: {task.media.duration}s vs {new_duration}s")

    def _compare_and_replace(self, task: EncodingTask) -> EncodeEvent:
        try:
            self._replace_original(task)
        except ReplacementSkipped as e:
            logger.warning(f"{e}, skipping replacement")
            task.temp_output.unlink(missing_ok=True)
            return EncodeEvent.NOT_SMALLER
        media = task.media
        logger.success(
            f"Size reduced: {formatted_size(media.size)} -> {formatted_size(task.encoded_size)} "
            f"| -{reduction_percent(media.size, task.encoded_size)}%"
        )
        return EncodeEvent.SMALLER

    def _replace_original(self, task: EncodingTask):
        """
        Puts the encoded output in place if it is strictly smaller.

        Raises:
            ReplacementSkipped: If the output is not smaller than the original.
        """
        media = task.media
        task.encoded_size = task.temp_output.stat().st_size
        if task.encoded_size >= media.size:
            raise ReplacementSkipped(
                f"Encoded file is not smaller ({formatted_size(task.encoded_size)} "
                f">= {formatted_size(media.size)})"
            )

        if self.settings.keep_original:
            os.replace(task.temp_output, task.final_output)
            logger.info(f"Saved as {task.final_output}")
            return

        if self.settings.backup_dir:
            backup_path = self._backup_path(media)
            backup_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(media.path, backup_path)
            logger.info(f"Backed up original to {backup_path}")
        os.replace(task.temp_output, media.path)
        logger.info(f"Replaced original {media.filename}")

    def _backup_path(self, media: MediaFile) -> Path:
        try:
            relative = media.path.relative_to(self.settings.root)
        except ValueError:
            relative = Path(media.filename)
        return self.settings.backup_dir / relative
