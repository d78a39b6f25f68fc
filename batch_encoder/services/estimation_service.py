"""
Estimates the size of a full re-encode from three short sample encodes.

A full HEVC encode of a feature-length file can take a long time on a shared
GPU, so before committing to one the estimator:

1. Skips files whose average byte rate is already below the configured
   minimum (the fast path); there is nothing left to gain on them.
2. Encodes three short windows at a quarter, half and three quarters of the
   duration, with the same codec and quality as the full encode.
3. Takes the median sample size, extrapolates it to the whole duration and
   compares the result with `min_size_ratio * original_size`.

The median keeps a single unusual window (a black scene, the credits) from
swinging the estimate.
"""

from pathlib import Path
from typing import Optional, Sequence, Tuple

from loguru import logger

from ..config.settings import EncoderSettings
from ..domain.exceptions import SampleEncodeFailure
from ..domain.media import MediaFile
from ..domain.temp_models import EstimationResult, SampleMeasurement
from ..utils.format_utils import formatted_size
from .encoder_service import EncodeOutcome, FfmpegEncoder, classify_encode_result
from .logging_service import ErrorLog


def select_cq(width: Optional[int], settings: EncoderSettings) -> int:
    """
    Chooses the constant-quality value for a source of the given width.

    Returns:
        The HD tier value for widths at or above the resolution threshold,
        the SD tier value below it, and the default value when the width is
        unknown.
    """
    if not width:
        return settings.default_cq
    if width >= settings.resolution_threshold:
        return settings.hd_cq
    return settings.sd_cq


def is_low_bitrate(media: MediaFile, settings: EncoderSettings) -> bool:
    """True if the source is too sparse to be worth sampling. A zero minimum disables the check."""
    if settings.min_bitrate_kbps <= 0 or media.duration <= 0:
        return False
    return media.byte_rate < settings.min_byte_rate


def sample_offsets(duration: int) -> Tuple[int, int, int]:
    """The three sample offsets, in whole seconds, for a file of `duration` seconds."""
    return duration // 4, duration // 2, 3 * duration // 4


def median_size(sizes: Sequence[int]) -> int:
    """
    The middle value of the sample sizes after sorting.

    >>> median_size([10, 4, 7])
    7
    """
    if not sizes:
        raise ValueError("median_size() needs at least one sample")
    ordered = sorted(sizes)
    return ordered[len(ordered) // 2]


def extrapolate_size(sample_size: int, total_duration: int, sample_duration: int) -> int:
    """Scales a sample size up to the whole duration, assuming a uniform byte rate."""
    return sample_size * total_duration // sample_duration


def size_threshold(original_size: int, min_size_ratio: float) -> float:
    return min_size_ratio * original_size


def should_skip(estimated_size: int, original_size: int, min_size_ratio: float) -> bool:
    """True if the estimate does not promise enough reduction (estimate >= threshold)."""
    return estimated_size >= size_threshold(original_size, min_size_ratio)


class SizeEstimator:
    """
    Runs the sample encodes for one candidate and builds its `EstimationResult`.
    """

    def __init__(
        self,
        settings: EncoderSettings,
        encoder: FfmpegEncoder,
        error_log: Optional[ErrorLog] = None,
    ):
        self.settings = settings
        self.encoder = encoder
        self.error_log = error_log

    def measure_sample(
        self, media: MediaFile, cq: int, offset: int, sample_path: Path
    ) -> SampleMeasurement:
        """
        Encodes one window and measures the output.

        Raises:
            SampleEncodeFailure: On any ffmpeg failure, timeout or empty output.
        """
        try:
            result = self.encoder.encode(
                media.path,
                sample_path,
                cq,
                offset=offset,
                sample_duration=self.settings.sample_duration,
                subtitles=False,
                timeout=self.settings.sample_timeout,
            )
            if classify_encode_result(result, subtitles_enabled=False) != EncodeOutcome.SUCCESS:
                if self.error_log:
                    self.error_log.write(
                        f"Sample encode failed: {media.path} (offset {offset}s, rc={result.returncode})",
                        result.stderr.strip(),
                    )
                raise SampleEncodeFailure(
                    f"Sample encode at {offset}s failed (rc={result.returncode}, timed_out={result.timed_out})"
                )
            if not sample_path.is_file():
                raise SampleEncodeFailure(f"Sample encode at {offset}s produced no output")
            size = sample_path.stat().st_size
            if size <= 0:
                raise SampleEncodeFailure(f"Sample encode at {offset}s produced an empty file")
            logger.debug(f"Sample at {offset}s: {formatted_size(size)}")
            return SampleMeasurement(offset=offset, size=size)
        finally:
            sample_path.unlink(missing_ok=True)

    def estimate(self, media: MediaFile, cq: int, sample_path: Path) -> EstimationResult:
        """
        Estimates the full re-encode size of `media`.

        Args:
            media: The candidate.
            cq: The quality value the full encode will use.
            sample_path: Scratch path for the sample outputs; removed afterwards.

        Returns:
            The `EstimationResult`.

        Raises:
            SampleEncodeFailure: If any of the three samples fails. No partial
                                 estimate is produced.
        """
        samples = tuple(
            self.measure_sample(media, cq, offset, sample_path)
            for offset in sample_offsets(media.duration)
        )
        median = median_size([sample.size for sample in samples])
        estimated = extrapolate_size(median, media.duration, self.settings.sample_duration)
        threshold = size_threshold(media.size, self.settings.min_size_ratio)
        result = EstimationResult(
            samples=samples,
            median_size=median,
            estimated_size=estimated,
            threshold=threshold,
        )
        logger.info(
            f"Estimated size: {formatted_size(estimated)} "
            f"(threshold {formatted_size(threshold)}, median sample {formatted_size(median)})"
        )
        return result
