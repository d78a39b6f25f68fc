"""
The encoder adapter: builds and runs ffmpeg commands, and classifies their
outcome.

ffmpeg reports failures only through its exit status and free-form stderr, so
the classification of a result is isolated in `classify_encode_result()`,
which matches the diagnostic text against the known signatures configured in
`config/video.py`.
"""

import shlex
from enum import Enum
from pathlib import Path
from typing import List, Optional

from loguru import logger

from ..config.settings import EncoderSettings
from ..config.video import (
    FATAL_ERROR_SIGNATURES,
    MKV_REMUX_EXTENSIONS,
    MP4_FAMILY_EXTENSIONS,
    SUBTITLE_ERROR_SIGNATURES,
)
from ..utils.ffmpeg_utils import CommandResult, run_cmd


class EncodeOutcome(str, Enum):
    SUCCESS = "success"
    RETRY_WITHOUT_SUBTITLES = "retry_without_subtitles"
    FATAL = "fatal"


def _find_signature(diagnostics: str, signatures) -> Optional[str]:
    text = diagnostics.lower()
    return next((sig for sig in signatures if sig in text), None)


def classify_encode_result(
    result: CommandResult, subtitles_enabled: bool = True
) -> EncodeOutcome:
    """
    Classifies the result of an ffmpeg run.

    Rules, in order:
    1. Exit status 0 without a fatal signature is a success.
    2. A failure whose diagnostics carry a subtitle muxing signature earns a
       retry without subtitles, if subtitles were enabled for this run.
    3. Anything else (non-zero exit, timeout, fatal signature) is fatal.

    Args:
        result: The ffmpeg run to classify.
        subtitles_enabled: Whether subtitle streams were mapped in that run.

    Returns:
        The `EncodeOutcome`.
    """
    diagnostics = result.stderr or ""
    fatal_signature = _find_signature(diagnostics, FATAL_ERROR_SIGNATURES)
    if result.ok and fatal_signature is None:
        return EncodeOutcome.SUCCESS
    if not result.timed_out and subtitles_enabled:
        subtitle_signature = _find_signature(diagnostics, SUBTITLE_ERROR_SIGNATURES)
        if subtitle_signature is not None:
            logger.debug(f"Subtitle error signature found: '{subtitle_signature}'")
            return EncodeOutcome.RETRY_WITHOUT_SUBTITLES
    if fatal_signature is not None:
        logger.debug(f"Fatal error signature found: '{fatal_signature}'")
    return EncodeOutcome.FATAL


def output_extension(source: Path) -> str:
    """The container extension of the encoded output for `source`."""
    suffix = source.suffix.lower()
    return ".mkv" if suffix in MKV_REMUX_EXTENSIONS else suffix


class FfmpegEncoder:
    """
    Runs HEVC encodes with the parameters of an `EncoderSettings` instance.

    The same command builder serves the short sample encodes and the full
    encode, so a sample is encoded exactly like the final file would be.
    """

    def __init__(self, settings: EncoderSettings):
        self.settings = settings

    def build_command(
        self,
        input_path: Path,
        output_path: Path,
        cq: int,
        offset: Optional[int] = None,
        sample_duration: Optional[int] = None,
        subtitles: bool = True,
    ) -> List[str]:
        """Builds the complete ffmpeg argument list."""
        s = self.settings
        cmd_list = [s.ffmpeg_cmd, "-y"]
        if s.use_hwaccel:
            cmd_list.extend(["-hwaccel", s.hwaccel_type])
        if offset is not None:
            cmd_list.extend(["-ss", str(offset)])
        if sample_duration is not None:
            cmd_list.extend(["-t", str(sample_duration)])
        cmd_list.extend(["-i", str(input_path)])

        cmd_list.extend(["-map", "0:v", "-map", "0:a?"])
        if subtitles:
            cmd_list.extend(["-map", "0:s?"])
        cmd_list.extend(["-hide_banner", "-loglevel", "error", "-stats"])

        cmd_list.extend(["-c:v", s.video_codec, "-preset", s.preset])
        if s.video_codec.endswith("_nvenc"):
            cmd_list.extend(["-rc", "vbr", "-cq", str(cq)])
        else:
            cmd_list.extend(["-crf", str(cq)])
        cmd_list.extend(["-c:a", s.audio_codec, "-b:a", s.audio_bitrate])
        cmd_list.extend(["-c:s", "copy"] if subtitles else ["-sn"])

        if output_path.suffix.lower() in MP4_FAMILY_EXTENSIONS:
            cmd_list.extend(["-movflags", "+faststart", "-tag:v", "hvc1"])
        cmd_list.append(str(output_path))
        return cmd_list

    def encode(
        self,
        input_path: Path,
        output_path: Path,
        cq: int,
        offset: Optional[int] = None,
        sample_duration: Optional[int] = None,
        subtitles: bool = True,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        """
        Encodes `input_path` into `output_path`.

        When `offset` and `sample_duration` are given only that window is
        encoded. A failed or timed-out run never leaves a partial output file.

        Returns:
            The `CommandResult` of the ffmpeg run.
        """
        cmd_list = self.build_command(
            input_path, output_path, cq, offset, sample_duration, subtitles
        )
        logger.debug(f"ffmpeg command: {shlex.join(cmd_list)}")
        result = run_cmd(cmd_list, timeout=timeout)
        if not result.ok:
            output_path.unlink(missing_ok=True)
        return result
