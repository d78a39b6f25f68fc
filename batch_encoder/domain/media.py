import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger


def parse_duration(duration_str: str) -> float:
    """
    Parses a duration string into total seconds.

    This function handles the two duration formats ffprobe produces:
    1. A floating-point number of seconds (e.g., "3600.5").
    2. A timecode in the format 'HH:MM:SS.sss' (e.g., "01:00:00.500").
       Hours are optional in the timecode format.

    Args:
        duration_str: The string containing the duration to parse.

    Returns:
        The total duration in seconds as a float. Returns 0.0 if parsing fails.
    """
    try:
        return float(duration_str)
    except (TypeError, ValueError):
        pattern = r"(?:(\d{1,2}):)?(\d{1,2}):(\d{1,2}(?:\.\d+)?)"
        match = re.fullmatch(pattern, str(duration_str).strip())
        if match:
            hours_str, minutes_str, seconds_str = match.groups()
            hours = int(hours_str) if hours_str else 0
            minutes = int(minutes_str)
            seconds = float(seconds_str)
            return float(hours * 3600 + minutes * 60 + seconds)
        logger.warning(f"Could not parse duration string: {duration_str}")
    return 0.0


def _optional_int(value: Any) -> Optional[int]:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


@dataclass(frozen=True)
class MediaFile:
    """
    An immutable snapshot of a video file's technical properties.

    Instances are produced by the probe service from ffprobe output and are
    not re-read during a pipeline pass.

    Attributes:
        path (Path): The absolute path to the media file.
        size (int): The size of the file in bytes.
        duration (int): The duration in whole seconds (truncated), 0 when unknown.
        vcodec (str): The codec name of the first video stream, lowercased;
                      empty when no video stream was reported.
        width (Optional[int]): Width of the first video stream, if reported.
        height (Optional[int]): Height of the first video stream, if reported.
    """

    path: Path
    size: int
    duration: int
    vcodec: str
    width: Optional[int] = None
    height: Optional[int] = None

    @property
    def filename(self) -> str:
        return self.path.name

    @property
    def directory(self) -> Path:
        return self.path.parent

    @property
    def byte_rate(self) -> float:
        """Average bytes per second over the whole file."""
        if self.duration <= 0:
            return 0.0
        return self.size / self.duration

    @classmethod
    def from_probe(
        cls, path: Path, probe: Dict[str, Any], size: Optional[int] = None
    ) -> "MediaFile":
        """
        Builds a `MediaFile` from the parsed JSON output of ffprobe.

        The duration is read from the format section first and then from the
        first stream that reports one. Missing or unparsable values are stored
        as 0 / empty so that candidate selection can decide what to do with
        them in its own order.

        Args:
            path: The probed file.
            probe: The ffprobe output (`-show_format -show_streams`).
            size: The size in bytes; read from the filesystem when omitted.

        Returns:
            The new `MediaFile`.
        """
        streams = probe.get("streams") or []
        video_stream = next(
            (s for s in streams if s.get("codec_type") == "video"), None
        )

        duration_val = (probe.get("format") or {}).get("duration")
        if duration_val is None:
            duration_val = next(
                (s["duration"] for s in streams if s.get("duration") is not None), None
            )
        duration = int(parse_duration(str(duration_val))) if duration_val is not None else 0

        vcodec = ""
        width = height = None
        if video_stream is not None:
            vcodec = str(video_stream.get("codec_name") or "").lower()
            width = _optional_int(video_stream.get("width"))
            height = _optional_int(video_stream.get("height"))

        return cls(
            path=path,
            size=size if size is not None else path.stat().st_size,
            duration=max(duration, 0),
            vcodec=vcodec,
            width=width,
            height=height,
        )
