"""
The probe adapter: turns ffprobe output into `MediaFile` records.
"""

from pathlib import Path
from typing import Optional

from loguru import logger

from ..config.settings import EncoderSettings
from ..domain.exceptions import ProbeError
from ..domain.media import MediaFile
from ..utils.ffmpeg_utils import probe_media


class MediaProber:
    """
    Probes media files with ffprobe under the configured timeout.
    """

    def __init__(self, ffprobe_cmd: str = "ffprobe", timeout: Optional[float] = None):
        self.ffprobe_cmd = ffprobe_cmd
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: EncoderSettings) -> "MediaProber":
        return cls(ffprobe_cmd=settings.ffprobe_cmd, timeout=settings.probe_timeout)

    def probe(self, path: Path) -> MediaFile:
        """
        Probes `path`.

        Raises:
            ProbeError: If ffprobe fails or the file disappeared.
        """
        try:
            size = path.stat().st_size
        except OSError as e:
            raise ProbeError(f"Cannot stat {path}: {e}") from e
        probe_data = probe_media(path, ffprobe_cmd=self.ffprobe_cmd, timeout=self.timeout)
        media = MediaFile.from_probe(path, probe_data, size=size)
        logger.trace(f"Probed {media}")
        return media

    def probe_duration(self, path: Path) -> int:
        """
        Returns the duration of `path` in whole seconds.

        Raises:
            ProbeError: If ffprobe fails or reports no positive duration.
        """
        duration = self.probe(path).duration
        if duration <= 0:
            raise ProbeError(f"No valid duration reported for {path}")
        return duration
