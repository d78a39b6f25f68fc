"""
This module provides the Modules class, which verifies the external tools the
pipeline depends on before any file is touched.
"""
from typing import Optional

from loguru import logger

from ..config.settings import EncoderSettings, without_hwaccel
from .ffmpeg_utils import run_cmd


class Modules:
    """
    Startup checks for ffmpeg and hardware acceleration.

    The executables come from the settings, which resolve them from the
    `paths.ffmpeg_dir` entry of the user config or fall back to the system PATH.
    """

    @staticmethod
    def verify_ffmpeg(settings: EncoderSettings) -> bool:
        """
        Verifies that FFmpeg can be executed and logs its version line.

        Returns:
            True if `ffmpeg -version` succeeded.
        """
        result = run_cmd([settings.ffmpeg_cmd, "-version"], timeout=30)
        if not result.ok:
            logger.error(
                f"FFmpeg version check failed for '{settings.ffmpeg_cmd}'. "
                "Please ensure FFmpeg is installed, or set 'paths.ffmpeg_dir' in 'config.user.yaml'.\n"
                f"{result.stderr.strip()}"
            )
            return False
        version_output_lines = result.stdout.splitlines()
        first_line = version_output_lines[0] if version_output_lines else "unknown version"
        logger.info(f"FFmpeg version check successful: {first_line}")
        return True

    @staticmethod
    def hwaccel_available(settings: EncoderSettings) -> bool:
        """Checks whether `ffmpeg -hwaccels` lists the configured acceleration type."""
        result = run_cmd([settings.ffmpeg_cmd, "-hide_banner", "-hwaccels"], timeout=30)
        if not result.ok:
            return False
        available = {line.strip() for line in result.stdout.splitlines()[1:] if line.strip()}
        return settings.hwaccel_type in available

    @staticmethod
    def run_all(settings: EncoderSettings) -> Optional[EncoderSettings]:
        """
        Runs all startup checks.

        Returns:
            The settings to use for the run: unchanged, or a CPU-encoding copy
            if the configured hardware acceleration is not supported. `None`
            if FFmpeg itself cannot be run.
        """
        if not Modules.verify_ffmpeg(settings):
            return None
        if settings.use_hwaccel and not Modules.hwaccel_available(settings):
            cpu_settings = without_hwaccel(settings)
            logger.warning(
                f"Hardware acceleration type '{settings.hwaccel_type}' not supported. "
                f"Disabling it and encoding with {cpu_settings.video_codec}."
            )
            return cpu_settings
        return settings
