"""
Main entry point for the batch encoder.

This script parses command-line arguments, merges them with the optional user
config into the run settings, verifies the external tools, and launches the
batch pipeline on the target directory.
"""

import sys
from pathlib import Path
from typing import List, Optional

from loguru import logger

from batch_encoder.cli import get_args
from batch_encoder.config.common import LOGGER_FORMAT, load_user_config
from batch_encoder.config.settings import build_settings
from batch_encoder.pipeline.video_pipeline import StandardVideoPipeline
from batch_encoder.utils.tool_check import Modules


# Configure the logger for initial setup.
# The level is overridden once the command-line arguments are parsed.
logger.remove()
logger.add(sys.stderr, level="INFO", format=LOGGER_FORMAT)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Runs one batch.

    This function performs the following steps:
    1. Parses command-line arguments and configures the logger.
    2. Builds the settings from defaults, the user config and the arguments.
    3. Checks that the target directory exists.
    4. Verifies FFmpeg and hardware acceleration (skipped for dry runs).
    5. Runs the pipeline and logs the final completion message.

    Returns:
        The process exit status: 0 on a completed run, 1 if the target
        directory does not exist or FFmpeg cannot be run, 2 for invalid
        settings, 130 when interrupted.
    """
    args = get_args(argv)

    logger.remove()
    logger.add(sys.stderr, level=args.log_level, format=LOGGER_FORMAT)
    logger.debug(f"Parsed arguments: {args}")

    user_config = load_user_config(Path(args.config).expanduser() if args.config else None)
    try:
        settings = build_settings(args, user_config)
    except ValueError as e:
        logger.error(f"Invalid settings: {e}")
        return 2

    if not settings.root.is_dir():
        logger.error(f"Target directory does not exist: {settings.root}")
        return 1
    logger.info(f"Target directory: {settings.root}")

    if not settings.dry_run:
        checked_settings = Modules.run_all(settings)
        if checked_settings is None:
            logger.error("Startup checks failed, no file was touched.")
            return 1
        settings = checked_settings

    try:
        StandardVideoPipeline(settings).run()
    except KeyboardInterrupt:
        logger.warning("Encoding process interrupted by user.")
        return 130

    logger.success("Batch encoder finished.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
