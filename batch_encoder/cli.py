"""
Command-Line Interface (CLI) setup for the batch encoder.

This module uses Python's `argparse` to define and parse the command-line
arguments that control the application's behavior. Options left unset keep
the value from the user config file or the built-in default.
"""
import argparse
import math
from typing import List, Optional

from .config.common import LOG_LEVELS


def get_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parses command-line arguments for the batch encoder.

    Args:
        argv: The argument list to parse. Defaults to `sys.argv[1:]`.

    Returns:
        argparse.Namespace: An object containing the parsed command-line
                            arguments as attributes.
    """
    parser = argparse.ArgumentParser(
        description="Re-encode video files to HEVC when sample encodes predict a worthwhile size reduction."
    )
    parser.add_argument(
        "target_dir", nargs="?", default=None,
        help="Directory to process. Defaults to the current working directory."
    )
    parser.add_argument(
        "-R", "--recursive", action="store_true", help="Descend into subdirectories."
    )
    parser.add_argument(
        "--min-size", type=str, default=None, metavar="GB",
        help="Skip files smaller than this many GB (comma or dot decimal, e.g. 1,5)."
    )
    parser.add_argument(
        "--include", type=str, default=None, metavar="REGEX",
        help="Only consider files whose path matches this regular expression."
    )
    parser.add_argument(
        "--test-duration", type=int, default=None, metavar="SECONDS",
        help="Length of each of the three sample encodes."
    )
    parser.add_argument(
        "--min-ratio", type=float, default=None,
        help="Skip files whose estimated size is at least this fraction of the original."
    )
    parser.add_argument(
        "--min-bitrate", type=float, default=None, metavar="KBPS",
        help="Skip sampling for files whose average bitrate is below this (0 disables)."
    )
    parser.add_argument(
        "--resolution-threshold", type=int, default=None, metavar="WIDTH",
        help="Widths at or above this use the HD quality value."
    )
    parser.add_argument("--cq", type=int, default=None, help="Quality value when the width is unknown.")
    parser.add_argument("--cq-hd", type=int, default=None, help="Quality value for HD sources.")
    parser.add_argument("--cq-sd", type=int, default=None, help="Quality value for SD sources.")
    parser.add_argument(
        "--keep-original", action="store_true",
        help="Write the encoded file next to the original instead of replacing it."
    )
    parser.add_argument(
        "--backup", type=str, default=None, metavar="DIR",
        help="Copy each original here before replacing it."
    )
    parser.add_argument(
        "--allow-h265", action="store_true", help="Also re-encode files that are already HEVC."
    )
    parser.add_argument(
        "--allow-av1", action="store_true", help="Also re-encode files that are AV1."
    )
    parser.add_argument(
        "--max-hours", type=float, default=None,
        help="Stop starting new files after this many hours (0 means unlimited)."
    )
    parser.add_argument(
        "--dry-run", action="store_true", help="List the candidates without encoding anything."
    )
    parser.add_argument(
        "--no-hwaccel", action="store_true", help="Encode on the CPU with libx265."
    )
    parser.add_argument(
        "--config", type=str, default=None, help="Path of a user YAML config file."
    )
    parser.add_argument(
        "--error-log-dir", type=str, default=None,
        help="Directory where ffmpeg diagnostics of failed encodes are collected."
    )
    parser.add_argument(
        "--report", type=str, default=None, metavar="FILE",
        help="Write a YAML summary of the run to this file."
    )
    parser.add_argument(
        "--log-level", type=str, default="INFO", choices=LOG_LEVELS,
        help="Set the logging level."
    )

    args = parser.parse_args(argv)

    if args.min_size is not None:
        text = args.min_size.strip().lower().replace(",", ".").removesuffix("gb").removesuffix("g")
        try:
            finite = math.isfinite(float(text))
        except ValueError:
            finite = False
        if not finite:
            parser.error(f"--min-size expects a number of GB, got '{args.min_size}'")
    if args.min_ratio is not None and not 0 < args.min_ratio <= 1:
        parser.error("--min-ratio must be greater than 0 and at most 1")
    if args.max_hours is not None and not (math.isfinite(args.max_hours) and args.max_hours >= 0):
        parser.error("--max-hours must be a non-negative number")
    if args.test_duration is not None and args.test_duration <= 0:
        parser.error("--test-duration must be positive")

    return args
