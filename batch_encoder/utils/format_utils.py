"""
This module contains helper functions for formatting data into human-readable strings.
These functions are used throughout the application, particularly in logging, to
present durations and file sizes in a clear and consistent way.
"""

from datetime import timedelta
from pathlib import Path
from typing import Iterable, Union


def format_timedelta(td_object: Union[timedelta, int, float]) -> str:
    """
    Formats a duration into a "HH:MM:SS" string.

    Args:
        td_object: A timedelta, or a number of seconds.

    Returns:
        A string representing the duration in HH:MM:SS format.
        For example, 7261 seconds becomes "02:01:01".
        Returns "00:00:00" if the input is neither a timedelta nor a number.
    """
    if isinstance(td_object, (int, float)) and not isinstance(td_object, bool):
        td_object = timedelta(seconds=td_object)
    if not isinstance(td_object, timedelta):
        return "00:00:00"

    total_seconds = max(int(td_object.total_seconds()), 0)
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02}:{minutes:02}:{seconds:02}"


def formatted_size(size_bytes: Union[int, float]) -> str:
    """
    Converts a size in bytes to a human-readable string (e.g., B, KB, MB, GB, TB).

    Args:
        size_bytes: The size of the file in bytes.

    Returns:
        A formatted string with the appropriate unit.
        For example, 1536 becomes "1.50 KB", and 2097152 becomes "2 MB".
    """
    if size_bytes < 0:
        size_bytes = 0

    units = ["B", "KB", "MB", "GB", "TB", "PB"]
    factor = 1024.0

    if size_bytes == 0:
        return "0 B"

    for unit in units:
        if size_bytes < factor:
            if unit == "B":
                return f"{int(size_bytes)} {unit}"
            # Clean up ".00" for whole numbers (e.g., "2.00 MB" -> "2 MB").
            return f"{size_bytes:.2f} {unit}".replace(".00", "")
        size_bytes /= factor

    return f"{size_bytes:.2f} {units[-1]}".replace(".00", "")


def reduction_percent(original_size: int, new_size: int) -> int:
    """Percentage of `original_size` saved by `new_size`, truncated."""
    if original_size <= 0:
        return 0
    return (original_size - new_size) * 100 // original_size


def contains_any_extensions(file_path_obj: Path, extensions_to_check: Iterable[str]) -> bool:
    """
    Checks if a file's extension is present in a given list (case-insensitive).

    Args:
        file_path_obj: A `pathlib.Path` object for the file to check.
        extensions_to_check: File extensions, with or without the leading dot.

    Returns:
        True if the file's extension is in the list, False otherwise.
    """
    normalized_extensions = {
        ext.lower() if ext.startswith(".") else f".{ext.lower()}"
        for ext in extensions_to_check
    }
    if not normalized_extensions:
        return False
    return file_path_obj.suffix.lower() in normalized_extensions
