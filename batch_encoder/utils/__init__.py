"""
Utilities Package for the batch encoder.

This package contains helper modules that are not specific to any single part
of the pipeline.

Modules:
    - ffmpeg_utils.py: Runs external commands with a wall-clock timeout and
      wraps ffprobe.
    - format_utils.py: Formats durations and file sizes for log messages.
    - tool_check.py: Verifies the ffmpeg installation and the availability
      of hardware acceleration at startup.
"""
