"""
Batch HEVC re-encoder.

Walks a directory of video files, estimates from three short sample encodes
whether a re-encode would pay off, and replaces the originals that shrink.
The per-directory `encoded.list` and `failed.list` files make repeated runs
skip everything that has already been decided.
"""

__version__ = "1.0.0"
