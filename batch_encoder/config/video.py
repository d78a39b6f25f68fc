"""
Configuration settings related to video processing.

This module defines the built-in defaults for file discovery, encoder
parameters, size estimation, quality tiers, timeouts, and the diagnostic
signatures used to classify ffmpeg failures.
"""

# --- File Discovery ---
VIDEO_EXTENSIONS = (".mkv", ".avi", ".mp4", ".mov", ".wmv", ".flv")

# Sources in these containers are written to Matroska instead.
MKV_REMUX_EXTENSIONS = (".avi", ".mp4")
# Outputs in these containers get fast-start and the HEVC-in-MP4 tag.
MP4_FAMILY_EXTENSIONS = (".mp4", ".mov")

# Codec names reported by ffprobe for already dense sources.
HEVC_CODEC_NAME = "hevc"
AV1_CODEC_NAME = "av1"

# --- Encoder Settings ---
USE_HWACCEL = True
HWACCEL_TYPE = "cuda"
VIDEO_CODEC = "hevc_nvenc"
# Used when the configured hardware acceleration is not available.
FALLBACK_VIDEO_CODEC = "libx265"
FALLBACK_PRESET = "medium"
ENCODE_PRESET = "p3"
AUDIO_CODEC = "aac"
AUDIO_BITRATE = "256k"

# --- Quality Tiers (constant quality, lower is better) ---
DEFAULT_CQ = 30
HD_CQ = 30
SD_CQ = 27
# Width in pixels at or above which a source counts as high definition.
RESOLUTION_THRESHOLD = 1280

# --- Size Estimation ---
SAMPLE_DURATION = 5  # seconds
MIN_SIZE_RATIO = 0.8  # encode only if the estimate is below 80% of the original
MIN_BITRATE_KBPS = 2000  # 250 kB/s; sources below this are not sampled
DURATION_TOLERANCE = 2  # seconds

# --- Timeouts (seconds) ---
PROBE_TIMEOUT = 60
SAMPLE_TIMEOUT = 150
FULL_ENCODE_TIMEOUT = 3 * 60 * 60

# --- Output Naming ---
KEEP_ORIGINAL_SUFFIX = "-encoded"

# --- Diagnostic Signatures ---
# Lowercased substrings of ffmpeg stderr. A subtitle muxing error earns one
# retry without subtitle streams.
SUBTITLE_ERROR_SIGNATURES = (
    "subtitle encoding currently only possible from text to text or bitmap to bitmap",
    "error initializing output stream 0:s",
    "could not find tag for codec",
    "subtitle codec",
    "unknown subtitle",
    "error while opening encoder for output stream #0:s",
)

FATAL_ERROR_SIGNATURES = (
    "could not write header",
    "unknown encoder",
    "invalid encoder",
    "encoder not found",
    "non monotonically increasing dts",
    "no nvenc capable devices found",
    "conversion failed!",
)
