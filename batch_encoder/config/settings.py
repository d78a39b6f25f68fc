"""
The immutable settings structure consumed by every component.

`EncoderSettings` is built exactly once at startup from the built-in defaults,
the optional user YAML file and the parsed command-line arguments, in that
order of increasing priority. Components receive it by reference and never
modify it; the startup tool check derives a new instance with
`dataclasses.replace` when hardware acceleration has to be disabled.
"""
import argparse
import dataclasses
import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger

from . import video


@dataclass(frozen=True)
class EncoderSettings:
    root: Path
    recursive: bool = False
    include_pattern: Optional[str] = None
    min_size_bytes: int = 0
    sample_duration: int = video.SAMPLE_DURATION
    min_size_ratio: float = video.MIN_SIZE_RATIO
    min_bitrate_kbps: float = video.MIN_BITRATE_KBPS
    resolution_threshold: int = video.RESOLUTION_THRESHOLD
    default_cq: int = video.DEFAULT_CQ
    hd_cq: int = video.HD_CQ
    sd_cq: int = video.SD_CQ
    keep_original: bool = False
    backup_dir: Optional[Path] = None
    allow_hevc: bool = False
    allow_av1: bool = False
    max_hours: float = 0.0
    dry_run: bool = False
    use_hwaccel: bool = video.USE_HWACCEL
    hwaccel_type: str = video.HWACCEL_TYPE
    video_codec: str = video.VIDEO_CODEC
    preset: str = video.ENCODE_PRESET
    audio_codec: str = video.AUDIO_CODEC
    audio_bitrate: str = video.AUDIO_BITRATE
    ffmpeg_cmd: str = "ffmpeg"
    ffprobe_cmd: str = "ffprobe"
    probe_timeout: float = video.PROBE_TIMEOUT
    sample_timeout: float = video.SAMPLE_TIMEOUT
    full_encode_timeout: float = video.FULL_ENCODE_TIMEOUT
    duration_tolerance: int = video.DURATION_TOLERANCE
    error_log_dir: Optional[Path] = None
    report_path: Optional[Path] = None

    def __post_init__(self):
        if self.sample_duration <= 0:
            raise ValueError(f"sample_duration must be positive, got {self.sample_duration}")
        if not 0 < self.min_size_ratio <= 1:
            raise ValueError(f"min_size_ratio must be in (0, 1], got {self.min_size_ratio}")
        if not (math.isfinite(self.max_hours) and self.max_hours >= 0):
            raise ValueError(f"max_hours must be a non-negative number, got {self.max_hours}")
        if self.min_size_bytes < 0:
            raise ValueError(f"min_size_bytes cannot be negative, got {self.min_size_bytes}")
        if self.include_pattern:
            # Fail at startup rather than on the first file.
            try:
                re.compile(self.include_pattern)
            except re.error as e:
                raise ValueError(f"Invalid include pattern {self.include_pattern!r}: {e}") from e

    @property
    def include_regex(self) -> Optional[re.Pattern]:
        return re.compile(self.include_pattern) if self.include_pattern else None

    @property
    def min_byte_rate(self) -> float:
        """Bytes per second below which a source skips sampling entirely."""
        return self.min_bitrate_kbps * 1000 / 8

    @property
    def disallowed_codecs(self) -> frozenset:
        codecs = set()
        if not self.allow_hevc:
            codecs.add(video.HEVC_CODEC_NAME)
        if not self.allow_av1:
            codecs.add(video.AV1_CODEC_NAME)
        return frozenset(codecs)


def parse_size_gb(value: str) -> int:
    """
    Converts a human size in GB (comma or dot decimal) into bytes.

    >>> parse_size_gb("1,5")
    1610612736
    """
    text = str(value).strip().replace(",", ".")
    if text.lower().endswith("gb"):
        text = text[:-2]
    elif text.lower().endswith("g"):
        text = text[:-1]
    gigabytes = float(text)
    if not math.isfinite(gigabytes):
        raise ValueError(f"Size must be a finite number: {value}")
    if gigabytes < 0:
        raise ValueError(f"Size cannot be negative: {value}")
    return round(gigabytes * 1024 ** 3)


# Keys accepted in the `encoding:` section of the user YAML file, with their types.
_YAML_ENCODING_KEYS = {
    "recursive": bool, "include_pattern": str, "sample_duration": int,
    "min_size_ratio": float, "min_bitrate_kbps": float, "resolution_threshold": int,
    "default_cq": int, "hd_cq": int, "sd_cq": int, "keep_original": bool,
    "allow_hevc": bool, "allow_av1": bool, "max_hours": float, "use_hwaccel": bool,
    "hwaccel_type": str, "video_codec": str, "preset": str, "audio_codec": str,
    "audio_bitrate": str, "probe_timeout": float, "sample_timeout": float,
    "full_encode_timeout": float, "duration_tolerance": int,
}

_TRUE_WORDS = {"true", "yes", "on", "1"}
_FALSE_WORDS = {"false", "no", "off", "0"}


def _coerce(key: str, value: Any, kind: type) -> Any:
    """
    Converts a user config value to the type of its settings field.

    Raises:
        ValueError: If the value cannot be read as that type.
    """
    try:
        if kind is bool:
            if isinstance(value, bool):
                return value
            word = str(value).strip().lower()
            if word in _TRUE_WORDS:
                return True
            if word in _FALSE_WORDS:
                return False
            raise ValueError("expected true or false")
        if kind is str:
            return str(value)
        if isinstance(value, bool):
            raise ValueError("expected a number")
        number = float(value)
        if not math.isfinite(number):
            raise ValueError("expected a finite number")
        if kind is int:
            if not number.is_integer():
                raise ValueError("expected a whole number")
            return int(number)
        return number
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid value for 'encoding.{key}': {value!r} ({e})") from e

# CLI attribute name -> settings field name.
_ARG_FIELDS = {
    "recursive": "recursive",
    "include": "include_pattern",
    "test_duration": "sample_duration",
    "min_ratio": "min_size_ratio",
    "min_bitrate": "min_bitrate_kbps",
    "resolution_threshold": "resolution_threshold",
    "cq": "default_cq",
    "cq_hd": "hd_cq",
    "cq_sd": "sd_cq",
    "keep_original": "keep_original",
    "allow_h265": "allow_hevc",
    "allow_av1": "allow_av1",
    "max_hours": "max_hours",
    "dry_run": "dry_run",
}


def _section(user_config: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = user_config.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"The '{name}' section of the user config must be a mapping.")
    return section


def _settings_from_user_config(user_config: Dict[str, Any]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    paths_config = _section(user_config, "paths")
    ffmpeg_dir = paths_config.get("ffmpeg_dir")
    if ffmpeg_dir:
        values["ffmpeg_cmd"] = str(Path(ffmpeg_dir) / "ffmpeg")
        values["ffprobe_cmd"] = str(Path(ffmpeg_dir) / "ffprobe")
    encoding_config = _section(user_config, "encoding")
    for key, value in encoding_config.items():
        if key in ("min_size_gb", "backup_dir"):
            continue
        if key in _YAML_ENCODING_KEYS:
            if value is not None:
                values[key] = _coerce(key, value, _YAML_ENCODING_KEYS[key])
        else:
            logger.warning(f"Unknown key 'encoding.{key}' in user config, ignored.")
    if "min_size_gb" in encoding_config:
        values["min_size_bytes"] = parse_size_gb(str(encoding_config["min_size_gb"]))
    if encoding_config.get("backup_dir"):
        values["backup_dir"] = Path(encoding_config["backup_dir"]).expanduser()
    return values


def build_settings(
    args: argparse.Namespace, user_config: Optional[Dict[str, Any]] = None
) -> EncoderSettings:
    """
    Builds the run's `EncoderSettings`.

    Args:
        args: Parsed command-line arguments. Attributes left at `None` (or
              `False` for flags) do not override lower-priority values.
        user_config: The parsed user YAML mapping, if any.

    Returns:
        A frozen `EncoderSettings` instance.
    """
    values: Dict[str, Any] = _settings_from_user_config(user_config or {})

    for arg_name, field_name in _ARG_FIELDS.items():
        arg_value = getattr(args, arg_name, None)
        if arg_value is None or arg_value is False:
            continue
        values[field_name] = arg_value

    if getattr(args, "min_size", None) is not None:
        values["min_size_bytes"] = parse_size_gb(args.min_size)
    if getattr(args, "backup", None):
        values["backup_dir"] = Path(args.backup).expanduser().resolve()
    if getattr(args, "no_hwaccel", False):
        values["use_hwaccel"] = False
    if getattr(args, "error_log_dir", None):
        values["error_log_dir"] = Path(args.error_log_dir).expanduser().resolve()
    if getattr(args, "report", None):
        values["report_path"] = Path(args.report).expanduser().resolve()

    # Ignored in keep-original mode, where the original is never touched.
    if values.get("keep_original") and values.get("backup_dir"):
        logger.warning("Backup directory is ignored when keeping originals.")
        values["backup_dir"] = None

    root = Path(args.target_dir).expanduser() if args.target_dir else Path.cwd()
    return EncoderSettings(root=root.resolve(), **values)


def without_hwaccel(settings: EncoderSettings) -> EncoderSettings:
    """Returns a copy of `settings` that encodes on the CPU."""
    return dataclasses.replace(
        settings,
        use_hwaccel=False,
        video_codec=video.FALLBACK_VIDEO_CODEC,
        preset=video.FALLBACK_PRESET,
    )
