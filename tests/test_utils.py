import subprocess
import sys
import time
from datetime import timedelta
from pathlib import Path

import pytest

from batch_encoder.config.settings import EncoderSettings
from batch_encoder.domain.exceptions import ProbeError
from batch_encoder.domain.media import MediaFile, parse_duration
from batch_encoder.pipeline.time_budget import TimeBudget
from batch_encoder.services.logging_service import ErrorLog
from batch_encoder.services.probe_service import MediaProber
from batch_encoder.utils import ffmpeg_utils
from batch_encoder.utils.format_utils import (
    contains_any_extensions,
    format_timedelta,
    formatted_size,
    reduction_percent,
)
from batch_encoder.utils.tool_check import Modules


def test_format_timedelta():
    assert format_timedelta(7261) == "02:01:01"
    assert format_timedelta(timedelta(minutes=5)) == "00:05:00"
    assert format_timedelta("soon") == "00:00:00"


def test_formatted_size():
    assert formatted_size(0) == "0 B"
    assert formatted_size(512) == "512 B"
    assert formatted_size(1536) == "1.50 KB"
    assert formatted_size(2097152) == "2 MB"


def test_reduction_percent():
    assert reduction_percent(1000, 600) == 40
    assert reduction_percent(3, 2) == 33
    assert reduction_percent(0, 0) == 0


def test_contains_any_extensions():
    assert contains_any_extensions(Path("a.MKV"), [".mkv"])
    assert contains_any_extensions(Path("a.avi"), ["avi"])
    assert not contains_any_extensions(Path("a.txt"), [".mkv"])


def test_time_budget_unlimited():
    clock = [0.0]
    budget = TimeBudget(0, clock=lambda: clock[0])
    clock[0] = 10 ** 9

    assert not budget.exhausted()
    assert budget.remaining() is None


def test_time_budget_limit():
    clock = [100.0]
    budget = TimeBudget(0.5, clock=lambda: clock[0])

    clock[0] += 1799
    assert not budget.exhausted()
    assert budget.remaining() == pytest.approx(1)
    clock[0] += 1
    assert budget.exhausted()


@pytest.mark.parametrize(
    "text, expected",
    [("3600.5", 3600.5), ("01:00:00.500", 3600.5), ("02:30", 150.0), ("N/A", 0.0)],
)
def test_parse_duration(text, expected):
    assert parse_duration(text) == expected


def test_media_from_probe(tmp_path):
    path = tmp_path / "movie.mkv"
    probe = {
        "format": {"duration": "1000.9"},
        "streams": [
            {"codec_type": "audio", "codec_name": "aac"},
            {"codec_type": "video", "codec_name": "H264", "width": 1920, "height": 1080},
        ],
    }

    media = MediaFile.from_probe(path, probe, size=4_000_000)

    assert media.duration == 1000
    assert media.vcodec == "h264"
    assert media.width == 1920
    assert media.byte_rate == 4000


def test_media_from_probe_falls_back_to_stream_duration(tmp_path):
    probe = {"format": {}, "streams": [{"codec_type": "audio", "duration": "12.7"}]}

    media = MediaFile.from_probe(tmp_path / "audio.mkv", probe, size=10)

    assert media.duration == 12
    assert media.vcodec == ""
    assert media.width is None


def test_run_cmd_reports_timeout(monkeypatch):
    def fake_run(*args, **kwargs):
        raise subprocess.TimeoutExpired(cmd="ffmpeg", timeout=1, stderr=b"frame=1")

    monkeypatch.setattr(ffmpeg_utils.subprocess, "run", fake_run)

    result = ffmpeg_utils.run_cmd(["ffmpeg"], timeout=1)

    assert result.timed_out
    assert result.returncode is None
    assert not result.ok


def test_run_cmd_missing_executable():
    result = ffmpeg_utils.run_cmd(["definitely-not-an-installed-tool-1234"])

    assert result.returncode is None
    assert not result.ok


def test_probe_media_parses_ffprobe_json(monkeypatch, tmp_path):
    calls = []

    def fake_run_cmd(cmd_list, timeout=None, show_cmd=False):
        calls.append((cmd_list, timeout))
        return ffmpeg_utils.CommandResult(0, stdout='{"format": {"duration": "12.0"}, "streams": []}')

    monkeypatch.setattr(ffmpeg_utils, "run_cmd", fake_run_cmd)

    probe = ffmpeg_utils.probe_media(tmp_path / "movie.mkv", ffprobe_cmd="/opt/ffprobe", timeout=60)

    assert probe["format"]["duration"] == "12.0"
    cmd_list, timeout = calls[0]
    assert cmd_list[0] == "/opt/ffprobe"
    assert cmd_list[-1] == str(tmp_path / "movie.mkv")
    assert "-timeout" not in cmd_list
    assert timeout == 60


@pytest.mark.parametrize(
    "result",
    [
        ffmpeg_utils.CommandResult(1, stderr="Invalid data found when processing input"),
        ffmpeg_utils.CommandResult(None, timed_out=True),
        ffmpeg_utils.CommandResult(None, stderr="Command not found: ffprobe"),
        ffmpeg_utils.CommandResult(0, stdout="not json"),
        ffmpeg_utils.CommandResult(0, stdout="[]"),
    ],
)
def test_probe_media_failures_raise_probe_error(monkeypatch, tmp_path, result):
    monkeypatch.setattr(ffmpeg_utils, "run_cmd", lambda cmd_list, timeout=None, show_cmd=False: result)

    with pytest.raises(ProbeError):
        ffmpeg_utils.probe_media(tmp_path / "bad.mkv", timeout=5)


@pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell script")
def test_probe_media_kills_a_hanging_ffprobe(tmp_path):
    hanging_ffprobe = tmp_path / "ffprobe"
    hanging_ffprobe.write_text("#!/bin/sh\nexec sleep 5\n")
    hanging_ffprobe.chmod(0o755)
    video = tmp_path / "movie.mkv"
    video.write_bytes(b"data")

    started = time.monotonic()
    with pytest.raises(ProbeError, match="timed out"):
        MediaProber(ffprobe_cmd=str(hanging_ffprobe), timeout=0.5).probe(video)

    assert time.monotonic() - started < 4


def test_error_log_appends_entries(tmp_path):
    error_log = ErrorLog(tmp_path / "logs")

    error_log.write("first failure", "details")
    error_log.write("second failure")

    content = error_log.log_file_path.read_text()
    assert content.count(ErrorLog.linesep_marker) == 2
    assert content.index("first failure") < content.index("second failure")


def test_tool_check_falls_back_to_cpu(monkeypatch, tmp_path):
    def fake_run_cmd(cmd_list, timeout=None, show_cmd=False):
        if "-version" in cmd_list:
            return ffmpeg_utils.CommandResult(0, stdout="ffmpeg version 7.0\n")
        return ffmpeg_utils.CommandResult(0, stdout="Hardware acceleration methods:\nvaapi\n")

    monkeypatch.setattr("batch_encoder.utils.tool_check.run_cmd", fake_run_cmd)

    settings = Modules.run_all(EncoderSettings(root=tmp_path))

    assert settings.use_hwaccel is False
    assert settings.video_codec == "libx265"


def test_tool_check_keeps_supported_hwaccel(monkeypatch, tmp_path):
    def fake_run_cmd(cmd_list, timeout=None, show_cmd=False):
        return ffmpeg_utils.CommandResult(0, stdout="Hardware acceleration methods:\ncuda\nvaapi\n")

    monkeypatch.setattr("batch_encoder.utils.tool_check.run_cmd", fake_run_cmd)
    settings = EncoderSettings(root=tmp_path)

    assert Modules.run_all(settings) is settings


def test_tool_check_fails_without_ffmpeg(monkeypatch, tmp_path):
    def fake_run_cmd(cmd_list, timeout=None, show_cmd=False):
        return ffmpeg_utils.CommandResult(None, stderr=f"Command not found: {cmd_list[0]}")

    monkeypatch.setattr("batch_encoder.utils.tool_check.run_cmd", fake_run_cmd)

    assert Modules.run_all(EncoderSettings(root=tmp_path)) is None
