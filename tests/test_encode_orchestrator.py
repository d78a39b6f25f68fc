"""Tests for the per-candidate pipeline."""

import pytest

from batch_encoder.config.common import ENCODED_LEDGER_NAME, FAILED_LEDGER_NAME
from batch_encoder.domain.encode_state import Disposition, EncodeState
from batch_encoder.domain.exceptions import ProbeError
from batch_encoder.services.encode_orchestrator import (
    EncodeOrchestrator,
    sample_output_path,
    temp_output_path,
)
from batch_encoder.services.ledger_service import LedgerStore
from batch_encoder.services.logging_service import ErrorLog
from batch_encoder.utils.ffmpeg_utils import CommandResult

from .fakes import FakeEncoder, FakeProber


def make_orchestrator(settings, encoder=None, prober=None, error_log=None):
    ledgers = LedgerStore()
    orchestrator = EncodeOrchestrator(
        settings,
        ledgers,
        prober or FakeProber(output_duration=1000),
        encoder or FakeEncoder(),
        error_log=error_log,
    )
    return orchestrator, ledgers


def ledger_lines(directory, name):
    path = directory / name
    return path.read_text().splitlines() if path.exists() else []


def assert_no_temp_files(media):
    assert not temp_output_path(media).exists()
    assert not sample_output_path(media).exists()


def test_replaces_original_when_smaller(make_settings, make_media, tmp_path):
    media = make_media()
    encoder = FakeEncoder(sample_sizes=(3000, 3000, 3000), full_results=[(CommandResult(0), 500_000)])
    orchestrator, _ = make_orchestrator(make_settings(), encoder=encoder)

    task = orchestrator.process(media)

    assert task.state == EncodeState.REPLACED
    assert task.disposition == Disposition.ENCODED
    assert task.encoded_size == 500_000
    assert media.path.stat().st_size == 500_000
    assert ledger_lines(tmp_path, ENCODED_LEDGER_NAME) == ["movie.mkv"]
    assert ledger_lines(tmp_path, FAILED_LEDGER_NAME) == []
    assert_no_temp_files(media)


def test_samples_use_quarter_offsets_and_no_subtitles(make_settings, make_media):
    media = make_media(duration=1000)
    encoder = FakeEncoder()
    orchestrator, _ = make_orchestrator(make_settings(), encoder=encoder)

    orchestrator.process(media)

    assert [call["offset"] for call in encoder.sample_calls] == [250, 500, 750]
    assert all(call["subtitles"] is False for call in encoder.sample_calls)
    assert all(call["sample_duration"] == 5 for call in encoder.sample_calls)
    assert encoder.full_calls[0]["subtitles"] is True


@pytest.mark.parametrize("width, expected_cq", [(1920, 30), (1280, 30), (720, 27), (None, 30)])
def test_quality_tier_follows_width(make_settings, make_media, width, expected_cq):
    media = make_media(width=width)
    encoder = FakeEncoder()
    orchestrator, _ = make_orchestrator(make_settings(), encoder=encoder)

    task = orchestrator.process(media)

    assert task.cq == expected_cq
    assert {call["cq"] for call in encoder.sample_calls + encoder.full_calls} == {expected_cq}


def test_low_bitrate_skips_without_sampling(make_settings, make_media, tmp_path):
    # 1 MB over 1000 s is far below 2000 kbps.
    media = make_media(size=1_000_000, duration=1000)
    encoder = FakeEncoder()
    orchestrator, _ = make_orchestrator(make_settings(min_bitrate_kbps=2000), encoder=encoder)

    task = orchestrator.process(media)

    assert task.state == EncodeState.FAST_SKIPPED
    assert encoder.sample_calls == []
    assert encoder.full_calls == []
    assert ledger_lines(tmp_path, ENCODED_LEDGER_NAME) == ["movie.mkv"]


def test_insufficient_benefit_is_recorded_as_encoded(make_settings, make_media, tmp_path):
    # median 4000 * 1000 s / 5 s = 800 000, exactly the threshold.
    media = make_media(size=1_000_000)
    encoder = FakeEncoder(sample_sizes=(5000, 4000, 1000))
    orchestrator, _ = make_orchestrator(make_settings(), encoder=encoder)

    task = orchestrator.process(media)

    assert task.state == EncodeState.SKIPPED_INSUFFICIENT_BENEFIT
    assert task.estimation.median_size == 4000
    assert task.estimation.estimated_size == 800_000
    assert encoder.full_calls == []
    assert media.path.read_bytes() == b"original"
    assert ledger_lines(tmp_path, ENCODED_LEDGER_NAME) == ["movie.mkv"]


def test_sample_failure_is_recorded_as_failed(make_settings, make_media, tmp_path):
    media = make_media()
    encoder = FakeEncoder(sample_result=CommandResult(1, stderr="Conversion failed!"))
    error_log = ErrorLog(tmp_path / "logs")
    orchestrator, _ = make_orchestrator(make_settings(), encoder=encoder, error_log=error_log)

    task = orchestrator.process(media)

    assert task.state == EncodeState.ESTIMATION_FAILED
    assert len(encoder.sample_calls) == 1
    assert encoder.full_calls == []
    assert ledger_lines(tmp_path, FAILED_LEDGER_NAME) == ["movie.mkv"]
    assert "Conversion failed!" in error_log.log_file_path.read_text()
    assert_no_temp_files(media)


def test_subtitle_error_retries_once_without_subtitles(make_settings, make_media):
    media = make_media()
    subtitle_error = CommandResult(
        1, stderr="Subtitle encoding currently only possible from text to text or bitmap to bitmap"
    )
    encoder = FakeEncoder(full_results=[(subtitle_error, None), (CommandResult(0), 500_000)])
    orchestrator, _ = make_orchestrator(make_settings(), encoder=encoder)

    task = orchestrator.process(media)

    assert [call["subtitles"] for call in encoder.full_calls] == [True, False]
    assert task.state == EncodeState.REPLACED


def test_subtitle_error_on_retry_is_fatal(make_settings, make_media, tmp_path):
    media = make_media()
    subtitle_error = CommandResult(1, stderr="Error initializing output stream 0:s")
    encoder = FakeEncoder(full_results=[(subtitle_error, None)])
    orchestrator, _ = make_orchestrator(make_settings(), encoder=encoder)

    task = orchestrator.process(media)

    assert len(encoder.full_calls) == 2
    assert task.state == EncodeState.ENCODE_FAILED
    assert ledger_lines(tmp_path, FAILED_LEDGER_NAME) == ["movie.mkv"]


def test_fatal_signature_with_zero_exit_fails_and_removes_output(make_settings, make_media, tmp_path):
    media = make_media()
    encoder = FakeEncoder(full_results=[(CommandResult(0, stderr="Could not write header"), 500_000)])
    orchestrator, _ = make_orchestrator(make_settings(), encoder=encoder)

    task = orchestrator.process(media)

    assert task.state == EncodeState.ENCODE_FAILED
    assert len(encoder.full_calls) == 1
    assert media.path.read_bytes() == b"original"
    assert ledger_lines(tmp_path, FAILED_LEDGER_NAME) == ["movie.mkv"]
    assert_no_temp_files(media)


def test_timed_out_encode_fails(make_settings, make_media, tmp_path):
    media = make_media()
    encoder = FakeEncoder(full_results=[(CommandResult(None, timed_out=True), None)])
    orchestrator, _ = make_orchestrator(make_settings(), encoder=encoder)

    task = orchestrator.process(media)

    assert task.state == EncodeState.ENCODE_FAILED
    assert "timed out" in task.last_error_message


@pytest.mark.parametrize(
    "output_duration, expected_state",
    [(1002, EncodeState.REPLACED), (998, EncodeState.REPLACED), (1003, EncodeState.DURATION_REJECTED)],
)
def test_duration_tolerance(make_settings, make_media, output_duration, expected_state):
    media = make_media(duration=1000)
    orchestrator, _ = make_orchestrator(make_settings(), prober=FakeProber(output_duration=output_duration))

    task = orchestrator.process(media)

    assert task.state == expected_state


def test_unreadable_output_is_a_duration_mismatch(make_settings, make_media, tmp_path):
    media = make_media()
    prober = FakeProber(output_duration=ProbeError("moov atom not found"))
    orchestrator, _ = make_orchestrator(make_settings(), prober=prober)

    task = orchestrator.process(media)

    assert task.state == EncodeState.DURATION_REJECTED
    assert media.path.read_bytes() == b"original"
    assert ledger_lines(tmp_path, FAILED_LEDGER_NAME) == ["movie.mkv"]
    assert_no_temp_files(media)


def test_output_not_smaller_keeps_original(make_settings, make_media, tmp_path):
    media = make_media(size=1_000_000)
    encoder = FakeEncoder(sample_sizes=(100, 100, 100), full_results=[(CommandResult(0), 1_000_000)])
    orchestrator, _ = make_orchestrator(make_settings(), encoder=encoder)

    task = orchestrator.process(media)

    assert task.state == EncodeState.RETAINED_LARGER
    assert task.disposition == Disposition.ENCODED
    assert media.path.read_bytes() == b"original"
    assert ledger_lines(tmp_path, ENCODED_LEDGER_NAME) == ["movie.mkv"]
    assert_no_temp_files(media)


def test_keep_original_writes_sibling(make_settings, make_media, tmp_path):
    media = make_media(name="clip.avi")
    orchestrator, _ = make_orchestrator(make_settings(keep_original=True))

    task = orchestrator.process(media)

    assert task.state == EncodeState.REPLACED
    assert media.path.read_bytes() == b"original"
    encoded = tmp_path / "clip-encoded.mkv"
    assert encoded.stat().st_size == 500_000
    assert ledger_lines(tmp_path, ENCODED_LEDGER_NAME) == ["clip.avi", "clip-encoded.mkv"]


def test_backup_copies_original_before_replacing(make_settings, make_media, tmp_path):
    media = make_media(directory=tmp_path / "shows" / "s01")
    backup_dir = tmp_path.parent / (tmp_path.name + "-backup")
    orchestrator, _ = make_orchestrator(make_settings(backup_dir=backup_dir))

    task = orchestrator.process(media)

    assert task.state == EncodeState.REPLACED
    assert (backup_dir / "shows" / "s01" / "movie.mkv").read_bytes() == b"original"
    assert media.path.stat().st_size == 500_000


def test_mp4_source_is_replaced_in_place(make_settings, make_media):
    media = make_media(name="trip.mp4")
    encoder = FakeEncoder()
    orchestrator, _ = make_orchestrator(make_settings(), encoder=encoder)

    orchestrator.process(media)

    assert encoder.full_calls[0]["output"].name == ".tmp_encode_trip.mkv"
    assert media.path.name == "trip.mp4"
    assert media.path.stat().st_size == 500_000


def test_unexpected_error_cleans_up_and_leaves_ledgers_alone(make_settings, make_media, tmp_path):
    media = make_media()

    class ExplodingEncoder(FakeEncoder):
        def encode(self, input_path, output_path, cq, **kwargs):
            if kwargs.get("offset") is None:
                output_path.write_bytes(b"partial")
                raise RuntimeError("disk on fire")
            return super().encode(input_path, output_path, cq, **kwargs)

    orchestrator, _ = make_orchestrator(make_settings(), encoder=ExplodingEncoder())

    with pytest.raises(RuntimeError):
        orchestrator.process(media)

    assert_no_temp_files(media)
    assert ledger_lines(tmp_path, ENCODED_LEDGER_NAME) == []
    assert ledger_lines(tmp_path, FAILED_LEDGER_NAME) == []
