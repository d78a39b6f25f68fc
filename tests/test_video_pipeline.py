"""Tests for the batch loop."""

import yaml

from batch_encoder.config.common import ENCODED_LEDGER_NAME, FAILED_LEDGER_NAME
from batch_encoder.domain.encode_state import EncodeEvent
from batch_encoder.domain.temp_models import EncodingTask
from batch_encoder.pipeline.time_budget import TimeBudget
from batch_encoder.pipeline.video_pipeline import StandardVideoPipeline
from batch_encoder.services.ledger_service import LedgerStore
from batch_encoder.utils.ffmpeg_utils import CommandResult

from .fakes import FakeEncoder, FakeProber


def write_videos(directory, *names):
    for name in names:
        (directory / name).write_bytes(b"video data")


def make_pipeline(settings, prober, encoder=None, **kwargs):
    return StandardVideoPipeline(
        settings,
        ledgers=LedgerStore(),
        prober=prober,
        encoder=encoder or FakeEncoder(),
        **kwargs,
    )


def test_second_run_has_nothing_to_do(make_settings, tmp_path):
    write_videos(tmp_path, "a.mkv", "b.mkv", "c.mkv")
    table = {name: {"size": 1_000_000} for name in ("a.mkv", "b.mkv", "c.mkv")}
    encoder = FakeEncoder(
        sample_sizes=(3000,),
        full_results=[(CommandResult(0), 500_000), (CommandResult(1, stderr="Unknown encoder"), None),
                      (CommandResult(0), 2_000_000)],
    )
    settings = make_settings()

    summary = make_pipeline(settings, FakeProber(table), encoder).run()

    assert summary.candidates == 3
    assert summary.processed == 3
    assert summary.states == {"replaced": 1, "encode_failed": 1, "retained_larger": 1}
    assert summary.bytes_before == 1_000_000
    assert summary.bytes_after == 500_000
    assert (tmp_path / ENCODED_LEDGER_NAME).read_text().splitlines() == ["a.mkv", "c.mkv"]
    assert (tmp_path / FAILED_LEDGER_NAME).read_text().splitlines() == ["b.mkv"]

    second_prober = FakeProber(table)
    second = make_pipeline(settings, second_prober, FakeEncoder()).run()

    assert second.scanned == 3
    assert second.candidates == 0
    assert second_prober.probed == []


def test_dry_run_encodes_nothing(make_settings, tmp_path):
    write_videos(tmp_path, "a.mkv", "b.avi")
    encoder = FakeEncoder()
    pipeline = make_pipeline(make_settings(dry_run=True), FakeProber({"a.mkv": {}, "b.avi": {}}), encoder)

    summary = pipeline.run()

    assert summary.candidates == 2
    assert summary.processed == 0
    assert encoder.sample_calls == []
    assert not (tmp_path / ENCODED_LEDGER_NAME).exists()
    assert not (tmp_path / FAILED_LEDGER_NAME).exists()


class ClockedOrchestrator:
    """Marks every file as fast-skipped and advances the clock by half an hour."""

    def __init__(self, clock, *args, **kwargs):
        self.clock = clock
        self.processed = []

    def process(self, media):
        self.processed.append(media.filename)
        self.clock[0] += 1800
        task = EncodingTask(media, 30, media.path, media.path)
        task.apply(EncodeEvent.LOW_BITRATE)
        return task


def test_time_budget_stops_between_candidates(make_settings, tmp_path):
    write_videos(tmp_path, "a.mkv", "b.mkv", "c.mkv")
    clock = [0.0]
    orchestrator = ClockedOrchestrator(clock)
    pipeline = make_pipeline(
        make_settings(max_hours=1),
        FakeProber({"a.mkv": {}, "b.mkv": {}, "c.mkv": {}}),
        time_budget=TimeBudget(1, clock=lambda: clock[0]),
        orchestrator_factory=lambda *args, **kwargs: orchestrator,
    )

    summary = pipeline.run()

    assert orchestrator.processed == ["a.mkv", "b.mkv"]
    assert summary.processed == 2
    assert summary.stopped_by_time_budget is True


def test_unexpected_error_does_not_stop_the_batch(make_settings, tmp_path):
    write_videos(tmp_path, "a.mkv", "b.mkv")

    class FlakyOrchestrator(ClockedOrchestrator):
        def process(self, media):
            if media.filename == "a.mkv":
                raise OSError("No space left on device")
            return super().process(media)

    orchestrator = FlakyOrchestrator([0.0])
    pipeline = make_pipeline(
        make_settings(),
        FakeProber({"a.mkv": {}, "b.mkv": {}}),
        orchestrator_factory=lambda *args, **kwargs: orchestrator,
    )

    summary = pipeline.run()

    assert summary.errors == 1
    assert summary.processed == 1
    assert orchestrator.processed == ["b.mkv"]


def test_report_is_written(make_settings, tmp_path):
    write_videos(tmp_path, "a.mkv")
    report = tmp_path / "reports" / "run.yaml"
    pipeline = make_pipeline(make_settings(report_path=report), FakeProber({"a.mkv": {"size": 1_000_000}}))

    pipeline.run()

    data = yaml.safe_load(report.read_text())
    assert data["processed"] == 1
    assert data["states"] == {"replaced": 1}
    assert data["bytes_saved"] == 500_000


def test_keep_original_run_reports_no_space_saved(make_settings, tmp_path):
    write_videos(tmp_path, "a.mkv")
    report = tmp_path / "run.yaml"
    settings = make_settings(keep_original=True, report_path=report)

    summary = make_pipeline(settings, FakeProber({"a.mkv": {"size": 1_000_000}})).run()

    assert summary.states == {"replaced": 1}
    assert (tmp_path / "a-encoded.mkv").exists()
    assert summary.bytes_before == 0
    assert summary.bytes_saved == 0
    assert yaml.safe_load(report.read_text())["bytes_saved"] == 0
