import traceback
from typing import Callable, List, Optional

from loguru import logger

from ..config.settings import EncoderSettings
from ..domain.media import MediaFile
from ..domain.temp_models import EncodingTask, RunSummary
from ..services.encode_orchestrator import EncodeOrchestrator
from ..services.encoder_service import FfmpegEncoder
from ..services.file_processing_service import CandidateFilter, CandidateScan
from ..services.ledger_service import LedgerStore
from ..services.logging_service import ErrorLog
from ..services.probe_service import MediaProber
from ..utils.format_utils import format_timedelta, formatted_size
from .time_budget import TimeBudget


class StandardVideoPipeline:
    """
    Runs one batch: scan the target directory, then process the candidate
    queue one file at a time until it is empty or the time budget runs out.

    Collaborators can be injected; by default they are built from `settings`.
    """

    def __init__(
        self,
        settings: EncoderSettings,
        ledgers: Optional[LedgerStore] = None,
        prober: Optional[MediaProber] = None,
        encoder: Optional[FfmpegEncoder] = None,
        time_budget: Optional[TimeBudget] = None,
        orchestrator_factory: Optional[Callable[..., EncodeOrchestrator]] = None,
    ):
        self.settings = settings
        self.ledgers = ledgers or LedgerStore()
        self.prober = prober or MediaProber.from_settings(settings)
        self.encoder = encoder or FfmpegEncoder(settings)
        self.time_budget = time_budget or TimeBudget(settings.max_hours)
        self.error_log = ErrorLog.from_dir(settings.error_log_dir)
        factory = orchestrator_factory or EncodeOrchestrator
        self.orchestrator = factory(
            settings,
            self.ledgers,
            self.prober,
            self.encoder,
            error_log=self.error_log,
        )
        self.summary = RunSummary()

    def scan(self) -> CandidateScan:
        logger.info(f"Scanning {self.settings.root}{' (recursive)' if self.settings.recursive else ''}")
        scan = CandidateFilter(self.settings, self.ledgers, self.prober).scan()
        self.summary.scanned = scan.scanned
        self.summary.candidates = len(scan.candidates)
        return scan

    def list_candidates(self, candidates: List[MediaFile]):
        """Logs the candidate queue without encoding anything."""
        for media in candidates:
            logger.info(
                f"{media.filename} | {formatted_size(media.size)} | {media.vcodec} | "
                f"{format_timedelta(media.duration)}"
            )
        logger.info(f"Dry run: {len(candidates)} file(s) would be processed.")

    def process_single_file(self, media: MediaFile) -> Optional[EncodingTask]:
        """
        Processes one candidate. Unexpected errors are logged and counted; the
        candidate is left out of both ledgers so the next run retries it.
        """
        try:
            task = self.orchestrator.process(media)
        except Exception as e:
            tb_str = traceback.format_exception(type(e), e, e.__traceback__)
            error_msg = (
                f"Unhandled error while processing {media.filename}\n"
                f"Exception type: {type(e).__name__}\n"
                f"Exception message: {e}\n"
                f"Traceback:\n{''.join(tb_str)}"
            )
            logger.error(error_msg)
            if self.error_log:
                self.error_log.write(f"Unhandled error: {media.path}", error_msg)
            self.summary.errors += 1
            return None
        self.summary.record(task)
        return task

    def process_multi_file(self, candidates: List[MediaFile]):
        total = len(candidates)
        for i, media in enumerate(candidates, start=1):
            if self.time_budget.exhausted():
                logger.warning(
                    f"Time budget of {self.settings.max_hours}h reached after "
                    f"{format_timedelta(self.time_budget.elapsed())}, "
                    f"{total - i + 1} file(s) left for the next run."
                )
                self.summary.stopped_by_time_budget = True
                break
            logger.info(f"Task {i} / {total}: {media.path} ({formatted_size(media.size)})")
            self.process_single_file(media)

    def log_summary(self):
        s = self.summary
        logger.info(
            f"Processed {s.processed} of {s.candidates} candidate(s) "
            f"({s.scanned} video files scanned, {s.errors} error(s))"
        )
        for state, count in sorted(s.states.items()):
            logger.info(f"  {state}: {count}")
        if s.bytes_before:
            logger.info(
                f"Total: {formatted_size(s.bytes_before)} -> {formatted_size(s.bytes_after)} "
                f"(saved {formatted_size(s.bytes_saved)})"
            )
        if s.stopped_by_time_budget:
            logger.info("Stopped early: time budget reached.")

    def run(self) -> RunSummary:
        """
        Runs the batch.

        Returns:
            The `RunSummary`, also written as YAML when a report path is set.
        """
        scan = self.scan()
        if self.settings.dry_run:
            self.list_candidates(scan.candidates)
            return self.summary

        if not scan.candidates:
            logger.info("Nothing to encode.")
        else:
            self.process_multi_file(scan.candidates)
            self.log_summary()

        if self.settings.report_path:
            self.summary.dump(self.settings.report_path)
            logger.info(f"Report written to {self.settings.report_path}")
        return self.summary
