"""
Sync orchestration for parasync.
Scans the source, plans work units, dispatches them and summarizes the run.
"""

import logging
import os
from datetime import datetime
from typing import Callable, Optional

from parasync.core.batch import WorkPlan, build_work_plan
from parasync.core.config import SyncConfig, format_size
from parasync.core.dispatcher import Dispatcher, Transfer
from parasync.core.filesystem import FileScanner
from parasync.core.progress import ProgressAggregator, ProgressReporter, ProgressSnapshot
from parasync.core.summary import SyncResult, summarize
from parasync.core.transfer import RsyncTransfer
from parasync.core.transfer_log import TransferLogEntry, TransferLogger

logger = logging.getLogger(__name__)


class NoFilesFoundError(Exception):
    """Raised when the scan finds nothing to transfer"""

    pass


class SyncManager:
    """Runs one sync from source to destination"""

    def __init__(
        self,
        config: SyncConfig,
        transfer: Optional[Transfer] = None,
        history: Optional[TransferLogger] = None,
        progress_interval: float = 5.0,
    ):
        """
        Initialize sync manager

        Args:
            config: Run options
            transfer: Transfer operation (default: rsync built from config)
            history: Run history to append to (default: none)
            progress_interval: Seconds between progress reports
        """
        self.config = config
        self._transfer = transfer
        self._history = history
        self.progress_interval = progress_interval

    @property
    def transfer(self) -> Transfer:
        if self._transfer is None:
            self._transfer = RsyncTransfer(
                self.config.source,
                self.config.destination,
                options=self.config.rsync_args,
                dry_run=self.config.dry_run,
                log_dir=self.config.log_dir,
            )
        return self._transfer

    def check(self):
        """
        Validate options before any work starts

        Raises:
            ConfigError: If the options are invalid or rsync is missing
        """
        self.config.validate()
        if isinstance(self.transfer, RsyncTransfer):
            self.transfer.check_available()

    def scanner(self) -> FileScanner:
        return FileScanner(
            self.config.source,
            threshold=self.config.min_size,
            max_depth=self.config.max_depth,
            include=self.config.include,
            exclude=self.config.exclude,
        )

    def plan(self) -> WorkPlan:
        """Scan the source and split it into work units"""
        plan = build_work_plan(
            self.scanner(),
            batch_size=self.config.batch_size,
            sort_by_size=self.config.sort_by_size,
        )
        logger.info(
            "Found %d files (%s total)", plan.total_files, format_size(plan.total_bytes)
        )
        logger.info(
            "  - %d large files (>=%s)", plan.large_count, format_size(self.config.min_size)
        )
        logger.info(
            "  - %d small files in %d batches", plan.small_count, len(plan.batch_units)
        )
        if self.config.sort_by_size and plan.large_units:
            logger.info("Large files sorted by size (largest first)")
        return plan

    def run(
        self,
        progress_sink: Optional[Callable[[ProgressSnapshot], None]] = None,
        plan: Optional[WorkPlan] = None,
    ) -> SyncResult:
        """
        Run the sync

        Args:
            progress_sink: Receives periodic progress snapshots
                (default: log a progress line)
            plan: Precomputed work plan (default: scan the source)

        Returns:
            SyncResult for the run

        Raises:
            ConfigError: If the options are invalid or rsync is missing
            NoFilesFoundError: If no file matches the criteria
        """
        self.check()
        if not self.config.dry_run:
            os.makedirs(self.config.destination, exist_ok=True)

        if plan is None:
            plan = self.plan()
        if plan.total_files == 0:
            logger.error("No files found matching criteria")
            raise NoFilesFoundError("No files found matching criteria")

        aggregator = ProgressAggregator(
            total_units=len(plan),
            total_files=plan.total_files,
            total_bytes=plan.total_bytes,
        )
        dispatcher = Dispatcher(self.transfer, self.config.jobs, aggregator)

        started_at = datetime.now()
        logger.info("Starting file-level parallel rsync...")
        with ProgressReporter(aggregator, self.progress_interval, progress_sink):
            dispatcher.dispatch(plan.units)

        result = summarize(aggregator, started_at)
        self._record_history(result, plan)
        return result

    def _record_history(self, result: SyncResult, plan: WorkPlan):
        if self._history is None:
            return
        entry = TransferLogEntry(
            timestamp=datetime.now().isoformat(),
            source_dir=str(self.config.source),
            destination_dir=str(self.config.destination),
            completed_units=result.snapshot.completed,
            failed_units=result.snapshot.failed,
            total_files=plan.total_files,
            total_size=result.snapshot.bytes_transferred,
            duration=result.duration,
            dry_run=self.config.dry_run,
            failed_jobs=[
                f"job {o.job_id}: {o.unit.describe()}" for o in result.failed_outcomes
            ],
        )
        try:
            self._history.add_entry(entry)
        except OSError as e:
            logger.warning("Failed to write run history: %s", e)
