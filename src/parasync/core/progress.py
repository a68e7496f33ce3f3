"""
Progress tracking for parasync.
Aggregates job outcomes reported by concurrent workers.
"""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional

from parasync.core.batch import WorkUnit
from parasync.core.config import format_size

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Outcome:
    """Terminal result of one work unit"""

    job_id: int
    unit: WorkUnit
    success: bool
    bytes_accounted: int = 0
    elapsed: float = 0.0
    error: Optional[str] = None
    returncode: Optional[int] = None
    log_file: Optional[Path] = None


@dataclass
class ProgressTally:
    """Running counters, only mutated by ProgressAggregator"""

    completed: int = 0
    failed: int = 0
    bytes_transferred: int = 0
    files_completed: int = 0
    files_failed: int = 0


@dataclass(frozen=True)
class ProgressSnapshot:
    """Read-only view of the tally"""

    completed: int
    failed: int
    total_units: int
    files_completed: int
    files_failed: int
    total_files: int
    bytes_transferred: int
    total_bytes: int

    @property
    def finished(self) -> int:
        return self.completed + self.failed

    @property
    def files_done(self) -> int:
        return self.files_completed + self.files_failed

    @property
    def percentage(self) -> float:
        if self.total_files > 0:
            return self.files_done * 100.0 / self.total_files
        if self.total_units > 0:
            return self.finished * 100.0 / self.total_units
        return 100.0

    def describe(self) -> str:
        return (
            f"Overall: {self.percentage:.0f}% complete "
            f"({self.files_done}/{self.total_files} files, "
            f"{format_size(self.bytes_transferred)}/{format_size(self.total_bytes)} transferred)"
        )


class ProgressAggregator:
    """
    Thread-safe tally of job outcomes

    Workers call record() from any thread; every update happens under a
    single lock so concurrent outcomes are never lost or counted twice.
    """

    def __init__(self, total_units: int = 0, total_files: int = 0, total_bytes: int = 0):
        self.total_units = total_units
        self.total_files = total_files
        self.total_bytes = total_bytes
        self._tally = ProgressTally()
        self._outcomes: Dict[int, Outcome] = {}
        self._lock = threading.Lock()

    def record(self, outcome: Outcome):
        """
        Apply one outcome to the tally

        Raises:
            ValueError: If an outcome for the same job was already recorded
        """
        with self._lock:
            if outcome.job_id in self._outcomes:
                raise ValueError(f"Outcome for job {outcome.job_id} already recorded")
            self._outcomes[outcome.job_id] = outcome

            files = outcome.unit.file_count
            if outcome.success:
                self._tally.completed += 1
                self._tally.files_completed += files
                self._tally.bytes_transferred += outcome.bytes_accounted
            else:
                self._tally.failed += 1
                self._tally.files_failed += files

    def snapshot(self) -> ProgressSnapshot:
        """Copy of the current tally"""
        with self._lock:
            tally = self._tally
            return ProgressSnapshot(
                completed=tally.completed,
                failed=tally.failed,
                total_units=self.total_units,
                files_completed=tally.files_completed,
                files_failed=tally.files_failed,
                total_files=self.total_files,
                bytes_transferred=tally.bytes_transferred,
                total_bytes=self.total_bytes,
            )

    def outcomes(self) -> list:
        """Recorded outcomes ordered by job id"""
        with self._lock:
            return [self._outcomes[job_id] for job_id in sorted(self._outcomes)]


def log_snapshot(snapshot: ProgressSnapshot):
    logger.info(snapshot.describe())


class ProgressReporter:
    """Reports aggregator snapshots on a background thread"""

    def __init__(
        self,
        aggregator: ProgressAggregator,
        interval: float = 5.0,
        sink: Optional[Callable[[ProgressSnapshot], None]] = None,
    ):
        """
        Initialize reporter

        Args:
            aggregator: Aggregator to read snapshots from
            interval: Seconds between reports
            sink: Receives each snapshot (default: log an INFO line)
        """
        self._aggregator = aggregator
        self._interval = interval
        self._sink = sink or log_snapshot
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self):
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="parasync-progress", daemon=True
        )
        self._thread.start()

    def stop(self):
        """Stop reporting and emit one final snapshot"""
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        self._sink(self._aggregator.snapshot())

    def _run(self):
        while not self._stop.wait(self._interval):
            self._sink(self._aggregator.snapshot())

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False
