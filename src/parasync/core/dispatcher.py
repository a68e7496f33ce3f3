"""
Bounded-concurrency dispatch of work units.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from functools import partial
from typing import Iterable, List, Optional, Protocol

from parasync.core.batch import WorkUnit
from parasync.core.config import ConfigError, format_size
from parasync.core.progress import Outcome, ProgressAggregator
from parasync.core.transfer import TransferError, TransferStatus

logger = logging.getLogger(__name__)


class Transfer(Protocol):
    """Anything that can move one work unit"""

    def transfer(self, unit: WorkUnit, job_id: int) -> TransferStatus:
        ...


class Dispatcher:
    """
    Runs work units on a fixed pool of workers

    A unit is only submitted once one of the `jobs` slots is free, so no
    more than `jobs` transfers ever run at the same time. Large files and
    batches share the same slots. A failed unit is recorded and dispatch
    carries on with the next one.
    """

    def __init__(
        self,
        transfer: Transfer,
        jobs: int,
        aggregator: Optional[ProgressAggregator] = None,
    ):
        """
        Initialize dispatcher

        Args:
            transfer: Transfer operation invoked once per unit
            jobs: Maximum number of units in flight
            aggregator: Receives every outcome (default: a new aggregator)

        Raises:
            ConfigError: If jobs is not a positive integer
        """
        if isinstance(jobs, bool) or not isinstance(jobs, int) or jobs < 1:
            raise ConfigError("Jobs parameter must be a positive integer")
        self.transfer = transfer
        self.jobs = jobs
        self.aggregator = aggregator or ProgressAggregator()

    def dispatch(self, units: Iterable[WorkUnit]) -> List[Outcome]:
        """
        Run every unit and wait for all of them to finish

        Args:
            units: Units in submission order

        Returns:
            List of outcomes ordered by job id
        """
        slots = threading.BoundedSemaphore(self.jobs)
        submitted = 0

        with ThreadPoolExecutor(
            max_workers=self.jobs, thread_name_prefix="parasync-job"
        ) as pool:
            try:
                for job_id, unit in enumerate(units, 1):
                    slots.acquire()
                    future = pool.submit(self._run_unit, job_id, unit)
                    future.add_done_callback(partial(self._finish, job_id, unit, slots))
                    submitted += 1
            except KeyboardInterrupt:
                logger.warning(
                    "Interrupted, waiting for in-flight jobs to finish "
                    "(%d submitted)", submitted
                )
                raise

            logger.info("Waiting for all transfer jobs to complete...")

        return self.aggregator.outcomes()

    def _run_unit(self, job_id: int, unit: WorkUnit) -> Outcome:
        """Transfer one unit in a worker thread"""
        logger.info(
            "Job %d: Starting %s [%s]",
            job_id, unit.describe(), format_size(unit.total_size),
        )
        start_time = time.monotonic()

        try:
            status = self.transfer.transfer(unit, job_id)
        except (TransferError, OSError) as e:
            elapsed = time.monotonic() - start_time
            logger.error("Job %d: Failed %s: %s", job_id, unit.describe(), e)
            return Outcome(job_id, unit, success=False, elapsed=elapsed, error=str(e))

        elapsed = time.monotonic() - start_time
        if status.success:
            logger.info(
                "Job %d: Completed %s in %.1fs", job_id, unit.describe(), elapsed
            )
            return Outcome(
                job_id,
                unit,
                success=True,
                bytes_accounted=unit.total_size,
                elapsed=elapsed,
                returncode=status.returncode,
                log_file=status.log_file,
            )

        logger.error(
            "Job %d: Failed %s (exit code: %d)",
            job_id, unit.describe(), status.returncode,
        )
        if status.log_file is not None:
            logger.error("Job %d: Check log file: %s", job_id, status.log_file)
        return Outcome(
            job_id,
            unit,
            success=False,
            elapsed=elapsed,
            error=status.error,
            returncode=status.returncode,
            log_file=status.log_file,
        )

    def _finish(
        self,
        job_id: int,
        unit: WorkUnit,
        slots: threading.BoundedSemaphore,
        future: Future,
    ):
        """Record the outcome of a finished job and free its slot"""
        try:
            exc = future.exception()
            if exc is not None:
                logger.error(
                    "Job %d: Unexpected error in %s", job_id, unit.describe(),
                    exc_info=exc,
                )
                outcome = Outcome(job_id, unit, success=False, error=repr(exc))
            else:
                outcome = future.result()
            self.aggregator.record(outcome)
        finally:
            slots.release()
