"""
Final result of a sync run.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from parasync.core.progress import Outcome, ProgressAggregator, ProgressSnapshot

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Result of a sync run"""

    snapshot: ProgressSnapshot
    failed_outcomes: List[Outcome] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    duration: float = 0.0

    @property
    def success(self) -> bool:
        """Any failed unit fails the whole run"""
        return self.snapshot.failed == 0

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1


def summarize(
    aggregator: ProgressAggregator, started_at: Optional[datetime] = None
) -> SyncResult:
    """
    Take the final snapshot and decide the overall result

    Args:
        aggregator: Aggregator holding every outcome of the run
        started_at: When dispatch began (default: now)

    Returns:
        SyncResult for the run
    """
    completed_at = datetime.now()
    started_at = started_at or completed_at
    snapshot = aggregator.snapshot()
    result = SyncResult(
        snapshot=snapshot,
        failed_outcomes=[o for o in aggregator.outcomes() if not o.success],
        started_at=started_at,
        completed_at=completed_at,
        duration=(completed_at - started_at).total_seconds(),
    )

    logger.info(
        "Transfer completed: %d successful, %d failed",
        snapshot.completed, snapshot.failed,
    )
    if result.success:
        logger.info("All files transferred successfully!")
    else:
        logger.warning("Some files failed to transfer. Check logs for details.")
        for outcome in result.failed_outcomes:
            detail = outcome.error or "unknown error"
            if outcome.log_file is not None:
                detail = f"{detail} (log: {outcome.log_file})"
            logger.warning("  Job %d: %s: %s", outcome.job_id, outcome.unit.describe(), detail)
    return result
