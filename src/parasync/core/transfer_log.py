"""
Transfer logging module for parasync.
Handles per-job output logs and the history of sync runs.
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from parasync.core.config import get_config_dir

logger = logging.getLogger(__name__)

HISTORY_PREFIX = "sync_log_"


def job_log_path(log_dir: Path, job_id: int) -> Path:
    """Log file for a single job, creating the directory on demand"""
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir / f"job_{job_id}.log"


@dataclass
class TransferLogEntry:
    """One sync run as stored in the history"""
    timestamp: str
    source_dir: str
    destination_dir: str
    completed_units: int
    failed_units: int
    total_files: int
    total_size: int
    duration: float
    dry_run: bool
    failed_jobs: List[str] = field(default_factory=list)

    @property
    def date(self) -> str:
        return self.timestamp[:10]


class TransferLogger:
    """Stores one JSON history file per day of sync runs"""

    def __init__(self, log_dir: Optional[Path] = None):
        """
        Initialize the run history

        Args:
            log_dir: Directory holding history files (default: <config dir>/logs)
        """
        self.log_dir = Path(log_dir) if log_dir is not None else get_config_dir() / "logs"

    def _history_file(self, date: str) -> Path:
        return self.log_dir / f"{HISTORY_PREFIX}{date}.json"

    def _read(self, date: str) -> List[dict]:
        history_file = self._history_file(date)
        if not history_file.exists():
            return []
        try:
            with open(history_file, "r", encoding="utf-8") as f:
                records = json.load(f)
        except json.JSONDecodeError:
            logger.warning("Ignoring corrupt run log %s", history_file)
            return []
        return records if isinstance(records, list) else []

    def add_entry(self, entry: TransferLogEntry):
        """Append a run to the history file of the day it started"""
        records = self._read(entry.date)
        records.append(asdict(entry))

        self.log_dir.mkdir(parents=True, exist_ok=True)
        with open(self._history_file(entry.date), "w", encoding="utf-8") as f:
            json.dump(records, f, indent=2, ensure_ascii=False)

    def get_entries(self, date: Optional[str] = None) -> List[TransferLogEntry]:
        """
        Runs recorded on one day

        Args:
            date: Day in YYYY-MM-DD format (default: today)

        Returns:
            Entries in the order they were recorded, skipping malformed records
        """
        date = date or datetime.now().strftime("%Y-%m-%d")
        entries = []
        for record in self._read(date):
            try:
                entries.append(TransferLogEntry(**record))
            except TypeError:
                logger.warning("Skipping malformed run record in %s", self._history_file(date))
        return entries

    def get_log_dates(self) -> List[str]:
        """Days that have a history file, oldest first"""
        if not self.log_dir.is_dir():
            return []
        return sorted(
            path.stem[len(HISTORY_PREFIX):]
            for path in self.log_dir.glob(f"{HISTORY_PREFIX}*.json")
        )

    def latest_date(self) -> Optional[str]:
        dates = self.get_log_dates()
        return dates[-1] if dates else None
