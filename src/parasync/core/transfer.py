"""
Transfer module for parasync.
Runs rsync for a single work unit.
"""

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from parasync.core.batch import BatchUnit, SingleFileUnit, WorkUnit
from parasync.core.config import ConfigError
from parasync.core.transfer_log import job_log_path

logger = logging.getLogger(__name__)


class TransferError(Exception):
    """Raised when a transfer cannot be started"""

    pass


@dataclass
class TransferStatus:
    """Result of running the transfer tool for one unit"""

    returncode: int
    log_file: Optional[Path] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.returncode == 0


class RsyncTransfer:
    """Transfers work units with rsync"""

    RSYNC = "rsync"

    def __init__(
        self,
        source_root: Path,
        destination_root: Path,
        options: Optional[List[str]] = None,
        dry_run: bool = False,
        log_dir: Optional[Path] = None,
        executable: Optional[str] = None,
    ):
        """
        Initialize rsync transfer

        Args:
            source_root: Source directory the unit paths are relative to
            destination_root: Destination directory
            options: Rsync options as an argument list
            dry_run: Pass --dry-run so nothing is written
            log_dir: Directory for per-job output logs (default: discard output)
            executable: Rsync binary (default: rsync on PATH)
        """
        self.source_root = Path(source_root).absolute()
        self.destination_root = Path(destination_root).absolute()
        self.options = list(options or [])
        self.dry_run = dry_run
        self.log_dir = Path(log_dir) if log_dir else None
        self.executable = executable or self.RSYNC

    def check_available(self):
        """Raise ConfigError unless the rsync binary can be found"""
        if shutil.which(self.executable) is None:
            raise ConfigError(f"{self.executable} is not installed or not in PATH")

    def _base_command(self) -> List[str]:
        cmd = [self.executable, *self.options]
        if self.dry_run:
            cmd.append("--dry-run")
        return cmd

    def build_command(self, unit: WorkUnit) -> List[str]:
        """
        Build the rsync argument list for a unit

        Args:
            unit: Unit to transfer

        Returns:
            List[str]: Command arguments
        """
        if isinstance(unit, SingleFileUnit):
            if self.dry_run:
                # rsync reports the implied directories without creating them
                return [
                    *self._base_command(),
                    "--relative",
                    f"{self.source_root}/./{unit.rel_path}",
                    f"{self.destination_root}/",
                ]
            dest_path = self.destination_root / unit.rel_path
            return [*self._base_command(), unit.path, str(dest_path)]

        if isinstance(unit, BatchUnit):
            # Relative paths are fed on stdin, NUL separated
            return [
                *self._base_command(),
                "--from0",
                "--files-from=-",
                f"{self.source_root}/",
                f"{self.destination_root}/",
            ]

        raise TypeError(f"Unsupported work unit: {unit!r}")

    def _prepare_destination(self, unit: WorkUnit):
        """Ensure the target directory of a unit exists"""
        if self.dry_run:
            return
        if isinstance(unit, SingleFileUnit):
            target = (self.destination_root / unit.rel_path).parent
        else:
            target = self.destination_root
        os.makedirs(target, exist_ok=True)

    def transfer(self, unit: WorkUnit, job_id: int) -> TransferStatus:
        """
        Run rsync for a unit

        Args:
            unit: Unit to transfer
            job_id: Job sequence number, used to name the job log

        Returns:
            TransferStatus with the rsync exit code

        Raises:
            TransferError: If rsync could not be started
        """
        cmd = self.build_command(unit)
        logger.debug("Job %d: Command: %s", job_id, " ".join(cmd))

        stdin_data = None
        if isinstance(unit, BatchUnit):
            stdin_data = b"".join(
                path.encode("utf-8", "surrogateescape") + b"\0" for path in unit.files
            )

        log_file = job_log_path(self.log_dir, job_id) if self.log_dir else None

        try:
            self._prepare_destination(unit)
            if log_file is not None:
                with open(log_file, "wb") as log:
                    result = subprocess.run(
                        cmd,
                        input=stdin_data,
                        stdout=log,
                        stderr=subprocess.STDOUT,
                    )
                error = None
            else:
                result = subprocess.run(
                    cmd,
                    input=stdin_data,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.PIPE,
                )
                error = _last_line(result.stderr)
        except OSError as e:
            raise TransferError(f"Failed to run {self.executable}: {e}") from e

        if result.returncode != 0 and error is None:
            error = f"exit code {result.returncode}"
        return TransferStatus(
            returncode=result.returncode,
            log_file=log_file,
            error=error if result.returncode != 0 else None,
        )


def _last_line(output: Optional[bytes]) -> Optional[str]:
    if not output:
        return None
    lines = output.decode("utf-8", "replace").strip().splitlines()
    return lines[-1] if lines else None
