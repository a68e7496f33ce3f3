"""
Logging setup for parasync.
"""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(verbose: bool = False, console: Optional[Console] = None) -> logging.Logger:
    """
    Route parasync log records to a rich console

    Args:
        verbose: Log DEBUG records, including the rsync command of each job
        console: Console shared with progress output (default: stderr console)

    Returns:
        The parasync logger
    """
    logger = logging.getLogger("parasync")
    logger.handlers.clear()
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        markup=False,
        rich_tracebacks=True,
        log_time_format="[%Y-%m-%d %H:%M:%S]",
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    return logger
