"""
Filesystem scanning for parasync.
Walks the source tree and classifies files by size.
"""

import fnmatch
import logging
import os
from dataclasses import dataclass
from enum import Enum, auto
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

logger = logging.getLogger(__name__)


class SizeClass(Enum):
    """Size classes used to split the workload"""

    LARGE = auto()  # transferred one file per job
    SMALL = auto()  # grouped into batches


@dataclass(frozen=True)
class FileEntry:
    """A regular file discovered under the source root"""

    path: Path
    rel_path: str
    size: int
    size_class: SizeClass

    @property
    def is_large(self) -> bool:
        return self.size_class is SizeClass.LARGE


def matches_filters(
    name: str, include: Sequence[str] = (), exclude: Sequence[str] = ()
) -> bool:
    """
    Check a file name against include and exclude patterns

    Args:
        name: Base name of the file
        include: Patterns of which at least one must match, if any are given
        exclude: Patterns that drop the file, applied after include

    Returns:
        bool: True if the file should be kept
    """
    if include and not any(fnmatch.fnmatchcase(name, p) for p in include):
        return False
    return not any(fnmatch.fnmatchcase(name, p) for p in exclude)


class FileScanner:
    """Walks a source tree and yields classified file entries"""

    def __init__(
        self,
        root: Path,
        threshold: int,
        max_depth: int = 10,
        include: Optional[List[str]] = None,
        exclude: Optional[List[str]] = None,
    ):
        """
        Initialize scanner

        Args:
            root: Source root directory (depth 0)
            threshold: Files of at least this many bytes are LARGE
            max_depth: Deepest level to report files from
            include: Name patterns to include (default: all files)
            exclude: Name patterns to exclude
        """
        self.root = Path(root).absolute()
        self.threshold = threshold
        self.max_depth = max_depth
        self.include = list(include or [])
        self.exclude = list(exclude or [])

    def classify(self, size: int) -> SizeClass:
        """Label a file size against the threshold"""
        return SizeClass.LARGE if size >= self.threshold else SizeClass.SMALL

    def __iter__(self) -> Iterator[FileEntry]:
        return self.scan()

    def scan(self) -> Iterator[FileEntry]:
        """
        Walk the source tree

        Each call starts a fresh walk. Unreadable directories and files that
        disappear before they can be stat'ed are logged and skipped.

        Yields:
            FileEntry for every regular file within max_depth
        """
        logger.info("Scanning directory: %s", self.root)
        logger.debug(
            "Max depth: %d, min size: %d bytes", self.max_depth, self.threshold
        )
        yield from self._walk(self.root, 1)

    def _walk(self, directory: Path, depth: int) -> Iterator[FileEntry]:
        if depth > self.max_depth:
            return

        try:
            with os.scandir(directory) as it:
                entries = list(it)
        except OSError as e:
            logger.warning("Skipping unreadable directory %s: %s", directory, e)
            return

        subdirs = []
        for entry in entries:
            try:
                if entry.is_dir(follow_symlinks=False):
                    subdirs.append(entry.path)
                    continue
                if not entry.is_file(follow_symlinks=False):
                    continue
                if not matches_filters(entry.name, self.include, self.exclude):
                    continue
                size = entry.stat(follow_symlinks=False).st_size
            except OSError as e:
                logger.warning("Skipping %s: %s", entry.path, e)
                continue

            path = Path(entry.path)
            yield FileEntry(
                path=path,
                rel_path=path.relative_to(self.root).as_posix(),
                size=size,
                size_class=self.classify(size),
            )

        for subdir in subdirs:
            yield from self._walk(Path(subdir), depth + 1)
