"""
Work units and batching for parasync transfers.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Generator, Iterable, List, Tuple

from parasync.core.filesystem import FileEntry


@dataclass(frozen=True)
class WorkUnit(ABC):
    """One schedulable item of transfer work"""

    @property
    @abstractmethod
    def rel_paths(self) -> Tuple[str, ...]:
        """Relative paths of the files in the unit"""

    @property
    def file_count(self) -> int:
        return len(self.rel_paths)

    @property
    @abstractmethod
    def total_size(self) -> int:
        """Bytes accounted when the unit succeeds"""

    @abstractmethod
    def describe(self) -> str:
        """Short label for log and summary lines"""


@dataclass(frozen=True)
class SingleFileUnit(WorkUnit):
    """A LARGE file transferred on its own"""

    path: str
    rel_path: str
    size: int

    @property
    def rel_paths(self) -> Tuple[str, ...]:
        return (self.rel_path,)

    @property
    def total_size(self) -> int:
        return self.size

    def describe(self) -> str:
        return self.rel_path


@dataclass(frozen=True)
class BatchUnit(WorkUnit):
    """Up to batch-size SMALL files transferred together"""

    files: Tuple[str, ...]  # relative paths in discovery order
    sequence: int
    size: int = 0

    @property
    def rel_paths(self) -> Tuple[str, ...]:
        return self.files

    @property
    def total_size(self) -> int:
        return self.size

    def describe(self) -> str:
        return f"batch {self.sequence} ({len(self.files)} files)"


@dataclass
class WorkPlan:
    """Work units in submission order plus discovery totals"""

    large_units: List[SingleFileUnit] = field(default_factory=list)
    batch_units: List[BatchUnit] = field(default_factory=list)
    total_files: int = 0
    total_bytes: int = 0

    @property
    def units(self) -> List[WorkUnit]:
        """LARGE units first, then batches"""
        return [*self.large_units, *self.batch_units]

    @property
    def large_count(self) -> int:
        return len(self.large_units)

    @property
    def small_count(self) -> int:
        return sum(unit.file_count for unit in self.batch_units)

    def __len__(self) -> int:
        return len(self.large_units) + len(self.batch_units)


def create_batches(
    files: Iterable[FileEntry], batch_size: int
) -> Generator[BatchUnit, None, None]:
    """
    Create batches of small files for transfer

    Args:
        files: SMALL file entries in discovery order
        batch_size: Maximum number of files in a single batch

    Yields:
        BatchUnit for every batch_size files, the last one possibly shorter
    """
    if batch_size < 1:
        raise ValueError("batch_size must be a positive integer")

    current_batch: List[str] = []
    current_batch_size = 0
    sequence = 0

    for entry in files:
        current_batch.append(entry.rel_path)
        current_batch_size += entry.size

        if len(current_batch) >= batch_size:
            sequence += 1
            yield BatchUnit(tuple(current_batch), sequence, current_batch_size)
            current_batch = []
            current_batch_size = 0

    # Yield any remaining files
    if current_batch:
        yield BatchUnit(tuple(current_batch), sequence + 1, current_batch_size)


def order_by_size(units: Iterable[SingleFileUnit]) -> List[SingleFileUnit]:
    """Largest first, ties broken by relative path"""
    return sorted(units, key=lambda unit: (-unit.size, unit.rel_path))


def build_work_plan(
    entries: Iterable[FileEntry], batch_size: int, sort_by_size: bool = False
) -> WorkPlan:
    """
    Split classified files into work units

    Args:
        entries: Classified file entries from the scanner
        batch_size: Maximum SMALL files per batch
        sort_by_size: Order LARGE units largest first

    Returns:
        WorkPlan with one unit per LARGE file and batches of SMALL files
    """
    plan = WorkPlan()
    small: List[FileEntry] = []

    for entry in entries:
        plan.total_files += 1
        plan.total_bytes += entry.size
        if entry.is_large:
            plan.large_units.append(
                SingleFileUnit(str(entry.path), entry.rel_path, entry.size)
            )
        else:
            small.append(entry)

    if sort_by_size:
        plan.large_units = order_by_size(plan.large_units)
    plan.batch_units = list(create_batches(small, batch_size))
    return plan
