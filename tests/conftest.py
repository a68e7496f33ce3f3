import os
import shutil
import threading
import time
from pathlib import Path

import pytest

from parasync.core.transfer import TransferStatus

KB = 1024
MB = 1024 * 1024


def write_file(path: Path, size: int):
    """Create a sparse file of an exact size"""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as f:
        f.truncate(size)


def tree_listing(root: Path) -> set:
    """(relative path, size) of every regular file under root"""
    return {
        (p.relative_to(root).as_posix(), p.stat().st_size)
        for p in root.rglob("*")
        if p.is_file()
    }


class FakeTransfer:
    """Copies units with shutil and records how many ran at once"""

    def __init__(self, source_root, destination_root, fail=(), delay=0.0, dry_run=False):
        self.source_root = Path(source_root)
        self.destination_root = Path(destination_root)
        self.fail = set(fail)
        self.delay = delay
        self.dry_run = dry_run
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def transfer(self, unit, job_id):
        with self._lock:
            self.calls.append((job_id, unit))
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            if self.fail.intersection(unit.rel_paths):
                return TransferStatus(returncode=23, error="simulated failure")
            if not self.dry_run:
                for rel_path in unit.rel_paths:
                    dest = self.destination_root / rel_path
                    os.makedirs(dest.parent, exist_ok=True)
                    shutil.copy2(self.source_root / rel_path, dest)
            return TransferStatus(returncode=0)
        finally:
            with self._lock:
                self.in_flight -= 1


@pytest.fixture
def make_tree():
    def _make(root: Path, files: dict) -> Path:
        root.mkdir(parents=True, exist_ok=True)
        for rel_path, size in files.items():
            write_file(root / rel_path, size)
        return root

    return _make


@pytest.fixture
def listing():
    return tree_listing


@pytest.fixture
def fake_transfer():
    return FakeTransfer


@pytest.fixture
def source_tree(tmp_path, make_tree):
    """Mixed tree: two large files, a handful of small ones, some nesting"""
    return make_tree(
        tmp_path / "source",
        {
            "big/video1.bin": 15 * MB,
            "big/video2.bin": 20 * MB,
            "notes.txt": 500 * KB,
            "docs/a.txt": 2 * KB,
            "docs/b.log": 3 * KB,
            "docs/deep/c.txt": 1 * KB,
            "empty.dat": 0,
        },
    )


@pytest.fixture(autouse=True)
def config_dir(tmp_path, monkeypatch):
    """Keep profiles and run history out of the real home directory"""
    path = tmp_path / "config"
    monkeypatch.setenv("PARASYNC_CONFIG_DIR", str(path))
    return path

