import shutil
import subprocess
import threading
from unittest.mock import Mock, patch

import pytest

from parasync.core.batch import BatchUnit, SingleFileUnit
from parasync.core.config import ConfigError
from parasync.core.transfer import RsyncTransfer, TransferError

requires_rsync = pytest.mark.skipif(
    shutil.which("rsync") is None, reason="rsync is not installed"
)


@pytest.fixture
def roots(tmp_path):
    source = tmp_path / "src"
    destination = tmp_path / "dst"
    source.mkdir()
    return source, destination


@pytest.fixture
def mock_run():
    with patch("parasync.core.transfer.subprocess.run") as run:
        run.return_value = Mock(returncode=0, stderr=b"")
        yield run


def single(source, rel_path, size=100):
    return SingleFileUnit(str(source / rel_path), rel_path, size)


def test_single_file_command(roots):
    source, destination = roots
    transfer = RsyncTransfer(source, destination, options=["-a", "--partial"])

    cmd = transfer.build_command(single(source, "big/video.bin"))

    assert cmd == [
        "rsync",
        "-a",
        "--partial",
        str(source / "big/video.bin"),
        str(destination / "big/video.bin"),
    ]


def test_batch_command(roots):
    source, destination = roots
    transfer = RsyncTransfer(source, destination, options=["-a"], dry_run=True)

    cmd = transfer.build_command(BatchUnit(("a.txt", "b/c.txt"), 1))

    assert cmd == [
        "rsync",
        "-a",
        "--dry-run",
        "--from0",
        "--files-from=-",
        f"{source}/",
        f"{destination}/",
    ]


def test_unknown_unit_rejected(roots):
    transfer = RsyncTransfer(*roots)

    with pytest.raises(TypeError):
        transfer.build_command(object())


def test_batch_paths_sent_on_stdin(roots, mock_run):
    source, destination = roots
    transfer = RsyncTransfer(source, destination)

    status = transfer.transfer(BatchUnit(("a.txt", "dir/b c.txt"), 1), job_id=4)

    assert status.success
    assert mock_run.call_args.kwargs["input"] == b"a.txt\0dir/b c.txt\0"
    assert destination.is_dir()


def test_single_file_creates_destination_parent(roots, mock_run):
    source, destination = roots
    transfer = RsyncTransfer(source, destination)

    transfer.transfer(single(source, "x/y/z.bin"), job_id=1)

    assert (destination / "x" / "y").is_dir()
    assert mock_run.call_args.kwargs["input"] is None


def test_directory_creation_is_idempotent(roots, mock_run):
    source, destination = roots
    (destination / "x").mkdir(parents=True)
    transfer = RsyncTransfer(source, destination)

    first = transfer.transfer(single(source, "x/a.bin"), job_id=1)
    second = transfer.transfer(single(source, "x/b.bin"), job_id=2)

    assert first.success and second.success


def test_concurrent_directory_creation(roots, mock_run):
    source, destination = roots
    transfer = RsyncTransfer(source, destination)
    rel_paths = [f"a/b/c/{i % 3}/f{i}.bin" for i in range(24)] + ["a/b/g.bin"] * 8
    start = threading.Barrier(len(rel_paths), timeout=10)
    errors = []

    def worker(job_id, rel_path):
        start.wait()
        try:
            assert transfer.transfer(single(source, rel_path), job_id).success
        except Exception as e:
            errors.append(e)

    threads = [
        threading.Thread(target=worker, args=(job_id, rel_path))
        for job_id, rel_path in enumerate(rel_paths, 1)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert sorted(p.name for p in (destination / "a" / "b" / "c").iterdir()) == ["0", "1", "2"]


def test_dry_run_creates_no_directories(roots, mock_run):
    source, destination = roots
    transfer = RsyncTransfer(source, destination, options=["-a"], dry_run=True)

    assert transfer.transfer(single(source, "x/y/z.bin"), job_id=1).success
    assert transfer.transfer(BatchUnit(("a.txt",), 1), job_id=2).success

    assert not destination.exists()
    assert mock_run.call_args_list[0].args[0] == [
        "rsync",
        "-a",
        "--dry-run",
        "--relative",
        f"{source}/./x/y/z.bin",
        f"{destination}/",
    ]


def test_failure_reports_last_stderr_line(roots, mock_run):
    mock_run.return_value = Mock(
        returncode=23,
        stderr=b"sending incremental file list\nrsync error: some files could not be transferred\n",
    )
    transfer = RsyncTransfer(*roots)

    status = transfer.transfer(single(roots[0], "a.bin"), job_id=1)

    assert not status.success
    assert status.returncode == 23
    assert status.error == "rsync error: some files could not be transferred"


def test_failure_without_output(roots, mock_run):
    mock_run.return_value = Mock(returncode=11, stderr=b"")
    transfer = RsyncTransfer(*roots)

    status = transfer.transfer(single(roots[0], "a.bin"), job_id=1)

    assert status.error == "exit code 11"


def test_job_log_file(roots, mock_run, tmp_path):
    log_dir = tmp_path / "logs"
    transfer = RsyncTransfer(*roots, log_dir=log_dir)

    status = transfer.transfer(single(roots[0], "a.bin"), job_id=7)

    assert status.log_file == log_dir / "job_7.log"
    assert status.log_file.exists()
    assert mock_run.call_args.kwargs["stderr"] == subprocess.STDOUT


def test_missing_executable_raises_transfer_error(roots):
    transfer = RsyncTransfer(*roots, executable="definitely-not-rsync-binary")

    with pytest.raises(TransferError):
        transfer.transfer(single(roots[0], "a.bin"), job_id=1)


def test_check_available(roots):
    with patch("parasync.core.transfer.shutil.which", return_value=None):
        with pytest.raises(ConfigError, match="not installed"):
            RsyncTransfer(*roots).check_available()

    with patch("parasync.core.transfer.shutil.which", return_value="/usr/bin/rsync"):
        RsyncTransfer(*roots).check_available()


@requires_rsync
def test_rsync_single_and_batch(roots):
    source, destination = roots
    (source / "big").mkdir()
    (source / "big" / "video.bin").write_bytes(b"v" * 4096)
    (source / "docs").mkdir()
    (source / "docs" / "a.txt").write_text("alpha")
    (source / "b.txt").write_text("beta")
    transfer = RsyncTransfer(source, destination, options=["-a"])

    assert transfer.transfer(single(source, "big/video.bin", 4096), job_id=1).success
    assert transfer.transfer(BatchUnit(("docs/a.txt", "b.txt"), 1), job_id=2).success

    assert (destination / "big" / "video.bin").read_bytes() == b"v" * 4096
    assert (destination / "docs" / "a.txt").read_text() == "alpha"
    assert (destination / "b.txt").read_text() == "beta"


@requires_rsync
def test_rsync_dry_run_writes_nothing(roots):
    source, destination = roots
    (source / "a.txt").write_text("alpha")
    (source / "big.bin").write_bytes(b"x" * 2048)
    transfer = RsyncTransfer(source, destination, options=["-a"], dry_run=True)

    assert transfer.transfer(single(source, "big.bin", 2048), job_id=1).success
    assert transfer.transfer(BatchUnit(("a.txt",), 1), job_id=2).success

    assert [p for p in destination.rglob("*") if p.is_file()] == []


@requires_rsync
def test_rsync_missing_source_file_fails(roots):
    source, destination = roots
    transfer = RsyncTransfer(source, destination, options=["-a"])

    status = transfer.transfer(single(source, "missing.bin"), job_id=1)

    assert not status.success
    assert status.error
