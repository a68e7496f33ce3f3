from datetime import datetime

from parasync.core.transfer_log import TransferLogEntry, TransferLogger, job_log_path


def make_entry(**overrides):
    values = dict(
        timestamp=datetime.now().isoformat(),
        source_dir="/src",
        destination_dir="/dst",
        completed_units=3,
        failed_units=1,
        total_files=12,
        total_size=4096,
        duration=1.5,
        dry_run=False,
        failed_jobs=["job 2: big.bin"],
    )
    values.update(overrides)
    return TransferLogEntry(**values)


def test_job_log_path_creates_directory(tmp_path):
    path = job_log_path(tmp_path / "logs" / "nested", 12)

    assert path == tmp_path / "logs" / "nested" / "job_12.log"
    assert path.parent.is_dir()


def test_add_and_read_entries(tmp_path):
    logger = TransferLogger(tmp_path)

    logger.add_entry(make_entry())
    logger.add_entry(make_entry(failed_units=0, failed_jobs=[]))

    entries = logger.get_entries()
    assert len(entries) == 2
    assert entries[0].failed_jobs == ["job 2: big.bin"]
    assert entries[1].failed_units == 0


def test_log_dates(tmp_path):
    logger = TransferLogger(tmp_path)
    (tmp_path / "sync_log_2024-01-02.json").write_text("[]")
    (tmp_path / "sync_log_2023-12-31.json").write_text("[]")
    (tmp_path / "unrelated.json").write_text("[]")

    assert logger.get_log_dates() == ["2023-12-31", "2024-01-02"]


def test_missing_directory(tmp_path):
    logger = TransferLogger(tmp_path / "nothing")

    assert logger.get_log_dates() == []
    assert logger.get_entries("2024-01-01") == []


def test_corrupt_log_file(tmp_path):
    (tmp_path / "sync_log_2024-01-01.json").write_text("{oops")

    assert TransferLogger(tmp_path).get_entries("2024-01-01") == []


def test_default_location(config_dir):
    assert TransferLogger().log_dir == config_dir / "logs"


def test_entry_filed_under_its_own_date(tmp_path):
    logger = TransferLogger(tmp_path)

    logger.add_entry(make_entry(timestamp="2024-03-05T23:59:58"))

    assert logger.get_log_dates() == ["2024-03-05"]
    assert logger.latest_date() == "2024-03-05"
    assert len(logger.get_entries("2024-03-05")) == 1


def test_malformed_record_is_skipped(tmp_path, caplog):
    (tmp_path / "sync_log_2024-01-01.json").write_text('[{"timestamp": "x"}]')

    assert TransferLogger(tmp_path).get_entries("2024-01-01") == []
    assert "Skipping malformed run record" in caplog.text


def test_latest_date_without_history(tmp_path):
    assert TransferLogger(tmp_path).latest_date() is None
