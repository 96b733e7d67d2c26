"""Tests for the backup journal."""

import logging
import re
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from backup_agent.journal import BackupJournal, format_line

LINE_RE = re.compile(
    r"^\[UTC \d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z \| Local \d{2}:\d{2}:\d{2} \d{2}/\d{2}/\d{4}\] (.*)$"
)


def test_format_line_renders_utc_and_local_time():
    now = datetime(2024, 5, 1, 10, 20, 30, 123000, tzinfo=timezone.utc)
    line = format_line("hello", ZoneInfo("Asia/Ho_Chi_Minh"), now)
    assert line == "[UTC 2024-05-01T10:20:30.123Z | Local 17:20:30 01/05/2024] hello"


def test_creates_directory_and_both_files(config):
    assert not config.backup_dir.exists()
    BackupJournal.from_config(config)
    assert config.log_file.exists()
    assert config.error_log_file.exists()


def test_normal_and_error_lines_go_to_separate_files(journal, config):
    journal.log("all good")
    journal.log("went wrong", is_error=True)

    normal = config.log_file.read_text().splitlines()
    errors = config.error_log_file.read_text().splitlines()
    assert len(normal) == 1 and LINE_RE.match(normal[0]).group(1) == "all good"
    assert len(errors) == 1 and LINE_RE.match(errors[0]).group(1) == "went wrong"


def test_lines_are_appended(journal, config):
    journal.log("one")
    journal.log("two")
    BackupJournal.from_config(config).log("three")
    messages = [LINE_RE.match(line).group(1) for line in config.log_file.read_text().splitlines()]
    assert messages == ["one", "two", "three"]


def test_lines_are_mirrored_to_logging(journal, caplog):
    with caplog.at_level(logging.INFO, logger="backup_agent.journal"):
        journal.log("visible")
        journal.error("loud")
    levels = {record.levelno for record in caplog.records}
    assert levels == {logging.INFO, logging.ERROR}
    assert any("visible" in record.getMessage() for record in caplog.records)


def test_unwritable_directory_is_fatal(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("file in the way")
    with pytest.raises(OSError):
        BackupJournal(blocker / "backup.log", blocker / "backup-error.log", ZoneInfo("UTC"))
