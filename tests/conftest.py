"""Shared fixtures for the backup agent tests."""

import stat
import subprocess
from pathlib import Path

import pytest
import requests

from backup_agent import metrics
from backup_agent.config import AgentConfig
from backup_agent.journal import BackupJournal
from backup_agent.notify import TelegramNotifier


def write_script(path: Path, body: str) -> Path:
    """Create an executable shell script at *path*."""
    path.write_text("#!/bin/sh\n" + body + "\n")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def app_files(tmp_path):
    """A small stand-in for the application's log dir, script and config dir."""
    root = tmp_path / "app"
    (root / "log").mkdir(parents=True)
    (root / "log" / "app.log").write_text("started\n")
    (root / "universal.php").write_text("<?php\n")
    (root / "conf").mkdir()
    (root / "conf" / "settings.ini").write_text("key=value\n")
    return [str(root / "log"), str(root / "universal.php"), str(root / "conf")]


@pytest.fixture
def fake_dump(tmp_path):
    """A dump tool that prints a tiny SQL script."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    return write_script(bin_dir / "mysqldump", 'echo "-- dump of $*"\necho "CREATE TABLE t (id INT);"')


@pytest.fixture
def make_config(tmp_path, app_files, fake_dump):
    def _make(**overrides):
        values = dict(
            backup_dir=tmp_path / "backups",
            node_ip="10.0.0.1",
            db_name="testdb",
            db_pass="s3cret",
            mysqldump_bin=str(fake_dump),
            app_name="testapp",
            config_paths=app_files,
            local_timezone="UTC",
        )
        values.update(overrides)
        return AgentConfig(**values)

    return _make


@pytest.fixture
def config(make_config):
    return make_config()


@pytest.fixture
def journal(config):
    return BackupJournal.from_config(config)


@pytest.fixture
def notifier(config, journal):
    """Notifier without credentials: every call is a no-op."""
    return TelegramNotifier.from_config(config, journal)


class FakeResponse:
    def __init__(self, status_code=200):
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")


@pytest.fixture
def http_calls(monkeypatch):
    """Record ``requests.post`` calls instead of hitting the network."""
    calls = []

    def fake_post(url, **kwargs):
        calls.append((url, kwargs))
        return FakeResponse(200)

    monkeypatch.setattr(requests, "post", fake_post)
    return calls


@pytest.fixture
def command_calls(monkeypatch):
    """Record ``subprocess.run`` calls (rsync/ssh) and report success."""
    calls = []

    def fake_run(command, **kwargs):
        calls.append(list(command))
        return subprocess.CompletedProcess(command, 0, stdout="", stderr="")

    monkeypatch.setattr(subprocess, "run", fake_run)
    return calls


@pytest.fixture
def make_script():
    return write_script


@pytest.fixture
def gateway_pushes(monkeypatch):
    """Record Pushgateway requests as ``(url, method, body)`` instead of sending them."""
    pushes = []

    def fake_handler(url, method, timeout, headers, data):
        def send():
            pushes.append((url, method, data.decode("utf-8")))

        return send

    monkeypatch.setattr(metrics, "default_handler", fake_handler)
    return pushes
