"""Tests for the command line entry point."""

import pytest
import yaml

import backup_daemon
from backup_agent.config import ENV_KEYS


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_KEYS:
        monkeypatch.delenv(name, raising=False)


def test_once_runs_a_single_pass(tmp_path, clean_env, fake_dump, app_files, command_calls):
    backup_dir = tmp_path / "out"
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        yaml.safe_dump(
            {
                "backup_dir": str(backup_dir),
                "db_name": "clidb",
                "mysqldump_bin": str(fake_dump),
                "app_name": "cliapp",
                "config_paths": app_files,
                "local_timezone": "UTC",
            }
        )
    )

    backup_daemon.main(["--config", str(config_path), "--env-file", str(tmp_path / "none.env"), "--once"])

    assert len(list(backup_dir.glob("db_clidb_*.sql.gz"))) == 1
    assert len(list(backup_dir.glob("conf_cliapp_*.tar.gz"))) == 1
    assert "Backup job finished." in (backup_dir / "backup.log").read_text()


def test_config_error_exits_with_status_1(tmp_path, clean_env, monkeypatch, capsys):
    monkeypatch.setenv("BACKUP_INTERVAL_SECONDS", "never")

    with pytest.raises(SystemExit) as excinfo:
        backup_daemon.main(["--config", str(tmp_path / "absent.yaml"), "--env-file", str(tmp_path / "none.env")])

    assert excinfo.value.code == 1
    assert "Configuration error" in capsys.readouterr().err


def test_unwritable_backup_dir_exits_with_status_1(tmp_path, clean_env, monkeypatch):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    monkeypatch.setenv("DB_BACKUP_DIR", str(blocker / "backups"))

    with pytest.raises(SystemExit) as excinfo:
        backup_daemon.main(["--config", str(tmp_path / "absent.yaml"), "--env-file", str(tmp_path / "none.env"), "--once"])

    assert excinfo.value.code == 1


def test_empty_targets_key_in_yaml(tmp_path, clean_env, fake_dump, app_files):
    backup_dir = tmp_path / "out"
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        f"backup_dir: {backup_dir}\n"
        f"mysqldump_bin: {fake_dump}\n"
        "local_timezone: UTC\n"
        "config_paths:\n" + "".join(f"  - {path}\n" for path in app_files) + "rsync_targets:\n"
        "#  - 10.0.0.2\n"
    )

    backup_daemon.main(["--config", str(config_path), "--env-file", str(tmp_path / "none.env"), "--once"])

    assert "Backup job finished." in (backup_dir / "backup.log").read_text()
    assert (backup_dir / "backup-error.log").read_text() == ""
