"""Local backup tasks: database dump and configuration archive."""
from __future__ import annotations

import logging
import os
import subprocess
import tarfile
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import IO, Dict, Iterable, List, Optional, Sequence

from .config import AgentConfig
from .journal import BackupJournal
from .metrics import FAILURE, SUCCESS, MetricReporter
from .notify import TelegramNotifier
from .utils import ensure_directory, mask_sensitive, prune_to_newest, timestamp_for_filename

LOGGER = logging.getLogger(__name__)


class BackupError(Exception):
    """Raised when an external command or archive step fails."""


@dataclass(frozen=True)
class TaskResult:
    """Outcome of one task: a produced path on success, a reason on failure."""

    path: Optional[Path] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, path: Optional[Path] = None) -> "TaskResult":
        return cls(path=path)

    @classmethod
    def failure(cls, reason: str) -> "TaskResult":
        return cls(error=reason)


# ----------------------------------------------------------------------
def run_command(
    command: Sequence[str],
    *,
    timeout: Optional[int] = None,
    env: Optional[Dict[str, str]] = None,
    secrets: Iterable[Optional[str]] = (),
) -> subprocess.CompletedProcess:
    """Run *command* and raise :class:`BackupError` unless it exits with 0."""

    secrets = list(secrets)
    printable = mask_sensitive(" ".join(command), secrets)
    LOGGER.debug("Running command: %s", printable)
    try:
        result = subprocess.run(
            list(command),
            capture_output=True,
            text=True,
            timeout=timeout,
            env=env,
        )
    except FileNotFoundError as exc:
        raise BackupError(f"Command not found: {command[0]}") from exc
    except subprocess.TimeoutExpired as exc:
        raise BackupError(f"Command '{printable}' timed out after {timeout} seconds.") from exc
    if result.stdout:
        LOGGER.debug("STDOUT: %s", mask_sensitive(result.stdout.strip(), secrets))
    if result.returncode != 0:
        stderr = mask_sensitive((result.stderr or "").strip(), secrets)
        raise BackupError(f"Command '{printable}' exited with code {result.returncode}: {stderr}")
    return result


def _read_stderr(handle: IO[bytes]) -> str:
    handle.seek(0)
    return handle.read().decode("utf-8", errors="replace").strip()


# ----------------------------------------------------------------------
@dataclass
class LocalBackupTask:
    """Shared journaling and retention for tasks that write one artifact."""

    config: AgentConfig
    journal: BackupJournal
    notifier: TelegramNotifier

    cleanup_label = "backups"

    @property
    def label(self) -> str:
        raise NotImplementedError

    @property
    def pattern(self) -> str:
        raise NotImplementedError

    def artifact_path(self, now: Optional[datetime] = None) -> Path:
        raise NotImplementedError

    def produce(self, target: Path) -> None:
        raise NotImplementedError

    def run(self, now: Optional[datetime] = None) -> TaskResult:
        target = self.artifact_path(now)
        try:
            ensure_directory(self.config.backup_dir)
            self.produce(target)
        except (BackupError, OSError, tarfile.TarError) as exc:
            reason = mask_sensitive(str(exc), [self.config.db_pass])
            self._discard(target)
            message = f"{self.label} FAILED: {reason}"
            self.journal.error(message)
            self.notifier.notify(message)
            self.on_failure()
            return TaskResult.failure(reason)

        self.journal.log(f"{self.label} OK: {target}")
        self.notifier.notify(f"{self.label} OK")
        self.on_success()
        self.cleanup()
        return TaskResult.success(target)

    def cleanup(self) -> List[Path]:
        try:
            removed = prune_to_newest(self.config.backup_dir, self.pattern)
        except OSError as exc:
            self.journal.error(f"Cleanup old {self.cleanup_label} FAILED: {exc}")
            return []
        self.journal.log(f"Cleanup old {self.cleanup_label} done")
        return removed

    def on_success(self) -> None:
        pass

    def on_failure(self) -> None:
        pass

    def _discard(self, target: Path) -> None:
        try:
            target.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            LOGGER.warning("Could not remove partial file '%s': %s", target, exc)


@dataclass
class DatabaseBackupTask(LocalBackupTask):
    """``mysqldump | gzip`` into ``db_<name>_<timestamp>.sql.gz``."""

    metrics: Optional[MetricReporter] = None

    cleanup_label = "DB backups"

    @property
    def label(self) -> str:
        return f"Backup DB {self.config.db_name}"

    @property
    def pattern(self) -> str:
        return f"db_{self.config.db_name}_*.sql.gz"

    def artifact_path(self, now: Optional[datetime] = None) -> Path:
        timestamp = timestamp_for_filename(now)
        return self.config.backup_dir / f"db_{self.config.db_name}_{timestamp}.sql.gz"

    def dump_command(self) -> List[str]:
        command = [self.config.mysqldump_bin]
        if self.config.mysql_socket:
            command.append(f"--socket={self.config.mysql_socket}")
        command.extend([f"-u{self.config.db_user}", self.config.db_name])
        return command

    def produce(self, target: Path) -> None:
        env = os.environ.copy()
        if self.config.db_pass:
            env["MYSQL_PWD"] = self.config.db_pass
        timeout = self.config.command_timeout
        dump_cmd = self.dump_command()

        with target.open("wb") as out, tempfile.TemporaryFile() as dump_err, tempfile.TemporaryFile() as gzip_err:
            try:
                dump = subprocess.Popen(dump_cmd, stdout=subprocess.PIPE, stderr=dump_err, env=env)
            except FileNotFoundError as exc:
                raise BackupError(f"Dump tool not found: {dump_cmd[0]}") from exc
            try:
                compressor = subprocess.Popen(["gzip", "-c"], stdin=dump.stdout, stdout=out, stderr=gzip_err)
            except FileNotFoundError as exc:
                dump.kill()
                dump.wait()
                raise BackupError("Compressor not found: gzip") from exc
            # Only the compressor holds the read end now, so a dying gzip
            # delivers SIGPIPE to the dump tool.
            dump.stdout.close()

            try:
                compressor.wait(timeout=timeout)
                dump.wait(timeout=timeout)
            except subprocess.TimeoutExpired as exc:
                for process in (dump, compressor):
                    process.kill()
                    process.wait()
                raise BackupError(f"Database dump timed out after {timeout} seconds.") from exc

            if dump.returncode != 0:
                raise BackupError(
                    f"{dump_cmd[0]} exited with code {dump.returncode}: {_read_stderr(dump_err)}"
                )
            if compressor.returncode != 0:
                raise BackupError(
                    f"gzip exited with code {compressor.returncode}: {_read_stderr(gzip_err)}"
                )

    def on_success(self) -> None:
        if self.metrics is not None:
            self.metrics.report(SUCCESS)

    def on_failure(self) -> None:
        if self.metrics is not None:
            self.metrics.report(FAILURE)


@dataclass
class ConfigBackupTask(LocalBackupTask):
    """Tarball of the application's log directory, entry script and config."""

    cleanup_label = "config backups"

    @property
    def label(self) -> str:
        return f"Backup config {self.config.app_name}"

    @property
    def pattern(self) -> str:
        return f"conf_{self.config.app_name}_*.tar.gz"

    def artifact_path(self, now: Optional[datetime] = None) -> Path:
        timestamp = timestamp_for_filename(now)
        return self.config.backup_dir / f"conf_{self.config.app_name}_{timestamp}.tar.gz"

    def produce(self, target: Path) -> None:
        sources = [Path(item) for item in self.config.config_paths]
        if not sources:
            raise BackupError("No configuration paths to archive.")
        missing = [str(path) for path in sources if not path.exists()]
        if missing:
            raise BackupError(f"Paths not found: {', '.join(missing)}")

        with tarfile.open(target, "w:gz") as archive:
            for path in sources:
                arcname = str(path).lstrip("/") or path.name
                archive.add(str(path), arcname=arcname)


__all__ = [
    "BackupError",
    "ConfigBackupTask",
    "DatabaseBackupTask",
    "LocalBackupTask",
    "TaskResult",
    "run_command",
]
