"""Backup job orchestration and the fixed-interval scheduler."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .backup import ConfigBackupTask, DatabaseBackupTask, TaskResult
from .config import AgentConfig
from .journal import BackupJournal
from .metrics import MetricReporter
from .notify import TelegramNotifier
from .sync import RemoteSyncTask

LOGGER = logging.getLogger(__name__)


@dataclass
class JobReport:
    database: TaskResult
    config: TaskResult
    sync: Dict[str, TaskResult] = field(default_factory=dict)

    @property
    def artifacts(self) -> List[Path]:
        return [result.path for result in (self.database, self.config) if result.ok and result.path]


@dataclass
class BackupJob:
    config: AgentConfig
    journal: BackupJournal
    notifier: TelegramNotifier
    database_task: DatabaseBackupTask
    config_task: ConfigBackupTask
    sync_task: RemoteSyncTask
    _guard: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    @classmethod
    def build(cls, config: AgentConfig, journal: Optional[BackupJournal] = None) -> "BackupJob":
        """Wire every component from *config*.

        Creating the journal touches the backup directory, so an unwritable
        directory surfaces here as ``OSError``.
        """

        journal = journal or BackupJournal.from_config(config)
        notifier = TelegramNotifier.from_config(config, journal)
        metrics = MetricReporter.from_config(config, journal)
        return cls(
            config=config,
            journal=journal,
            notifier=notifier,
            database_task=DatabaseBackupTask(config, journal, notifier, metrics=metrics),
            config_task=ConfigBackupTask(config, journal, notifier),
            sync_task=RemoteSyncTask(config, journal, notifier),
        )

    @property
    def running(self) -> bool:
        return self._guard.locked()

    def run(self) -> Optional[JobReport]:
        """Run one backup pass. Returns ``None`` if a pass is already running."""

        if not self._guard.acquire(blocking=False):
            self.journal.log("Previous backup run still in progress, skipping")
            return None
        try:
            return self._run()
        finally:
            self._guard.release()

    def _run(self) -> JobReport:
        start_message = f"Starting {self.config.app_name} backup (DB + Config + Logs)..."
        self.journal.log(start_message)
        self.notifier.notify(start_message)

        report = JobReport(database=self.database_task.run(), config=self.config_task.run())
        report.sync = self.sync_task.run(report.artifacts)

        self.journal.log("Backup job finished.")
        return report

    def close(self) -> None:
        self.notifier.close()


class JobScheduler:
    """Runs a job at start and then every ``interval`` seconds until stopped.

    Ticks are measured from the previous tick, not from the end of the run,
    and each run gets its own thread. The job's guard skips a tick whose
    predecessor is still running.
    """

    def __init__(self, job: BackupJob, interval: float) -> None:
        self.job = job
        self.interval = interval
        self._stop = threading.Event()
        self._threads: List[threading.Thread] = []

    def run_once(self) -> Optional[JobReport]:
        return self.job.run()

    def trigger(self) -> threading.Thread:
        self._threads = [thread for thread in self._threads if thread.is_alive()]
        thread = threading.Thread(target=self._run_safely, name="backup-run", daemon=True)
        thread.start()
        self._threads.append(thread)
        return thread

    def run_forever(self) -> None:
        next_tick = time.monotonic()
        while not self._stop.is_set():
            self.trigger()
            next_tick += self.interval
            self._stop.wait(max(0.0, next_tick - time.monotonic()))

    def stop(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if wait:
            for thread in list(self._threads):
                thread.join(timeout)

    def _run_safely(self) -> None:
        try:
            self.job.run()
        except Exception:
            LOGGER.exception("Backup run crashed")


__all__ = ["BackupJob", "JobReport", "JobScheduler"]
