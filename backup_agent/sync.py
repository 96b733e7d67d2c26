"""Replication of artifacts and journals to remote targets over rsync/ssh."""
from __future__ import annotations

import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Sequence

from .backup import BackupError, TaskResult, run_command
from .config import AgentConfig
from .journal import BackupJournal
from .notify import TelegramNotifier


@dataclass
class RemoteSyncTask:
    config: AgentConfig
    journal: BackupJournal
    notifier: TelegramNotifier

    def remote_patterns(self) -> List[str]:
        """Shell-quoted file classes pruned to their newest copy on every target."""

        return [
            _glob(f"db_{self.config.db_name}_", ".sql.gz"),
            _glob(f"conf_{self.config.app_name}_", ".tar.gz"),
            shlex.quote(self.config.log_file.name),
            shlex.quote(self.config.error_log_file.name),
        ]

    def destination(self, target: str) -> str:
        return f"{self.config.remote_user}@{target}"

    def rsync_command(self, artifacts: Sequence[Path], target: str) -> List[str]:
        sources = [str(path) for path in artifacts]
        sources += [str(self.config.log_file), str(self.config.error_log_file)]
        remote_dir = self.config.remote_backup_dir.rstrip("/")
        return ["rsync", "-avz", *sources, f"{self.destination(target)}:{remote_dir}/"]

    def prune_script(self) -> str:
        steps = [f"cd {shlex.quote(self.config.remote_backup_dir)}"]
        for pattern in self.remote_patterns():
            steps.append(f"ls -1t {pattern} | tail -n +2 | xargs -r rm -f")
        return " && ".join(steps)

    def ssh_command(self, target: str) -> List[str]:
        return ["ssh", self.destination(target), self.prune_script()]

    # ------------------------------------------------------------------
    def run(self, artifacts: Sequence[Path]) -> Dict[str, TaskResult]:
        """Push *artifacts* and both journals to every target.

        Targets are handled independently; one failing target does not stop
        the others. Nothing happens when *artifacts* is empty.
        """

        results: Dict[str, TaskResult] = {}
        if not artifacts:
            return results
        for target in self.config.rsync_targets:
            if not target:
                continue
            results[target] = self.sync_target(artifacts, target)
        return results

    def sync_target(self, artifacts: Sequence[Path], target: str) -> TaskResult:
        timeout = self.config.command_timeout
        try:
            run_command(self.rsync_command(artifacts, target), timeout=timeout)
            message = f"Rsync backups + logs to {target} done"
            self.journal.log(message)
            self.notifier.notify(message)

            run_command(self.ssh_command(target), timeout=timeout)
            self.journal.log(f"Cleanup old backups + logs on {target} done")
        except BackupError as exc:
            message = f"Rsync/cleanup backups + logs to {target} FAILED: {exc}"
            self.journal.error(message)
            self.notifier.notify(message)
            return TaskResult.failure(str(exc))
        return TaskResult.success()


def _glob(prefix: str, suffix: str) -> str:
    return shlex.quote(prefix) + "*" + shlex.quote(suffix)


__all__ = ["RemoteSyncTask"]
