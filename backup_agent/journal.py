"""Append-only backup journal: ``backup.log`` and ``backup-error.log``."""
from __future__ import annotations

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo

from .config import AgentConfig
from .utils import ensure_directory, iso_utc, utc_now

LOGGER = logging.getLogger(__name__)

LOCAL_FORMAT = "%H:%M:%S %d/%m/%Y"


def format_line(message: str, local_tz: ZoneInfo, now: Optional[datetime] = None) -> str:
    now = now or utc_now()
    local_time = now.astimezone(local_tz).strftime(LOCAL_FORMAT)
    return f"[UTC {iso_utc(now)} | Local {local_time}] {message}"


class BackupJournal:
    """Writes timestamped lines to the normal or the error log file.

    Every line is mirrored to the console through :mod:`logging`. The
    backup directory is created up front; an ``OSError`` from here means the
    agent cannot run at all.
    """

    def __init__(self, log_file: Path, error_file: Path, local_tz: ZoneInfo) -> None:
        self.log_file = Path(log_file)
        self.error_file = Path(error_file)
        self.local_tz = local_tz
        self._lock = threading.Lock()
        ensure_directory(self.log_file.parent)
        ensure_directory(self.error_file.parent)
        # Fail early when the directory is not writable.
        for path in (self.log_file, self.error_file):
            path.touch(exist_ok=True)

    @classmethod
    def from_config(cls, config: AgentConfig) -> "BackupJournal":
        return cls(config.log_file, config.error_log_file, config.timezone)

    def log(self, message: str, is_error: bool = False) -> str:
        line = format_line(message, self.local_tz)
        target = self.error_file if is_error else self.log_file
        with self._lock:
            with target.open("a", encoding="utf-8") as fh:
                fh.write(line + "\n")
        if is_error:
            LOGGER.error(line)
        else:
            LOGGER.info(line)
        return line

    def error(self, message: str) -> str:
        return self.log(message, is_error=True)


__all__ = ["BackupJournal", "format_line"]
