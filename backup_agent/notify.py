"""Telegram notifications for backup events."""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import List, Optional

import requests

from .config import AgentConfig
from .journal import BackupJournal
from .utils import mask_sensitive

LOGGER = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org"


class TelegramNotifier:
    """Best-effort chat notifications.

    Messages are sent from a single background worker so the caller never
    waits on Telegram. Failures are written to the error journal and dropped.
    """

    def __init__(
        self,
        journal: BackupJournal,
        bot_token: Optional[str],
        chat_id: Optional[str],
        node_ip: str,
        timeout: float = 10.0,
    ) -> None:
        self.journal = journal
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.node_ip = node_ip
        self.timeout = timeout
        self._executor: Optional[ThreadPoolExecutor] = None
        self._pending: List[Future] = []
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: AgentConfig, journal: BackupJournal) -> "TelegramNotifier":
        return cls(journal, config.telegram_bot_token, config.telegram_chat_id, config.node_ip)

    @property
    def enabled(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    def notify(self, message: str) -> None:
        if not self.enabled:
            return
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="telegram")
            self._pending = [future for future in self._pending if not future.done()]
            self._pending.append(self._executor.submit(self._send, message))

    def send(self, message: str) -> bool:
        """Send *message* synchronously. Returns ``True`` on success."""

        if not self.enabled:
            return False
        return self._send(message)

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until every queued message has been handled."""

        with self._lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def close(self) -> None:
        self.wait()
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)

    # ------------------------------------------------------------------
    def _send(self, message: str) -> bool:
        url = f"{TELEGRAM_API}/bot{self.bot_token}/sendMessage"
        payload = {"chat_id": self.chat_id, "text": f"[{self.node_ip}] {message}"}
        try:
            response = requests.post(url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            detail = mask_sensitive(str(exc), [self.bot_token])
            self.journal.error(f"Telegram send error: {detail}")
            return False
        LOGGER.debug("Telegram message delivered: %s", message)
        return True


__all__ = ["TelegramNotifier", "TELEGRAM_API"]
