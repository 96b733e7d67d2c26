"""Pushgateway reporting of the database backup outcome."""
from __future__ import annotations

from typing import Optional

from prometheus_client import CollectorRegistry, Gauge, pushadd_to_gateway
from prometheus_client.exposition import default_handler

from .config import AgentConfig
from .journal import BackupJournal

SUCCESS = 1
FAILURE = 0

METRIC_NAME = "db_backup"


class MetricReporter:
    """Pushes a ``db_backup`` gauge sample; silently disabled without a URL.

    Each push uses a fresh registry holding the single sample, grouped under
    ``job=<job_name>`` and ``instance=<node_ip>``. The push is a POST, so
    other metrics in the same group are left alone.
    """

    def __init__(
        self,
        journal: BackupJournal,
        gateway_url: Optional[str],
        db_name: str,
        node_ip: str,
        job_name: str = "db_backup",
        timeout: float = 10.0,
    ) -> None:
        self.journal = journal
        self.gateway_url = (gateway_url or "").rstrip("/")
        self.db_name = db_name
        self.node_ip = node_ip
        self.job_name = job_name
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: AgentConfig, journal: BackupJournal) -> "MetricReporter":
        return cls(
            journal,
            config.pushgateway_url,
            config.db_name,
            config.node_ip,
            job_name=config.metrics_job,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.gateway_url)

    def registry(self, status: int) -> CollectorRegistry:
        registry = CollectorRegistry()
        gauge = Gauge(
            METRIC_NAME,
            "Outcome of the last database backup (1 success, 0 failure)",
            ["db", "node"],
            registry=registry,
        )
        gauge.labels(db=self.db_name, node=self.node_ip).set(status)
        return registry

    def report(self, status: int) -> bool:
        if not self.enabled:
            return False
        try:
            pushadd_to_gateway(
                self.gateway_url,
                job=self.job_name,
                registry=self.registry(status),
                grouping_key={"instance": self.node_ip},
                timeout=self.timeout,
                handler=default_handler,
            )
        except (OSError, ValueError) as exc:
            self.journal.error(f"Push metric error for DB: {exc}")
            return False
        self.journal.log(f"Push metric: {status}")
        return True


__all__ = ["FAILURE", "METRIC_NAME", "MetricReporter", "SUCCESS"]
