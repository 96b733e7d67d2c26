"""Command line entry point for the node backup agent."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Iterable, Optional

from backup_agent.config import AgentConfig, ConfigError, load_config
from backup_agent.runner import BackupJob, JobScheduler


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Periodically dump the database, archive configuration and ship both to remote nodes.",
    )
    parser.add_argument("--config", default="config.yaml", help="Path to an optional YAML configuration file.")
    parser.add_argument("--env-file", default=None, help="Path to a dotenv file (default: ./.env).")
    parser.add_argument("--once", action="store_true", help="Run a single backup pass and exit.")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Increase console log verbosity.")
    return parser


class _BelowError(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < logging.ERROR


def configure_logging(level: int) -> None:
    """Console logging: stdout below ERROR, stderr from ERROR up."""

    log_level = logging.DEBUG if level >= 1 else logging.INFO
    stdout = logging.StreamHandler(sys.stdout)
    stdout.addFilter(_BelowError())
    stderr = logging.StreamHandler(sys.stderr)
    stderr.setLevel(logging.ERROR)
    logging.basicConfig(level=log_level, format="%(message)s", handlers=[stdout, stderr])


def load_application_config(path: Path, env_file: Optional[str]) -> AgentConfig:
    try:
        return load_config(path, env_file=Path(env_file) if env_file else None)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(1)


def build_job(config: AgentConfig) -> BackupJob:
    try:
        return BackupJob.build(config)
    except OSError as exc:
        print(f"Cannot prepare backup directory '{config.backup_dir}': {exc}", file=sys.stderr)
        sys.exit(1)


def main(argv: Optional[Iterable[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    config = load_application_config(Path(args.config), args.env_file)
    job = build_job(config)
    scheduler = JobScheduler(job, config.interval_seconds)

    try:
        if args.once:
            scheduler.run_once()
        else:
            scheduler.run_forever()
    except KeyboardInterrupt:
        print("\nStopping backup agent.")
        scheduler.stop(wait=False)
    finally:
        job.close()


if __name__ == "__main__":
    main()
