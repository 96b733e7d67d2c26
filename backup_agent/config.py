"""Configuration model and loader for the backup agent."""
from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Dict, List, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from dotenv import dotenv_values

CONFIG_FILENAME = "config.yaml"

DEFAULT_CONFIG_PATHS = [
    "/var/virtualizor/log",
    "/usr/local/virtualizor/universal.php",
    "/usr/local/virtualizor/conf",
]

# environment variable -> AgentConfig field
ENV_KEYS: Dict[str, str] = {
    "DB_BACKUP_DIR": "backup_dir",
    "RSYNC_TARGETS": "rsync_targets",
    "NODE_IP": "node_ip",
    "DB_USER": "db_user",
    "DB_PASS": "db_pass",
    "DB_NAME": "db_name",
    "MYSQLDUMP_BIN": "mysqldump_bin",
    "MYSQL_SOCKET": "mysql_socket",
    "TELEGRAM_BOT_TOKEN": "telegram_bot_token",
    "TELEGRAM_CHAT_ID": "telegram_chat_id",
    "PUSHGATEWAY_URL": "pushgateway_url",
    "APP_NAME": "app_name",
    "CONFIG_BACKUP_PATHS": "config_paths",
    "RSYNC_USER": "remote_user",
    "RSYNC_REMOTE_DIR": "remote_dir",
    "BACKUP_INTERVAL_SECONDS": "interval_seconds",
    "BACKUP_TIMEZONE": "local_timezone",
    "METRICS_JOB_NAME": "metrics_job",
    "COMMAND_TIMEOUT": "command_timeout",
}

_LIST_FIELDS = {"rsync_targets", "config_paths"}
_INT_FIELDS = {"interval_seconds", "command_timeout"}


class ConfigError(Exception):
    """Raised when configuration loading or validation fails."""


@dataclass
class AgentConfig:
    backup_dir: Path = Path("/var/backups/db")
    rsync_targets: List[str] = field(default_factory=list)
    node_ip: str = "localhost"

    # Database
    db_user: str = "root"
    db_pass: str = ""
    db_name: str = "virtualizor"
    mysqldump_bin: str = "mysqldump"
    mysql_socket: Optional[str] = None

    # Configuration archive
    app_name: str = "virtualizor"
    config_paths: List[str] = field(default_factory=lambda: list(DEFAULT_CONFIG_PATHS))

    # Remote targets
    remote_user: str = "root"
    remote_dir: Optional[str] = None

    # Reporting
    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None
    pushgateway_url: Optional[str] = None
    metrics_job: str = "db_backup"

    # Scheduling
    interval_seconds: int = 3600
    command_timeout: Optional[int] = None
    local_timezone: str = "Asia/Ho_Chi_Minh"

    def validate(self) -> None:
        if not self.db_name:
            raise ConfigError("DB_NAME must not be empty.")
        if not self.app_name:
            raise ConfigError("APP_NAME must not be empty.")
        if self.interval_seconds <= 0:
            raise ConfigError(
                f"BACKUP_INTERVAL_SECONDS must be positive, got {self.interval_seconds}."
            )
        if self.command_timeout is not None and self.command_timeout <= 0:
            raise ConfigError(f"COMMAND_TIMEOUT must be positive, got {self.command_timeout}.")
        try:
            ZoneInfo(self.local_timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ConfigError(f"Unknown time zone '{self.local_timezone}'.") from exc

    # ------------------------------------------------------------------
    @property
    def log_file(self) -> Path:
        return self.backup_dir / "backup.log"

    @property
    def error_log_file(self) -> Path:
        return self.backup_dir / "backup-error.log"

    @property
    def remote_backup_dir(self) -> str:
        return self.remote_dir or str(self.backup_dir)

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_chat_id)

    @property
    def metrics_enabled(self) -> bool:
        return bool(self.pushgateway_url)

    @property
    def timezone(self) -> ZoneInfo:
        return ZoneInfo(self.local_timezone)

    # ------------------------------------------------------------------
    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, object]]) -> "AgentConfig":
        """Build a config from a mapping of field names to raw values.

        A key given without a value (``rsync_targets:`` in YAML) keeps its
        default.
        """

        data = data or {}
        known = {item.name for item in fields(cls)}
        unknown = sorted(key for key in data if key not in known)
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}.")
        values = {key: _coerce(key, value) for key, value in data.items() if value is not None}
        config = cls(**values)
        config.validate()
        return config

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AgentConfig":
        return cls.from_dict(env_overrides(os.environ if environ is None else environ))


def env_overrides(environ: Mapping[str, Optional[str]]) -> Dict[str, object]:
    """Map known environment keys in *environ* onto config field names.

    Empty values are treated as unset.
    """

    result: Dict[str, object] = {}
    for env_name, field_name in ENV_KEYS.items():
        value = environ.get(env_name)
        if value is None or value == "":
            continue
        result[field_name] = value
    return result


# ---------------------------------------------------------------------------
def _coerce(name: str, value: object) -> object:
    if name in _LIST_FIELDS:
        if isinstance(value, str):
            value = value.split(",")
        if not isinstance(value, (list, tuple)):
            raise ConfigError(f"Value '{value}' for '{name}' must be a list or a comma separated string.")
        return [str(item).strip() for item in value if str(item).strip()]
    if name in _INT_FIELDS:
        return _safe_int(name, value)
    if name == "backup_dir":
        return Path(str(value)).expanduser()
    return str(value)


def _safe_int(name: str, value: object) -> int:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise ConfigError(f"Value '{value}' for '{name}' is not an integer.")


# ---------------------------------------------------------------------------
def load_config(
    path: Path = Path(CONFIG_FILENAME),
    env_file: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> AgentConfig:
    """Load the agent configuration.

    Values are layered: defaults, then the YAML file at *path* (if it
    exists), then the dotenv file, then *environ* (``os.environ`` by default).
    """

    path = Path(path)
    data: Dict[str, object] = {}
    if path.exists():
        loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
        if loaded:
            if not isinstance(loaded, dict):
                raise ConfigError(f"Configuration file '{path}' must contain a mapping.")
            data.update(loaded)

    dotenv_path = Path(env_file) if env_file is not None else Path(".env")
    if dotenv_path.exists():
        data.update(env_overrides(dotenv_values(dotenv_path)))

    data.update(env_overrides(os.environ if environ is None else environ))
    return AgentConfig.from_dict(data)


__all__ = ["AgentConfig", "ConfigError", "DEFAULT_CONFIG_PATHS", "ENV_KEYS", "env_overrides", "load_config"]
