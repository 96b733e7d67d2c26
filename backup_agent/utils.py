"""Helper utilities for the node backup agent."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional

LOGGER = logging.getLogger(__name__)


def ensure_directory(path: Path) -> Path:
    """Create *path* if it does not exist and return it."""

    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso_utc(dt: Optional[datetime] = None) -> str:
    """Render *dt* as ``2024-05-01T10:20:30.123Z``."""

    dt = (dt or utc_now()).astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def timestamp_for_filename(dt: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with ``:`` and ``.`` replaced by ``-``.

    The result sorts lexicographically in chronological order.
    """

    return iso_utc(dt).replace(":", "-").replace(".", "-")


def mask_sensitive(value: str, secrets: Iterable[Optional[str]]) -> str:
    """Replace occurrences of secret values in *value* with '***'."""

    masked = value
    for secret in secrets:
        if secret:
            masked = masked.replace(secret, "***")
    return masked


def newest_first(directory: Path, pattern: str) -> List[Path]:
    """Return files in *directory* matching *pattern*, most recent first."""

    files = [path for path in Path(directory).glob(pattern) if path.is_file()]
    # mtime first, the timestamped name breaks ties within the same second
    files.sort(key=lambda path: (path.stat().st_mtime, path.name), reverse=True)
    return files


def prune_to_newest(directory: Path, pattern: str, keep: int = 1) -> List[Path]:
    """Delete all but the *keep* newest files matching *pattern*.

    Returns the removed paths.
    """

    removed: List[Path] = []
    for path in newest_first(directory, pattern)[keep:]:
        path.unlink()
        LOGGER.debug("Removed stale backup '%s'.", path)
        removed.append(path)
    return removed


__all__ = [
    "ensure_directory",
    "iso_utc",
    "mask_sensitive",
    "newest_first",
    "prune_to_newest",
    "timestamp_for_filename",
    "utc_now",
]
