"""
Low-level paths and IO for azchat.

Config paths are relative to the current working directory (repo-local) or
the user's home directory (user-global). Conversation logs are written to the
configured log directory, one file per run.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

# ── Directory / file paths ────────────────────────────────────────────────────

AZCHAT_DIR = Path(".azchat")
REPO_CONFIG_FILE = AZCHAT_DIR / "config.toml"

# User-global config (lower priority than repo config)
USER_CONFIG_FILE = Path.home() / ".config" / "azchat" / "config.toml"

LOG_FILE_PREFIX = "conversation_log_"
LOG_FILE_SUFFIX = ".txt"


# ── Timestamps ────────────────────────────────────────────────────────────────


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso_timestamp(moment: datetime) -> str:
    """
    ISO-8601 UTC timestamp with millisecond precision and a Z suffix,
    e.g. 2024-05-01T12:34:56.789Z.
    """
    utc = moment.astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ── Conversation log files ────────────────────────────────────────────────────


def log_file_name(started_at: datetime) -> str:
    """File name for a run started at `started_at`; colons are not filesystem-safe."""
    stamp = iso_timestamp(started_at).replace(":", "-")
    return f"{LOG_FILE_PREFIX}{stamp}{LOG_FILE_SUFFIX}"


def new_log_path(log_dir: Path, started_at: Optional[datetime] = None) -> Path:
    """
    Return an unused log path in `log_dir` for a run starting now.
    If a run already claimed this millisecond, step forward until the name is free.
    """
    moment = started_at or utc_now()
    path = log_dir / log_file_name(moment)
    while path.exists():
        moment += timedelta(milliseconds=1)
        path = log_dir / log_file_name(moment)
    return path


def append_log_line(path: Path, line: str) -> None:
    """
    Append one line to a conversation log, creating the file and its
    directory on first write. Raises OSError on failure.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as f:
        f.write(line)


def list_log_files(log_dir: Path, limit: Optional[int] = None) -> list[Path]:
    """Conversation logs in `log_dir`, newest first."""
    if not log_dir.is_dir():
        return []
    logs = sorted(
        log_dir.glob(f"{LOG_FILE_PREFIX}*{LOG_FILE_SUFFIX}"),
        key=lambda p: p.name,
        reverse=True,
    )
    return logs[:limit] if limit is not None else logs
