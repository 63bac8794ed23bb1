"""
Append-only conversation log for one chat session.

Each call appends one line to the session's log file:

    <ISO-8601 UTC timestamp> [<ROLE>]: <content>

ROLE is the upper-cased role name: SYSTEM for lifecycle and error notices,
USER and ASSISTANT for conversation turns. The file is plain text and is the
only artifact a session leaves behind.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional, Union

from rich.console import Console
from rich.markup import escape

from .models import Role
from .state import append_log_line, iso_timestamp, utc_now

_err_console = Console(stderr=True)

_TICK = timedelta(milliseconds=1)


def format_entry(moment: datetime, role: Union[Role, str], content: str) -> str:
    label = role.value if isinstance(role, Role) else role
    return f"{iso_timestamp(moment)} [{label.upper()}]: {content}\n"


class SessionLogger:
    """
    Writes role-tagged entries to a single log file.

    Failures are reported on stderr and swallowed: a broken log must never
    take the conversation down with it.
    """

    def __init__(
        self,
        path: Path,
        clock: Callable[[], datetime] = utc_now,
        err_console: Optional[Console] = None,
    ) -> None:
        self.path = path
        self._clock = clock
        self._err_console = err_console or _err_console
        self._last: Optional[datetime] = None

    def _next_timestamp(self) -> datetime:
        # Entries are millisecond-stamped; keep them strictly increasing.
        now = self._clock()
        moment = now.replace(microsecond=(now.microsecond // 1000) * 1000)
        if self._last is not None and moment <= self._last:
            moment = self._last + _TICK
        self._last = moment
        return moment

    def log(self, role: Union[Role, str], content: str) -> bool:
        """Append one entry. Returns False (after reporting) if the write failed."""
        entry = format_entry(self._next_timestamp(), role, content)
        try:
            append_log_line(self.path, entry)
        # ValueError covers UnicodeEncodeError (e.g. surrogates from undecodable stdin)
        except (OSError, ValueError) as exc:
            self._err_console.print(
                f"[bold red]Failed to write conversation log[/bold red] "
                f"{escape(str(self.path))}: {escape(str(exc))}"
            )
            return False
        return True
