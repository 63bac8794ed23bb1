"""
Conversation loop: prompt → transcript update → gateway call → print/log → repeat.

A ChatSession owns everything one run needs (the transcript, the session
logger and the gateway) and is passed around explicitly. The loop has three
states:

  AWAITING_INPUT  read one line from the user
  DISPATCHING     append + log the user turn, call the gateway, handle the result
  EXITING         farewell, termination log entry, stop (terminal)

Every per-turn failure is caught here and turned into a printed diagnostic
plus a SYSTEM log entry; the loop only ends on an exit keyword or end of input.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from .config import exit_keywords, log_dir, system_prompt
from .models import CompletionParams, ErrorClass, Role, Transcript
from .providers.base import BaseGateway, CompletionResult, ResultStatus
from .session_log import SessionLogger
from .state import new_log_path, utc_now

console = Console()
err_console = Console(stderr=True)

PROMPT_LABEL = "You: "

SESSION_STARTED = "Conversation session started"
SESSION_ENDED_BY_USER = "Conversation ended by user."
SESSION_ENDED_INPUT_CLOSED = "Conversation ended (input closed)."
SESSION_ENDED_ONE_SHOT = "Conversation ended (one-shot)."
SESSION_INTERRUPTED = "Conversation ended (interrupted)."
EMPTY_RESPONSE = "No valid response was received from the AI."
FAREWELL = "Ending the conversation. Goodbye!"


class LoopState(str, Enum):
    AWAITING_INPUT = "awaiting_input"
    DISPATCHING = "dispatching"
    EXITING = "exiting"


def is_exit_command(text: str, keywords: Iterable[str]) -> bool:
    normalized = text.strip().casefold()
    return any(normalized == k.strip().casefold() for k in keywords)


class ChatSession:
    """One run of the program: one transcript, one log file, one gateway."""

    def __init__(
        self,
        transcript: Transcript,
        logger: SessionLogger,
        gateway: BaseGateway,
        params: CompletionParams,
        exit_words: Iterable[str],
    ) -> None:
        self.transcript = transcript
        self.logger = logger
        self.gateway = gateway
        self.params = params
        self.exit_words = list(exit_words)
        self.state = LoopState.AWAITING_INPUT

    @classmethod
    def open(
        cls,
        config: dict[str, Any],
        gateway: BaseGateway,
        params: CompletionParams,
        *,
        started_at: Optional[datetime] = None,
        log_directory: Optional[Path] = None,
        primer: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> "ChatSession":
        """Build a session for a run starting now and write the startup entry."""
        path = new_log_path(log_directory or log_dir(config), started_at)
        logger = SessionLogger(path, clock=clock or utc_now)
        session = cls(
            transcript=Transcript.start(primer or system_prompt(config)),
            logger=logger,
            gateway=gateway,
            params=params,
            exit_words=exit_keywords(config),
        )
        logger.log(Role.SYSTEM, SESSION_STARTED)
        return session

    @property
    def log_path(self) -> Path:
        return self.logger.path

    # ── Transitions ───────────────────────────────────────────────────────────

    def close(self, reason: str = SESSION_ENDED_BY_USER) -> None:
        """Enter EXITING. Writes exactly one termination entry per session."""
        if self.state == LoopState.EXITING:
            return
        self.state = LoopState.EXITING
        self.logger.log(Role.SYSTEM, reason)

    def dispatch(self, user_input: str) -> CompletionResult:
        """
        Handle one non-exit input: record the user turn, call the gateway,
        then print and record whatever came back.
        """
        self.state = LoopState.DISPATCHING
        self.transcript.append(Role.USER, user_input)
        self.logger.log(Role.USER, user_input)

        console.print("[dim]Generating a response...[/dim]")
        try:
            result = self.gateway.complete(self.transcript, self.params)
        except Exception as exc:  # noqa: BLE001
            message = str(exc) or type(exc).__name__
            result = CompletionResult.failure(ErrorClass.OTHER_ERROR, message)

        if result.status == ResultStatus.REPLY and result.text:
            console.print(f"[bold magenta]AI:[/bold magenta] {escape(result.text)}")
            self.transcript.append(Role.ASSISTANT, result.text)
            self.logger.log(Role.ASSISTANT, result.text)
        elif result.status == ResultStatus.ERROR:
            label = result.error_class.value if result.error_class else "UNKNOWN"
            err_console.print(
                f"[bold red]✗ Error[/bold red] {escape(f'[{label}]')} "
                f"{escape(result.error_message or '')}"
            )
            self.logger.log(Role.SYSTEM, f"Error: {result.error_message}")
        else:
            console.print(f"[yellow]{EMPTY_RESPONSE}[/yellow]")
            self.logger.log(Role.SYSTEM, EMPTY_RESPONSE)

        self.state = LoopState.AWAITING_INPUT
        return result

    # ── Loop ──────────────────────────────────────────────────────────────────

    def banner(self) -> None:
        words = " or ".join(f"'{w}'" for w in self.exit_words)
        console.print(
            Panel(
                f"[bold green]azchat[/bold green]  [dim]{escape(words)} to quit[/dim]",
                title="Azure OpenAI chat",
                expand=False,
            )
        )
        console.print(f"[dim]Conversation log: {escape(str(self.log_path))}[/dim]")

    def run(self, read_input: Callable[[], str]) -> int:
        """
        Loop until an exit keyword or end of input. Returns the number of
        inputs dispatched to the gateway.
        """
        dispatched = 0
        while self.state != LoopState.EXITING:
            try:
                user_input = read_input()
            except (EOFError, KeyboardInterrupt):
                console.print(f"\n[dim]{FAREWELL}[/dim]")
                self.close(SESSION_ENDED_INPUT_CLOSED)
                break
            except UnicodeDecodeError as exc:
                # The offending line is consumed; prompt again.
                err_console.print(
                    f"[bold red]✗ Could not decode input[/bold red] {escape(str(exc))}"
                )
                self.logger.log(Role.SYSTEM, f"Error: could not decode input: {exc}")
                continue

            if is_exit_command(user_input, self.exit_words):
                console.print(f"[dim]{FAREWELL}[/dim]")
                self.close(SESSION_ENDED_BY_USER)
                break

            dispatched += 1
            try:
                self.dispatch(user_input)
            except KeyboardInterrupt:
                console.print(f"\n[dim]{FAREWELL}[/dim]")
                self.close(SESSION_INTERRUPTED)
                break
        return dispatched


def read_console_input() -> str:
    return console.input(f"\n[bold cyan]{PROMPT_LABEL}[/bold cyan]")
