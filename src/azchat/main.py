"""
azchat CLI entry point.

Commands
--------
  azchat chat                       — interactive conversation loop
  azchat ask "<prompt>"             — single-turn one-shot mode
  azchat status                     — show resolved settings and recent logs
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

import typer
from rich.markup import escape
from rich.table import Table

from .chat import (
    SESSION_ENDED_ONE_SHOT,
    SESSION_INTERRUPTED,
    ChatSession,
    console,
    err_console,
    read_console_input,
)
from .config import (
    ConfigError,
    completion_params,
    exit_keywords,
    load_config,
    load_env_file,
    log_dir,
    require_azure_settings,
    system_prompt,
)
from .providers.azure import AzureGateway
from .providers.base import ResultStatus
from .state import list_log_files

# ── Typer app ─────────────────────────────────────────────────────────────────

app = typer.Typer(
    name="azchat",
    help="Interactive chat with an Azure OpenAI deployment, logged to a text file.",
    no_args_is_help=True,
    add_completion=False,
)

RECENT_LOGS = 5


def _mask_secret(value: Optional[str]) -> str:
    if not value:
        return "—"
    if len(value) <= 8:
        return "****"
    return f"{value[:4]}…{value[-4:]}"


def _config_failure(exc: ConfigError) -> typer.Exit:
    """Report a configuration error; the caller raises the returned Exit."""
    err_console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
    if exc.missing:
        hint = (
            "Set " + ", ".join(exc.missing)
            + " in the environment, a .env file, or the [azure] section of "
            ".azchat/config.toml."
        )
        err_console.print(escape(hint))
    return typer.Exit(1)


def _load_config() -> dict[str, Any]:
    load_env_file()
    try:
        return load_config()
    except ConfigError as exc:
        raise _config_failure(exc)


def _open_session(
    config: dict[str, Any],
    *,
    log_directory: Optional[Path] = None,
    primer: Optional[str] = None,
) -> ChatSession:
    """
    Validate configuration and build a session.
    Exits with code 1 (before any log file is created) if settings are missing.
    """
    try:
        settings = require_azure_settings(config)
        params = completion_params(config)
    except ConfigError as exc:
        raise _config_failure(exc)

    return ChatSession.open(
        config,
        AzureGateway(settings),
        params,
        log_directory=log_directory,
        primer=primer,
    )


# ── Commands ──────────────────────────────────────────────────────────────────


@app.command()
def chat(
    log_directory: Optional[Path] = typer.Option(
        None,
        "--log-dir",
        help="Directory for the conversation log (default: the chat.log_dir setting, or CWD).",
    ),
    primer: Optional[str] = typer.Option(
        None,
        "--system-prompt",
        help="Override the persona primer sent as the first (system) turn.",
    ),
) -> None:
    """
    Start an interactive conversation.
    Every turn is sent with the full history and appended to a log file.
    Type an exit keyword (default '終了' or 'exit') or Ctrl-D to quit.
    """
    config = _load_config()
    session = _open_session(config, log_directory=log_directory, primer=primer)
    session.banner()
    session.run(read_console_input)


@app.command()
def ask(
    prompt: list[str] = typer.Argument(
        ...,
        metavar="PROMPT...",
        help="Prompt to send to the deployment.",
    ),
    log_directory: Optional[Path] = typer.Option(
        None,
        "--log-dir",
        help="Directory for the conversation log (default: the chat.log_dir setting, or CWD).",
    ),
) -> None:
    """
    Send a single prompt (one-shot mode) and print the response.
    Exits with code 1 on error or an empty response.
    """
    config = _load_config()
    session = _open_session(config, log_directory=log_directory)
    try:
        result = session.dispatch(" ".join(prompt).strip())
    except KeyboardInterrupt:
        session.close(SESSION_INTERRUPTED)
        raise typer.Exit(130)
    session.close(SESSION_ENDED_ONE_SHOT)
    if result.status != ResultStatus.REPLY:
        raise typer.Exit(1)


@app.command()
def status() -> None:
    """
    Print the resolved configuration (API key masked) and the latest logs.
    """
    config = _load_config()
    azure = config.get("azure", {})
    completion = config.get("completion", {})

    console.print()
    table = Table(show_header=True, header_style="bold")
    table.add_column("Setting")
    table.add_column("Value")

    table.add_row("Endpoint", escape(str(azure.get("endpoint") or "—")))
    table.add_row("Deployment", escape(str(azure.get("deployment") or "—")))
    table.add_row("API version", escape(str(azure.get("api_version") or "—")))
    table.add_row("API key", _mask_secret(azure.get("api_key")))
    for key in ("max_tokens", "temperature", "top_p"):
        table.add_row(key, str(completion.get(key)))
    table.add_row("Exit keywords", escape(", ".join(exit_keywords(config))))
    table.add_row("System prompt", escape(system_prompt(config)))
    table.add_row("Log directory", escape(str(log_dir(config))))
    console.print(table)

    try:
        require_azure_settings(config)
    except ConfigError as exc:
        console.print(f"\n[yellow]{escape(str(exc))}[/yellow]")
    else:
        console.print("\n[green]✓[/green] Azure settings complete.")

    logs = list_log_files(log_dir(config), limit=RECENT_LOGS)
    console.print()
    if not logs:
        console.print("[dim]No conversation logs yet.[/dim]")
    else:
        console.print("[bold]Recent logs:[/bold]")
        for path in logs:
            console.print(f"  - {escape(str(path))}")
    console.print()


# ── Entry point ───────────────────────────────────────────────────────────────


def main() -> None:
    app()


if __name__ == "__main__":
    main()
