"""Standalone lucarne CLI.

Usage:
    lucarne -p PATH [-n NAME] [--id new|UUID]
    echo '<html>...</html>' | lucarne [-n NAME] [--id new|UUID]
    lucarne --version
"""

from __future__ import annotations

import logging
import os
import sys

import typer
from rich.console import Console

from lucarne._types import ContentEntry
from lucarne._utils import is_terminal, remove_quietly

app = typer.Typer(
    name="lucarne",
    help="Show HTML in a browser window without blocking the caller.",
    add_completion=False,
)
console = Console()
err_console = Console(stderr=True)

USAGE = """\
Usage: lucarne [-p path] [-n name] [--id [window-id]]
       echo '<html>...</html>' | lucarne

Options:
  -p, --path     Path to HTML file to display
  -n, --name     Display name for the window title
  --id           Window ID mode ('new' = generate ID, '<uuid>' = target window)
  -v, --version  Show version

Grouping mode (default):
  Files opened within 2 seconds are grouped in the same window.

Window ID mode (--id):
  lucarne -p file.html --id new     # Create window, print UUID
  lucarne -p file.html --id <uuid>  # Replace content in window
"""


def _error(msg: str) -> None:
    err_console.print(f"[red]✗[/red] {msg}", highlight=False)


def _configure_logging() -> None:
    """Root logging for the background instance (stderr is its log file)."""
    level = os.getenv("LUCARNE_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(process)d %(levelname)s %(name)s: %(message)s",
    )


def _read_entry(
    path: str | None, name: str | None, temp_file: bool
) -> tuple[ContentEntry | None, bool]:
    """Build the entry from --path or stdin. Returns ``(entry, from_stdin)``."""
    from lucarne import entry_from_file

    if path:
        try:
            entry = entry_from_file(path, name)
        except OSError as e:
            _error(f"Error reading file: {e}")
            raise typer.Exit(1)
        if temp_file:
            # Handed over by a parent invocation; the content is now ours
            remove_quietly(entry.path)
            entry = ContentEntry(name=name or "stdin", path="", content=entry.content)
        return entry, False

    if not is_terminal(sys.stdin):
        # Same tolerance for bad bytes as entry_from_file
        content = sys.stdin.buffer.read().decode("utf-8", errors="replace")
        return ContentEntry(name=name or "stdin", path="", content=content), True

    return None, False


@app.command()
def main(
    path: str | None = typer.Option(
        None, "--path", "-p", help="Path to HTML file to display."
    ),
    name: str | None = typer.Option(
        None, "--name", "-n", help="Display name for the window title."
    ),
    window_id: str | None = typer.Option(
        None,
        "--id",
        help="Window ID: 'new' to generate one, or an existing UUID to target that window.",
    ),
    version: bool = typer.Option(False, "--version", "-v", help="Show version."),
    internal_display: bool = typer.Option(False, "--internal-display", hidden=True),
    temp_file: bool = typer.Option(False, "--temp-file", hidden=True),
) -> None:
    """Display an HTML file or piped HTML, then return immediately."""
    from lucarne import (
        SpawnError,
        __version__,
        deliver,
        is_valid_window_id,
        new_window_id,
    )

    if version:
        typer.echo(f"lucarne {__version__}")
        raise typer.Exit()

    entry, from_stdin = _read_entry(path, name, temp_file)
    if entry is None:
        console.print(USAGE, highlight=False, markup=False)
        raise typer.Exit()

    if window_id == "new":
        window_id = new_window_id()
        typer.echo(window_id)
    elif window_id and not internal_display and not is_valid_window_id(window_id):
        _error(f"Invalid window ID format (expected UUID): {window_id}")
        raise typer.Exit(1)

    if internal_display:
        from lucarne.server import run_display

        _configure_logging()
        raise typer.Exit(run_display(entry, window_id=window_id or None))

    try:
        deliver(entry, window_id=window_id or None, from_stdin=from_stdin)
    except SpawnError as e:
        _error(f"Error spawning display: {e}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
