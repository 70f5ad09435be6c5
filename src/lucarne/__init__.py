"""lucarne: show HTML in a browser window without blocking the caller.

Each call hands one piece of content to a background display instance and
returns as soon as it has been delivered. Calls made within a couple of
seconds of each other land in the same window (grouping mode); a window id
addresses one specific window whose content is replaced on every call
(named mode).

Quick Start:
    import lucarne

    lucarne.show_file("report.html")
    lucarne.show_content("<h1>Done</h1>", name="status")

    window = lucarne.new_window_id()
    lucarne.show_file("diff.html", window_id=window)
"""

from __future__ import annotations

import logging
import os
import uuid

from lucarne._types import AddEntry, ContentEntry, ReplaceEntry
from lucarne.addressing import AddressingMode
from lucarne.client import send_to_grouping_instance, send_to_window_instance
from lucarne.spawner import ChildExitedError, ReadinessTimeout, SpawnError, spawn_and_await_ready

__version__ = "2.0.0"

__all__ = [
    "AddEntry",
    "ContentEntry",
    "ReadinessTimeout",
    "ReplaceEntry",
    "SpawnError",
    "deliver",
    "entry_from_file",
    "is_valid_window_id",
    "new_window_id",
    "show_content",
    "show_file",
]

logger = logging.getLogger(__name__)


def new_window_id() -> str:
    """Generate a handle for a new named window."""
    return str(uuid.uuid4())


def is_valid_window_id(window_id: str) -> bool:
    """Window ids are UUIDs; anything else is rejected before addressing."""
    try:
        uuid.UUID(window_id)
    except ValueError:
        return False
    return True


def entry_from_file(path: str, name: str | None = None) -> ContentEntry:
    """Read *path* into a content entry named after the file by default.

    Raises:
        OSError: The file cannot be read.
    """
    abs_path = os.path.abspath(path)
    with open(abs_path, encoding="utf-8", errors="replace") as f:
        content = f.read()
    return ContentEntry(name=name or os.path.basename(abs_path), path=abs_path, content=content)


def _send(entry: ContentEntry, mode: AddressingMode) -> bool:
    if mode.handle is not None:
        return send_to_window_instance(mode.handle, entry)
    return send_to_grouping_instance(entry)


def deliver(
    entry: ContentEntry,
    window_id: str | None = None,
    from_stdin: bool = False,
) -> bool:
    """Hand *entry* to the instance for *window_id* (grouping mode if None).

    Tries a running instance first; otherwise spawns one and waits until
    it is listening. Returns True if an existing instance took the entry,
    False if a new one was started with it.

    If the spawned process dies before becoming ready, the most likely
    cause is that a concurrent invocation bound the same address first, so
    delivery is retried once against that instance.

    Raises:
        SpawnError: No instance could be reached or started.
    """
    mode = AddressingMode.named(window_id) if window_id else AddressingMode.grouping()
    if _send(entry, mode):
        return True

    try:
        spawn_and_await_ready(entry, mode, from_stdin=from_stdin)
    except ChildExitedError:
        logger.debug("Display process exited early, retrying delivery once")
        if _send(entry, mode):
            return True
        raise
    return False


def show_file(path: str, name: str | None = None, window_id: str | None = None) -> bool:
    """Display the HTML file at *path*. See :func:`deliver`."""
    return deliver(entry_from_file(path, name), window_id=window_id)


def show_content(
    content: str, name: str | None = None, window_id: str | None = None
) -> bool:
    """Display an HTML string that has no backing file. See :func:`deliver`."""
    entry = ContentEntry(name=name or "stdin", path="", content=content)
    return deliver(entry, window_id=window_id, from_stdin=True)
