"""Display application: the state a display instance shows, plus events.

:class:`DisplayApp` is the command target for the IPC dispatcher and the
data source for the display server. Mutations go through the guarded
:class:`~lucarne.state.AppState`; each one is announced to the display
layer through the ``emit`` callback with the snapshot it produced.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable

from lucarne._types import ContentEntry, Snapshot
from lucarne.config import Config, load_config
from lucarne.state import AppState
from lucarne.window_state import GeometryRecorder, WindowState

logger = logging.getLogger(__name__)

FILE_ADDED = "file-added"
CONTENT_REPLACED = "content-replaced"

Emitter = Callable[[str, dict[str, Any]], None]


class DisplayApp:
    """Content shown by one display instance.

    Args:
        entry: The entry the instance was started with.
        window_id: Handle for named mode, or None for grouping mode.
        config: Startup configuration (loaded from disk when omitted).
        emit: Receives ``(event_name, payload)`` after each mutation.
        geometry: Recorder for window geometry reports.
    """

    def __init__(
        self,
        entry: ContentEntry,
        window_id: str | None = None,
        config: Config | None = None,
        emit: Emitter | None = None,
        geometry: GeometryRecorder | None = None,
    ) -> None:
        self.state = AppState([entry])
        self.window_id = window_id
        self.config = config if config is not None else load_config()
        self.emit = emit
        self.geometry = geometry or GeometryRecorder()

    # --- Commands (called by the IPC dispatcher) ---

    def add_file(self, entry: ContentEntry) -> Snapshot:
        """Add *entry* to the sidebar; the current selection is kept."""
        snapshot = self.state.append(entry)
        self._emit(FILE_ADDED, {"files": snapshot.entries_as_dicts(), "index": snapshot.index})
        return snapshot

    def replace_file_content(self, path: str, content: str, name: str) -> Snapshot:
        """Replace content by path (or add it), select it, and announce it."""
        snapshot = self.state.replace_or_append(path, content, name)
        self._emit(
            CONTENT_REPLACED,
            {"files": snapshot.entries_as_dicts(), "currentIndex": snapshot.index},
        )
        return snapshot

    # --- Queries (called by the display server) ---

    def html_content(self) -> str:
        return self.state.current_content()

    def current_base_path(self) -> str:
        return self.state.current_base_path()

    def current_name(self) -> str:
        entry = self.state.current_entry()
        return entry.name if entry else ""

    def files(self) -> list[dict[str, str]]:
        return [e.to_dict() for e in self.state.all_entries()]

    def current_index(self) -> int:
        return self.state.current_index()

    def select_file(self, index: int) -> str:
        """Select the entry at *index* and return its content ("" if out of range)."""
        content = self.state.select(index)
        return content if content is not None else ""

    def chrome_css(self) -> str:
        """Contents of the configured chrome stylesheet, or ""."""
        if not self.config.chrome_css:
            return ""
        try:
            return Path(self.config.chrome_css).expanduser().read_text()
        except OSError:
            logger.debug(f"Could not read chrome CSS {self.config.chrome_css}")
            return ""

    def record_geometry(self, state: WindowState) -> bool:
        return self.geometry.record(state)

    def _emit(self, event: str, payload: dict[str, Any]) -> None:
        if self.emit is None:
            return
        try:
            self.emit(event, payload)
        except Exception:
            logger.exception(f"Failed to deliver {event} event")
