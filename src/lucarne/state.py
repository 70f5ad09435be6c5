"""Guarded application state: the entry list and current selection.

The list is only ever mutated through :meth:`AppState.append` and
:meth:`AppState.replace_or_append`. Readers get copies.
"""

from __future__ import annotations

import os
import threading
from dataclasses import replace

from lucarne._types import ContentEntry, Snapshot


class AppState:
    """Name-sorted list of content entries plus a selection index.

    Thread-safe: every method takes the internal lock, and no method hands
    out a reference to the internal list.
    """

    def __init__(self, entries: list[ContentEntry] | None = None) -> None:
        self._lock = threading.Lock()
        self._entries: list[ContentEntry] = list(entries or [])
        self._entries.sort(key=lambda e: e.name)
        self._current = 0

    # --- Mutators ---

    def append(self, entry: ContentEntry) -> Snapshot:
        """Insert *entry*, re-sort by name, and report its sorted position.

        The selection stays on whichever entry was selected before.
        """
        with self._lock:
            index = self._insert(entry)
            return Snapshot(entries=tuple(self._entries), index=index)

    def replace_or_append(self, path: str, content: str, name: str) -> Snapshot:
        """Update the entry backed by *path*, or add a new one.

        An empty *name* keeps the existing entry's name. Either way the
        touched entry becomes the current selection.
        """
        with self._lock:
            index = self._find_by_path(path)
            if index is None:
                index = self._insert(ContentEntry(name=name, path=path, content=content))
            else:
                old = self._entries[index]
                updated = replace(old, content=content, name=name or old.name)
                self._entries[index] = updated
                # A rename can move the entry
                self._entries.sort(key=lambda e: e.name)
                index = _identity_index(self._entries, updated)
            self._current = index
            return Snapshot(entries=tuple(self._entries), index=index)

    def select(self, index: int) -> str | None:
        """Move the selection to *index* and return its content.

        Returns None (selection unchanged) when *index* is out of range.
        """
        with self._lock:
            if not 0 <= index < len(self._entries):
                return None
            self._current = index
            return self._entries[index].content

    # --- Readers ---

    def all_entries(self) -> list[ContentEntry]:
        with self._lock:
            return list(self._entries)

    def current_index(self) -> int:
        with self._lock:
            return self._current

    def current_entry(self) -> ContentEntry | None:
        with self._lock:
            if not 0 <= self._current < len(self._entries):
                return None
            return self._entries[self._current]

    def current_content(self) -> str:
        entry = self.current_entry()
        return entry.content if entry else ""

    def current_base_path(self) -> str:
        """Directory of the selected entry's file, or "" for path-less content."""
        entry = self.current_entry()
        if entry is None or not entry.path:
            return ""
        return os.path.dirname(entry.path)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # --- Internals (lock held) ---

    def _insert(self, entry: ContentEntry) -> int:
        selected = self._entries[self._current] if self._entries else None
        self._entries.append(entry)
        # list.sort is stable, so equal names keep insertion order
        self._entries.sort(key=lambda e: e.name)
        index = _identity_index(self._entries, entry)
        if selected is not None:
            self._current = _identity_index(self._entries, selected)
        return index

    def _find_by_path(self, path: str) -> int | None:
        if not path:
            return None
        for i, e in enumerate(self._entries):
            if e.path == path:
                return i
        return None


def _identity_index(entries: list[ContentEntry], target: ContentEntry) -> int:
    for i, e in enumerate(entries):
        if e is target:
            return i
    raise ValueError("entry not in list")
