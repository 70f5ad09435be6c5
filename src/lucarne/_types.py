"""Type definitions for the lucarne coordination protocol.

Defines the data structures shared by the CLI, the instance client and the
background display process: content entries, the command envelope that
travels over the local socket, and state snapshots handed to the display
layer.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class CommandDecodeError(ValueError):
    """Raised when bytes received on a connection are not a valid envelope."""


class CommandTag(str, Enum):
    """Wire tags for the command envelope variants."""

    ADD_FILE = "add-file"
    REPLACE = "replace"


@dataclass(frozen=True)
class ContentEntry:
    """A piece of displayable content.

    ``path`` is the absolute path of the backing file, or an empty string
    for content that arrived without one (stdin).
    """

    name: str
    path: str = ""
    content: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "path": self.path, "content": self.content}

    @classmethod
    def from_dict(cls, data: Any) -> ContentEntry:
        if not isinstance(data, dict):
            raise CommandDecodeError(f"entry must be an object, got {type(data).__name__}")
        return cls(
            name=_str_field(data, "name"),
            path=_str_field(data, "path"),
            content=_str_field(data, "content"),
        )


@dataclass(frozen=True)
class AddEntry:
    """Append an entry to the receiving instance's list."""

    entry: ContentEntry

    def to_dict(self) -> dict[str, Any]:
        return {"cmd": CommandTag.ADD_FILE.value, "entry": self.entry.to_dict()}


@dataclass(frozen=True)
class ReplaceEntry:
    """Replace the content of the entry backed by ``path``, or add it."""

    path: str
    content: str
    name: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "cmd": CommandTag.REPLACE.value,
            "path": self.path,
            "content": self.content,
            "name": self.name,
        }


Command = Union[AddEntry, ReplaceEntry]

_REPLACE_FIELDS = ("path", "content", "name")


def _str_field(data: dict[str, Any], key: str) -> str:
    value = data.get(key, "")
    if not isinstance(value, str):
        raise CommandDecodeError(f"field {key!r} must be a string")
    return value


def encode_command(command: Command) -> bytes:
    """Serialize a command envelope for the wire (UTF-8 JSON, no newline)."""
    return json.dumps(command.to_dict(), separators=(",", ":")).encode("utf-8")


def decode_command(raw: bytes) -> Command:
    """Parse one command envelope.

    Exactly one variant may be populated: an ``add-file`` message carries
    ``entry`` and no non-empty replace fields; a ``replace`` message carries
    the replace fields and no ``entry``. Anything else, including unknown
    tags, raises :class:`CommandDecodeError`.
    """
    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise CommandDecodeError(f"malformed envelope: {e}") from e

    if not isinstance(data, dict):
        raise CommandDecodeError("envelope must be a JSON object")

    try:
        tag = CommandTag(data.get("cmd"))
    except ValueError:
        raise CommandDecodeError(f"unknown command tag: {data.get('cmd')!r}") from None

    if tag is CommandTag.ADD_FILE:
        if "entry" not in data:
            raise CommandDecodeError("add-file envelope is missing 'entry'")
        if any(_str_field(data, key) for key in _REPLACE_FIELDS):
            raise CommandDecodeError("add-file envelope carries replace fields")
        return AddEntry(entry=ContentEntry.from_dict(data["entry"]))

    entry = data.get("entry")
    if entry is not None and ContentEntry.from_dict(entry) != ContentEntry(name=""):
        raise CommandDecodeError("replace envelope carries an entry")
    if "path" not in data:
        raise CommandDecodeError("replace envelope is missing 'path'")
    return ReplaceEntry(
        path=_str_field(data, "path"),
        content=_str_field(data, "content"),
        name=_str_field(data, "name"),
    )


@dataclass(frozen=True)
class Snapshot:
    """Copy of the entry list produced by a state mutation.

    ``index`` is the position of the entry the mutation touched, after
    re-sorting.
    """

    entries: tuple[ContentEntry, ...] = field(default_factory=tuple)
    index: int = 0

    def entries_as_dicts(self) -> list[dict[str, str]]:
        return [e.to_dict() for e in self.entries]
