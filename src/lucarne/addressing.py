"""Socket address resolution for display instances.

Every invocation that targets the same addressing mode resolves the same
socket path, which is how instances are discovered without a registry:

- grouping mode (no handle) -> ``<runtime-dir>/lucarne.sock``
- named mode (handle)       -> ``<runtime-dir>/windows/<handle>.sock``
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from lucarne._utils import get_runtime_dir

GROUPING_SOCKET_NAME = "lucarne.sock"
WINDOWS_DIR = "windows"


@dataclass(frozen=True)
class AddressingMode:
    """Grouping mode when ``handle`` is None, named mode otherwise."""

    handle: str | None = None

    @classmethod
    def grouping(cls) -> AddressingMode:
        return cls(None)

    @classmethod
    def named(cls, handle: str) -> AddressingMode:
        return cls(handle)

    @property
    def is_named(self) -> bool:
        return self.handle is not None


def grouping_socket_path() -> Path:
    return get_runtime_dir() / GROUPING_SOCKET_NAME


def window_socket_path(handle: str) -> Path:
    # The handle is opaque; format checks belong to the caller.
    return get_runtime_dir() / WINDOWS_DIR / f"{handle}.sock"


def socket_path(mode: AddressingMode) -> Path:
    """Resolve the socket path for *mode*. No filesystem access."""
    if mode.handle is None:
        return grouping_socket_path()
    return window_socket_path(mode.handle)


def ensure_socket_dir() -> Path:
    """Create the runtime directory tree with owner-only permissions."""
    runtime_dir = get_runtime_dir()
    runtime_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
    (runtime_dir / WINDOWS_DIR).mkdir(mode=0o700, exist_ok=True)
    return runtime_dir
