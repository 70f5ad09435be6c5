"""Shared utilities for the lucarne package.

Deduplicates common patterns used across multiple modules:
directory resolution, detached subprocess options, quiet file removal
and terminal detection.
"""

from __future__ import annotations

import os
import socket
import sys
from pathlib import Path
from typing import IO, Any

APP_NAME = "lucarne"

# ---------------------------------------------------------------------------
# Directory resolution
# ---------------------------------------------------------------------------


def get_runtime_dir() -> Path:
    """Resolve the private per-user runtime directory.

    Resolution order:
    1. ``LUCARNE_RUNTIME_DIR`` environment variable (explicit override)
    2. ``$XDG_RUNTIME_DIR/lucarne``
    3. Default: ``~/.lucarne``

    Pure lookup: nothing is created here.
    """
    env = os.getenv("LUCARNE_RUNTIME_DIR")
    if env:
        return Path(env)
    xdg_runtime = os.getenv("XDG_RUNTIME_DIR")
    if xdg_runtime:
        return Path(xdg_runtime) / APP_NAME
    return Path.home() / f".{APP_NAME}"


def get_config_dir() -> Path:
    """Resolve the config directory following the XDG base directory layout."""
    xdg_config = os.getenv("XDG_CONFIG_HOME")
    if xdg_config:
        return Path(xdg_config) / APP_NAME
    return Path.home() / ".config" / APP_NAME


# ---------------------------------------------------------------------------
# Cross-platform subprocess detach kwargs
# ---------------------------------------------------------------------------


def detached_popen_kwargs() -> dict[str, Any]:
    """Return Popen kwargs for detaching a subprocess from the parent."""
    if sys.platform == "win32":
        CREATE_NEW_PROCESS_GROUP = 0x00000200
        DETACHED_PROCESS = 0x00000008
        return {"creationflags": CREATE_NEW_PROCESS_GROUP | DETACHED_PROCESS}
    return {"start_new_session": True}


# ---------------------------------------------------------------------------
# Filesystem helpers
# ---------------------------------------------------------------------------


def remove_quietly(path: Path | str) -> None:
    """Best-effort unlink; a missing file or permission problem is ignored."""
    try:
        os.unlink(path)
    except OSError:
        pass


def is_terminal(stream: IO[Any]) -> bool:
    """Return True if *stream* is attached to a terminal (not a pipe/redirect)."""
    try:
        return stream.isatty()
    except (AttributeError, ValueError, OSError):
        return True


# ---------------------------------------------------------------------------
# Port discovery
# ---------------------------------------------------------------------------


def find_free_port(host: str, start: int, stop: int) -> int:
    """Return the first port in ``[start, stop]`` that *host* can bind."""
    for port in range(start, stop + 1):
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
                s.bind((host, port))
                return port
        except OSError:
            continue
    raise RuntimeError(f"No available port in range {start}-{stop}")
