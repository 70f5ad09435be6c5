"""Process spawner: launch a detached display instance and wait for it.

The invoking command blocks only until the new instance's socket file is
visible, which (because the dispatcher binds at construction) means the
instance is already accepting connections.
"""

from __future__ import annotations

import logging
import subprocess
import sys
import tempfile
import time
from pathlib import Path

from lucarne._types import ContentEntry
from lucarne._utils import detached_popen_kwargs, remove_quietly
from lucarne.addressing import AddressingMode, ensure_socket_dir, socket_path

logger = logging.getLogger(__name__)

READINESS_TIMEOUT = 5.0
POLL_INTERVAL = 0.01
DISPLAY_LOG_NAME = "display.log"


class SpawnError(RuntimeError):
    """The display process could not be started."""


class ReadinessTimeout(SpawnError):
    """The display process never made its socket visible."""


class ChildExitedError(SpawnError):
    """The display process exited before its socket appeared."""

    def __init__(self, returncode: int) -> None:
        super().__init__(f"display process exited with code {returncode} before it was ready")
        self.returncode = returncode


def build_display_command(
    path: str,
    *,
    temp_file: bool = False,
    name: str | None = None,
    window_id: str | None = None,
) -> list[str]:
    """Arguments that start a background display instance for *path*."""
    cmd = [sys.executable, "-m", "lucarne.cli", "--internal-display", "--path", path]
    if temp_file:
        cmd.append("--temp-file")
    if name:
        cmd.extend(["--name", name])
    if window_id:
        cmd.extend(["--id", window_id])
    return cmd


def _write_temp_content(content: str) -> str:
    """Materialize piped content so the child can read it by path."""
    try:
        with tempfile.NamedTemporaryFile(
            "w", prefix="lucarne-", suffix=".html", delete=False, encoding="utf-8"
        ) as f:
            f.write(content)
            return f.name
    except OSError as e:
        raise SpawnError(f"failed to write temp file: {e}") from e


def wait_for_socket(
    address: Path,
    proc: subprocess.Popen,
    timeout: float = READINESS_TIMEOUT,
    poll_interval: float = POLL_INTERVAL,
) -> None:
    """Poll until *address* exists, *proc* exits, or *timeout* elapses."""
    deadline = time.monotonic() + timeout
    while True:
        returncode = proc.poll()
        if returncode is not None:
            raise ChildExitedError(returncode)
        if address.exists():
            return
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise ReadinessTimeout(
                f"timed out after {timeout}s waiting for display process at {address}"
            )
        time.sleep(min(poll_interval, remaining))


def spawn_and_await_ready(
    entry: ContentEntry,
    mode: AddressingMode,
    *,
    from_stdin: bool = False,
    timeout: float = READINESS_TIMEOUT,
    poll_interval: float = POLL_INTERVAL,
) -> subprocess.Popen:
    """Start a detached display instance for *entry* and wait until it listens.

    Content that came from stdin is written to a temp file which the child
    deletes after reading it. The child gets its own session and no stdin;
    its stderr goes to ``display.log`` in the runtime directory.

    Raises:
        SpawnError: The process could not be launched or died early.
        ReadinessTimeout: The socket did not appear within *timeout*.
    """
    if from_stdin:
        path, temp_file = _write_temp_content(entry.content), True
    else:
        path, temp_file = entry.path, False

    cmd = build_display_command(
        path, temp_file=temp_file, name=entry.name, window_id=mode.handle
    )
    try:
        runtime_dir = ensure_socket_dir()
        with open(runtime_dir / DISPLAY_LOG_NAME, "ab") as log:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=log,
                **detached_popen_kwargs(),
            )
    except OSError as e:
        if temp_file:
            remove_quietly(path)
        raise SpawnError(f"failed to start display process: {e}") from e

    logger.debug(f"Spawned display process pid={proc.pid}: {cmd}")
    wait_for_socket(socket_path(mode), proc, timeout=timeout, poll_interval=poll_interval)
    return proc
