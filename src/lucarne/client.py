"""Instance client: hand one command to a running display instance."""

from __future__ import annotations

import contextlib
import logging
import socket
import time
from pathlib import Path

from lucarne._types import AddEntry, Command, ContentEntry, ReplaceEntry, encode_command
from lucarne._utils import remove_quietly
from lucarne.addressing import grouping_socket_path, window_socket_path

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 0.5
_BUSY_RETRY_INTERVAL = 0.01


def _connect(sock: socket.socket, address: Path | str, timeout: float) -> None:
    """Connect, retrying while the listener's accept queue is full.

    A full queue fails at once with EAGAIN on Unix sockets. The listener
    is alive, so the connect is retried until *timeout* and the final
    :class:`BlockingIOError` is re-raised.
    """
    deadline = time.monotonic() + timeout
    while True:
        try:
            sock.connect(str(address))
            return
        except BlockingIOError:
            if time.monotonic() >= deadline:
                raise
            time.sleep(_BUSY_RETRY_INTERVAL)


def try_send(
    address: Path | str, command: Command, timeout: float = CONNECT_TIMEOUT
) -> bool:
    """Deliver *command* to the listener at *address*.

    Returns True once a connection was made, whether or not the write or
    the remote handling succeeded. If the connection is refused the
    address is considered stale: any file left there is removed and False
    is returned. A listener that stays too busy to accept within *timeout*
    also gives False, but its file is kept. A file is never removed after
    a successful connect, since its listener is alive.
    """
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    with contextlib.closing(sock):
        sock.settimeout(timeout)
        try:
            _connect(sock, address, timeout)
        except BlockingIOError:
            logger.warning(f"Instance at {address} is not accepting connections")
            return False
        except OSError as e:
            logger.debug(f"No live instance at {address} ({e}), removing stale socket")
            remove_quietly(address)
            return False

        try:
            sock.sendall(encode_command(command))
            sock.shutdown(socket.SHUT_WR)
        except OSError as e:
            logger.debug(f"Send to {address} failed after connect: {e}")
    return True


def send_to_grouping_instance(entry: ContentEntry) -> bool:
    """Add *entry* to the grouping instance, if one is running."""
    return try_send(grouping_socket_path(), AddEntry(entry=entry))


def send_to_window_instance(handle: str, entry: ContentEntry) -> bool:
    """Replace content in the named instance *handle*, if it is running."""
    command = ReplaceEntry(path=entry.path, content=entry.content, name=entry.name)
    return try_send(window_socket_path(handle), command)
