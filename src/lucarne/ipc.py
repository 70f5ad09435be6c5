"""IPC dispatcher: the listening side of the coordination protocol.

A display instance owns one :class:`IPCDispatcher`. The listening socket is
bound when the dispatcher is constructed, so the socket file appearing on
disk means connections are already being queued; the spawner relies on
that. Each accepted connection carries exactly one command envelope and is
handled on its own thread.

Two lifecycle policies:

- ``EXPIRING`` (grouping mode): a :class:`GroupingTimeout` closes the
  dispatcher once no connection has been accepted for ``GROUPING_TIMEOUT``
  seconds. Every accept re-arms it, whether or not the message decodes.
- ``PERSISTENT`` (named mode): listens until closed explicitly or the host
  process exits.
"""

from __future__ import annotations

import contextlib
import errno
import logging
import socket
import socketserver
import threading
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Protocol, assert_never

from lucarne._types import (
    AddEntry,
    Command,
    CommandDecodeError,
    ContentEntry,
    ReplaceEntry,
    decode_command,
)
from lucarne._utils import remove_quietly
from lucarne.addressing import ensure_socket_dir, grouping_socket_path, window_socket_path

logger = logging.getLogger(__name__)

GROUPING_TIMEOUT = 2.0
READ_TIMEOUT = 5.0
# Upper bound for one envelope; larger payloads are dropped unread
MAX_ENVELOPE_SIZE = 64 * 1024 * 1024
_PROBE_TIMEOUT = 0.5
_POLL_INTERVAL = 0.1


class AddressInUseError(RuntimeError):
    """A live listener already owns the socket address."""


class LifecyclePolicy(str, Enum):
    EXPIRING = "expiring"
    PERSISTENT = "persistent"


class DispatcherState(str, Enum):
    LISTENING = "listening"
    CLOSED = "closed"


class CommandTarget(Protocol):
    """What a dispatcher applies decoded commands to."""

    def add_file(self, entry: ContentEntry) -> Any: ...

    def replace_file_content(self, path: str, content: str, name: str) -> Any: ...


class GroupingTimeout:
    """A single resettable deadline.

    ``reset()`` cancels any pending fire and schedules a new one
    ``window`` seconds out. Each schedule gets a generation number, and a
    timer whose generation has been superseded does nothing when it runs.
    Expiry is decided under the lock: once a timer has committed to
    firing, or ``stop()`` has been called, the controller is spent and
    later resets are ignored.
    """

    def __init__(self, window: float, on_expire: Callable[[], None]) -> None:
        self.window = window
        self._on_expire = on_expire
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._generation = 0
        self._stopped = False

    def reset(self) -> None:
        with self._lock:
            if self._stopped:
                return
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            self._timer = threading.Timer(self.window, self._fire, args=(self._generation,))
            self._timer.daemon = True
            self._timer.start()

    def stop(self) -> None:
        with self._lock:
            self._stopped = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    @property
    def active(self) -> bool:
        with self._lock:
            return self._timer is not None and not self._stopped

    def _fire(self, generation: int) -> None:
        with self._lock:
            if self._stopped or generation != self._generation:
                return
            self._stopped = True
            self._timer = None
        logger.debug(f"No activity for {self.window}s, expiring")
        self._on_expire()


def _read_all(sock: socket.socket, limit: int) -> bytes:
    """Read until EOF. More than *limit* bytes raises CommandDecodeError."""
    chunks: list[bytes] = []
    size = 0
    while True:
        chunk = sock.recv(65536)
        if not chunk:
            break
        size += len(chunk)
        if size > limit:
            raise CommandDecodeError(f"envelope exceeds {limit} bytes")
        chunks.append(chunk)
    return b"".join(chunks)


def _claim_address(path: Path) -> None:
    """Clear a stale socket file at *path*, refusing to overtake a live one."""
    if not path.exists():
        return
    with contextlib.closing(socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)) as probe:
        probe.settimeout(_PROBE_TIMEOUT)
        try:
            probe.connect(str(path))
        except OSError:
            logger.debug(f"Removing stale socket {path}")
            remove_quietly(path)
            return
    raise AddressInUseError(f"{path} is already served by a live instance")


class _ConnectionHandler(socketserver.BaseRequestHandler):
    """Decode one envelope from the connection and apply it."""

    def handle(self) -> None:
        dispatcher: IPCDispatcher = self.server.dispatcher  # type: ignore[attr-defined]
        self.request.settimeout(READ_TIMEOUT)
        try:
            raw = _read_all(self.request, MAX_ENVELOPE_SIZE)
            command = decode_command(raw)
        except OSError as e:
            logger.debug(f"Dropping connection, read failed: {e}")
            return
        except CommandDecodeError as e:
            logger.debug(f"Dropping connection: {e}")
            return
        dispatcher.dispatch(command)


class _UnixServer(socketserver.ThreadingUnixStreamServer):
    """Threaded Unix stream server; binds and listens in ``__init__``."""

    daemon_threads = True
    # The default backlog of 5 overflows under bursts of deliveries
    request_queue_size = socket.SOMAXCONN

    def __init__(self, socket_path: Path, dispatcher: IPCDispatcher) -> None:
        self.dispatcher = dispatcher
        super().__init__(str(socket_path), _ConnectionHandler)

    def process_request(self, request: Any, client_address: Any) -> None:
        self.dispatcher._on_accept()
        super().process_request(request, client_address)

    def handle_error(self, request: Any, client_address: Any) -> None:
        logger.exception("Unhandled error in IPC connection handler")


class IPCDispatcher:
    """Listen on a Unix socket and apply incoming commands to *target*.

    Args:
        socket_path: Address to bind. A stale file there is replaced; a
            live listener raises :class:`AddressInUseError`.
        target: Receiver for decoded commands.
        policy: ``EXPIRING`` arms a :class:`GroupingTimeout`;
            ``PERSISTENT`` does not.
        grouping_timeout: Idle window for the expiring policy.
    """

    def __init__(
        self,
        socket_path: Path | str,
        target: CommandTarget,
        policy: LifecyclePolicy = LifecyclePolicy.PERSISTENT,
        grouping_timeout: float = GROUPING_TIMEOUT,
    ) -> None:
        self.socket_path = Path(socket_path)
        self.policy = policy
        self._target = target
        self._lock = threading.Lock()
        self._closing = False
        self._closed = threading.Event()
        self._thread: threading.Thread | None = None

        self.socket_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        _claim_address(self.socket_path)
        try:
            self._server = _UnixServer(self.socket_path, self)
        except OSError as e:
            if e.errno == errno.EADDRINUSE:
                raise AddressInUseError(f"{self.socket_path} is already bound") from e
            raise
        logger.debug(f"Listening on {self.socket_path} ({policy.value})")

        self._timeout: GroupingTimeout | None = None
        if policy is LifecyclePolicy.EXPIRING:
            self._timeout = GroupingTimeout(grouping_timeout, self.close)
            self._timeout.reset()

    @property
    def state(self) -> DispatcherState:
        with self._lock:
            return DispatcherState.CLOSED if self._closing else DispatcherState.LISTENING

    @property
    def is_closed(self) -> bool:
        return self.state is DispatcherState.CLOSED

    def start(self) -> None:
        """Run the accept loop on a background thread."""
        with self._lock:
            if self._closing:
                raise RuntimeError("dispatcher is closed")
            if self._thread is not None:
                return
            self._thread = threading.Thread(
                target=self._server.serve_forever,
                kwargs={"poll_interval": _POLL_INTERVAL},
                name=f"lucarne-ipc:{self.socket_path.name}",
                daemon=True,
            )
            self._thread.start()

    def close(self) -> None:
        """Stop listening and remove the socket file. Safe to call repeatedly."""
        with self._lock:
            if self._closing:
                return
            self._closing = True
            thread = self._thread

        if self._timeout is not None:
            self._timeout.stop()
        if thread is not None:
            self._server.shutdown()
            thread.join(timeout=2)
        self._server.server_close()
        remove_quietly(self.socket_path)
        logger.debug(f"Closed {self.socket_path}")
        self._closed.set()

    def wait_closed(self, timeout: float | None = None) -> bool:
        """Block until :meth:`close` has finished. Returns False on timeout."""
        return self._closed.wait(timeout)

    def dispatch(self, command: Command) -> None:
        """Apply a decoded command to the target."""
        if isinstance(command, AddEntry):
            self._target.add_file(command.entry)
        elif isinstance(command, ReplaceEntry):
            self._target.replace_file_content(command.path, command.content, command.name)
        else:
            assert_never(command)

    def _on_accept(self) -> None:
        if self._timeout is not None:
            self._timeout.reset()


def start_grouping_dispatcher(target: CommandTarget) -> IPCDispatcher:
    """Bind and start the expiring dispatcher for grouping mode."""
    ensure_socket_dir()
    dispatcher = IPCDispatcher(grouping_socket_path(), target, LifecyclePolicy.EXPIRING)
    dispatcher.start()
    return dispatcher


def start_window_dispatcher(target: CommandTarget, handle: str) -> IPCDispatcher:
    """Bind and start the persistent dispatcher for window *handle*."""
    ensure_socket_dir()
    dispatcher = IPCDispatcher(
        window_socket_path(handle), target, LifecyclePolicy.PERSISTENT
    )
    dispatcher.start()
    return dispatcher
