"""Display server: Starlette + WebSocket + REST for one display instance.

Serves a browser page that shows the instance's entries (sidebar plus
content frame). Runs uvicorn in a background thread next to the IPC
dispatcher; commands arriving over IPC are pushed to the page as
WebSocket events.

Endpoints:
    GET  /                       → index.html
    GET  /static/{path}          → page assets
    WS   /ws                     → file-added / content-replaced events
    GET  /api/files              → all entries + current index
    GET  /api/current            → selected entry content and base path
    POST /api/select/{index}     → change selection, returns content
    GET  /api/config             → user configuration
    GET  /api/chrome.css         → user chrome stylesheet
    GET  /api/geometry           → startup size/position
    POST /api/geometry           → record window geometry
    GET  /localfile/{path}       → files relative to the current entry
    POST /api/close              → shut the instance down (after a grace period)
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import socket
import sys
import threading
import time
from pathlib import Path
from typing import Any, Callable

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import FileResponse, HTMLResponse, JSONResponse, Response
from starlette.routing import Mount, Route, WebSocketRoute
from starlette.staticfiles import StaticFiles
from starlette.websockets import WebSocket, WebSocketDisconnect

from lucarne._types import ContentEntry
from lucarne._utils import find_free_port
from lucarne.app import DisplayApp
from lucarne.config import load_config
from lucarne.ipc import AddressInUseError, start_grouping_dispatcher, start_window_dispatcher
from lucarne.window_state import (
    Screen,
    WindowState,
    get_window_dimensions,
    get_window_position,
    load_window_state,
    position_is_visible,
)

logger = logging.getLogger(__name__)

_STATIC_DIR = Path(__file__).parent / "static"
_DEFAULT_PORT = 7761
_MAX_PORT = 7780
# A page reload fires a close request followed by a reconnect; the
# reconnect cancels the pending shutdown.
CLOSE_GRACE = 3.0


def _int_param(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class DisplayServer:
    """WebSocket + REST server for one display instance.

    Args:
        app: The display application whose entries are served.
        port: First port to try (auto-increments if taken).
        host: Host to bind to (default: 127.0.0.1 for security).
        initial_state: Saved window geometry loaded at startup.
        on_close: Called when the page asks for the instance to shut down.
        close_grace: Seconds to wait before honouring a close request.
    """

    def __init__(
        self,
        app: DisplayApp,
        port: int = _DEFAULT_PORT,
        host: str = "127.0.0.1",
        initial_state: WindowState | None = None,
        on_close: Callable[[], None] | None = None,
        close_grace: float = CLOSE_GRACE,
    ) -> None:
        self.app = app
        self.host = host
        self.port = port
        self.initial_state = initial_state
        self._on_close = on_close
        self._close_grace = close_grace
        self._close_timer: threading.Timer | None = None
        self._connections: list[WebSocket] = []
        self._lock = threading.Lock()
        self._server: uvicorn.Server | None = None
        self._thread: threading.Thread | None = None
        self._started = threading.Event()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._starlette = self._build_app()

    def _build_app(self) -> Starlette:
        """Build the Starlette application with all routes."""
        routes = [
            Route("/", self._index),
            Route("/api/files", self._api_files),
            Route("/api/current", self._api_current),
            Route("/api/select/{index:int}", self._api_select, methods=["POST"]),
            Route("/api/config", self._api_config),
            Route("/api/chrome.css", self._api_chrome_css),
            Route("/api/geometry", self._api_geometry, methods=["GET", "POST"]),
            Route("/api/close", self._api_close, methods=["POST"]),
            Route("/localfile/{filepath:path}", self._local_file),
            WebSocketRoute("/ws", self._ws_endpoint),
        ]
        if _STATIC_DIR.exists():
            routes.append(Mount("/static", app=StaticFiles(directory=str(_STATIC_DIR))))
        return Starlette(routes=routes)

    # --- Page ---

    async def _index(self, request: Request) -> Response:
        index_path = _STATIC_DIR / "index.html"
        if not index_path.exists():
            return HTMLResponse("<h1>lucarne</h1><p>index.html not found</p>", status_code=500)
        return HTMLResponse(index_path.read_text())

    # --- Entries ---

    async def _api_files(self, request: Request) -> JSONResponse:
        return JSONResponse(
            {"files": self.app.files(), "currentIndex": self.app.current_index()}
        )

    async def _api_current(self, request: Request) -> JSONResponse:
        return JSONResponse(
            {
                "index": self.app.current_index(),
                "name": self.app.current_name(),
                "content": self.app.html_content(),
                "base_path": self.app.current_base_path(),
            }
        )

    async def _api_select(self, request: Request) -> JSONResponse:
        index = request.path_params["index"]
        if not 0 <= index < len(self.app.state):
            return JSONResponse({"error": "index out of range"}, status_code=404)
        content = self.app.select_file(index)
        return JSONResponse({"index": index, "content": content})

    async def _local_file(self, request: Request) -> Response:
        """Serve a file relative to the current entry's directory.

        Content without a backing file has no directory, and paths that
        resolve outside the directory are refused.
        """
        base_path = self.app.current_base_path()
        relative = request.path_params["filepath"]
        if not base_path or not relative:
            return Response("Not found", status_code=404)

        base = os.path.realpath(base_path)
        full = os.path.realpath(os.path.join(base, relative))
        if full != base and not full.startswith(base + os.sep):
            return Response("Forbidden", status_code=403)
        if not os.path.isfile(full):
            return Response("Not found", status_code=404)
        return FileResponse(full)

    # --- Configuration and geometry ---

    async def _api_config(self, request: Request) -> JSONResponse:
        data = self.app.config.to_dict()
        data["window_id"] = self.app.window_id
        return JSONResponse(data)

    async def _api_chrome_css(self, request: Request) -> Response:
        return Response(self.app.chrome_css(), media_type="text/css")

    async def _api_geometry(self, request: Request) -> JSONResponse:
        if request.method == "POST":
            return await self._record_geometry(request)

        width, height = get_window_dimensions(self.initial_state, self.app.config)
        x, y, should_set = get_window_position(self.initial_state, self.app.config)
        screen_w = _int_param(request.query_params.get("screen_width"))
        screen_h = _int_param(request.query_params.get("screen_height"))
        screens = [Screen(screen_w, screen_h)] if screen_w and screen_h else []
        if should_set and not position_is_visible(x, y, width, height, screens):
            logger.debug(f"Saved position ({x}, {y}) is off-screen, ignoring")
            should_set = False
        return JSONResponse(
            {"width": width, "height": height, "x": x, "y": y, "set_position": should_set}
        )

    async def _record_geometry(self, request: Request) -> JSONResponse:
        try:
            body = await request.json()
        except Exception:
            return JSONResponse({"error": "invalid JSON"}, status_code=400)
        if not isinstance(body, dict):
            return JSONResponse({"error": "expected an object"}, status_code=400)

        values = {k: _int_param(body.get(k)) for k in ("width", "height", "x", "y")}
        if any(v is None for v in values.values()):
            return JSONResponse({"error": "width, height, x, y must be integers"}, status_code=400)
        saved = self.app.record_geometry(WindowState(**values))  # type: ignore[arg-type]
        return JSONResponse({"saved": saved})

    # --- Shutdown ---

    async def _api_close(self, request: Request) -> JSONResponse:
        self._schedule_close()
        return JSONResponse({"status": "closing", "grace": self._close_grace})

    def _schedule_close(self) -> None:
        with self._lock:
            if self._close_timer is not None:
                self._close_timer.cancel()
            self._close_timer = threading.Timer(self._close_grace, self._fire_close)
            self._close_timer.daemon = True
            self._close_timer.start()

    def _cancel_close(self) -> None:
        with self._lock:
            if self._close_timer is not None:
                self._close_timer.cancel()
                self._close_timer = None
                logger.debug("Pending close cancelled by reconnect")

    def _fire_close(self) -> None:
        logger.debug("Close requested by the display page")
        if self._on_close is not None:
            self._on_close()

    # --- WebSocket ---

    async def _ws_endpoint(self, ws: WebSocket) -> None:
        """Handle a WebSocket connection."""
        await ws.accept()
        self._cancel_close()
        with self._lock:
            self._connections.append(ws)
        logger.debug("WebSocket client connected")

        try:
            await ws.send_json(
                {
                    "type": "state",
                    "files": self.app.files(),
                    "currentIndex": self.app.current_index(),
                }
            )
            while True:
                await ws.receive_text()
        except WebSocketDisconnect:
            logger.debug("WebSocket client disconnected")
        except Exception:
            logger.debug("WebSocket connection closed")
        finally:
            with self._lock:
                if ws in self._connections:
                    self._connections.remove(ws)

    def push_event(self, event: str, payload: dict[str, Any]) -> None:
        """Send an app event to every connected page.

        Called from IPC handler threads, so the sends are scheduled on the
        server's event loop.
        """
        message = {"type": event, **payload}
        with self._lock:
            connections = list(self._connections)
        loop = self._loop
        if not connections or loop is None:
            return
        for ws in connections:
            asyncio.run_coroutine_threadsafe(ws.send_json(message), loop)

    # --- Lifecycle ---

    def start(self, open_browser: bool = True) -> None:
        """Start the server in a background daemon thread."""
        if self._thread and self._thread.is_alive():
            return

        self.port = find_free_port(self.host, self.port, _MAX_PORT)
        config = uvicorn.Config(
            app=self._starlette,
            host=self.host,
            port=self.port,
            log_level="warning",
            access_log=False,
        )
        self._server = uvicorn.Server(config)

        def _run() -> None:
            self._loop = asyncio.new_event_loop()
            asyncio.set_event_loop(self._loop)
            self._started.set()
            self._loop.run_until_complete(self._server.serve())

        self._thread = threading.Thread(target=_run, daemon=True)
        self._thread.start()
        self._started.wait(timeout=5)
        self._wait_for_server()

        logger.info(f"lucarne: {self.url}")
        if open_browser:
            try:
                import webbrowser

                webbrowser.open(self.url)
            except Exception:
                logger.debug("Could not open a browser")

    def _wait_for_server(self, timeout: float = 3.0) -> None:
        """Wait for the server to accept connections."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            try:
                with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
                    s.settimeout(0.1)
                    s.connect((self.host, self.port))
                    return
            except OSError:
                time.sleep(0.05)

    def stop(self) -> None:
        """Stop the server thread."""
        self._cancel_close()
        if self._server:
            self._server.should_exit = True
        if self._thread:
            self._thread.join(timeout=3)
            self._thread = None
        self._server = None
        logger.debug("Display server stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"


def run_display(
    entry: ContentEntry,
    window_id: str | None = None,
    open_browser: bool = True,
    port: int = _DEFAULT_PORT,
) -> int:
    """Run a display instance until the page closes or a signal arrives.

    Binds the IPC dispatcher first (expiring in grouping mode, persistent
    for a window id) so the spawning invocation can observe readiness,
    then starts the display server. Returns the process exit code.
    """
    app = DisplayApp(entry, window_id=window_id, config=load_config())

    try:
        if window_id:
            dispatcher = start_window_dispatcher(app, window_id)
        else:
            dispatcher = start_grouping_dispatcher(app)
    except AddressInUseError as e:
        logger.error(f"Cannot start display instance: {e}")
        return 1

    stop_event = threading.Event()
    server = DisplayServer(
        app,
        port=port,
        initial_state=load_window_state(),
        on_close=stop_event.set,
    )
    app.emit = server.push_event

    def _shutdown(signum: int, frame: Any) -> None:
        logger.debug(f"Received signal {signum}, shutting down...")
        stop_event.set()

    # On Windows, only SIGINT and SIGBREAK are supported.
    if sys.platform == "win32":
        signal.signal(signal.SIGBREAK, _shutdown)  # type: ignore[attr-defined]
    else:
        signal.signal(signal.SIGTERM, _shutdown)
    signal.signal(signal.SIGINT, _shutdown)

    try:
        server.start(open_browser=open_browser)
        stop_event.wait()
    finally:
        dispatcher.close()
        app.geometry.flush()
        server.stop()
    return 0
