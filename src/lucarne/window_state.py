"""Window geometry: persisted state, startup sizing and on-screen checks.

The display host reports its geometry whenever the window is moved or
resized; :class:`GeometryRecorder` turns those reports into at most one
write per second to ``state.json`` in the config directory.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, dataclass
from pathlib import Path

from lucarne._utils import get_config_dir
from lucarne.config import Config

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_WIDTH = 900
DEFAULT_WINDOW_HEIGHT = 700
MIN_WINDOW_WIDTH = 400
MIN_WINDOW_HEIGHT = 300
# Pixels of the window that must stay on some screen for a saved position
# to be reused
MIN_VISIBLE = 100
SAVE_DEBOUNCE = 1.0

STATE_FILE_NAME = "state.json"


@dataclass(frozen=True)
class WindowState:
    width: int = 0
    height: int = 0
    x: int = 0
    y: int = 0

    def is_valid(self) -> bool:
        return self.width > 0 and self.height > 0


@dataclass(frozen=True)
class Screen:
    width: int
    height: int


def get_state_path() -> Path:
    return get_config_dir() / STATE_FILE_NAME


def load_window_state(path: Path | None = None) -> WindowState | None:
    """Return the saved geometry, or None if absent, unreadable or invalid."""
    state_path = path or get_state_path()
    try:
        raw = state_path.read_text()
    except OSError:
        return None

    try:
        data = json.loads(raw)
        state = WindowState(
            width=int(data.get("width", 0)),
            height=int(data.get("height", 0)),
            x=int(data.get("x", 0)),
            y=int(data.get("y", 0)),
        )
    except (json.JSONDecodeError, AttributeError, TypeError, ValueError) as e:
        logger.warning(f"Failed to parse state file {state_path}: {e}")
        return None

    return state if state.is_valid() else None


def save_window_state(state: WindowState, path: Path | None = None) -> None:
    """Persist *state*. Invalid geometry is silently not saved."""
    if not state.is_valid():
        return
    state_path = path or get_state_path()
    state_path.parent.mkdir(parents=True, exist_ok=True)
    state_path.write_text(json.dumps(asdict(state), indent=2))


def get_window_dimensions(state: WindowState | None, config: Config) -> tuple[int, int]:
    """Pick the startup size: saved state, then config, then defaults.

    The result never drops below the minimum window size.
    """
    width, height = DEFAULT_WINDOW_WIDTH, DEFAULT_WINDOW_HEIGHT
    if config.default_width > 0:
        width = config.default_width
    if config.default_height > 0:
        height = config.default_height
    if state is not None and state.is_valid():
        width, height = state.width, state.height
    return max(width, MIN_WINDOW_WIDTH), max(height, MIN_WINDOW_HEIGHT)


def get_window_position(
    state: WindowState | None, config: Config
) -> tuple[int, int, bool]:
    """Pick the startup position as ``(x, y, should_set)``.

    ``should_set`` is False when the host should choose the position.
    """
    if state is not None and state.is_valid():
        return state.x, state.y, True
    if config.default_x != 0 or config.default_y != 0:
        return config.default_x, config.default_y, True
    return 0, 0, False


def position_is_visible(
    x: int, y: int, width: int, height: int, screens: list[Screen]
) -> bool:
    """Check that enough of the window lands on the current screen layout.

    Screens are treated as laid out side by side: total width is the sum
    of widths, total height the tallest screen. That is rough for stacked
    monitors but catches the common case of a disconnected external
    display. With no screen information the position is accepted.
    """
    if not screens:
        return True
    total_width = sum(s.width for s in screens)
    max_height = max(s.height for s in screens)
    return not (
        x + width < MIN_VISIBLE
        or x > total_width - MIN_VISIBLE
        or y + height < MIN_VISIBLE
        or y > max_height - MIN_VISIBLE
    )


class GeometryRecorder:
    """Debounced writer for geometry reports from the display host."""

    def __init__(self, path: Path | None = None, delay: float = SAVE_DEBOUNCE) -> None:
        self._path = path
        self._delay = delay
        self._lock = threading.Lock()
        self._pending: WindowState | None = None
        self._last_saved: WindowState | None = None
        self._timer: threading.Timer | None = None

    def record(self, state: WindowState) -> bool:
        """Schedule *state* for saving. Returns False if it was ignored."""
        with self._lock:
            if not state.is_valid() or state == self._last_saved:
                return False
            self._pending = state
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self._delay, self.flush)
            self._timer.daemon = True
            self._timer.start()
        return True

    def flush(self) -> None:
        """Write any pending geometry now."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            state, self._pending = self._pending, None
        if state is None:
            return
        try:
            save_window_state(state, self._path)
        except OSError as e:
            logger.warning(f"Failed to save window state: {e}")
            return
        with self._lock:
            self._last_saved = state
