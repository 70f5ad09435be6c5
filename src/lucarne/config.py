"""User configuration, read once at startup from ``config.toml``.

Example ``~/.config/lucarne/config.toml``::

    font_size = 18
    chrome_css = "/home/me/.config/lucarne/chrome.css"
    default_width = 1200
    default_height = 800
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

from lucarne._utils import get_config_dir

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "config.toml"


@dataclass(frozen=True)
class Config:
    # 0 means the browser default
    font_size: int = 0
    # Path to a CSS file styling the display chrome (sidebar, toolbar)
    chrome_css: str = ""
    default_width: int = 0
    default_height: int = 0
    default_x: int = 0
    default_y: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def get_config_path() -> Path:
    return get_config_dir() / CONFIG_FILE_NAME


def _from_mapping(data: dict[str, Any]) -> Config:
    values: dict[str, Any] = {}
    for f in fields(Config):
        if f.name not in data:
            continue
        value = data[f.name]
        expected = str if f.name == "chrome_css" else int
        # bool is an int subclass; `font_size = true` is still a mistake
        if not isinstance(value, expected) or isinstance(value, bool):
            raise ValueError(f"{f.name} must be {expected.__name__}, got {value!r}")
        values[f.name] = value
    return Config(**values)


def load_config(path: Path | None = None) -> Config:
    """Load the config file, falling back to defaults.

    A missing file is normal. A file that fails to parse or holds a
    wrong-typed value is reported and ignored entirely so that startup
    never fails on configuration.
    """
    config_path = path or get_config_path()
    if not config_path.exists():
        return Config()

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
        return _from_mapping(data)
    except (OSError, tomllib.TOMLDecodeError, ValueError) as e:
        logger.warning(
            f"Failed to parse config file {config_path}: {e}. "
            "Using default configuration (string values must be quoted)."
        )
        return Config()
