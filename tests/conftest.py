"""Shared test fixtures for the lucarne test suite."""

import shutil
import tempfile
from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def runtime_dir(monkeypatch, tmp_path):
    """Point the runtime and config directories at throwaway locations.

    Unix socket paths are limited to ~100 bytes, so the runtime directory
    lives directly under the system temp dir rather than under tmp_path.
    """
    short_dir = Path(tempfile.mkdtemp(prefix="lc-"))
    monkeypatch.setenv("LUCARNE_RUNTIME_DIR", str(short_dir))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))

    yield short_dir

    shutil.rmtree(short_dir, ignore_errors=True)


class RecordingTarget:
    """Command target that records what the dispatcher applied."""

    def __init__(self):
        self.added = []
        self.replaced = []

    def add_file(self, entry):
        self.added.append(entry)

    def replace_file_content(self, path, content, name):
        self.replaced.append((path, content, name))


@pytest.fixture
def target():
    return RecordingTarget()
