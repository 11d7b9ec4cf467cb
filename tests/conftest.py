"""Shared fixtures for the tailer tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from tests.utils import ManualWatchSource


@pytest.fixture
def watch_source() -> ManualWatchSource:
    return ManualWatchSource()


@pytest.fixture
def log_file(tmp_path: Path) -> Path:
    path = tmp_path / "app.log"
    path.write_text("old1\nold2\n")
    return path


@pytest.fixture
def other_log_file(tmp_path: Path) -> Path:
    path = tmp_path / "worker.log"
    path.write_text("")
    return path
