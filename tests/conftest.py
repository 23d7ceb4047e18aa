from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

import pytest


def pytest_sessionstart(session):  # type: ignore[override]
    root = Path(__file__).resolve().parents[1]
    src = root / "src"
    if str(src) not in sys.path:
        sys.path.insert(0, str(src))
    # Ensure console scripts load in editable style as well
    os.environ.setdefault("PYTHONPATH", str(src))


_ENV_PREFIXES = ("GHSYNC_", "GITHUB_", "GIT_URL", "GIT_BRANCH", "GH_TOKEN")


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep the developer's environment and home directory out of every test."""
    for name in list(os.environ):
        if name.startswith(_ENV_PREFIXES):
            monkeypatch.delenv(name, raising=False)
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setattr(Path, "home", classmethod(lambda cls: home))
    yield home


@pytest.fixture(autouse=True)
def debug_logging():
    """Route ghsync logs through caplog at DEBUG."""
    from ghsync import observability

    observability.configure_logging(logging.DEBUG)
    yield
    logging.getLogger(observability.LOGGER_NAME).handlers.clear()
    observability._logger_initialized = False
    observability._session_start = None


@pytest.fixture
def remote():
    """Remote with ``main`` holding one file and a second commit on top."""
    from ghsync.testing import FakeGitHub

    fake = FakeGitHub()
    first = fake.add_commit({"README.md": b"hello\n", "docs/guide.md": b"guide\n"}, message="first")
    second = fake.add_commit({"VERSION": b"1.0\n"}, parent=first, message="second")
    fake.add_branch("main", sha=second)
    fake.mutations.clear()
    fake.calls.clear()
    return fake
