"""Fixtures compartidos de los tests."""

import pytest

from PyQt6.QtCore import QCoreApplication

from lrcsync.clock import ManualClock
from lrcsync.lrc_parser import SyncedLine


@pytest.fixture(scope="session")
def qapp():
    """QCoreApplication para los objetos que usan QTimer."""
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    yield app


@pytest.fixture
def clock():
    return ManualClock(duration=300.0)


@pytest.fixture
def sample_lines():
    return [
        SyncedLine(time=0.0, text="a"),
        SyncedLine(time=2.0, text="b"),
        SyncedLine(time=5.0, text="c"),
    ]


@pytest.fixture(autouse=True)
def no_supabase_env(monkeypatch):
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_KEY", raising=False)
