"""
Pytest configuration for Qt-based tests.

Provides fixtures for proper Qt object cleanup between tests to prevent segfaults.
"""
import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest
from PySide6.QtWidgets import QApplication

from pttcore.core.bridge.events import EventBus


@pytest.fixture(autouse=True)
def cleanup_qt_objects(qtbot, request):
    """
    Auto-cleanup fixture that runs after each test to ensure Qt objects are
    properly destroyed before the next test starts.
    """
    yield

    app = QApplication.instance()
    if app:
        app.processEvents()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def recorded(bus):
    """Subscription capturing every event published on the bus fixture."""
    subscription = bus.subscribe()
    yield subscription
    subscription.close()
