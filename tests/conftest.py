"""
Shared pytest fixtures for relay tests.
"""
import sys
import uuid

import pytest
from PySide6.QtCore import QCoreApplication

from relay.events import Dispatcher
from relay.scheduling import ManualFrameScheduler


@pytest.fixture(scope='session')
def qt_app():
    """Create QCoreApplication instance for tests that need the Qt event loop."""
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication(sys.argv)
    yield app
    # Don't quit - causes issues with pytest


@pytest.fixture
def frame_scheduler():
    """Manually pumped frame scheduler."""
    return ManualFrameScheduler()


@pytest.fixture
def dispatcher(frame_scheduler):
    """Create Dispatcher driven by the manual frame scheduler."""
    d = Dispatcher(scheduler=frame_scheduler)
    yield d
    d.shutdown()


@pytest.fixture
def settings_manager():
    """Create SettingsManager backed by a throwaway QSettings scope."""
    from relay.settings import SettingsManager
    manager = SettingsManager(organization="RelayTest", application=f"Dispatcher-{uuid.uuid4().hex[:8]}")
    yield manager
    # Clear test settings
    manager.clear()
