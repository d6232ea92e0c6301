"""Shared fixtures for wapair tests."""

import pytest
from fakes import FakeArchive, FakeProtocolClient

from wapair.core.config import SessionsConfig
from wapair.runtime.session.coordinator import SessionCoordinator


@pytest.fixture
def sessions_config(tmp_path):
    """Session config with short timers so deadline tests stay fast."""
    return SessionsConfig(
        directory=tmp_path / "sessions",
        qr_timeout_seconds=5.0,
        pairing_timeout_seconds=5.0,
        artifact_wait_seconds=1.0,
        reconnect_backoff_seconds=0.05,
        handle_close_timeout_seconds=0.5,
        notify_timeout_seconds=0.5,
    )


@pytest.fixture
def protocol():
    return FakeProtocolClient()


@pytest.fixture
def archive():
    return FakeArchive()


@pytest.fixture
async def coordinator(protocol, archive, sessions_config):
    """Started coordinator, shut down after the test."""
    coordinator = SessionCoordinator(protocol, archive, sessions_config)
    await coordinator.start()
    yield coordinator
    await coordinator.shutdown()
