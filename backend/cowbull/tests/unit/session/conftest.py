import pytest

from cowbull.logic.settings import RoomSettings
from cowbull.session.manager import SessionManager
from cowbull.session.supervisor import DisconnectSupervisor
from cowbull.tests.helpers.timing import TEST_GRACE_SECONDS, TEST_TICK_SECONDS


@pytest.fixture
async def manager():
    supervisor = DisconnectSupervisor(grace_seconds=TEST_GRACE_SECONDS, tick_seconds=TEST_TICK_SECONDS)
    session_manager = SessionManager(RoomSettings(grace_period_seconds=TEST_GRACE_SECONDS), supervisor=supervisor)
    yield session_manager
    await session_manager.shutdown()
