import pytest

from cowbull.logic.settings import RoomSettings
from cowbull.messaging.router import MessageRouter
from cowbull.server.app import create_app
from cowbull.server.settings import GameServerSettings
from cowbull.session.manager import SessionManager
from cowbull.session.supervisor import DisconnectSupervisor
from cowbull.tests.helpers.timing import TEST_GRACE_SECONDS, TEST_TICK_SECONDS
from cowbull.tests.mocks.connection import MockConnection


@pytest.fixture
def room_settings():
    return RoomSettings(grace_period_seconds=TEST_GRACE_SECONDS)


@pytest.fixture
def supervisor():
    return DisconnectSupervisor(grace_seconds=TEST_GRACE_SECONDS, tick_seconds=TEST_TICK_SECONDS)


@pytest.fixture
def session_manager(room_settings, supervisor):
    return SessionManager(room_settings, supervisor=supervisor)


@pytest.fixture
def message_router(session_manager):
    return MessageRouter(session_manager)


@pytest.fixture
def mock_connection():
    return MockConnection()


@pytest.fixture
def server_settings():
    return GameServerSettings(
        cors_origins=["http://localhost:5173"],
        grace_period_seconds=TEST_GRACE_SECONDS,
        tick_seconds=TEST_TICK_SECONDS,
    )


@pytest.fixture
def app(server_settings, session_manager, message_router):
    return create_app(
        settings=server_settings,
        session_manager=session_manager,
        message_router=message_router,
    )
