import pytest

from shared.dal.memory import InMemoryRoomStore
from trivia.catalog.catalog import load_catalog
from trivia.messaging.router import MessageRouter
from trivia.server.app import create_app
from trivia.server.rate_limit import ConnectionRateLimiter
from trivia.server.settings import TriviaServerSettings
from trivia.session.broadcast import BroadcastChannel
from trivia.session.manager import RoomStateMachine
from trivia.session.registry import SessionRegistry
from trivia.tests.helpers.catalog import make_catalog
from trivia.tests.mocks import MockConnection


class SequentialCodes:
    """Deterministic room code generator: ROOM01, ROOM02, ..."""

    def __init__(self, codes: list[str] | None = None) -> None:
        self._codes = list(codes) if codes else None
        self._counter = 0

    def __call__(self) -> str:
        if self._codes is not None:
            return self._codes.pop(0) if len(self._codes) > 1 else self._codes[0]
        self._counter += 1
        return f"ROOM{self._counter:02d}"


@pytest.fixture
def catalog():
    return make_catalog()


@pytest.fixture
def bundled_catalog():
    return load_catalog()


@pytest.fixture
def store():
    return InMemoryRoomStore()


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def channel():
    return BroadcastChannel()


@pytest.fixture
def state_machine(store, catalog, registry, channel):
    return RoomStateMachine(
        store,
        catalog,
        registry,
        channel,
        starting_bankroll=1_000_000,
        max_players_limit=30,
        store_timeout_seconds=1.0,
        code_generator=SequentialCodes(),
    )


@pytest.fixture
def message_router(state_machine):
    return MessageRouter(state_machine, bet_update_limiter=ConnectionRateLimiter(rate=1000.0, burst=1000))


@pytest.fixture
def mock_connection():
    return MockConnection()


@pytest.fixture
def settings():
    return TriviaServerSettings(database_path=":memory:", starting_bankroll=1_000_000)


@pytest.fixture
def app(settings, store, catalog):
    return create_app(settings=settings, store=store, catalog=catalog)
