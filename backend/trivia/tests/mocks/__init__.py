from trivia.tests.mocks.connection import MockConnection
from trivia.tests.mocks.store import FailingPlayerUpdateStore, SlowRoomStore

__all__ = ["FailingPlayerUpdateStore", "MockConnection", "SlowRoomStore"]
