import pytest

from davsync.protocol_client import SyncProtocolClient
from davsync.store import EventStore

from .fixture_helpers import FakeServer


@pytest.fixture
def server():
    return FakeServer()


@pytest.fixture
def client(server):
    return SyncProtocolClient(username="alice", password="secret", io=server)


@pytest.fixture
def store():
    store = EventStore("sqlite://")
    store.create_all()
    yield store
    store.engine.dispose()
