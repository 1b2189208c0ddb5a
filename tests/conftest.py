import pytest

from trellis import JobDispatcher, Repository
from trellis.persistence import InMemoryStore
from trellis.transports import InMemoryTransport

from tests.fixtures.flows import registry

NAMESPACE = "test"


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def transport():
    return InMemoryTransport()


@pytest.fixture
def repository(store, transport):
    return Repository(store, JobDispatcher(transport, namespace=NAMESPACE), registry=registry)
