import pytest

from courtbook.sync.tests.fakes import FakeBackend
from courtbook.sync.tests.fakes import FakeClock
from courtbook.sync.tests.fakes import FakeTransport


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def api(backend):
    return backend.api()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()
