import pytest

from tests.factories.clock import FakeClock
from tests.factories.settings import make_settings
from tests.factories.upstream import FakeUpstream


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def upstream():
    return FakeUpstream()
