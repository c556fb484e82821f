import pytest

from farewheel.db import migrate
from farewheel.tests.helpers import FakeClock, FakeNotifier, FakeProvider


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "farewheel.db")
    migrate(path)
    return path


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def notifier():
    return FakeNotifier()
