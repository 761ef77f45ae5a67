from datetime import datetime, timezone

import pytest

from tests.fakes import FakeJobQueue, FakeTransport, InMemoryDocumentStore

BRAND = {"name": "Studio Bella", "locale": "hr", "timezone": "Europe/Zagreb"}


@pytest.fixture
def now():
    # 10:00 in Zagreb (CEST)
    return datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def store():
    return InMemoryDocumentStore({"brands/T1": BRAND})


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def queue():
    return FakeJobQueue()
