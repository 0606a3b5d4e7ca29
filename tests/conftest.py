from datetime import datetime, timedelta

import pytest

from arena.config import MatchPolicy, RatingConfig
from arena.database.database import Database
from arena.database.match_store import MatchStore
from arena.main import build_services


class FakeClock:
    """Deterministic clock handed to the queue and lifecycle controllers.

    Usage::

        def test_something(clock):
            clock.advance(seconds=31)
    """

    def __init__(self, start=datetime(2024, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'arena_test.db'}")
    await db.initialize()
    yield db
    await db.close()


@pytest.fixture
def store(database):
    return MatchStore(database)


@pytest.fixture
def services(database, clock):
    return build_services(database, RatingConfig(), MatchPolicy(), clock)


@pytest.fixture
def activate(services):
    """Pairs two players and returns the active match id."""

    async def _activate(initiator="alice", responder="bob"):
        waiting = await services.matchmaking.request_match(initiator)
        assert not waiting.activated
        result = await services.matchmaking.request_match(responder)
        assert result.activated
        return result.match_id

    return _activate
