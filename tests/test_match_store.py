from datetime import datetime, timedelta

import pytest

from arena.database.models import MatchStatus
from arena.utils.exceptions import CellTakenError, MatchNotFoundError

T0 = datetime(2024, 1, 1, 12, 0, 0)


async def test_create_and_get_waiting_match(store):
    match = await store.create_waiting_match("alice", now=T0)

    loaded = await store.get_match(match.id)
    assert loaded.initiator == "alice"
    assert loaded.responder is None
    assert loaded.status == MatchStatus.WAITING
    assert loaded.created_at == T0
    assert loaded.moves == []


async def test_get_missing_match_returns_none(store):
    assert await store.get_match("does-not-exist") is None


async def test_find_oldest_waiting_is_fifo_and_skips_own(store):
    first = await store.create_waiting_match("alice", now=T0)
    await store.create_waiting_match("bob", now=T0 + timedelta(seconds=5))

    assert (await store.find_oldest_waiting("carol")).id == first.id
    assert (await store.find_oldest_waiting("alice")).initiator == "bob"
    assert await store.find_oldest_waiting("carol", skip_ids=[first.id]) is not None


async def test_activation_only_succeeds_once(store):
    match = await store.create_waiting_match("alice", now=T0)

    assert await store.activate_match(match.id, "bob", now=T0) is True
    assert await store.activate_match(match.id, "carol", now=T0) is False

    loaded = await store.get_match(match.id)
    assert loaded.status == MatchStatus.ACTIVE
    assert loaded.responder == "bob"
    assert loaded.last_move_time == T0


async def test_player_cannot_activate_own_match(store):
    match = await store.create_waiting_match("alice", now=T0)
    assert await store.activate_match(match.id, "alice", now=T0) is False


async def test_append_move_rejects_taken_cell(store):
    match = await store.create_waiting_match("alice", now=T0)
    await store.activate_match(match.id, "bob", now=T0)

    moves = await store.append_move(match.id, "alice", 1, 1, now=T0 + timedelta(seconds=1))
    assert [(m.player, m.row, m.column) for m in moves] == [("alice", 1, 1)]

    with pytest.raises(CellTakenError):
        await store.append_move(match.id, "bob", 1, 1, now=T0 + timedelta(seconds=2))

    loaded = await store.get_match(match.id)
    assert len(loaded.moves) == 1
    assert loaded.last_move_time == T0 + timedelta(seconds=1)


async def test_append_move_requires_active_match(store):
    match = await store.create_waiting_match("alice", now=T0)
    with pytest.raises(MatchNotFoundError):
        await store.append_move(match.id, "alice", 0, 0, now=T0)


async def test_complete_match_is_conditional(store):
    match = await store.create_waiting_match("alice", now=T0)
    await store.activate_match(match.id, "bob", now=T0)

    # A move landed after the snapshot
    assert await store.complete_match(match.id, "bob", expected_last_move_time=T0 - timedelta(seconds=1)) is False
    assert await store.complete_match(match.id, "bob", expected_last_move_time=T0) is True
    assert await store.complete_match(match.id, "bob") is False

    loaded = await store.get_match(match.id)
    assert loaded.status == MatchStatus.COMPLETE
    assert loaded.winner == "bob"


async def test_delete_stale_waiting_only_touches_old_waiting(store):
    old = await store.create_waiting_match("alice", now=T0)
    fresh = await store.create_waiting_match("bob", now=T0 + timedelta(minutes=10))
    active = await store.create_waiting_match("carol", now=T0)
    await store.activate_match(active.id, "dave", now=T0)

    deleted = await store.delete_stale_waiting(T0 + timedelta(minutes=1))

    assert deleted == 1
    assert await store.get_match(old.id) is None
    assert await store.get_match(fresh.id) is not None
    assert await store.get_match(active.id) is not None


async def test_abandon_active_matches(store):
    match = await store.create_waiting_match("alice", now=T0)
    await store.activate_match(match.id, "bob", now=T0)

    assert await store.abandon_active_matches("bob") == 1
    assert (await store.get_match(match.id)).status == MatchStatus.ABANDONED
    assert await store.abandon_active_matches("bob") == 0


async def test_delete_waiting_for_player(store):
    match = await store.create_waiting_match("alice", now=T0)

    assert await store.delete_waiting_for("bob") is None
    assert await store.delete_waiting_for("alice") == match.id
    assert await store.get_match(match.id) is None
