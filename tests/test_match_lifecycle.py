import asyncio
import random

import pytest

from arena.database.models import MatchStatus
from arena.utils.exceptions import (
    CellTakenError, ConflictError, InvalidStateError, ValidationError
)


async def test_move_appends_and_returns_log(services, activate):
    match_id = await activate("alice", "bob")

    moves = await services.lifecycle.apply_move(match_id, "alice", (0, 0))
    moves = await services.lifecycle.apply_move(match_id, "bob", {"row": 1, "column": 2})

    assert [(m.player, m.row, m.column) for m in moves] == [("alice", 0, 0), ("bob", 1, 2)]


async def test_move_updates_last_move_time(services, store, activate, clock):
    match_id = await activate()
    clock.advance(seconds=12)

    await services.lifecycle.apply_move(match_id, "alice", (2, 2))

    assert (await store.get_match(match_id)).last_move_time == clock.now


async def test_taken_cell_is_rejected(services, activate):
    match_id = await activate()
    await services.lifecycle.apply_move(match_id, "alice", (1, 1))

    with pytest.raises(CellTakenError) as excinfo:
        await services.lifecycle.apply_move(match_id, "bob", (1, 1))
    assert isinstance(excinfo.value, ConflictError)

    state = await services.lifecycle.board_state(match_id)
    assert len(state.moves) == 1


@pytest.mark.parametrize("cell", [(3, 0), (0, -1), ("a", 1), (True, 0), (1,), {"row": 1}, None])
async def test_malformed_cells_are_rejected(services, activate, cell):
    match_id = await activate()
    with pytest.raises(ValidationError):
        await services.lifecycle.apply_move(match_id, "alice", cell)


async def test_move_on_unknown_match_fails(services):
    with pytest.raises(InvalidStateError):
        await services.lifecycle.apply_move("missing", "alice", (0, 0))


async def test_move_on_waiting_match_fails(services):
    waiting = await services.matchmaking.request_match("alice")
    with pytest.raises(InvalidStateError):
        await services.lifecycle.apply_move(waiting.match_id, "alice", (0, 0))


async def test_move_by_outsider_is_rejected(services, activate):
    match_id = await activate()
    with pytest.raises(ValidationError):
        await services.lifecycle.apply_move(match_id, "mallory", (0, 0))


async def test_turn_alternates_starting_with_initiator(services, activate):
    match_id = await activate("alice", "bob")
    expected_turns = ["alice", "bob", "alice", "bob"]
    cells = [(0, 0), (1, 1), (2, 2), (0, 2)]

    for mover, cell in zip(expected_turns, cells):
        state = await services.lifecycle.board_state(match_id)
        assert state.current_player == mover
        await services.lifecycle.apply_move(match_id, mover, cell)

    state = await services.lifecycle.board_state(match_id)
    assert state.current_player == "alice"
    assert state.status == "active"
    assert state.winner is None


async def test_finish_updates_both_ratings(services, activate):
    match_id = await activate("alice", "bob")

    match = await services.lifecycle.finish(match_id, "bob")

    assert match.status == MatchStatus.COMPLETE
    assert match.winner == "bob"
    bob = await services.leaderboard.get_record("bob")
    alice = await services.leaderboard.get_record("alice")
    assert (bob.rating, bob.wins, bob.losses) == (1310, 1, 0)
    assert (alice.rating, alice.wins, alice.losses) == (1090, 0, 1)


async def test_finish_rates_from_pre_update_snapshot(services, activate):
    await services.leaderboard.apply_result("alice", 1400, "win")
    match_id = await activate("alice", "bob")

    await services.lifecycle.finish(match_id, "alice")

    elo = services.lifecycle.elo
    assert (await services.leaderboard.get_record("alice")).rating == elo.compute_rating(1400, 1200, "win", "human")
    assert (await services.leaderboard.get_record("bob")).rating == elo.compute_rating(1200, 1400, "loss", "human")


async def test_finish_twice_fails_without_double_rating(services, activate):
    match_id = await activate("alice", "bob")
    await services.lifecycle.finish(match_id, "alice")

    with pytest.raises(InvalidStateError):
        await services.lifecycle.finish(match_id, "alice")

    alice = await services.leaderboard.get_record("alice")
    assert (alice.rating, alice.wins) == (1310, 1)


async def test_finish_requires_participant_winner(services, activate):
    match_id = await activate("alice", "bob")
    with pytest.raises(ValidationError):
        await services.lifecycle.finish(match_id, "mallory")
    assert (await services.lifecycle.board_state(match_id)).status == "active"


async def test_finish_on_abandoned_match_fails(services, activate):
    match_id = await activate("alice", "bob")
    await services.matchmaking.request_match("alice")

    with pytest.raises(InvalidStateError):
        await services.lifecycle.finish(match_id, "alice")


async def test_timeout_forfeits_the_requester(services, activate, clock):
    match_id = await activate("alice", "bob")
    clock.advance(seconds=31)

    result = await services.lifecycle.check_timeout(match_id, "bob")

    assert result.timed_out
    assert (result.winner, result.loser) == ("alice", "bob")
    assert result.elapsed_ms == 31000
    state = await services.lifecycle.board_state(match_id)
    assert (state.status, state.winner) == ("complete", "alice")
    assert (await services.leaderboard.get_record("alice")).rating == 1310
    assert (await services.leaderboard.get_record("bob")).rating == 1090


async def test_timeout_blames_requester_even_if_they_moved_last(services, activate, clock):
    match_id = await activate("alice", "bob")
    await services.lifecycle.apply_move(match_id, "alice", (0, 0))
    clock.advance(seconds=31)

    result = await services.lifecycle.check_timeout(match_id, "alice")
    assert (result.winner, result.loser) == ("bob", "alice")


async def test_no_timeout_within_threshold(services, activate, clock):
    match_id = await activate("alice", "bob")
    clock.advance(seconds=29)

    result = await services.lifecycle.check_timeout(match_id, "bob")

    assert not result.timed_out
    assert result.elapsed_ms == 29000
    assert (await services.lifecycle.board_state(match_id)).status == "active"
    assert await services.leaderboard.get_record("alice") is None


async def test_timeout_threshold_is_strict(services, activate, clock):
    match_id = await activate()
    clock.advance(seconds=30)
    assert not (await services.lifecycle.check_timeout(match_id, "alice")).timed_out


async def test_moves_reset_the_timeout_window(services, activate, clock):
    match_id = await activate("alice", "bob")
    clock.advance(seconds=25)
    await services.lifecycle.apply_move(match_id, "alice", (1, 1))
    clock.advance(seconds=25)

    result = await services.lifecycle.check_timeout(match_id, "bob")
    assert not result.timed_out
    assert result.elapsed_ms == 25000


async def test_timeout_twice_fails_without_double_rating(services, activate, clock):
    match_id = await activate("alice", "bob")
    clock.advance(seconds=31)
    await services.lifecycle.check_timeout(match_id, "bob")

    with pytest.raises(InvalidStateError):
        await services.lifecycle.check_timeout(match_id, "bob")

    alice = await services.leaderboard.get_record("alice")
    assert (alice.rating, alice.wins) == (1310, 1)


async def test_board_state_of_unknown_match(services):
    with pytest.raises(InvalidStateError):
        await services.lifecycle.board_state("missing")


async def test_board_state_with_zero_moves(services, activate):
    match_id = await activate("alice", "bob")
    state = await services.lifecycle.board_state(match_id)

    assert state.moves == []
    assert state.current_player == "alice"
    assert state.to_dict()["matchId"] == match_id


async def test_concurrent_moves_on_same_cell_have_one_winner(services, activate):
    match_id = await activate("alice", "bob")

    results = await asyncio.gather(
        services.lifecycle.apply_move(match_id, "alice", (1, 1)),
        services.lifecycle.apply_move(match_id, "bob", (1, 1)),
        return_exceptions=True,
    )

    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], CellTakenError)
    assert len((await services.lifecycle.board_state(match_id)).moves) == 1


async def test_random_concurrent_moves_never_duplicate_cells(services, activate):
    match_id = await activate("alice", "bob")
    rng = random.Random(7)
    cells = [(rng.randrange(3), rng.randrange(3)) for _ in range(20)]

    await asyncio.gather(
        *(services.lifecycle.apply_move(match_id, ("alice", "bob")[i % 2], cell)
          for i, cell in enumerate(cells)),
        return_exceptions=True,
    )

    state = await services.lifecycle.board_state(match_id)
    occupied = [(m.row, m.column) for m in state.moves]
    assert len(occupied) == len(set(occupied)) == len(set(cells))


async def test_move_landing_before_timeout_claim_keeps_match_active(services, store, activate, clock, monkeypatch):
    match_id = await activate("alice", "bob")
    clock.advance(seconds=31)
    complete_match = store.complete_match

    async def move_then_complete(*args, **kwargs):
        await store.append_move(match_id, "alice", 1, 1, now=clock.now)
        return await complete_match(*args, **kwargs)

    monkeypatch.setattr(services.lifecycle.store, "complete_match", move_then_complete)

    result = await services.lifecycle.check_timeout(match_id, "bob")

    assert not result.timed_out
    assert result.elapsed_ms == 0
    state = await services.lifecycle.board_state(match_id)
    assert (state.status, len(state.moves)) == ("active", 1)
    assert await services.leaderboard.get_record("bob") is None
