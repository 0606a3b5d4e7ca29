"""
Match Lifecycle Operations

Owns the state machine of an individual match once it is active:

    waiting -> active -> complete
                      -> abandoned

Moves are appended through conditional store updates, the player to move is
always derived from the move log, and terminal transitions trigger rating
updates through the EloCalculator and the LeaderboardService inside the same
transaction as the status change.
"""

from datetime import datetime
from typing import Callable, List, Mapping, Optional, Sequence, Tuple, Union

from sqlalchemy.ext.asyncio import AsyncSession

from arena.config import MatchPolicy
from arena.data_models.match import BoardState, MoveEntry, RatingChange, TimeoutResult
from arena.database.match_store import MatchStore
from arena.database.models import Match, MatchResult, utc_now
from arena.services.leaderboard import LeaderboardService
from arena.utils.elo import EloCalculator
from arena.utils.exceptions import InvalidStateError, MatchNotFoundError, ValidationError
from arena.utils.logger import setup_logger

logger = setup_logger(__name__)

Cell = Union[Sequence[int], Mapping[str, int]]


class MatchLifecycle:
    """Move application, turn arbitration, timeout forfeiture and finalization"""

    def __init__(self, database, leaderboard: LeaderboardService,
                 store: Optional[MatchStore] = None,
                 elo_calculator: Optional[EloCalculator] = None,
                 policy: Optional[MatchPolicy] = None,
                 clock: Callable[[], datetime] = utc_now):
        self.db = database
        self.leaderboard = leaderboard
        self.store = store or MatchStore(database)
        self.elo = elo_calculator or leaderboard.elo
        self.policy = policy or MatchPolicy()
        self.clock = clock
        self.logger = logger

    # ============================================================================
    # Moves
    # ============================================================================

    async def apply_move(self, match_id: str, player: str, cell: Cell) -> List[MoveEntry]:
        """
        Append a move to an active match.

        Args:
            match_id: Match to play in
            player: Participant making the move
            cell: (row, column) pair or {"row": r, "column": c}

        Returns:
            The full move log after the append

        Raises:
            ValidationError: Malformed cell, or player not in the match
            InvalidStateError: Match absent or not active
            CellTakenError: Cell already occupied
        """
        row, column = self.parse_cell(cell)
        match = await self._get_active_match(match_id)
        if not match.has_participant(player):
            raise ValidationError(
                f"{player} is not a participant of match {match_id}",
                "Player is not part of this match"
            )

        moves = await self.store.append_move(match_id, player, row, column, now=self.clock())
        self.logger.debug(f"Match {match_id}: {player} played ({row}, {column}), {len(moves)} move(s)")
        return [MoveEntry(player=m.player, row=m.row, column=m.column) for m in moves]

    def parse_cell(self, cell: Cell) -> Tuple[int, int]:
        """Validate a cell coordinate against the board size"""
        try:
            if isinstance(cell, Mapping):
                row, column = cell["row"], cell["column"]
            else:
                row, column = cell
        except (KeyError, TypeError, ValueError):
            raise ValidationError(f"Malformed cell {cell!r}", "Move must have a row and a column")

        size = self.policy.board_size
        for value in (row, column):
            if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value < size:
                raise ValidationError(
                    f"Cell {cell!r} outside a {size}x{size} board",
                    f"Row and column must be integers between 0 and {size - 1}"
                )
        return row, column

    # ============================================================================
    # Terminal transitions
    # ============================================================================

    async def finish(self, match_id: str, winner: str) -> Match:
        """
        Complete an active match with the named winner.

        The other participant takes the loss. Both new ratings come from the
        pre-update snapshot of both records, with opponent class "human".

        Raises:
            InvalidStateError: Match absent or no longer active
            ValidationError: Winner is not a participant
        """
        match = await self._get_active_match(match_id)
        if not winner or not match.has_participant(winner):
            raise ValidationError(
                f"Winner {winner!r} is not a participant of match {match_id}",
                "Winner must be one of the match participants"
            )
        loser = match.opponent_of(winner)

        async with self.db.transaction() as session:
            claimed = await self.store.complete_match(match_id, winner, now=self.clock(), session=session)
            if not claimed:
                raise InvalidStateError(
                    f"Match {match_id} is no longer active",
                    "Invalid or inactive match"
                )
            await self._apply_ratings(session, winner, loser)

        self.logger.info(f"Match {match_id} complete: {winner} beat {loser}")
        return await self.store.get_match(match_id)

    async def check_timeout(self, match_id: str, requesting_player: str) -> TimeoutResult:
        """
        Forfeit the requesting player if the match has been silent too long.

        The caller of this check is treated as the inactive side: on timeout
        the requester loses and the other participant wins.

        Raises:
            InvalidStateError: Match absent or no longer active
            ValidationError: Requester is not a participant
        """
        match = await self._get_active_match(match_id)
        if not match.has_participant(requesting_player):
            raise ValidationError(
                f"{requesting_player} is not a participant of match {match_id}",
                "Player is not part of this match"
            )

        now = self.clock()
        elapsed = now - match.reference_time
        elapsed_ms = int(elapsed.total_seconds() * 1000)
        if elapsed <= self.policy.move_timeout:
            return TimeoutResult(timed_out=False, elapsed_ms=elapsed_ms)

        winner = match.opponent_of(requesting_player)
        loser = requesting_player
        changes = None
        async with self.db.transaction() as session:
            claimed = await self.store.complete_match(
                match_id, winner, now=now,
                expected_last_move_time=match.last_move_time,
                session=session,
            )
            if claimed:
                changes = await self._apply_ratings(session, winner, loser)

        if changes is None:
            # Either finished concurrently or a move reset the clock
            current = await self._get_active_match(match_id)
            elapsed_ms = max(0, int((now - current.reference_time).total_seconds() * 1000))
            return TimeoutResult(timed_out=False, elapsed_ms=elapsed_ms)

        self.logger.info(f"Match {match_id} timed out after {elapsed_ms}ms: {loser} forfeits to {winner}")
        return TimeoutResult(
            timed_out=True,
            elapsed_ms=elapsed_ms,
            winner=winner,
            loser=loser,
            rating_changes=changes,
        )

    async def _apply_ratings(self, session: AsyncSession, winner: str, loser: str) -> List[RatingChange]:
        """Rate both sides from one snapshot and persist through the leaderboard"""
        await self.leaderboard.lock_records([winner, loser], session=session)
        ratings = await self.leaderboard.get_ratings([winner, loser], session=session)
        winner_before, loser_before = ratings[winner], ratings[loser]

        winner_after, loser_after = self.elo.calculate_match_ratings(
            winner_before, loser_before, player1_won=True
        )

        await self.leaderboard.apply_result(winner, winner_after, MatchResult.WIN.value, session=session)
        await self.leaderboard.apply_result(loser, loser_after, MatchResult.LOSS.value, session=session)

        self.logger.info(
            f"Ratings: {winner} {winner_before} -> {winner_after} "
            f"({self.elo.format_rating_change(winner_after - winner_before)}), "
            f"{loser} {loser_before} -> {loser_after} "
            f"({self.elo.format_rating_change(loser_after - loser_before)})"
        )
        return [
            RatingChange(winner, MatchResult.WIN.value, winner_before, winner_after),
            RatingChange(loser, MatchResult.LOSS.value, loser_before, loser_after),
        ]

    # ============================================================================
    # Queries
    # ============================================================================

    async def board_state(self, match_id: str) -> BoardState:
        """Read-only projection of a match in any status"""
        if not match_id:
            raise ValidationError("Match ID is required", "Match ID is required.")
        match = await self.store.get_match(match_id)
        if match is None:
            raise MatchNotFoundError(match_id, "Invalid match ID.")
        return BoardState(
            match_id=match.id,
            moves=[MoveEntry(player=m.player, row=m.row, column=m.column) for m in match.moves],
            current_player=match.current_player,
            status=match.status.value,
            winner=match.winner,
        )

    async def _get_active_match(self, match_id: str) -> Match:
        if not match_id:
            raise ValidationError("Match ID is required", "Match ID is required.")
        match = await self.store.get_match(match_id)
        if match is None or not match.is_active:
            raise MatchNotFoundError(f"no active match {match_id}")
        return match
