"""
Matchmaking Queue Operations

Finds or creates a waiting match for a player, keeps at most one waiting
entry per player, and sweeps stale entries out of the queue.
"""

from datetime import datetime
from typing import Callable, Optional

from arena.config import MatchPolicy
from arena.data_models.match import MatchmakingResult, QueueState
from arena.database.match_store import MatchStore
from arena.database.models import MatchStatus, utc_now
from arena.utils.exceptions import MatchNotFoundError, ValidationError
from arena.utils.logger import setup_logger

logger = setup_logger(__name__)


class MatchmakingOperations:
    """
    Matchmaking queue manager.

    Only creates matches in the waiting state or moves one from waiting to
    active; everything after activation belongs to MatchLifecycle.
    """

    def __init__(self, database, store: Optional[MatchStore] = None,
                 policy: Optional[MatchPolicy] = None,
                 clock: Callable[[], datetime] = utc_now):
        self.db = database
        self.store = store or MatchStore(database)
        self.policy = policy or MatchPolicy()
        self.clock = clock
        self.logger = logger

    async def request_match(self, player: str) -> MatchmakingResult:
        """
        Pair the player with the oldest waiting opponent, or queue them.

        Steps:
        1. Sweep waiting matches older than the waiting timeout
        2. Abandon the player's active matches (rejoin policy)
        3. Activate the oldest waiting match opened by someone else
        4. Otherwise open a waiting match and drop the player's older ones

        Returns:
            MatchmakingResult, ACTIVATED with match id and opponent, or WAITING
        """
        _require_player(player)
        now = self.clock()

        expired = await self.store.delete_stale_waiting(now - self.policy.waiting_timeout)
        if expired:
            self.logger.info(f"Expired {expired} stale waiting match(es)")

        await self.abandon_active_matches_on_rejoin(player)

        # A lost activation race moves on to the next candidate
        lost_races = []
        while True:
            candidate = await self.store.find_oldest_waiting(player, skip_ids=lost_races)
            if candidate is None:
                break
            if await self.store.activate_match(candidate.id, player, now=now):
                self.logger.info(
                    f"Activated match {candidate.id}: {candidate.initiator} vs {player}"
                )
                return MatchmakingResult(
                    state=QueueState.ACTIVATED,
                    match_id=candidate.id,
                    opponent=candidate.initiator,
                )
            self.logger.debug(f"Lost activation race for match {candidate.id}")
            lost_races.append(candidate.id)

        async with self.db.transaction() as session:
            match = await self.store.create_waiting_match(player, now=now, session=session)
            dropped = await self.store.delete_other_waiting(player, keep_id=match.id, session=session)

        if dropped:
            self.logger.debug(f"Dropped {dropped} older waiting match(es) for {player}")
        self.logger.info(f"{player} is waiting for an opponent in match {match.id}")
        return MatchmakingResult(state=QueueState.WAITING, match_id=match.id)

    async def abandon_active_matches_on_rejoin(self, player: str) -> int:
        """
        Rejoin policy: entering the queue abandons every active match the
        player takes part in, whether or not it is stale. A player re-polling
        matchmaking therefore ends their own live game.
        """
        abandoned = await self.store.abandon_active_matches(player)
        if abandoned:
            self.logger.info(f"Abandoned {abandoned} active match(es) of {player} on queue entry")
        return abandoned

    async def cancel_match(self, player: str) -> str:
        """
        Remove the player's own waiting match.

        Returns:
            Id of the cancelled match

        Raises:
            MatchNotFoundError: If the player has no waiting match
        """
        _require_player(player)
        match_id = await self.store.delete_waiting_for(player)
        if match_id is None:
            raise MatchNotFoundError(
                f"no waiting match for {player}",
                "No matchmaking in progress to cancel."
            )
        self.logger.info(f"{player} cancelled matchmaking (match {match_id})")
        return match_id

    async def status(self, player: str) -> MatchmakingResult:
        """Report ACTIVATED (with opponent), WAITING or IDLE for the player"""
        _require_player(player)
        matches = await self.store.find_player_matches(
            player, [MatchStatus.WAITING, MatchStatus.ACTIVE]
        )

        for match in matches:
            if match.status == MatchStatus.ACTIVE:
                return MatchmakingResult(
                    state=QueueState.ACTIVATED,
                    match_id=match.id,
                    opponent=match.opponent_of(player),
                )
        if matches:
            return MatchmakingResult(state=QueueState.WAITING, match_id=matches[0].id)
        return MatchmakingResult(state=QueueState.IDLE)


def _require_player(player: str) -> None:
    if not player or not isinstance(player, str):
        raise ValidationError("Player identifier is required", "Player username is required.")
