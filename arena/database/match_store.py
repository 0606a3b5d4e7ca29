"""
Match Store Adapter

The narrow set of persistence operations the matchmaking queue and the match
lifecycle controller need. Every mutation is a single conditional statement
(test-and-set through the WHERE clause, checked with rowcount) so that two
requests racing on the same match cannot both succeed.

Each method accepts an optional session. When one is given the caller owns
the transaction; otherwise the method runs in its own transaction.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import select, update, delete, and_, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from arena.database.models import Match, MatchMove, MatchStatus, utc_now
from arena.utils.exceptions import ArenaError, CellTakenError, MatchNotFoundError, StoreError
from arena.utils.logger import setup_logger

logger = setup_logger(__name__)


class MatchStore:
    """Persistence operations for Match and MatchMove records"""

    def __init__(self, database):
        self.db = database
        self.logger = logger

    @asynccontextmanager
    async def _session_scope(self, operation: str, session: Optional[AsyncSession] = None):
        """
        Provides a session for one store operation and maps driver failures
        to StoreError. Uses the provided session if available, otherwise
        creates a transaction and commits it on success.
        """
        try:
            if session is not None:
                yield session
            else:
                async with self.db.transaction() as new_session:
                    yield new_session
        except ArenaError:
            raise
        except SQLAlchemyError as e:
            self.logger.error(f"Store failure during {operation}: {e}")
            raise StoreError(operation, str(e)) from e

    @staticmethod
    def _select_match():
        return select(Match).execution_options(populate_existing=True)

    # ============================================================================
    # Lookups
    # ============================================================================

    async def get_match(self, match_id: str, session: Optional[AsyncSession] = None) -> Optional[Match]:
        """Point lookup by id, with the move log loaded"""
        async with self._session_scope("get_match", session) as s:
            result = await s.execute(self._select_match().where(Match.id == match_id))
            return result.scalar_one_or_none()

    async def find_oldest_waiting(self, exclude_player: str,
                                  skip_ids: Sequence[str] = (),
                                  session: Optional[AsyncSession] = None) -> Optional[Match]:
        """
        Oldest waiting match without a responder that another player opened.

        Ties on created_at are broken by id so the order is stable.
        """
        async with self._session_scope("find_oldest_waiting", session) as s:
            query = (
                self._select_match()
                .where(
                    Match.status == MatchStatus.WAITING,
                    Match.responder.is_(None),
                    Match.initiator != exclude_player,
                )
                .order_by(Match.created_at.asc(), Match.id.asc())
                .limit(1)
            )
            if skip_ids:
                query = query.where(Match.id.notin_(list(skip_ids)))
            result = await s.execute(query)
            return result.scalar_one_or_none()

    async def find_player_matches(self, player: str, statuses: Sequence[MatchStatus],
                                  session: Optional[AsyncSession] = None) -> List[Match]:
        """Matches the player takes part in, newest first"""
        async with self._session_scope("find_player_matches", session) as s:
            result = await s.execute(
                self._select_match()
                .where(
                    or_(Match.initiator == player, Match.responder == player),
                    Match.status.in_(list(statuses)),
                )
                .order_by(Match.created_at.desc())
            )
            return list(result.scalars().all())

    # ============================================================================
    # Queue mutations
    # ============================================================================

    async def create_waiting_match(self, player: str, now: Optional[datetime] = None,
                                   session: Optional[AsyncSession] = None) -> Match:
        """Insert a new waiting match opened by player"""
        async with self._session_scope("create_waiting_match", session) as s:
            match = Match(
                initiator=player,
                responder=None,
                status=MatchStatus.WAITING,
                created_at=now or utc_now(),
                moves=[],
            )
            s.add(match)
            await s.flush()
            self.logger.debug(f"Created waiting match {match.id} for {player}")
            return match

    async def activate_match(self, match_id: str, responder: str, now: Optional[datetime] = None,
                             session: Optional[AsyncSession] = None) -> bool:
        """
        Transition a match from waiting to active.

        Only succeeds while the match is still waiting with no responder, so
        two players cannot both take the same waiting match.

        Returns:
            True if this call performed the activation
        """
        async with self._session_scope("activate_match", session) as s:
            result = await s.execute(
                update(Match)
                .where(
                    Match.id == match_id,
                    Match.status == MatchStatus.WAITING,
                    Match.responder.is_(None),
                    Match.initiator != responder,
                )
                .values(
                    responder=responder,
                    status=MatchStatus.ACTIVE,
                    last_move_time=now or utc_now(),
                )
            )
            return result.rowcount == 1

    async def delete_stale_waiting(self, cutoff: datetime,
                                   session: Optional[AsyncSession] = None) -> int:
        """Delete waiting matches created before cutoff"""
        async with self._session_scope("delete_stale_waiting", session) as s:
            result = await s.execute(
                delete(Match).where(
                    Match.status == MatchStatus.WAITING,
                    Match.created_at < cutoff,
                )
            )
            return result.rowcount or 0

    async def delete_other_waiting(self, player: str, keep_id: str,
                                   session: Optional[AsyncSession] = None) -> int:
        """Delete every waiting match of player except keep_id"""
        async with self._session_scope("delete_other_waiting", session) as s:
            result = await s.execute(
                delete(Match).where(
                    Match.initiator == player,
                    Match.status == MatchStatus.WAITING,
                    Match.id != keep_id,
                )
            )
            return result.rowcount or 0

    async def delete_waiting_for(self, player: str,
                                 session: Optional[AsyncSession] = None) -> Optional[str]:
        """
        Delete the player's own waiting match that has no responder.

        Returns:
            Id of the deleted match, or None if there was nothing to delete
        """
        async with self._session_scope("delete_waiting_for", session) as s:
            result = await s.execute(
                select(Match.id)
                .where(
                    Match.initiator == player,
                    Match.responder.is_(None),
                    Match.status == MatchStatus.WAITING,
                )
                .order_by(Match.created_at.desc())
                .limit(1)
            )
            match_id = result.scalar_one_or_none()
            if match_id is None:
                return None

            deleted = await s.execute(
                delete(Match).where(
                    Match.id == match_id,
                    Match.status == MatchStatus.WAITING,
                    Match.responder.is_(None),
                )
            )
            # Activated between the select and the delete
            if deleted.rowcount == 0:
                return None
            return match_id

    async def abandon_active_matches(self, player: str,
                                     session: Optional[AsyncSession] = None) -> int:
        """Force every active match the player takes part in to abandoned"""
        async with self._session_scope("abandon_active_matches", session) as s:
            result = await s.execute(
                update(Match)
                .where(
                    or_(Match.initiator == player, Match.responder == player),
                    Match.status == MatchStatus.ACTIVE,
                )
                .values(status=MatchStatus.ABANDONED, completed_at=utc_now())
            )
            return result.rowcount or 0

    # ============================================================================
    # Lifecycle mutations
    # ============================================================================

    async def append_move(self, match_id: str, player: str, row: int, column: int,
                          now: Optional[datetime] = None,
                          session: Optional[AsyncSession] = None) -> List[MatchMove]:
        """
        Append a move to an active match and bump last_move_time.

        The status check and the insert run in one transaction; the unique
        (match_id, row, column) constraint rejects a second claim on a cell
        even when both requests passed the status check.

        Raises:
            MatchNotFoundError: If the match is absent or not active
            CellTakenError: If the cell is already occupied
        """
        async with self._session_scope("append_move", session) as s:
            result = await s.execute(
                update(Match)
                .where(Match.id == match_id, Match.status == MatchStatus.ACTIVE)
                .values(last_move_time=now or utc_now())
            )
            if result.rowcount == 0:
                raise MatchNotFoundError(f"no active match {match_id}")

            s.add(MatchMove(
                match_id=match_id,
                player=player,
                row=row,
                column=column,
                created_at=now or utc_now(),
            ))
            try:
                await s.flush()
            except IntegrityError as e:
                raise CellTakenError(match_id, row, column) from e

            moves = await s.execute(
                select(MatchMove)
                .where(MatchMove.match_id == match_id)
                .order_by(MatchMove.seq.asc())
            )
            return list(moves.scalars().all())

    async def complete_match(self, match_id: str, winner: str, now: Optional[datetime] = None,
                             expected_last_move_time: Optional[datetime] = None,
                             session: Optional[AsyncSession] = None) -> bool:
        """
        Transition a match from active to complete with the given winner.

        When expected_last_move_time is given the transition also requires
        that no move landed since that snapshot was read.

        Returns:
            True if this call performed the transition
        """
        async with self._session_scope("complete_match", session) as s:
            conditions = [Match.id == match_id, Match.status == MatchStatus.ACTIVE]
            if expected_last_move_time is not None:
                conditions.append(Match.last_move_time == expected_last_move_time)

            result = await s.execute(
                update(Match)
                .where(and_(*conditions))
                .values(status=MatchStatus.COMPLETE, winner=winner, completed_at=now or utc_now())
            )
            return result.rowcount == 1
