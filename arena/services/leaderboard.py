"""
Leaderboard service.

Applies rating/result deltas to the durable per-player RatingRecord and
serves the ranked views built on top of it.
"""

from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from arena.constants import PaginationConstants, RatingConstants
from arena.data_models.leaderboard import LeaderboardEntry, LeaderboardPage
from arena.data_models.match import RatingChange
from arena.database.models import MatchResult, RatingRecord, utc_now
from arena.services.base import BaseService
from arena.utils.elo import EloCalculator
from arena.utils.exceptions import ValidationError
from arena.utils.logger import setup_logger

logger = setup_logger(__name__)

OUTCOME_COUNTERS = {
    MatchResult.WIN.value: "wins",
    MatchResult.LOSS.value: "losses",
    MatchResult.DRAW.value: "draws",
}

_UPSERT_DIALECTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


class LeaderboardService(BaseService):
    """Service for rating record updates and leaderboard queries."""

    def __init__(self, session_factory, elo_calculator: Optional[EloCalculator] = None):
        super().__init__(session_factory)
        self.elo = elo_calculator or EloCalculator()

    @property
    def starting_rating(self) -> int:
        return self.elo.config.starting_rating

    # ============================================================================
    # Result application
    # ============================================================================

    async def apply_result(self, player: str, new_rating: int, outcome: str,
                           session: Optional[AsyncSession] = None) -> None:
        """
        Upsert the player's record, set the rating and bump one counter.

        Runs as a single INSERT ... ON CONFLICT DO UPDATE so concurrent
        results for the same player never lose an increment.

        Args:
            player: Player identifier
            new_rating: Rating to store, clamped at 0
            outcome: "win", "loss" or "draw"
            session: Optional caller transaction
        """
        counter = OUTCOME_COUNTERS.get(outcome)
        if counter is None:
            raise ValidationError(f"Unknown outcome {outcome!r} for {player}", "Invalid match result")
        new_rating = max(0, int(new_rating))

        async with self.get_session("apply_result", session) as s:
            insert = _UPSERT_DIALECTS.get(s.get_bind().dialect.name)
            if insert is None:
                await self._apply_result_locked(s, player, new_rating, counter)
            else:
                values = {"player": player, "rating": new_rating, "wins": 0, "losses": 0,
                          "draws": 0, "updated_at": utc_now()}
                values[counter] = 1
                stmt = insert(RatingRecord).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[RatingRecord.player],
                    set_={
                        "rating": stmt.excluded.rating,
                        counter: getattr(RatingRecord, counter) + 1,
                        "updated_at": stmt.excluded.updated_at,
                    },
                )
                await s.execute(stmt)

        logger.info(f"Applied {outcome} for {player}: rating={new_rating}")

    async def _apply_result_locked(self, session: AsyncSession, player: str,
                                   new_rating: int, counter: str) -> None:
        """Fallback for dialects without ON CONFLICT: lock the row, then update."""
        record = await session.scalar(
            select(RatingRecord).where(RatingRecord.player == player).with_for_update()
        )
        if record is None:
            record = RatingRecord(player=player, rating=new_rating, wins=0, losses=0, draws=0)
            session.add(record)
        record.rating = new_rating
        setattr(record, counter, getattr(record, counter) + 1)
        record.updated_at = utc_now()
        await session.flush()

    async def lock_records(self, players: Iterable[str], session: AsyncSession) -> None:
        """
        Take the write lock on the players' records before reading them.

        Missing records are created at the starting rating with no results.
        On SQLite this first write serializes the whole transaction; on
        PostgreSQL the upsert holds each row lock until commit. Other
        dialects fall back to SELECT ... FOR UPDATE on existing rows.
        """
        players = sorted(set(players))
        insert = _UPSERT_DIALECTS.get(session.get_bind().dialect.name)
        if insert is None:
            await session.execute(
                select(RatingRecord.player)
                .where(RatingRecord.player.in_(players))
                .with_for_update()
            )
            return

        now = utc_now()
        stmt = insert(RatingRecord).values([
            {"player": player, "rating": self.starting_rating, "wins": 0, "losses": 0,
             "draws": 0, "updated_at": now}
            for player in players
        ])
        stmt = stmt.on_conflict_do_update(
            index_elements=[RatingRecord.player],
            set_={"updated_at": stmt.excluded.updated_at},
        )
        await session.execute(stmt)

    async def get_ratings(self, players: Iterable[str],
                          session: Optional[AsyncSession] = None) -> Dict[str, int]:
        """Current ratings for players, defaulting to the starting rating"""
        players = list(players)
        async with self.get_session("get_ratings", session) as s:
            result = await s.execute(
                select(RatingRecord.player, RatingRecord.rating)
                .where(RatingRecord.player.in_(players))
            )
            ratings = {row.player: row.rating for row in result}
        return {player: ratings.get(player, self.starting_rating) for player in players}

    async def record_result(self, player: str, outcome: str, opponent_class: str,
                            opponent: Optional[str] = None) -> Tuple[RatingRecord, RatingChange]:
        """
        Record a standalone result for one player.

        Used for games against an AI tier, or a human game reported outside
        the match lifecycle. The reference rating is the opponent's current
        rating when an opponent is named, otherwise the starting rating.
        The player's record is locked before it is read, so concurrent
        reports for the same player apply one after another.

        Raises:
            ValidationError: On an unknown outcome or opponent class
        """
        outcome = (outcome or "").lower()
        opponent_class = (opponent_class or "").lower()
        if outcome not in OUTCOME_COUNTERS:
            raise ValidationError(f"Invalid result {outcome!r}", "Invalid data")
        if opponent_class not in RatingConstants.AI_TIERS and not self.elo.is_human(opponent_class):
            raise ValidationError(f"Invalid difficulty {opponent_class!r}", "Invalid data")

        async with self.get_session("record_result") as s:
            await self.lock_records([player], session=s)
            lookup = [player] + ([opponent] if opponent else [])
            ratings = await self.get_ratings(lookup, session=s)
            before = ratings[player]
            reference = ratings[opponent] if opponent else self.starting_rating

            after = self.elo.compute_rating(before, reference, outcome, opponent_class)
            await self.apply_result(player, after, outcome, session=s)
            record = await s.scalar(
                select(RatingRecord)
                .where(RatingRecord.player == player)
                .execution_options(populate_existing=True)
            )

        return record, RatingChange(player=player, outcome=outcome, rating_before=before, rating_after=after)

    # ============================================================================
    # Queries
    # ============================================================================

    async def get_record(self, player: str) -> Optional[RatingRecord]:
        async with self.get_session("get_record") as s:
            return await s.scalar(select(RatingRecord).where(RatingRecord.player == player))

    async def get_page(self, page: int = 1,
                       page_size: int = PaginationConstants.DEFAULT_PAGE_SIZE) -> LeaderboardPage:
        """Get a page of the leaderboard ordered by rating, best first."""
        if not isinstance(page, int) or page < 1:
            raise ValidationError("page must be a positive integer")
        if not isinstance(page_size, int) or page_size < 1 or page_size > PaginationConstants.MAX_PAGE_SIZE:
            raise ValidationError(f"page_size must be between 1 and {PaginationConstants.MAX_PAGE_SIZE}")

        async with self.get_session("get_page") as s:
            total_count = await s.scalar(select(func.count()).select_from(RatingRecord))
            offset = (page - 1) * page_size
            result = await s.execute(
                select(RatingRecord)
                .order_by(RatingRecord.rating.desc(), RatingRecord.player.asc())
                .limit(page_size)
                .offset(offset)
            )
            records = result.scalars().all()

        entries = [self._to_entry(offset + index + 1, record) for index, record in enumerate(records)]
        return LeaderboardPage(
            entries=entries,
            current_page=page,
            total_pages=(total_count + page_size - 1) // page_size if total_count > 0 else 1,
            total_players=total_count,
        )

    async def search(self, query: str, limit: int = PaginationConstants.MAX_PAGE_SIZE) -> List[RatingRecord]:
        """Case-insensitive partial match on player id, best rating first."""
        if not query:
            raise ValidationError("Empty search query", "Username query parameter is required.")

        pattern = "%" + query.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_") + "%"
        async with self.get_session("search") as s:
            result = await s.execute(
                select(RatingRecord)
                .where(func.lower(RatingRecord.player).like(pattern, escape="\\"))
                .order_by(RatingRecord.rating.desc(), RatingRecord.player.asc())
                .limit(limit)
            )
            return list(result.scalars().all())

    @staticmethod
    def _to_entry(rank: int, record: RatingRecord) -> LeaderboardEntry:
        return LeaderboardEntry(
            rank=rank,
            player=record.player,
            rating=record.rating,
            wins=record.wins,
            losses=record.losses,
            draws=record.draws,
        )
