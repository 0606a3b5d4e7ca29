from datetime import datetime, timezone
from enum import Enum
from typing import Optional
import uuid

from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey,
    Enum as SQLEnum, UniqueConstraint, CheckConstraint, Index
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utc_now() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_match_id() -> str:
    return uuid.uuid4().hex


class MatchStatus(Enum):
    """Status of a match from queue entry to resolution"""
    WAITING = "waiting"      # One participant, awaiting an opponent
    ACTIVE = "active"        # Both participants assigned, moves accepted
    COMPLETE = "complete"    # Finished with a winner
    ABANDONED = "abandoned"  # Cancelled when a participant re-queued


class MatchResult(Enum):
    WIN = "win"
    LOSS = "loss"
    DRAW = "draw"


class Match(Base):
    """
    A two-party match between an initiator and a responder.

    The responder is only set on activation; the move log lives in
    MatchMove rows and the player to move is always derived from it.
    """
    __tablename__ = 'matches'

    id = Column(String(32), primary_key=True, default=new_match_id)
    initiator = Column(String(100), nullable=False, index=True)
    responder = Column(String(100), nullable=True, index=True)
    status = Column(SQLEnum(MatchStatus), nullable=False, default=MatchStatus.WAITING)
    winner = Column(String(100), nullable=True)

    # Timing
    created_at = Column(DateTime, nullable=False, default=utc_now)
    last_move_time = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    moves = relationship(
        "MatchMove",
        back_populates="match",
        order_by="MatchMove.seq",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        Index('ix_matches_status_created_at', 'status', 'created_at'),
        CheckConstraint(
            "(status = 'WAITING') = (responder IS NULL)",
            name='ck_matches_responder_iff_not_waiting'
        ),
        CheckConstraint(
            "winner IS NULL OR status = 'COMPLETE'",
            name='ck_matches_winner_only_when_complete'
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.status == MatchStatus.ACTIVE

    @property
    def participants(self) -> tuple:
        return tuple(p for p in (self.initiator, self.responder) if p is not None)

    def has_participant(self, player: str) -> bool:
        return player in self.participants

    def opponent_of(self, player: str) -> Optional[str]:
        """Resolve the other party of the match"""
        if player == self.initiator:
            return self.responder
        if player == self.responder:
            return self.initiator
        return None

    @property
    def current_player(self) -> Optional[str]:
        """
        Player expected to move next.

        The initiator moves first and whenever the last move was not theirs.
        Recomputed from the move log on every access.
        """
        if self.moves and self.moves[-1].player == self.initiator:
            return self.responder
        return self.initiator

    @property
    def reference_time(self) -> datetime:
        """Start point of the current timeout window"""
        if self.last_move_time is None:
            return self.created_at
        return max(self.last_move_time, self.created_at)

    def __repr__(self):
        return f"<Match(id={self.id}, initiator='{self.initiator}', responder='{self.responder}', status={self.status.value})>"


class MatchMove(Base):
    """One accepted move; a cell appears at most once per match"""
    __tablename__ = 'match_moves'

    seq = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(String(32), ForeignKey('matches.id', ondelete='CASCADE'), nullable=False)
    player = Column(String(100), nullable=False)
    row = Column(Integer, nullable=False)
    column = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    match = relationship("Match", back_populates="moves")

    __table_args__ = (
        UniqueConstraint('match_id', 'row', 'column', name='uq_match_moves_cell'),
        Index('ix_match_moves_match_seq', 'match_id', 'seq'),
    )

    def to_dict(self) -> dict:
        return {"player": self.player, "move": {"row": self.row, "column": self.column}}

    def __repr__(self):
        return f"<MatchMove(match_id={self.match_id}, player='{self.player}', cell=({self.row}, {self.column}))>"


class RatingRecord(Base):
    """Durable per-player rating summary feeding the leaderboard"""
    __tablename__ = 'rating_records'

    player = Column(String(100), primary_key=True)
    rating = Column(Integer, nullable=False, default=1200)
    wins = Column(Integer, nullable=False, default=0)
    losses = Column(Integer, nullable=False, default=0)
    draws = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        CheckConstraint('rating >= 0', name='ck_rating_records_rating_non_negative'),
        CheckConstraint('wins >= 0 AND losses >= 0 AND draws >= 0', name='ck_rating_records_counters'),
        Index('ix_rating_records_rating', 'rating'),
    )

    def to_dict(self) -> dict:
        return {
            "username": self.player,
            "elo": self.rating,
            "totalWins": self.wins,
            "totalLosses": self.losses,
            "totalDraws": self.draws,
        }

    def __repr__(self):
        return f"<RatingRecord(player='{self.player}', rating={self.rating})>"
