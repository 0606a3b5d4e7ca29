"""
Match data models.

Immutable results returned by the matchmaking queue and the match lifecycle
controller. The HTTP layer turns them into JSON.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class QueueState(Enum):
    ACTIVATED = "activated"
    WAITING = "waiting"
    IDLE = "idle"


@dataclass(frozen=True)
class MatchmakingResult:
    """Outcome of a matchmaking request."""
    state: QueueState
    match_id: Optional[str] = None
    opponent: Optional[str] = None

    @property
    def activated(self) -> bool:
        return self.state == QueueState.ACTIVATED


@dataclass(frozen=True)
class MoveEntry:
    player: str
    row: int
    column: int

    def to_dict(self) -> dict:
        return {"player": self.player, "move": {"row": self.row, "column": self.column}}


@dataclass(frozen=True)
class BoardState:
    """Read-only projection of a match."""
    match_id: str
    moves: List[MoveEntry]
    current_player: Optional[str]
    status: str
    winner: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "matchId": self.match_id,
            "moves": [move.to_dict() for move in self.moves],
            "currentPlayer": self.current_player,
            "status": self.status,
            "winner": self.winner,
        }


@dataclass(frozen=True)
class RatingChange:
    player: str
    outcome: str
    rating_before: int
    rating_after: int

    @property
    def delta(self) -> int:
        return self.rating_after - self.rating_before


@dataclass(frozen=True)
class TimeoutResult:
    """Outcome of a timeout check. winner/loser are only set on timeout."""
    timed_out: bool
    elapsed_ms: int
    winner: Optional[str] = None
    loser: Optional[str] = None
    rating_changes: List[RatingChange] = field(default_factory=list)
