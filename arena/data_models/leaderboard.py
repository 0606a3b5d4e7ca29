"""
Leaderboard data models.

Provides immutable data transfer objects for leaderboard listings.
"""

from dataclasses import dataclass
from typing import List


@dataclass(frozen=True)
class LeaderboardEntry:
    """Single leaderboard row."""
    rank: int
    player: str
    rating: int
    wins: int
    losses: int
    draws: int

    def to_dict(self) -> dict:
        return {
            "rank": self.rank,
            "username": self.player,
            "elo": self.rating,
            "totalWins": self.wins,
            "totalLosses": self.losses,
            "totalDraws": self.draws,
        }


@dataclass(frozen=True)
class LeaderboardPage:
    """Paginated leaderboard data."""
    entries: List[LeaderboardEntry]
    current_page: int
    total_pages: int
    total_players: int

    def to_dict(self) -> dict:
        return {
            "entries": [entry.to_dict() for entry in self.entries],
            "page": self.current_page,
            "totalPages": self.total_pages,
            "totalPlayers": self.total_players,
        }
