"""
Operations Layer

Business logic that composes the match store and the leaderboard service
into the match workflows:

- MatchmakingOperations: queue entry, status and cancellation
- MatchLifecycle: moves, turn arbitration, timeouts and finalization
"""

from .match_lifecycle import MatchLifecycle
from .matchmaking import MatchmakingOperations

__all__ = ['MatchLifecycle', 'MatchmakingOperations']
