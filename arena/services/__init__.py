"""
Services package for the arena.
"""

from .base import BaseService
from .leaderboard import LeaderboardService

__all__ = ['BaseService', 'LeaderboardService']
