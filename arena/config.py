import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, Mapping

from dotenv import load_dotenv

from arena.constants import RatingConstants, MatchConstants

load_dotenv()


@dataclass(frozen=True)
class RatingConfig:
    """Immutable rating policy handed to the rating calculator"""

    starting_rating: int = RatingConstants.STARTING_RATING
    human_k_factor: int = RatingConstants.HUMAN_K_FACTOR
    default_ai_tier: str = RatingConstants.DEFAULT_AI_TIER
    ai_deltas: Mapping[str, Mapping[str, int]] = field(
        default_factory=lambda: RatingConstants.AI_RATING_DELTAS
    )


@dataclass(frozen=True)
class MatchPolicy:
    """Immutable timing and board policy handed to the match controllers"""

    move_timeout: timedelta = timedelta(seconds=MatchConstants.MOVE_TIMEOUT_SECONDS)
    waiting_timeout: timedelta = timedelta(seconds=MatchConstants.WAITING_TIMEOUT_SECONDS)
    board_size: int = MatchConstants.BOARD_SIZE


class Config:
    """Service configuration settings"""

    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///arena.db')

    # Service settings
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'
    ALLOWED_ORIGINS = os.getenv('ALLOWED_ORIGINS', '*')
    LOG_DIR = os.getenv('LOG_DIR', 'logs')
    LOG_BACKUP_DAYS = int(os.getenv('LOG_BACKUP_DAYS', 14))
    HOST = os.getenv('HOST', '0.0.0.0')
    PORT = int(os.getenv('PORT', 4000))

    # Rating settings
    STARTING_RATING = int(os.getenv('STARTING_RATING', RatingConstants.STARTING_RATING))
    HUMAN_K_FACTOR = int(os.getenv('HUMAN_K_FACTOR', RatingConstants.HUMAN_K_FACTOR))

    # Match settings
    MOVE_TIMEOUT_SECONDS = float(os.getenv('MOVE_TIMEOUT_SECONDS', MatchConstants.MOVE_TIMEOUT_SECONDS))
    WAITING_TIMEOUT_SECONDS = float(os.getenv('WAITING_TIMEOUT_SECONDS', MatchConstants.WAITING_TIMEOUT_SECONDS))
    BOARD_SIZE = int(os.getenv('BOARD_SIZE', MatchConstants.BOARD_SIZE))

    @classmethod
    def get_allowed_origins(cls):
        """Get list of CORS origins"""
        return [origin.strip() for origin in cls.ALLOWED_ORIGINS.split(',') if origin.strip()]

    @classmethod
    def get_async_database_url(cls) -> str:
        """Convert a plain sqlite URL to its async driver form"""
        database_url = cls.DATABASE_URL
        if database_url.startswith('sqlite:///'):
            database_url = database_url.replace('sqlite:///', 'sqlite+aiosqlite:///')
        return database_url

    @classmethod
    def rating(cls) -> RatingConfig:
        """Build the rating policy from current settings"""
        return RatingConfig(
            starting_rating=cls.STARTING_RATING,
            human_k_factor=cls.HUMAN_K_FACTOR,
        )

    @classmethod
    def match_policy(cls) -> MatchPolicy:
        """Build the match policy from current settings"""
        return MatchPolicy(
            move_timeout=timedelta(seconds=cls.MOVE_TIMEOUT_SECONDS),
            waiting_timeout=timedelta(seconds=cls.WAITING_TIMEOUT_SECONDS),
            board_size=cls.BOARD_SIZE,
        )

    @classmethod
    def validate(cls):
        """Validate that configuration values are usable"""
        if not cls.DATABASE_URL:
            raise ValueError("DATABASE_URL is required")
        if cls.HUMAN_K_FACTOR <= 0:
            raise ValueError("HUMAN_K_FACTOR must be positive")
        if cls.MOVE_TIMEOUT_SECONDS <= 0 or cls.WAITING_TIMEOUT_SECONDS <= 0:
            raise ValueError("Timeouts must be positive")
        if cls.BOARD_SIZE < 1:
            raise ValueError("BOARD_SIZE must be at least 1")
