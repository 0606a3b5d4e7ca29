"""
Service-wide constants for the Tic-Tac-Toe arena.

This module contains the default numbers behind the rating and match policies.
Runtime code receives them through the frozen policy objects in arena.config.
"""

from types import MappingProxyType


class RatingConstants:
    """Constants related to rating calculations."""

    # Starting rating for players without a record
    STARTING_RATING = 1200

    # K-factor for human vs human matches
    HUMAN_K_FACTOR = 220

    # Opponent class used for human vs human matches
    HUMAN_OPPONENT = "human"

    # Unrecognized AI tiers fall back to this one
    DEFAULT_AI_TIER = "medium"

    # Fixed rating deltas against AI opponents: tier -> outcome -> delta
    AI_RATING_DELTAS = MappingProxyType({
        "easy": MappingProxyType({"win": 10, "draw": -5, "loss": -20}),
        "medium": MappingProxyType({"win": 20, "draw": -10, "loss": -15}),
        "hard": MappingProxyType({"win": 30, "draw": 5, "loss": -10}),
        "impossible": MappingProxyType({"win": 40, "draw": 10, "loss": -5}),
    })

    AI_TIERS = tuple(AI_RATING_DELTAS.keys())


class MatchConstants:
    """Constants for match timing and board layout."""

    # A silent player forfeits after this many seconds
    MOVE_TIMEOUT_SECONDS = 30

    # Waiting matches older than this are swept from the queue
    WAITING_TIMEOUT_SECONDS = 5 * 60

    # Tic-tac-toe board width/height
    BOARD_SIZE = 3


class PaginationConstants:
    """Constants for paginated leaderboard listings."""

    DEFAULT_PAGE_SIZE = 50
    MAX_PAGE_SIZE = 200
