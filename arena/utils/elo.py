import math
from typing import Optional, Tuple

from arena.config import RatingConfig
from arena.constants import RatingConstants
from arena.utils.exceptions import ValidationError

OUTCOME_SCORES = {"win": 1.0, "draw": 0.5, "loss": 0.0}


class EloCalculator:
    """Handles rating calculations against human and AI opponents"""

    def __init__(self, config: Optional[RatingConfig] = None):
        self.config = config or RatingConfig()

    @staticmethod
    def calculate_expected_score(rating_a: float, rating_b: float) -> float:
        """
        Calculate the expected score for player A against player B

        Args:
            rating_a: Player A's current rating
            rating_b: Player B's current rating

        Returns:
            Expected score (0.0 to 1.0) for player A
        """
        return 1 / (1 + math.pow(10, (rating_b - rating_a) / 400))

    @staticmethod
    def is_human(opponent_class: str) -> bool:
        return str(opponent_class).lower() == RatingConstants.HUMAN_OPPONENT

    def compute_rating(self, self_rating: float, reference_rating: float,
                       outcome: str, opponent_class: str) -> int:
        """
        Calculate a player's new rating after one result

        Args:
            self_rating: Player's current rating
            reference_rating: Opponent's current rating (ignored for AI tiers)
            outcome: "win", "draw" or "loss"
            opponent_class: "human" or an AI difficulty tier

        Returns:
            New rating, never below 0

        Raises:
            ValidationError: If the outcome is unknown for a human opponent
        """
        if self.is_human(opponent_class):
            return self._compute_human_rating(self_rating, reference_rating, outcome)
        return self._compute_ai_rating(self_rating, outcome, opponent_class)

    def _compute_human_rating(self, self_rating: float, reference_rating: float, outcome: str) -> int:
        actual_score = OUTCOME_SCORES.get(outcome)
        if actual_score is None:
            raise ValidationError(f"Invalid match result: {outcome!r}", "Invalid match result")

        expected_score = self.calculate_expected_score(self_rating, reference_rating)
        new_rating = self_rating + self.config.human_k_factor * (actual_score - expected_score)
        return max(0, round(new_rating))

    def _compute_ai_rating(self, self_rating: float, outcome: str, tier: str) -> int:
        deltas = self.config.ai_deltas
        table = deltas.get(str(tier).lower()) or deltas[self.config.default_ai_tier]

        # Unknown outcome against an AI leaves the rating untouched
        delta = table.get(str(outcome).lower())
        if delta is None:
            return int(self_rating)
        return max(0, int(self_rating + delta))

    def calculate_match_ratings(self, player1_rating: float, player2_rating: float,
                                player1_won: bool, is_draw: bool = False) -> Tuple[int, int]:
        """
        Calculate new ratings for both sides of a human match

        Both ratings come from the same pre-match snapshot.

        Returns:
            Tuple of (player1_new_rating, player2_new_rating)
        """
        if is_draw:
            player1_outcome = player2_outcome = "draw"
        elif player1_won:
            player1_outcome, player2_outcome = "win", "loss"
        else:
            player1_outcome, player2_outcome = "loss", "win"

        player1_new = self.compute_rating(
            player1_rating, player2_rating, player1_outcome, RatingConstants.HUMAN_OPPONENT
        )
        player2_new = self.compute_rating(
            player2_rating, player1_rating, player2_outcome, RatingConstants.HUMAN_OPPONENT
        )
        return player1_new, player2_new

    @staticmethod
    def format_rating_change(rating_change: int) -> str:
        """Format a rating change with an explicit sign"""
        if rating_change > 0:
            return f"+{rating_change}"
        elif rating_change < 0:
            return str(rating_change)
        else:
            return "±0"


def compute_rating(self_rating: float, reference_rating: float, outcome: str,
                   opponent_class: str, config: Optional[RatingConfig] = None) -> int:
    """Module-level shortcut for EloCalculator(config).compute_rating(...)"""
    return EloCalculator(config).compute_rating(self_rating, reference_rating, outcome, opponent_class)
