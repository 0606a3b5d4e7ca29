"""
Exceptions for the match orchestration and rating engine.

Every error carries a log-friendly message and a short user-facing message
that the HTTP layer returns as-is.
"""

class ArenaError(Exception):
    """Base exception for arena errors."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.message = message
        self.user_message = user_message or message

class ValidationError(ArenaError):
    """Raised when input is missing or malformed. Not retried."""

class InvalidStateError(ArenaError):
    """Raised when a match is missing or in the wrong status for a transition."""

class MatchNotFoundError(InvalidStateError):
    """Raised when no match exists for the lookup."""
    def __init__(self, what: str, user_message: str = None):
        super().__init__(
            f"Match not found: {what}",
            user_message or "Invalid or inactive match"
        )

class ConflictError(ArenaError):
    """Raised when a concurrent request won the race. The caller may retry."""

class CellTakenError(ConflictError):
    """Raised when a move targets an occupied cell."""
    def __init__(self, match_id: str, row: int, column: int):
        super().__init__(
            f"Cell ({row}, {column}) already taken in match {match_id}",
            "Move already taken"
        )
        self.row = row
        self.column = column

class StoreError(ArenaError):
    """Raised when the persistent store fails."""
    def __init__(self, operation: str, details: str = None):
        super().__init__(
            f"Store error during {operation}: {details}",
            "Unexpected storage failure. Please try again later."
        )
        self.operation = operation
