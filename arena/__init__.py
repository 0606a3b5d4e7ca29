"""Tic-Tac-Toe Arena: matchmaking, match lifecycle and rating engine."""

__version__ = "1.0.0"
