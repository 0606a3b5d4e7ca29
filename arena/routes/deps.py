"""
Request dependencies shared by the routers.

The identity provider sits in front of this service: it verifies the
caller's credentials and forwards the stable player identifier in the
X-Player-Id header.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, Request

from arena.operations.match_lifecycle import MatchLifecycle
from arena.operations.matchmaking import MatchmakingOperations
from arena.services.leaderboard import LeaderboardService

PLAYER_HEADER = "X-Player-Id"


@dataclass
class ArenaServices:
    matchmaking: MatchmakingOperations
    lifecycle: MatchLifecycle
    leaderboard: LeaderboardService


def get_services(request: Request) -> ArenaServices:
    return request.app.state.services


async def current_player(x_player_id: Optional[str] = Header(None, alias=PLAYER_HEADER)) -> str:
    """Authenticated player identifier, treated as an opaque string"""
    player = (x_player_id or "").strip()
    if not player:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return player
