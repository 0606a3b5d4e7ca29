"""Match router: moves, finish, timeout checks and board state."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from arena.database.models import Match
from arena.routes.deps import ArenaServices, current_player, get_services

router = APIRouter(prefix="/match", tags=["match"])


class Cell(BaseModel):
    row: int
    column: int


class MatchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    match_id: str = Field(..., alias="matchId", min_length=1)


class MoveRequest(MatchRequest):
    move: Cell


class FinishRequest(MatchRequest):
    winner: str = Field(..., min_length=1)


def match_payload(match: Match) -> dict:
    return {
        "matchId": match.id,
        "player": match.initiator,
        "opponent": match.responder,
        "status": match.status.value,
        "winner": match.winner,
        "moves": [move.to_dict() for move in match.moves],
        "createdAt": match.created_at.isoformat() if match.created_at else None,
        "lastMoveTime": match.last_move_time.isoformat() if match.last_move_time else None,
    }


@router.post("/move")
async def make_move(body: MoveRequest,
                    player: str = Depends(current_player),
                    services: ArenaServices = Depends(get_services)):
    moves = await services.lifecycle.apply_move(
        body.match_id, player, {"row": body.move.row, "column": body.move.column}
    )
    return {"message": "Move synchronized", "moves": [move.to_dict() for move in moves]}


@router.post("/finish", dependencies=[Depends(current_player)])
async def finish_match(body: FinishRequest,
                       services: ArenaServices = Depends(get_services)):
    """Any authenticated caller may report the winner of an active match."""
    match = await services.lifecycle.finish(body.match_id, body.winner)
    return {"message": "Match finished successfully", "match": match_payload(match)}


@router.post("/timeout")
async def check_timeout(body: MatchRequest,
                        player: str = Depends(current_player),
                        services: ArenaServices = Depends(get_services)):
    result = await services.lifecycle.check_timeout(body.match_id, player)
    if result.timed_out:
        return {
            "message": "Timeout! Match completed.",
            "winner": result.winner,
            "loser": result.loser,
            "elapsedTime": result.elapsed_ms,
        }
    return {"message": "No timeout detected", "elapsedTime": result.elapsed_ms}


@router.get("/state", dependencies=[Depends(current_player)])
async def match_state(match_id: Optional[str] = Query(None, alias="matchId"),
                      services: ArenaServices = Depends(get_services)):
    state = await services.lifecycle.board_state(match_id)
    return state.to_dict()
