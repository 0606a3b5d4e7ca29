"""Matchmaking router: queue entry, status polling and cancellation."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from arena.data_models.match import QueueState
from arena.routes.deps import ArenaServices, current_player, get_services

router = APIRouter(prefix="/matchmaking", tags=["matchmaking"])


@router.post("")
async def request_match(player: str = Depends(current_player),
                        services: ArenaServices = Depends(get_services)):
    """Pair with the oldest waiting player, or wait for one (202)."""
    result = await services.matchmaking.request_match(player)
    if result.activated:
        return {
            "message": "Opponent found!",
            "matchId": result.match_id,
            "opponent": result.opponent,
        }
    return JSONResponse(status_code=202, content={"message": "Searching for an opponent..."})


@router.get("/status")
async def matchmaking_status(player: str = Depends(current_player),
                             services: ArenaServices = Depends(get_services)):
    result = await services.matchmaking.status(player)
    if result.state == QueueState.ACTIVATED:
        return {"message": "Match found", "matchId": result.match_id, "opponent": result.opponent}
    if result.state == QueueState.WAITING:
        return {"message": "Still searching for an opponent..."}
    return {"message": "No matchmaking in progress"}


@router.post("/cancel")
async def cancel_matchmaking(player: str = Depends(current_player),
                             services: ArenaServices = Depends(get_services)):
    await services.matchmaking.cancel_match(player)
    return {"message": "Matchmaking canceled successfully."}
