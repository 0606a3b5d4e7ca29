"""Leaderboard router: ranked listing, search and standalone result reports."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from arena.constants import PaginationConstants
from arena.routes.deps import ArenaServices, current_player, get_services

router = APIRouter(prefix="/leaderboard", tags=["leaderboard"])


class ResultReport(BaseModel):
    result: str
    difficulty: str
    opponent: Optional[str] = None


class AiResultReport(BaseModel):
    result: str
    difficulty: str


@router.get("")
async def get_leaderboard(page: int = Query(1),
                          page_size: int = Query(PaginationConstants.DEFAULT_PAGE_SIZE, alias="pageSize"),
                          services: ArenaServices = Depends(get_services)):
    leaderboard_page = await services.leaderboard.get_page(page=page, page_size=page_size)
    return leaderboard_page.to_dict()


@router.get("/search")
async def search_leaderboard(username: Optional[str] = Query(None),
                             services: ArenaServices = Depends(get_services)):
    records = await services.leaderboard.search(username)
    return [record.to_dict() for record in records]


@router.post("/match")
async def report_match(body: ResultReport,
                       player: str = Depends(current_player),
                       services: ArenaServices = Depends(get_services)):
    record, change = await services.leaderboard.record_result(
        player, body.result, body.difficulty, opponent=body.opponent
    )
    return JSONResponse(status_code=201, content={
        "message": "Match result recorded successfully",
        "updatedPlayer": record.to_dict(),
        "ratingChange": change.delta,
    })


@router.post("/ai-match")
async def report_ai_match(body: AiResultReport,
                          player: str = Depends(current_player),
                          services: ArenaServices = Depends(get_services)):
    record, change = await services.leaderboard.record_result(player, body.result, body.difficulty)
    return JSONResponse(status_code=201, content={
        "message": "AI match result recorded successfully",
        "updatedPlayer": record.to_dict(),
        "ratingChange": change.delta,
    })
