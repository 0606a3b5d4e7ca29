"""
Tic-Tac-Toe Arena API.

Matchmaking, match lifecycle and leaderboard endpoints over a shared
SQLAlchemy store. Clients poll; there is no push transport.
"""
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from arena.config import Config, MatchPolicy, RatingConfig
from arena.database.database import Database
from arena.database.match_store import MatchStore
from arena.database.models import utc_now
from arena.operations.match_lifecycle import MatchLifecycle
from arena.operations.matchmaking import MatchmakingOperations
from arena.routes import leaderboard, match, matchmaking
from arena.routes.deps import ArenaServices
from arena.services.leaderboard import LeaderboardService
from arena.utils.elo import EloCalculator
from arena.utils.exceptions import ArenaError, StoreError
from arena.utils.logger import setup_logger

logger = setup_logger(__name__)


def build_services(database: Database,
                   rating_config: Optional[RatingConfig] = None,
                   policy: Optional[MatchPolicy] = None,
                   clock: Callable[[], datetime] = utc_now) -> ArenaServices:
    """Wire the queue, lifecycle and leaderboard around one database"""
    elo = EloCalculator(rating_config or Config.rating())
    policy = policy or Config.match_policy()
    store = MatchStore(database)
    leaderboard_service = LeaderboardService(database.async_session, elo)
    return ArenaServices(
        matchmaking=MatchmakingOperations(database, store=store, policy=policy, clock=clock),
        lifecycle=MatchLifecycle(
            database, leaderboard_service, store=store,
            elo_calculator=elo, policy=policy, clock=clock,
        ),
        leaderboard=leaderboard_service,
    )


def create_app(database: Optional[Database] = None,
               rating_config: Optional[RatingConfig] = None,
               policy: Optional[MatchPolicy] = None,
               clock: Callable[[], datetime] = utc_now) -> FastAPI:
    """Build the FastAPI application; the database is initialized on startup"""
    database = database or Database()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        Config.validate()
        if database.engine is None:
            await database.initialize()
        app.state.services = build_services(database, rating_config, policy, clock)
        logger.info("Arena API ready")
        try:
            yield
        finally:
            await database.close()

    app = FastAPI(title="Tic-Tac-Toe Arena API", lifespan=lifespan)
    app.state.database = database

    app.add_middleware(
        CORSMiddleware,
        allow_origins=Config.get_allowed_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(matchmaking.router)
    app.include_router(match.router)
    app.include_router(leaderboard.router)

    @app.exception_handler(ArenaError)
    async def arena_error_handler(request: Request, exc: ArenaError):
        if isinstance(exc, StoreError):
            logger.error(f"{request.method} {request.url.path}: {exc.message}")
            return JSONResponse(status_code=500, content={"error": exc.user_message})
        logger.warning(f"{request.method} {request.url.path}: {exc.message}")
        return JSONResponse(status_code=400, content={"error": exc.user_message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"{request.method} {request.url.path}: invalid request {exc.errors()}")
        return JSONResponse(status_code=400, content={"error": "Invalid data"})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception(f"{request.method} {request.url.path}: unexpected error: {exc}")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


app = create_app()
