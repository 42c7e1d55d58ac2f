"""
QuizLobby FastAPI Application

Main entry point for the multiplayer quiz lobby server.
Configures FastAPI with CORS, routes, database and the live
event broadcaster.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from quizlobby.config import get_settings
from quizlobby.core.broadcaster import LobbyBroadcaster
from quizlobby.core.errors import LobbyError
from quizlobby.database import init_db
from quizlobby.api.routes import health, invites, live, lobbies
from quizlobby.services.scheduler import auto_start_loop

logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.

    Handles:
    - Database initialisation on startup
    - Broadcaster and auto-start scheduler lifecycle
    """
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.VERSION}")
    init_db()
    broadcaster = LobbyBroadcaster()
    app.state.broadcaster = broadcaster

    scheduler_task = None
    interval = settings.lobby.AUTO_START_POLL_SECONDS
    if interval > 0:
        scheduler_task = asyncio.create_task(auto_start_loop(broadcaster, interval))
    logger.info(f"Server ready on {settings.server.HOST}:{settings.server.PORT}")

    yield

    # Shutdown
    logger.info("Shutting down server...")
    if scheduler_task is not None:
        scheduler_task.cancel()
        try:
            await scheduler_task
        except asyncio.CancelledError:
            pass
    broadcaster.close()


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    description="Multiplayer quiz lobbies with invite codes and live race results",
    lifespan=lifespan,
    debug=settings.DEBUG,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.server.CORS_ORIGINS),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LobbyError)
async def lobby_error_handler(request: Request, exc: LobbyError) -> JSONResponse:
    """Render lobby errors as {"kind", "detail"} with their mapped status."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(lobbies.router, tags=["lobbies"])
app.include_router(invites.router)
app.include_router(live.router)


@app.get("/")
async def root() -> dict:
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API information.
    """
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.VERSION,
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=settings.server.HOST, port=settings.server.PORT)
