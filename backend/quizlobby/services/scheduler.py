"""
Background auto-start of lobbies with a scheduled start time.
"""

import asyncio
import logging

from quizlobby.core.broadcaster import LobbyBroadcaster
from quizlobby.database import SessionLocal
from quizlobby.services import lobby_service, notifications

logger = logging.getLogger(__name__)


async def run_auto_start_sweep(broadcaster: LobbyBroadcaster) -> int:
    """
    Start every due lobby once and notify its subscribers.

    Returns:
        Number of lobbies started by this sweep
    """
    db = SessionLocal()
    try:
        started = lobby_service.start_due_lobbies(db)
        for lobby_id in started:
            lobby = lobby_service.get_lobby(db, lobby_id)
            if lobby is not None:
                await notifications.lobby_started(db, broadcaster, lobby)
        return len(started)
    finally:
        db.close()


async def auto_start_loop(broadcaster: LobbyBroadcaster, interval: float) -> None:
    """
    Background task sweeping for due lobbies every ``interval`` seconds.

    Args:
        broadcaster: Event broadcaster for started lobbies
        interval: Seconds between sweeps
    """
    logger.info(f"Auto-start scheduler running every {interval}s")
    while True:
        await asyncio.sleep(interval)
        try:
            await run_auto_start_sweep(broadcaster)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Auto-start sweep failed")
