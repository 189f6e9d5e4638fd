"""Embedded scheduler: runs dispatcher and reclaimer ticks inside the API process.

Each loop is independent; a failing tick is logged and the loop carries on.
Deployments that drive ticks from cron leave ``embedded_scheduler`` off.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from renderq.config import settings

logger = logging.getLogger(__name__)


async def _tick_loop(app, name: str, interval: int, tick: Callable[..., Awaitable]) -> None:
    logger.info("%s loop started (interval=%ds)", name, interval)

    while True:
        try:
            await asyncio.sleep(interval)

            session_factory = getattr(app.state, "db_session_factory", None)
            redis = getattr(app.state, "redis", None)

            if not session_factory:
                continue

            await tick(session_factory, redis=redis)

        except asyncio.CancelledError:
            logger.info("%s loop stopped", name)
            break
        except Exception as exc:
            logger.exception("%s tick error: %s", name, exc)


async def run_scheduler(app) -> None:
    """Background task driving both tick loops until cancelled."""
    from renderq.workers.dispatcher import run_dispatch_tick
    from renderq.workers.reclaimer import run_reclaim_tick

    loops = [
        asyncio.create_task(_tick_loop(app, "Dispatcher", settings.dispatch_interval_seconds, run_dispatch_tick)),
        asyncio.create_task(_tick_loop(app, "Reclaimer", settings.reclaim_interval_seconds, run_reclaim_tick)),
    ]
    try:
        await asyncio.gather(*loops)
    except asyncio.CancelledError:
        for task in loops:
            task.cancel()
        await asyncio.gather(*loops, return_exceptions=True)
        raise
