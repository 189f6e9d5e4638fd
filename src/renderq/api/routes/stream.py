"""Server-Sent Events stream relaying job and order transitions."""

import asyncio
import json
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from renderq.dependencies import get_current_user
from renderq.events.publisher import account_channel, broadcast_channel

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Stream"])


async def _event_generator(request: Request, account_id: str) -> AsyncGenerator[str, None]:
    """Yield SSE-formatted events from Redis pub/sub for one account."""
    redis = getattr(request.app.state, "redis", None)

    if redis is None:
        yield f"data: {json.dumps({'type': 'connected', 'message': 'SSE inactive without Redis; poll /orders'})}\n\n"
        return

    channels = [account_channel(account_id), broadcast_channel()]

    pubsub = redis.pubsub()
    await pubsub.subscribe(*channels)
    logger.info("SSE subscriber connected (account=%s)", account_id)

    try:
        yield f"data: {json.dumps({'type': 'connected', 'account_id': account_id})}\n\n"

        while True:
            if await request.is_disconnected():
                break

            message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=30)
            if message and message.get("type") == "message":
                data = message.get("data", "")
                if isinstance(data, bytes):
                    data = data.decode()
                yield f"data: {data}\n\n"
            else:
                yield ": keepalive\n\n"

            await asyncio.sleep(0.1)

    except asyncio.CancelledError:
        pass
    finally:
        await pubsub.unsubscribe(*channels)
        await pubsub.aclose()
        logger.info("SSE subscriber disconnected (account=%s)", account_id)


@router.get("/stream/events")
async def stream_events(
    request: Request,
    current_user: dict = Depends(get_current_user),
):
    """Stream the caller's job transitions via SSE."""
    return StreamingResponse(
        _event_generator(request, current_user["sub"]),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
            "Connection": "keep-alive",
        },
    )
