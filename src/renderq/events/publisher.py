"""Redis pub/sub publisher for job and order transitions.

Publishing is best effort and always happens after the transition committed;
clients that miss a message still see the state by polling.
"""

import json
import logging

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "renderq:events"

JOB_TRANSITION = "job.transition"
ORDER_CREATED = "order.created"
ORDER_CANCELLED = "order.cancelled"


def account_channel(account_id: str) -> str:
    return f"{CHANNEL_PREFIX}:account:{account_id}"


def broadcast_channel() -> str:
    return f"{CHANNEL_PREFIX}:broadcast"


async def publish_event(redis, event_type: str, payload: dict, account_id: str | None = None) -> None:
    """Publish an event to the account channel, or broadcast when no account is given."""
    if redis is None:
        return

    event = json.dumps({"type": event_type, **payload}, default=str)
    channel = account_channel(account_id) if account_id else broadcast_channel()
    try:
        await redis.publish(channel, event)
    except Exception as exc:
        logger.warning("Failed to publish %s event: %s", event_type, exc)


async def publish_transitions(redis, transitions: list[dict]) -> None:
    """Publish a batch of job transitions collected during a tick."""
    for transition in transitions:
        await publish_event(redis, JOB_TRANSITION, transition, account_id=transition.get("account_id"))
