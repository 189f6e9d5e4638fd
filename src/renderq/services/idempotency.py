"""Deterministic idempotency keys for enqueued jobs."""

import hashlib
import json
from typing import Any

KEY_PREFIX = "v1:"


def canonical_json(value: Any) -> str:
    """Key-sorted, whitespace-free JSON; equal inputs give equal strings."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def build_job_idempotency_key(
    account_id: str,
    order_key: str,
    job_type: str,
    index: int,
    payload: dict,
) -> str:
    """Key for job ``index`` of the order the client tagged with ``order_key``."""
    raw = canonical_json(
        {"a": account_id, "o": order_key, "t": job_type, "i": index, "p": payload}
    )
    return KEY_PREFIX + hashlib.sha256(raw.encode("utf-8")).hexdigest()
