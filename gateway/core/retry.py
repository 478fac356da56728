from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = 3
    delay_seconds: float = 2.0
    retryable_statuses: frozenset[int] = frozenset({503, 429})
    poll_readiness: bool = False
    loading_delay_seconds: float = 0.0

    def is_retryable(self, status_code: int) -> bool:
        return status_code in self.retryable_statuses


async def post_with_retry(
    client: httpx.AsyncClient,
    url: str,
    policy: RetryPolicy,
    **kwargs: Any,
) -> httpx.Response:
    """POST ``url``, retrying retryable statuses with a fixed delay.

    Returns the last response received; the caller decides what a non-2xx
    status means. Transport errors propagate.
    """
    attempts = max(1, policy.max_attempts)
    response: httpx.Response | None = None
    for attempt in range(1, attempts + 1):
        response = await client.post(url, **kwargs)
        if response.is_success or not policy.is_retryable(response.status_code):
            return response
        if attempt < attempts:
            logger.info(
                "Upstream %s returned %s (attempt %d/%d), retrying in %.1fs",
                url,
                response.status_code,
                attempt,
                attempts,
                policy.delay_seconds,
            )
            await asyncio.sleep(policy.delay_seconds)
    return response
