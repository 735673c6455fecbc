"""Retry helpers for calls to peer nodes."""
import asyncio
import logging
from typing import Awaitable, Callable

import httpx

from ..exceptions import TransportError

logger = logging.getLogger(__name__)


def is_transient(response: httpx.Response) -> bool:
    """5xx and 429 responses are worth another attempt."""
    return response.status_code >= 500 or response.status_code == 429


async def retry_transport(
    call: Callable[[], Awaitable[httpx.Response]],
    max_retries: int = 3,
    base_delay: float = 0.5,
    description: str = "request",
) -> httpx.Response:
    """Retry an HTTP call on transient errors with exponential backoff.

    Args:
        call: Async function performing the request
        max_retries: Maximum number of attempts
        base_delay: Base delay in seconds (doubles with each retry)
        description: What the call does, for log messages

    Returns:
        The first non-transient response

    Raises:
        TransportError: If every attempt failed
    """
    last_error = "no attempts made"
    for attempt in range(max_retries):
        try:
            response = await call()
            if not is_transient(response):
                return response
            last_error = f"HTTP {response.status_code}"
        except httpx.TransportError as e:
            last_error = str(e) or type(e).__name__

        if attempt < max_retries - 1:
            delay = base_delay * (2 ** attempt)
            logger.warning(
                f"Transient error on {description} ({last_error}), retrying in {delay}s "
                f"(attempt {attempt + 1}/{max_retries})"
            )
            await asyncio.sleep(delay)

    raise TransportError(f"{description} failed after {max_retries} attempts: {last_error}")
