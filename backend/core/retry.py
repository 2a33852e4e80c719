"""
Bounded retry with exponential backoff for upstream HTTP calls.

Only transient failures are retried: transport errors raised by httpx and
responses with a retryable status (429 and 5xx by default). Anything else,
including errors raised while interpreting a successful response, goes
straight back to the caller.

Calls that are not idempotent narrow both sets, so that a request the server
may already have acted on is never sent twice.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Collection, Tuple, Type

import httpx

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

# Safe for non-idempotent calls: the server did not act on the request
REJECTED_STATUS_CODES = frozenset({429})
UNSENT_ERRORS: Tuple[Type[httpx.TransportError], ...] = (httpx.ConnectError,)


def is_retryable_response(response: httpx.Response, statuses: Collection[int] = RETRYABLE_STATUS_CODES) -> bool:
    return response.status_code in statuses


async def send_with_retry(
    send: Callable[[], Awaitable[httpx.Response]],
    attempts: int = 3,
    backoff_seconds: float = 0.5,
    label: str = "upstream",
    retry_statuses: Collection[int] = RETRYABLE_STATUS_CODES,
    retry_errors: Tuple[Type[httpx.TransportError], ...] = (httpx.TransportError,)
) -> httpx.Response:
    """
    Call send() until it returns a non-retryable response or attempts run out.

    Args:
        send: Coroutine factory performing one HTTP request
        attempts: Maximum number of calls, at least 1
        backoff_seconds: Delay before the second call, doubled after each retry
        label: Name used in log messages
        retry_statuses: Response statuses that trigger another call
        retry_errors: Transport errors that trigger another call

    Returns:
        The last response received. Callers inspect its status code.

    Raises:
        httpx.TimeoutException: Never retried, re-raised immediately
        httpx.TransportError: If it is not in retry_errors, or the final attempt fails
    """
    attempts = max(1, attempts)

    for attempt in range(1, attempts):
        try:
            response = await send()
        except httpx.TimeoutException:
            raise
        except retry_errors as e:
            logger.warning(f"{label} transport error on attempt {attempt}/{attempts}: {str(e)}")
        else:
            if not is_retryable_response(response, retry_statuses):
                return response
            logger.warning(f"{label} returned {response.status_code} on attempt {attempt}/{attempts}")

        await asyncio.sleep(backoff_seconds * (2 ** (attempt - 1)))

    return await send()
