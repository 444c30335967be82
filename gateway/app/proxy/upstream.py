"""
Resilient caller for the upstream generation API.

Attempts run sequentially. Any non-2xx response, or a transport error, is
retried after an exponential backoff until the policy runs out of attempts;
the last response received is what the caller gets back.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from ..errors import TransportFailure

logger = logging.getLogger("gateway.proxy.upstream")

Sleep = Callable[[float], Awaitable[Any]]


def exponential_backoff(base_delay: float, attempt_index: int) -> float:
    return base_delay * (2 ** attempt_index)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry with backoff.

    Attributes:
        max_attempts: Total attempts, including the first one
        base_delay: Delay in seconds before the second attempt
        backoff: Maps ``(base_delay, zero-based attempt index)`` to a delay
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    backoff: Callable[[float, int], float] = field(default=exponential_backoff, compare=False)

    def delay_for(self, attempt_index: int) -> float:
        return self.backoff(self.base_delay, attempt_index)


class ResilientCaller:
    """POSTs JSON to a fixed upstream URL under a retry policy."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        api_key: Optional[str],
        policy: Optional[RetryPolicy] = None,
        sleep: Optional[Sleep] = None,
    ):
        self._client = client
        self._url = url
        self._api_key = api_key
        self.policy = policy or RetryPolicy()
        self._sleep = sleep or asyncio.sleep

    async def call(self, body: Dict[str, Any]) -> httpx.Response:
        """
        Send ``body`` upstream, retrying on non-2xx and transport errors.

        Returns:
            The response of the successful attempt, or of the final attempt

        Raises:
            TransportFailure: If the final attempt produced no response
        """
        max_attempts = self.policy.max_attempts
        response: Optional[httpx.Response] = None
        last_error: Optional[httpx.TransportError] = None

        for attempt in range(max_attempts):
            response = None
            try:
                response = await self._client.post(
                    self._url,
                    params={"key": self._api_key},
                    json=body,
                    headers={"Content-Type": "application/json"},
                )
            except httpx.TransportError as e:
                last_error = e
                logger.warning(
                    f"Upstream transport error (attempt {attempt + 1}/{max_attempts}): {type(e).__name__}",
                )
            else:
                if response.is_success:
                    if attempt > 0:
                        logger.info(f"Upstream succeeded on attempt {attempt + 1}/{max_attempts}")
                    return response
                logger.warning(
                    f"Upstream returned HTTP {response.status_code} (attempt {attempt + 1}/{max_attempts})",
                    extra={"status_code": response.status_code},
                )

            if attempt == max_attempts - 1:
                break

            await self._sleep(self.policy.delay_for(attempt))

        if response is None:
            raise TransportFailure(
                reason=f"upstream unreachable after {max_attempts} attempts: {last_error!r}"
            ) from last_error

        logger.error(
            f"Upstream error after {max_attempts} attempts: HTTP {response.status_code} {response.text[:800]}",
            extra={"status_code": response.status_code},
        )
        return response
