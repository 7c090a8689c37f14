from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from functools import cache
from typing import Any

import httpx
from loguru import logger
from pydantic import TypeAdapter, ValidationError
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt

from simon_bot.discord.errors import DiscordApiError, DiscordResponseShapeError, RateLimitExceededError

DISCORD_API_BASE = "https://discord.com/api/v10"
REQUEST_TIMEOUT_SECONDS = 5.0
MAX_RATE_LIMIT_RETRIES = 5
MAX_TOTAL_WAIT_SECONDS = 30.0
DEFAULT_RETRY_AFTER_SECONDS = 1.0


class RateLimitGate:
    """Advisory release times per endpoint, shared by every caller.

    A release time only moves forward. Callers look at it before sending;
    nothing queues behind it.
    """

    GLOBAL_KEY = "*"

    def __init__(self) -> None:
        self._release_at: dict[str, float] = {}

    def release_at(self, endpoint: str) -> float | None:
        candidates = [
            t for t in (self._release_at.get(endpoint), self._release_at.get(self.GLOBAL_KEY)) if t is not None
        ]
        return max(candidates) if candidates else None

    def extend(self, key: str, release_at: float) -> None:
        current = self._release_at.get(key)
        if current is None or release_at > current:
            self._release_at[key] = release_at


class _RateLimited(Exception):
    def __init__(self, retry_after: float, is_global: bool):
        super().__init__(f"429 (retry_after={retry_after}s, global={is_global})")
        self.retry_after = retry_after
        self.is_global = is_global


@cache
def _adapter(expected: Any) -> TypeAdapter:
    return TypeAdapter(expected)


def _parse_rate_limit_body(response: httpx.Response) -> tuple[float, bool]:
    try:
        data = response.json()
        return float(data["retry_after"]), bool(data.get("global", False))
    except (ValueError, KeyError, TypeError):
        return DEFAULT_RETRY_AFTER_SECONDS, False


class DiscordRestClient:
    def __init__(
        self,
        token: str,
        *,
        base_url: str = DISCORD_API_BASE,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        gate: RateLimitGate | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._http = httpx.AsyncClient(
            base_url=base_url,
            headers={
                "Authorization": f"Bot {token}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )
        self._timeout = timeout
        self._gate = gate or RateLimitGate()
        self._clock = clock
        self._sleep = sleep

    @property
    def gate(self) -> RateLimitGate:
        return self._gate

    async def aclose(self) -> None:
        await self._http.aclose()

    async def call(
        self,
        method: str,
        endpoint: str,
        expected: Any,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Send one authenticated request and validate the body against ``expected``.

        429 responses are retried after the server's ``retry_after`` as long as
        the total wait stays within the budget; every other non-2xx status
        fails immediately.
        """
        started = self._clock()

        def budget_exhausted(retry_state: RetryCallState) -> bool:
            exc = retry_state.outcome.exception()
            return (self._clock() - started) + exc.retry_after > MAX_TOTAL_WAIT_SECONDS

        def give_up(retry_state: RetryCallState) -> Any:
            exc = retry_state.outcome.exception()
            elapsed = self._clock() - started
            retries = retry_state.attempt_number - 1
            logger.error(
                f"Discord rate limit exceeded max wait: endpoint={endpoint}, "
                f"elapsed={elapsed:.1f}s, wait={exc.retry_after:.1f}s, retries={retries}"
            )
            raise RateLimitExceededError(
                endpoint, elapsed=elapsed, retry_after=exc.retry_after, retries=retries
            ) from exc

        def log_retry(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception()
            logger.warning(
                f"Discord rate limited on {endpoint}, retrying in {exc.retry_after:.1f}s "
                f"(retry {retry_state.attempt_number}/{MAX_RATE_LIMIT_RETRIES}, global={exc.is_global})"
            )

        retrying = AsyncRetrying(
            retry=retry_if_exception_type(_RateLimited),
            wait=lambda retry_state: retry_state.outcome.exception().retry_after,
            stop=stop_after_attempt(MAX_RATE_LIMIT_RETRIES + 1) | budget_exhausted,
            before_sleep=log_retry,
            retry_error_callback=give_up,
            sleep=self._sleep,
        )
        attempts = 0

        async def attempt() -> Any:
            nonlocal attempts
            retries = attempts
            attempts += 1
            await self._wait_for_gate(endpoint, started, retries)
            return await self._attempt(method, endpoint, expected, params or {})

        return await retrying(attempt)

    async def _wait_for_gate(self, endpoint: str, started: float, retries: int) -> None:
        while True:
            release_at = self._gate.release_at(endpoint)
            if release_at is None:
                return
            remaining = release_at - self._clock()
            if remaining <= 0:
                return
            elapsed = self._clock() - started
            if elapsed + remaining > MAX_TOTAL_WAIT_SECONDS:
                logger.error(
                    f"Discord rate limit gate exceeds max wait: endpoint={endpoint}, "
                    f"elapsed={elapsed:.1f}s, wait={remaining:.1f}s, retries={retries}"
                )
                raise RateLimitExceededError(endpoint, elapsed=elapsed, retry_after=remaining, retries=retries)
            logger.debug(f"Rate limit gate closed for {endpoint}, waiting {remaining:.2f}s")
            await self._sleep(remaining)

    async def _attempt(self, method: str, endpoint: str, expected: Any, params: dict[str, Any]) -> Any:
        # Total deadline for the request, body included.
        async with asyncio.timeout(self._timeout):
            if method == "GET":
                response = await self._http.request(method, f"/{endpoint}", params=params)
            else:
                response = await self._http.request(method, f"/{endpoint}", json=params)

        if response.status_code == 429:
            retry_after, is_global = _parse_rate_limit_body(response)
            release_at = self._clock() + retry_after
            self._gate.extend(endpoint, release_at)
            if is_global:
                self._gate.extend(RateLimitGate.GLOBAL_KEY, release_at)
            raise _RateLimited(retry_after, is_global)

        if response.is_error:
            logger.error(
                f"Discord API call failed: endpoint={endpoint}, status={response.status_code}, "
                f"body={response.text[:500]}"
            )
            raise DiscordApiError(
                endpoint,
                response.status_code,
                f"Discord API error: {response.status_code} {response.reason_phrase}",
            )

        try:
            return _adapter(expected).validate_python(response.json())
        except (ValueError, ValidationError) as ex:
            raise DiscordResponseShapeError(
                endpoint, response.status_code, f"Unexpected response shape from {endpoint}: {ex}"
            ) from ex
