from __future__ import annotations


class DiscordApiError(Exception):
    def __init__(self, endpoint: str, status: int | None, message: str):
        super().__init__(message)
        self.endpoint = endpoint
        self.status = status


class DiscordResponseShapeError(DiscordApiError):
    pass


class RateLimitExceededError(DiscordApiError):
    """A 429 could not be waited out within the total retry budget."""

    def __init__(self, endpoint: str, *, elapsed: float, retry_after: float, retries: int):
        super().__init__(
            endpoint,
            429,
            f"Discord rate limit exceeded max wait on {endpoint} "
            f"(elapsed={elapsed:.1f}s, retry_after={retry_after:.1f}s, retries={retries})",
        )
        self.elapsed = elapsed
        self.retry_after = retry_after
        self.retries = retries


class GatewayError(Exception):
    pass


class GatewayClosedError(GatewayError):
    def __init__(self, code: int, reason: str = ""):
        super().__init__(f"Gateway closed with fatal code {code}: {reason}".rstrip(": "))
        self.code = code
        self.reason = reason
