"""
Rate Limit Middleware
Fixed-window request limiting per client IP for the webhook endpoints
"""
import logging
import math
import time
from typing import Callable, Dict, Optional, Tuple

from fastapi import HTTPException, Request, status

from inbox_agent.config import settings

logger = logging.getLogger(__name__)


def client_ip(request: Request) -> str:
    """First X-Forwarded-For hop, else the peer address."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else "unknown"


class FixedWindowRateLimiter:
    """Counts requests per key in fixed windows"""

    def __init__(
        self,
        max_requests: Optional[int] = None,
        window_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.max_requests = max_requests or settings.WEBHOOK_RATE_LIMIT_MAX
        self.window_seconds = window_seconds or settings.WEBHOOK_RATE_LIMIT_WINDOW_SECONDS
        self._clock = clock
        self._windows: Dict[str, Tuple[float, int]] = {}

    def _cleanup(self, now: float) -> None:
        expired = [k for k, (start, _) in self._windows.items() if now - start >= self.window_seconds]
        for k in expired:
            del self._windows[k]

    def hit(self, key: str) -> Optional[int]:
        """
        Count one request for `key`.

        Returns None when allowed, otherwise the seconds until the window resets.
        """
        now = self._clock()
        self._cleanup(now)

        start, count = self._windows.get(key, (now, 0))
        if count >= self.max_requests:
            return max(1, math.ceil(start + self.window_seconds - now))

        self._windows[key] = (start, count + 1)
        return None

    def reset(self) -> None:
        self._windows.clear()


webhook_rate_limiter = FixedWindowRateLimiter()


async def webhook_rate_limit(request: Request) -> None:
    """
    Dependency enforcing the webhook rate limit.

    Raises:
        HTTPException: 429 with a Retry-After header when over the limit
    """
    ip = client_ip(request)
    retry_after = webhook_rate_limiter.hit(ip)
    if retry_after is not None:
        logger.warning(f"🚦 Webhook rate limit exceeded for {ip}")
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests",
            headers={"Retry-After": str(retry_after)}
        )
