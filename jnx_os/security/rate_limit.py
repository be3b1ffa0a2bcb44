"""
Fixed-window in-memory rate limiting.

Each limiter keeps a table of identifier -> (count, reset_time). A window is
created on the first request for an identifier and replaced lazily on the
first request after it expires. Expired windows are swept at most once per
interval so the table cannot grow without bound.

Limitation: state is per process. Multiple workers each enforce their own
budget; a shared store would be needed for a global limit.

Limiters are plain objects held by a RateLimiterRegistry on app.state, so
tests construct isolated instances with a fake clock.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from fastapi import HTTPException, Request, status

logger = logging.getLogger(__name__)

FIFTEEN_MINUTES = 15 * 60


@dataclass(frozen=True)
class RateLimitResult:
    limited: bool
    remaining: int
    reset_time: float

    def retry_after(self, now: float) -> int:
        """Whole seconds until the window resets, at least 1."""
        return max(1, int(self.reset_time - now + 0.999))


@dataclass
class _Window:
    count: int
    reset_time: float


class RateLimiter:
    """
    Fixed-window counter keyed by identifier.

    The (max_requests + 1)-th call inside a window is limited; the first call
    after reset_time has passed opens a fresh window.
    """

    def __init__(
        self,
        interval_seconds: float,
        max_requests: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        self.interval_seconds = interval_seconds
        self.max_requests = max_requests
        self.clock = clock
        self._windows: Dict[str, _Window] = {}
        self._lock = threading.Lock()
        self._last_cleanup = clock()

    def check(self, identifier: str) -> RateLimitResult:
        """Count a request for identifier and report whether it is over budget."""
        with self._lock:
            now = self.clock()
            self._maybe_cleanup(now)

            window = self._windows.get(identifier)
            if window is None or now > window.reset_time:
                window = _Window(count=1, reset_time=now + self.interval_seconds)
                self._windows[identifier] = window
                return RateLimitResult(
                    limited=False,
                    remaining=self.max_requests - 1,
                    reset_time=window.reset_time,
                )

            window.count += 1
            if window.count > self.max_requests:
                return RateLimitResult(limited=True, remaining=0, reset_time=window.reset_time)

            return RateLimitResult(
                limited=False,
                remaining=self.max_requests - window.count,
                reset_time=window.reset_time,
            )

    def _maybe_cleanup(self, now: float) -> None:
        if now - self._last_cleanup < self.interval_seconds:
            return
        expired = [key for key, window in self._windows.items() if window.reset_time < now]
        for key in expired:
            del self._windows[key]
        self._last_cleanup = now
        if expired:
            logger.debug("Rate limit windows swept", extra={"expired": len(expired)})

    def reset(self, identifier: Optional[str] = None) -> None:
        with self._lock:
            if identifier is None:
                self._windows.clear()
            else:
                self._windows.pop(identifier, None)

    def __len__(self) -> int:
        return len(self._windows)


class RateLimiterRegistry:
    """
    Named limiter presets.

    - general: 100 requests per 15 minutes
    - auth: 10 requests per 15 minutes
    - strict: 5 requests per 15 minutes
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.general = RateLimiter(FIFTEEN_MINUTES, 100, clock)
        self.auth = RateLimiter(FIFTEEN_MINUTES, 10, clock)
        self.strict = RateLimiter(FIFTEEN_MINUTES, 5, clock)

    def get(self, name: str) -> RateLimiter:
        limiter = getattr(self, name, None)
        if not isinstance(limiter, RateLimiter):
            raise KeyError(f"Unknown rate limiter: {name}")
        return limiter


def get_rate_limit_identifier(ip: Optional[str], user_id: Optional[str]) -> str:
    """Prefer the authenticated user over the client IP."""
    if user_id:
        return f"user:{user_id}"
    if ip:
        return f"ip:{ip}"
    return "unknown"


def get_client_ip(request: Request) -> Optional[str]:
    """Client IP, honouring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def enforce_rate_limit(request: Request, limiter_name: str) -> RateLimitResult:
    """
    Count this request against a named limiter on app.state.

    Raises:
        HTTPException 429 with Retry-After and X-RateLimit-Remaining headers
    """
    registry: RateLimiterRegistry = request.app.state.rate_limiters
    limiter = registry.get(limiter_name)

    session = getattr(request.state, "session", None)
    user_id = session.clerk_user_id if session is not None else None
    identifier = get_rate_limit_identifier(get_client_ip(request), user_id)

    result = limiter.check(identifier)
    if result.limited:
        logger.warning(
            "Rate limit exceeded",
            extra={"limiter": limiter_name, "identifier": identifier, "path": request.url.path},
        )
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests. Please try again later.",
            headers={
                "Retry-After": str(result.retry_after(limiter.clock())),
                "X-RateLimit-Remaining": "0",
            },
        )
    return result


def rate_limit(limiter_name: str) -> Callable[[Request], RateLimitResult]:
    """
    FastAPI dependency factory.

    Usage:
        @router.post("/login", dependencies=[Depends(rate_limit("auth"))])
    """

    def dependency(request: Request) -> RateLimitResult:
        return enforce_rate_limit(request, limiter_name)

    return dependency
