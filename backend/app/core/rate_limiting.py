"""Rate limiting for staff and customer portal endpoints.

Two mechanisms live here:

1. ``limiter``: a slowapi Limiter for authenticated staff endpoints
   (decorator based, keyed on the JWT subject when auth is enabled).
2. ``FixedWindowRateLimiter``: an explicitly constructed fixed-window
   counter keyed by client IP, used by the public portal routes before a
   token is evaluated. It takes an injectable clock so tests control time.

Fixed window, not sliding window: a client that spends its whole budget at
the end of one window and again at the start of the next can make up to
2x ``limit`` requests in a span shorter than ``window``. That is the
accepted tradeoff for O(1) state per key.

The portal limiter is process-memory only. Counters are lost on restart
and are not shared between instances.

Usage in routers:
    from app.core.rate_limiting import limiter

    @router.post("")
    @limiter.limit(lambda: settings.rate_limit_token_issue)
    async def issue_portal_token(request: Request, ...):
        ...
"""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

import jwt
from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from app.core.config import settings

# Sweep expired keys every N admit() calls
_DEFAULT_SWEEP_EVERY = 1000

# Sweep immediately once the map holds this many keys
_DEFAULT_MAX_KEYS = 10_000


def _rate_limit_key_func(request: Request) -> str:
    """Get slowapi rate limit key from request.

    Key format:
    - Auth disabled: "{ip}" (local dev mode)
    - Auth enabled + valid JWT: "user:{sub}"
    - Auth enabled + no/invalid JWT: "unauth:{ip}"

    Args:
        request: The incoming request.

    Returns:
        Rate limit key string.
    """
    if not settings.auth_enabled:
        return get_remote_address(request)

    token = request.cookies.get(settings.auth_cookie_name)
    if token:
        try:
            payload = jwt.decode(
                token,
                settings.auth_secret.get_secret_value(),
                algorithms=["HS256"],
                audience="flowtrade",
                issuer=settings.auth_issuer,
            )
            sub = payload["sub"]
            if len(sub) <= 36:
                return f"user:{sub}"
        except (jwt.InvalidTokenError, KeyError):
            pass

    return f"unauth:{get_remote_address(request)}"


# Global slowapi limiter instance (in-memory storage)
limiter = Limiter(
    key_func=_rate_limit_key_func,
    enabled=settings.rate_limit_enabled,
)


def rate_limit_exceeded_handler(
    _request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Handle slowapi rate limit exceeded errors.

    Returns 429 Too Many Requests with standard error envelope.

    Args:
        request: The incoming request.
        exc: The rate limit exception.

    Returns:
        JSONResponse with 429 status and retry-after header.
    """
    # Parse retry-after from exception detail (e.g., "10 per 1 minute")
    try:
        retry_after = str(exc.detail.split()[-1])
        int(retry_after.rstrip("s"))
    except (ValueError, AttributeError, IndexError):
        retry_after = "60"

    return JSONResponse(
        status_code=429,
        content={
            "error": {
                "code": "RATE_LIMITED",
                "message": f"Rate limit exceeded: {exc.detail}",
            }
        },
        headers={"Retry-After": retry_after},
    )


def get_client_ip(request: Request) -> str:
    """Client IP for portal rate limiting and audit rows.

    Defaults to the socket peer, the same source slowapi's
    get_remote_address() uses. X-Forwarded-For is only read when
    ``settings.trusted_proxy_hops`` is set, and then the address appended
    by the outermost trusted proxy is used. Entries to its left are client
    supplied and never trusted.

    Args:
        request: The incoming request.

    Returns:
        Client IP string, or "unknown".
    """
    hops = settings.trusted_proxy_hops
    if hops > 0:
        forwarded_for = request.headers.get("x-forwarded-for", "")
        chain = [part.strip() for part in forwarded_for.split(",") if part.strip()]
        if len(chain) >= hops:
            return chain[-hops]
    if request.client is not None and request.client.host:
        return request.client.host
    return "unknown"


# =============================================================================
# Fixed-window portal limiter
# =============================================================================


@dataclass
class RateLimitEntry:
    """Counter for one identifier within the current window.

    Attributes:
        count: Requests admitted in the current window.
        reset_at: Epoch seconds at which the window closes.
    """

    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a single admit() call.

    Attributes:
        admitted: Whether the request may proceed.
        remaining: Requests left in the current window (0 when rejected).
        reset_at: Epoch seconds at which the current window closes.
        retry_after: Seconds until the window closes (0 when admitted).
    """

    admitted: bool
    remaining: int
    reset_at: float
    retry_after: float = 0.0


class FixedWindowRateLimiter:
    """Thread-safe fixed-window request counter keyed by identifier.

    A single lock guards the map so that concurrent requests for the same
    identifier can never lose an increment. Expired keys are swept every
    ``sweep_every`` calls and whenever the map grows past ``max_keys``,
    so unique-identifier churn cannot grow the store without bound.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        *,
        sweep_every: int = _DEFAULT_SWEEP_EVERY,
        max_keys: int = _DEFAULT_MAX_KEYS,
    ) -> None:
        """Initialize the limiter.

        Args:
            clock: Returns the current time in epoch seconds.
            sweep_every: Run an expiry sweep every N admit() calls.
            max_keys: Run an expiry sweep whenever the map exceeds this size.
                After a sweep the bound rises to twice the surviving keys.
        """
        self._clock = clock
        self._entries: dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()
        self._sweep_every = sweep_every
        self._max_keys = max_keys
        self._sweep_threshold = max_keys
        self._calls = 0

    def admit(
        self,
        identifier: str,
        *,
        window_seconds: float,
        limit: int,
        now: float | None = None,
    ) -> RateLimitDecision:
        """Count one request for ``identifier`` and decide whether to admit it.

        Args:
            identifier: Client key (typically "<scope>:<ip>").
            window_seconds: Window length in seconds.
            limit: Maximum admitted requests per window.
            now: Current epoch seconds; defaults to the injected clock.

        Returns:
            RateLimitDecision for this request.
        """
        if now is None:
            now = self._clock()

        with self._lock:
            self._calls += 1
            if (
                self._calls % self._sweep_every == 0
                or len(self._entries) > self._sweep_threshold
            ):
                self._sweep_locked(now)

            entry = self._entries.get(identifier)
            if entry is None or now >= entry.reset_at:
                # New window: replace, never increment a stale entry
                reset_at = now + window_seconds
                self._entries[identifier] = RateLimitEntry(count=1, reset_at=reset_at)
                return RateLimitDecision(
                    admitted=True,
                    remaining=max(limit - 1, 0),
                    reset_at=reset_at,
                )

            if entry.count >= limit:
                return RateLimitDecision(
                    admitted=False,
                    remaining=0,
                    reset_at=entry.reset_at,
                    retry_after=entry.reset_at - now,
                )

            entry.count += 1
            return RateLimitDecision(
                admitted=True,
                remaining=limit - entry.count,
                reset_at=entry.reset_at,
            )

    def sweep(self, now: float | None = None) -> int:
        """Remove entries whose window has closed.

        Returns:
            Number of entries removed.
        """
        if now is None:
            now = self._clock()
        with self._lock:
            return self._sweep_locked(now)

    def _sweep_locked(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if now >= entry.reset_at]
        for key in expired:
            del self._entries[key]
        # Live keys survive a sweep; wait for the map to double before the next
        # size-triggered sweep so admit() does not rescan them on every call.
        self._sweep_threshold = max(self._max_keys, 2 * len(self._entries))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        """Drop all counters (for testing)."""
        with self._lock:
            self._entries.clear()
            self._calls = 0
            self._sweep_threshold = self._max_keys


# Process-wide portal limiter, created on first use
_portal_limiter: FixedWindowRateLimiter | None = None


def get_portal_limiter() -> FixedWindowRateLimiter:
    """Get the process-wide portal limiter instance.

    Returns:
        The FixedWindowRateLimiter singleton.
    """
    global _portal_limiter
    if _portal_limiter is None:
        _portal_limiter = FixedWindowRateLimiter()
    return _portal_limiter


def reset_portal_limiter() -> None:
    """Reset the portal limiter singleton (for testing)."""
    global _portal_limiter
    if _portal_limiter is not None:
        _portal_limiter.clear()
    _portal_limiter = None
