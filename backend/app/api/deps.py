"""Shared dependencies for API endpoints.

Staff endpoints resolve the caller's organization from a JWT session
cookie (or DEFAULT_ORG_ID when auth is disabled for local development).
Customer portal endpoints are unauthenticated; the token in the URL is the
credential, so they are gated by a per-IP fixed-window limiter instead.
"""

import math
import uuid
from collections.abc import Callable
from typing import Annotated

import jwt
import structlog
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import decode_staff_jwt
from app.core.config import settings
from app.core.database import get_db
from app.core.errors import RateLimitedError, UnauthorizedError
from app.core.rate_limiting import (
    FixedWindowRateLimiter,
    get_client_ip,
    get_portal_limiter,
)
from app.services.portal_audit import AccessLogWriter, get_access_log_writer

logger = structlog.get_logger()


async def get_current_org_id(request: Request) -> uuid.UUID:
    """Get the organization the current staff session acts for.

    Validation steps (auth enabled):
    1. Read JWT from cookie
    2. Decode + verify signature (HS256), exp, aud, iss
    3. Extract ``org`` as UUID

    Args:
        request: HTTP request (injected by FastAPI).

    Returns:
        UUID of the caller's organization.

    Raises:
        UnauthorizedError: 401 for any auth failure. The message never
            says why (expired, bad signature, missing cookie).
    """
    if not settings.auth_enabled:
        if settings.default_org_id is None:
            raise UnauthorizedError()
        return settings.default_org_id

    token = request.cookies.get(settings.auth_cookie_name)
    if not token:
        raise UnauthorizedError()

    try:
        claims = decode_staff_jwt(token, settings.auth_secret.get_secret_value())
    except (jwt.InvalidTokenError, KeyError, ValueError) as exc:
        raise UnauthorizedError() from exc

    return claims.org_id


def portal_rate_limit(
    scope: str,
    *,
    limit: Callable[[], int],
    window_seconds: Callable[[], int],
) -> Callable[..., None]:
    """Build a dependency that admits or rejects a portal request by IP.

    Limits are read through callables so that tests patching ``settings``
    take effect without rebuilding the router.

    Args:
        scope: Counter namespace, e.g. "portal" or "pay".
        limit: Returns the requests allowed per window.
        window_seconds: Returns the window length.

    Returns:
        FastAPI dependency raising RateLimitedError (429) when over limit.
    """

    def dependency(
        request: Request,
        limiter: Annotated[FixedWindowRateLimiter, Depends(get_portal_limiter)],
    ) -> None:
        if not settings.rate_limit_enabled:
            return
        ip = get_client_ip(request)
        decision = limiter.admit(
            f"{scope}:{ip}",
            window_seconds=window_seconds(),
            limit=limit(),
        )
        if not decision.admitted:
            logger.info("portal_rate_limited", scope=scope, ip=ip)
            raise RateLimitedError(retry_after=math.ceil(decision.retry_after))

    return dependency


portal_view_limit = portal_rate_limit(
    "portal",
    limit=lambda: settings.portal_rate_limit_requests,
    window_seconds=lambda: settings.portal_rate_limit_window_seconds,
)

portal_pay_limit = portal_rate_limit(
    "pay",
    limit=lambda: settings.portal_pay_rate_limit_requests,
    window_seconds=lambda: settings.portal_pay_rate_limit_window_seconds,
)


# Reusable type aliases for dependency injection
CurrentOrgId = Annotated[uuid.UUID, Depends(get_current_org_id)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
AuditWriter = Annotated[AccessLogWriter, Depends(get_access_log_writer)]
PortalViewLimit = Annotated[None, Depends(portal_view_limit)]
PortalPayLimit = Annotated[None, Depends(portal_pay_limit)]
