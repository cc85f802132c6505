"""Staff session JWT helpers.

Staff endpoints (portal token issuance and revocation) authenticate with
an HS256 JWT carried in an httpOnly cookie. The token binds a staff user
(``sub``) to the organization they act for (``org``).
"""

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import jwt

from app.core.config import settings

# Default JWT expiration: 1 hour
_DEFAULT_EXPIRATION = timedelta(hours=1)

_AUDIENCE = "flowtrade"


@dataclass(frozen=True)
class StaffClaims:
    """Verified claims from a staff session token.

    Attributes:
        user_id: Staff user UUID (``sub``).
        org_id: Organization UUID the session acts for (``org``).
    """

    user_id: uuid.UUID
    org_id: uuid.UUID


def create_jwt(
    *,
    user_id: str,
    org_id: str,
    secret: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed staff JWT with standard claims.

    Args:
        user_id: Staff user UUID string for the sub claim.
        org_id: Organization UUID string for the org claim.
        secret: HMAC signing secret.
        expires_delta: Time until expiration. Defaults to 1 hour.

    Returns:
        Encoded JWT string.
    """
    now = datetime.now(UTC)
    payload = {
        "sub": user_id,
        "org": org_id,
        "aud": _AUDIENCE,
        "iss": settings.auth_issuer,
        "exp": now + (expires_delta or _DEFAULT_EXPIRATION),
        "iat": now,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def decode_staff_jwt(token: str, secret: str) -> StaffClaims:
    """Verify a staff JWT and extract its claims.

    Args:
        token: Encoded JWT string.
        secret: HMAC signing secret.

    Returns:
        StaffClaims for the session.

    Raises:
        jwt.InvalidTokenError: Bad signature, expired, wrong aud/iss.
        KeyError: Missing sub or org claim.
        ValueError: sub or org is not a UUID.
    """
    payload = jwt.decode(
        token,
        secret,
        algorithms=["HS256"],
        audience=_AUDIENCE,
        issuer=settings.auth_issuer,
    )
    return StaffClaims(
        user_id=uuid.UUID(payload["sub"]),
        org_id=uuid.UUID(payload["org"]),
    )
