"""Portal token issuance, revocation and lookup.

Tokens are 256-bit random strings (``secrets.token_urlsafe(32)``). Issuing
a token for a resource that already has a live token of the same type
returns the existing one, so repeatedly sending a quote does not mint a
new link each time.

make_token_lookup() adapts the repositories to the TokenLookupFn contract
the access guard consumes.
"""

import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import NotFoundError, ValidationError
from app.models.portal import PortalToken
from app.repositories.document_repository import DocumentRepository
from app.repositories.portal_token_repository import PortalTokenRepository
from app.services.portal_guard import TokenLookupFn, TokenLookupResult, TokenType

logger = logging.getLogger(__name__)

# Bytes of entropy per token (43 URL-safe characters)
TOKEN_BYTES = 32


@dataclass(frozen=True)
class IssuedToken:
    """A token handed to staff for sharing with a customer.

    Attributes:
        token: Stored PortalToken row.
        reused: True when an existing live token was returned.
    """

    token: PortalToken
    reused: bool

    @property
    def portal_url(self) -> str:
        """Customer-facing link for this token."""
        return build_portal_url(self.token.token, self.token.token_type)


def generate_token_value() -> str:
    """Generate a cryptographically random, URL-safe token string."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def build_portal_url(token: str, token_type: str) -> str:
    """Build the customer-facing portal URL for a token.

    Args:
        token: Token string.
        token_type: quote, invoice, job or dashboard.

    Returns:
        Absolute URL under the configured app_url.
    """
    return f"{settings.app_url.rstrip('/')}/portal/{token_type}/{token}"


async def issue_token(
    db: AsyncSession,
    *,
    org_id: uuid.UUID,
    customer_id: uuid.UUID,
    token_type: TokenType,
    resource_id: uuid.UUID | None,
    expires_in_days: int | None = None,
    reuse_existing: bool = True,
) -> IssuedToken:
    """Issue a portal token, reusing a live one when possible.

    Args:
        db: Async database session.
        org_id: Issuing organization.
        customer_id: Customer the link is for.
        token_type: Resource class the token addresses.
        resource_id: Target resource (None only for dashboard tokens).
        expires_in_days: Lifetime override; defaults per token type.
        reuse_existing: Return an existing live token for the same resource.

    Returns:
        IssuedToken with the stored row.

    Raises:
        ValidationError: If resource_id is missing for a resource-bound type
            or the lifetime is not positive.
    """
    if resource_id is None and token_type is not TokenType.DASHBOARD:
        raise ValidationError(
            f"resource_id is required for {token_type.value} tokens"
        )

    days = (
        expires_in_days
        if expires_in_days is not None
        else settings.token_lifetime_days(token_type.value)
    )
    if days <= 0:
        raise ValidationError("expires_in_days must be positive")

    now = datetime.now(UTC)

    if reuse_existing and resource_id is not None:
        existing = await PortalTokenRepository.list_active_for_resource(
            db,
            resource_id=resource_id,
            token_type=token_type.value,
            now=now,
            org_id=org_id,
        )
        if existing:
            return IssuedToken(token=existing[0], reused=True)

    row = await PortalTokenRepository.create(
        db,
        token=generate_token_value(),
        token_type=token_type.value,
        resource_id=resource_id,
        customer_id=customer_id,
        org_id=org_id,
        expires_at=now + timedelta(days=days),
    )
    logger.info(
        "Issued %s portal token %s for resource %s",
        token_type.value,
        row.id,
        resource_id,
    )
    return IssuedToken(token=row, reused=False)


async def issue_token_for_resource(
    db: AsyncSession,
    *,
    org_id: uuid.UUID,
    resource_type: TokenType,
    resource_id: uuid.UUID,
    expires_in_days: int | None = None,
) -> IssuedToken:
    """Issue a token for a quote or invoice owned by ``org_id``.

    The customer binding is taken from the resource itself.

    Raises:
        NotFoundError: If the resource does not exist in this organization.
        ValidationError: If the resource type cannot be shared by link.
    """
    resource: Any
    if resource_type is TokenType.QUOTE:
        resource = await DocumentRepository.get_quote(db, resource_id, org_id=org_id)
        label = "Quote"
    elif resource_type is TokenType.INVOICE:
        resource = await DocumentRepository.get_invoice(db, resource_id, org_id=org_id)
        label = "Invoice"
    else:
        raise ValidationError("resource_type must be 'quote' or 'invoice'")

    if resource is None:
        raise NotFoundError(label, str(resource_id))

    return await issue_token(
        db,
        org_id=org_id,
        customer_id=resource.customer_id,
        token_type=resource_type,
        resource_id=resource_id,
        expires_in_days=expires_in_days,
    )


async def revoke_token(
    db: AsyncSession,
    *,
    org_id: uuid.UUID,
    token_id: uuid.UUID,
) -> PortalToken:
    """Revoke a token. Revoking an already-revoked token is a no-op.

    Args:
        db: Async database session.
        org_id: Caller's organization.
        token_id: Token UUID.

    Returns:
        The token row, with revoked_at set.

    Raises:
        NotFoundError: If the token does not exist in this organization.
    """
    row = await PortalTokenRepository.get_by_id(db, token_id, org_id=org_id)
    if row is None:
        raise NotFoundError("Portal token", str(token_id))

    now = datetime.now(UTC)
    if await PortalTokenRepository.revoke(db, token_id, now=now):
        row.revoked_at = now
        logger.info("Revoked portal token %s", token_id)
    return row


async def regenerate_token(
    db: AsyncSession,
    *,
    org_id: uuid.UUID,
    token_id: uuid.UUID,
    expires_in_days: int | None = None,
) -> IssuedToken:
    """Revoke a token and issue a fresh one with the same binding.

    Raises:
        NotFoundError: If the token does not exist in this organization.
    """
    old = await revoke_token(db, org_id=org_id, token_id=token_id)
    return await issue_token(
        db,
        org_id=old.org_id,
        customer_id=old.customer_id,
        token_type=TokenType(old.token_type),
        resource_id=old.resource_id,
        expires_in_days=expires_in_days,
        reuse_existing=False,
    )


async def revoke_tokens_for_resource(
    db: AsyncSession,
    *,
    org_id: uuid.UUID,
    resource_id: uuid.UUID,
    token_type: TokenType,
) -> int:
    """Revoke every live token for a resource (e.g. when a quote is voided).

    Returns:
        Number of tokens revoked.
    """
    count = await PortalTokenRepository.revoke_for_resource(
        db,
        org_id=org_id,
        resource_id=resource_id,
        token_type=token_type.value,
        now=datetime.now(UTC),
    )
    if count:
        logger.info(
            "Revoked %d %s portal token(s) for resource %s",
            count,
            token_type.value,
            resource_id,
        )
    return count


def make_token_lookup(db: AsyncSession) -> TokenLookupFn:
    """Build the guard's token lookup on top of a database session.

    Typed lookups also resolve the target quote or invoice within the
    token's organization. A token whose resource no longer exists is
    treated as unknown.

    Args:
        db: Request-scoped async session.

    Returns:
        TokenLookupFn for evaluate().
    """

    async def lookup(
        token: str, required_type: TokenType | None
    ) -> TokenLookupResult | None:
        type_filter = required_type.value if required_type is not None else None
        row = await PortalTokenRepository.get_by_token(db, token, type_filter)
        if row is None:
            return None

        if required_type is None or row.resource_id is None:
            return TokenLookupResult(token=row)

        resource: Any = None
        if required_type is TokenType.QUOTE:
            resource = await DocumentRepository.get_quote(
                db, row.resource_id, org_id=row.org_id
            )
        elif required_type is TokenType.INVOICE:
            resource = await DocumentRepository.get_invoice(
                db, row.resource_id, org_id=row.org_id
            )
        else:
            return TokenLookupResult(token=row)

        if resource is None:
            return None
        return TokenLookupResult(token=row, resource=resource)

    return lookup
