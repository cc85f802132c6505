"""Repository for PortalToken operations.

Tokens are never deleted. Revocation and access telemetry are the only
mutations, and both are single conditional UPDATE statements so that
concurrent requests cannot lose or reverse them.
"""

import uuid
from datetime import datetime
from typing import Any, cast

from sqlalchemy import select, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.portal import PortalToken


class PortalTokenRepository:
    """Stateless repository for PortalToken table operations.

    All methods are static with no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        token: str,
        token_type: str,
        resource_id: uuid.UUID | None,
        customer_id: uuid.UUID,
        org_id: uuid.UUID,
        expires_at: datetime,
    ) -> PortalToken:
        """Store a newly issued token.

        Args:
            db: Async database session.
            token: Random token string.
            token_type: quote, invoice, job or dashboard.
            resource_id: Target resource (None for dashboard tokens).
            customer_id: Customer the link is issued to.
            org_id: Issuing organization.
            expires_at: Expiry instant.

        Returns:
            Created PortalToken with database-generated fields.
        """
        row = PortalToken(
            token=token,
            token_type=token_type,
            resource_id=resource_id,
            customer_id=customer_id,
            org_id=org_id,
            expires_at=expires_at,
            access_count=0,
        )
        db.add(row)
        await db.flush()
        await db.refresh(row)
        return row

    @staticmethod
    async def get_by_token(
        db: AsyncSession,
        token: str,
        token_type: str | None = None,
    ) -> PortalToken | None:
        """Look up a token string, optionally scoped to a token type.

        A type-scoped lookup returns None for a token of another type.

        Args:
            db: Async database session.
            token: Token string from the URL.
            token_type: Required token type, or None for any.

        Returns:
            PortalToken if found, None otherwise.
        """
        stmt = select(PortalToken).where(PortalToken.token == token)
        if token_type is not None:
            stmt = stmt.where(PortalToken.token_type == token_type)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_id(
        db: AsyncSession,
        token_id: uuid.UUID,
        *,
        org_id: uuid.UUID,
    ) -> PortalToken | None:
        """Fetch a token by primary key within one organization.

        Args:
            db: Async database session.
            token_id: Token UUID.
            org_id: Caller's organization (tenant filter).

        Returns:
            PortalToken if found and owned by org_id, None otherwise.
        """
        stmt = select(PortalToken).where(
            PortalToken.id == token_id,
            PortalToken.org_id == org_id,
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_active_for_resource(
        db: AsyncSession,
        *,
        resource_id: uuid.UUID,
        token_type: str,
        now: datetime,
        org_id: uuid.UUID | None = None,
    ) -> list[PortalToken]:
        """List unrevoked, unexpired tokens for a resource, newest first.

        Args:
            db: Async database session.
            resource_id: Target resource.
            token_type: Token type to match.
            now: Reference instant for expiry.
            org_id: Optional tenant filter.

        Returns:
            Active tokens (possibly empty).
        """
        stmt = select(PortalToken).where(
            PortalToken.resource_id == resource_id,
            PortalToken.token_type == token_type,
            PortalToken.revoked_at.is_(None),
            PortalToken.expires_at > now,
        )
        if org_id is not None:
            stmt = stmt.where(PortalToken.org_id == org_id)
        stmt = stmt.order_by(PortalToken.created_at.desc())
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def revoke(
        db: AsyncSession,
        token_id: uuid.UUID,
        *,
        now: datetime,
    ) -> bool:
        """Revoke a token once.

        The ``revoked_at IS NULL`` predicate keeps revocation monotonic:
        an already-revoked token keeps its original timestamp.

        Args:
            db: Async database session.
            token_id: Token UUID.
            now: Revocation instant.

        Returns:
            True if this call revoked the token, False if it was already revoked.
        """
        result = cast(
            CursorResult[Any],
            await db.execute(
                update(PortalToken)
                .where(
                    PortalToken.id == token_id,
                    PortalToken.revoked_at.is_(None),
                )
                .values(revoked_at=now)
                .execution_options(synchronize_session=False)
            ),
        )
        rows_updated: int = result.rowcount
        return rows_updated > 0

    @staticmethod
    async def revoke_for_resource(
        db: AsyncSession,
        *,
        org_id: uuid.UUID,
        resource_id: uuid.UUID,
        token_type: str,
        now: datetime,
    ) -> int:
        """Revoke every live token for one resource.

        Args:
            db: Async database session.
            org_id: Caller's organization (tenant filter).
            resource_id: Target resource.
            token_type: Token type to match.
            now: Revocation instant.

        Returns:
            Number of tokens revoked by this call.
        """
        result = cast(
            CursorResult[Any],
            await db.execute(
                update(PortalToken)
                .where(
                    PortalToken.org_id == org_id,
                    PortalToken.resource_id == resource_id,
                    PortalToken.token_type == token_type,
                    PortalToken.revoked_at.is_(None),
                )
                .values(revoked_at=now)
                .execution_options(synchronize_session=False)
            ),
        )
        rows_updated: int = result.rowcount
        return rows_updated

    @staticmethod
    async def record_access(
        db: AsyncSession,
        token_id: uuid.UUID,
        *,
        accessed_at: datetime,
    ) -> None:
        """Bump access telemetry with an atomic increment.

        Args:
            db: Async database session.
            token_id: Token UUID.
            accessed_at: Access instant.
        """
        await db.execute(
            update(PortalToken)
            .where(PortalToken.id == token_id)
            .values(
                access_count=PortalToken.access_count + 1,
                last_accessed_at=accessed_at,
            )
            .execution_options(synchronize_session=False)
        )
