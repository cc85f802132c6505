"""Repository for the append-only portal access log and activity log."""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.portal import ActivityLog, PortalAccessLog


class AccessLogRepository:
    """Stateless repository for PortalAccessLog and ActivityLog inserts.

    No update or delete methods: both tables are append-only.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        token_id: uuid.UUID,
        action: str,
        outcome: str,
        ip_address: str | None,
        user_agent: str | None,
        accessed_at: datetime,
    ) -> PortalAccessLog:
        """Append one access log row.

        Args:
            db: Async database session.
            token_id: Token presented by the client.
            action: Attempted operation tag.
            outcome: Guard verdict value.
            ip_address: Client IP.
            user_agent: Client User-Agent.
            accessed_at: Request timestamp.

        Returns:
            Created PortalAccessLog.
        """
        row = PortalAccessLog(
            token_id=token_id,
            action=action,
            outcome=outcome,
            ip_address=ip_address,
            user_agent=user_agent,
            accessed_at=accessed_at,
        )
        db.add(row)
        await db.flush()
        return row

    @staticmethod
    async def list_by_token(
        db: AsyncSession,
        token_id: uuid.UUID,
        *,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[list[PortalAccessLog], int]:
        """List access log rows for a token, newest first.

        Args:
            db: Async database session.
            token_id: Token UUID.
            offset: Number of records to skip.
            limit: Maximum records to return.

        Returns:
            Tuple of (rows, total count).
        """
        condition = PortalAccessLog.token_id == token_id

        count_stmt = select(func.count()).select_from(PortalAccessLog).where(condition)
        total = (await db.execute(count_stmt)).scalar_one()

        data_stmt = (
            select(PortalAccessLog)
            .where(condition)
            .order_by(PortalAccessLog.accessed_at.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await db.execute(data_stmt)
        return list(result.scalars().all()), total

    @staticmethod
    async def add_activity(
        db: AsyncSession,
        *,
        org_id: uuid.UUID,
        entity_type: str,
        entity_id: uuid.UUID,
        action: str,
        description: str,
        metadata: dict[str, Any],
    ) -> ActivityLog:
        """Append one activity timeline entry.

        Args:
            db: Async database session.
            org_id: Organization the entity belongs to.
            entity_type: "quote" or "invoice".
            entity_id: Entity UUID.
            action: Event name.
            description: Human-readable summary.
            metadata: Structured event details.

        Returns:
            Created ActivityLog.
        """
        row = ActivityLog(
            org_id=org_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            description=description,
            metadata_=metadata,
        )
        db.add(row)
        await db.flush()
        return row
