"""Customer portal models - bearer tokens and their audit trail.

PortalToken rows are capabilities: whoever holds the token string may act
on exactly one resource until the token expires or is revoked. Rows are
never deleted, only expired or revoked, so the access log keeps a valid
foreign key forever.

PortalAccessLog and ActivityLog are append-only: no updates, no deletes.
"""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base

_DEFAULT_UUID = text("gen_random_uuid()")

TOKEN_TYPES = ("quote", "invoice", "job", "dashboard")


class PortalToken(Base):
    """Scoped, time-limited bearer credential for one portal resource.

    Immutable except for ``revoked_at`` (set once, never cleared) and the
    advisory access telemetry (``access_count``, ``last_accessed_at``).

    Attributes:
        id: UUID primary key.
        token: Random URL-safe credential (unique).
        token_type: One of TOKEN_TYPES; fixes the resource class.
        resource_id: Target quote/invoice/job. NULL only for dashboard tokens.
        customer_id: Customer the link was issued to.
        org_id: Organization that issued the link.
        expires_at: Token is unusable at or after this instant.
        revoked_at: When staff revoked the token. NULL while live.
        created_at: Issue timestamp.
        last_accessed_at: Last successful validation.
        access_count: Number of successful validations.
    """

    __tablename__ = "portal_tokens"
    __table_args__ = (
        CheckConstraint(
            "token_type IN ('quote', 'invoice', 'job', 'dashboard')",
            name="ck_portal_tokens_token_type",
        ),
        CheckConstraint(
            "resource_id IS NOT NULL OR token_type = 'dashboard'",
            name="ck_portal_tokens_resource_required",
        ),
        CheckConstraint("access_count >= 0", name="ck_portal_tokens_access_nonneg"),
        Index("ix_portal_tokens_resource", "resource_id", "token_type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=_DEFAULT_UUID,
    )
    token: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
    )
    token_type: Mapped[str] = mapped_column(String(20), nullable=False)
    resource_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        nullable=True,
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("customers.id", ondelete="RESTRICT"),
        nullable=False,
    )
    org_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    revoked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    last_accessed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    access_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        server_default="0",
        default=0,
    )

    @property
    def is_revoked(self) -> bool:
        """True once staff have revoked the token."""
        return self.revoked_at is not None


class PortalAccessLog(Base):
    """One audit row per guarded portal request that resolved a token.

    Attributes:
        id: UUID primary key.
        token_id: Token presented by the client.
        action: Attempted operation (e.g. "invoice_viewed", "quote_accepted").
        outcome: Guard verdict for the request ("valid", "expired", ...).
        ip_address: Client IP as seen by the API.
        user_agent: Client User-Agent header.
        accessed_at: When the request was handled.
    """

    __tablename__ = "portal_access_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=_DEFAULT_UUID,
    )
    token_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("portal_tokens.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    outcome: Mapped[str] = mapped_column(String(20), nullable=False)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    accessed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class ActivityLog(Base):
    """Business-level timeline entry shown to staff.

    Attributes:
        id: UUID primary key.
        org_id: Organization the entity belongs to.
        entity_type: "quote" or "invoice".
        entity_id: Entity UUID.
        action: Event name (e.g. "status_changed").
        description: Human-readable summary.
        metadata_: Structured event details (column name ``metadata``).
        created_at: Event timestamp.
    """

    __tablename__ = "activity_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=_DEFAULT_UUID,
    )
    org_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)
    entity_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    # "metadata" is reserved on declarative classes
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSONB,
        nullable=False,
        server_default=text("'{}'::jsonb"),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
