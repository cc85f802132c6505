"""Organization and Customer models - tenancy and billing contacts.

Organizations are the trades businesses using FlowTrade. Customers belong
to exactly one organization and receive portal links for their quotes
and invoices.
"""

import uuid

from sqlalchemy import ForeignKey, String, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin

_DEFAULT_UUID = text("gen_random_uuid()")


class Organization(Base, TimestampMixin):
    """A trades business account.

    Attributes:
        id: UUID primary key.
        name: Trading name shown on the portal.
        logo_url: Optional logo for portal branding.
        primary_color: Optional brand color (hex string).
        email: Contact email shown to customers.
        phone: Contact phone shown to customers.
    """

    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=_DEFAULT_UUID,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    logo_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    primary_color: Mapped[str | None] = mapped_column(String(20), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)


class Customer(Base, TimestampMixin):
    """A customer of an organization.

    Attributes:
        id: UUID primary key.
        org_id: Owning organization.
        name: Customer display name.
        email: Customer email (portal links are sent here).
        phone: Optional phone number.
        address: Optional postal/site address.
    """

    __tablename__ = "customers"

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
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
