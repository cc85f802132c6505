"""Customer portal and portal token schemas.

Money fields are serialized as strings with 2 decimal places so that
clients never round-trip currency through floats.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from app.models.invoice import Invoice
from app.models.portal import PortalAccessLog, PortalToken
from app.models.quote import Quote

# =============================================================================
# Portal context
# =============================================================================


class OrganizationBranding(BaseModel):
    """Business details shown in the portal header.

    Attributes:
        name: Trading name ("Unknown" when the row is missing).
        logo_url: Logo image URL.
        primary_color: Brand color (hex).
        email: Contact email.
        phone: Contact phone.
    """

    name: str = "Unknown"
    logo_url: str | None = None
    primary_color: str | None = None
    email: str | None = None
    phone: str | None = None


class CustomerSummary(BaseModel):
    """Who the link was issued to."""

    name: str = "Customer"
    email: str = ""


class TokenValidationResponse(BaseModel):
    """Response for GET /api/v1/portal/validate/{token}."""

    valid: bool = True
    token_type: str
    resource_id: uuid.UUID | None
    expires_at: datetime
    organization: OrganizationBranding
    customer: CustomerSummary


# =============================================================================
# Resource projections
# =============================================================================


class _DocumentProjection(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    status: str
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    notes: str | None = None
    line_items: list[dict[str, Any]] = Field(default_factory=list)
    customer_name: str | None = None
    customer_email: str | None = None
    created_at: datetime
    token_expires_at: datetime

    @field_serializer("subtotal", "tax", "total")
    def _money(self, value: Decimal) -> str:
        return f"{value:.2f}"


class QuotePortalResponse(_DocumentProjection):
    """Read-only quote projection for GET /api/v1/portal/quotes/{token}."""

    quote_number: str
    valid_until: date | None = None

    @classmethod
    def from_quote(
        cls, quote: Quote, token_expires_at: datetime
    ) -> "QuotePortalResponse":
        """Project a Quote row, attaching the token's expiry."""
        return cls.model_validate(
            {
                "id": quote.id,
                "quote_number": quote.quote_number,
                "status": quote.status,
                "subtotal": quote.subtotal,
                "tax": quote.tax,
                "total": quote.total,
                "valid_until": quote.valid_until,
                "notes": quote.notes,
                "line_items": quote.line_items or [],
                "customer_name": quote.customer_name,
                "customer_email": quote.customer_email,
                "created_at": quote.created_at,
                "token_expires_at": token_expires_at,
            }
        )


class InvoicePortalResponse(_DocumentProjection):
    """Read-only invoice projection for GET /api/v1/portal/invoices/{token}."""

    invoice_number: str
    due_date: date | None = None
    issued_date: date | None = None
    customer_phone: str | None = None
    customer_address: str | None = None

    @classmethod
    def from_invoice(
        cls, invoice: Invoice, token_expires_at: datetime
    ) -> "InvoicePortalResponse":
        """Project an Invoice row, attaching the token's expiry."""
        return cls.model_validate(
            {
                "id": invoice.id,
                "invoice_number": invoice.invoice_number,
                "status": invoice.status,
                "subtotal": invoice.subtotal,
                "tax": invoice.tax,
                "total": invoice.total,
                "due_date": invoice.due_date,
                "issued_date": invoice.issued_date,
                "notes": invoice.notes,
                "line_items": invoice.line_items or [],
                "customer_name": invoice.customer_name,
                "customer_email": invoice.customer_email,
                "customer_phone": invoice.customer_phone,
                "customer_address": invoice.customer_address,
                "created_at": invoice.created_at,
                "token_expires_at": token_expires_at,
            }
        )


# =============================================================================
# Customer actions
# =============================================================================


class PaymentInitiationResponse(BaseModel):
    """Placeholder acknowledgment for POST /portal/invoices/{token}/pay."""

    success: bool = True
    message: str = "Payment integration coming soon"
    invoice_id: uuid.UUID
    amount: Decimal

    @field_serializer("amount")
    def _money(self, value: Decimal) -> str:
        return f"{value:.2f}"


class QuoteDeclineRequest(BaseModel):
    """Optional body for POST /portal/quotes/{token}/decline."""

    model_config = ConfigDict(extra="forbid")

    reason: str | None = Field(default=None, max_length=1000)


class QuoteResponseAck(BaseModel):
    """Acknowledgment for quote accept/decline."""

    success: bool = True
    quote_id: uuid.UUID
    status: Literal["accepted", "declined"]
    message: str


# =============================================================================
# Staff token management
# =============================================================================


class PortalTokenCreateRequest(BaseModel):
    """Body for POST /api/v1/portal-tokens."""

    model_config = ConfigDict(extra="forbid")

    resource_type: Literal["quote", "invoice"]
    resource_id: uuid.UUID
    expires_in_days: int | None = Field(default=None, ge=1, le=365)


class PortalTokenRegenerateRequest(BaseModel):
    """Optional body for POST /api/v1/portal-tokens/{id}/regenerate."""

    model_config = ConfigDict(extra="forbid")

    expires_in_days: int | None = Field(default=None, ge=1, le=365)


class PortalTokenIssueResponse(BaseModel):
    """Issued (or reused) token and its shareable URL."""

    id: uuid.UUID
    token: str
    token_type: str
    portal_url: str
    expires_at: datetime
    reused: bool


class PortalTokenResponse(BaseModel):
    """Staff view of a stored token."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    token_type: str
    resource_id: uuid.UUID | None
    customer_id: uuid.UUID
    expires_at: datetime
    revoked_at: datetime | None
    created_at: datetime
    last_accessed_at: datetime | None
    access_count: int

    @classmethod
    def from_model(cls, row: PortalToken) -> "PortalTokenResponse":
        """Build from a PortalToken row."""
        return cls.model_validate(row)


class PortalAccessLogResponse(BaseModel):
    """One row of a token's audit trail."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    action: str
    outcome: str
    ip_address: str | None
    user_agent: str | None
    accessed_at: datetime

    @classmethod
    def from_model(cls, row: PortalAccessLog) -> "PortalAccessLogResponse":
        """Build from a PortalAccessLog row."""
        return cls.model_validate(row)
