"""Pydantic request/response schemas for API endpoints."""

from app.schemas.portal import (
    InvoicePortalResponse,
    PaymentInitiationResponse,
    PortalAccessLogResponse,
    PortalTokenCreateRequest,
    PortalTokenIssueResponse,
    PortalTokenRegenerateRequest,
    PortalTokenResponse,
    QuoteDeclineRequest,
    QuotePortalResponse,
    QuoteResponseAck,
    TokenValidationResponse,
)

__all__ = [
    # Customer portal
    "InvoicePortalResponse",
    "PaymentInitiationResponse",
    "QuoteDeclineRequest",
    "QuotePortalResponse",
    "QuoteResponseAck",
    "TokenValidationResponse",
    # Staff token management
    "PortalAccessLogResponse",
    "PortalTokenCreateRequest",
    "PortalTokenIssueResponse",
    "PortalTokenRegenerateRequest",
    "PortalTokenResponse",
]
