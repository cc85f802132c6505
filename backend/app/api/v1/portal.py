"""Customer portal API router.

Unauthenticated endpoints reached through emailed links. The token in the
URL is the only credential. Every handler runs the same pipeline:

    rate limit (per IP) -> access guard -> action (on VALID) -> audit -> response

Audit entries are queued on the background AccessLogWriter whenever the
guard resolved a token, whatever the verdict. Unknown tokens are not
audited because there is no token row to attach the entry to.
"""

import uuid
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import AuditWriter, DbSession, PortalPayLimit, PortalViewLimit
from app.core.config import settings
from app.core.errors import (
    InvalidStateError,
    TokenExpiredError,
    TokenNotFoundError,
    TokenRevokedError,
)
from app.core.rate_limiting import get_client_ip
from app.core.responses import DataResponse
from app.repositories.document_repository import DocumentRepository
from app.schemas.portal import (
    CustomerSummary,
    InvoicePortalResponse,
    OrganizationBranding,
    PaymentInitiationResponse,
    QuoteDeclineRequest,
    QuotePortalResponse,
    QuoteResponseAck,
    TokenValidationResponse,
)
from app.services import portal_actions
from app.services.portal_audit import AccessLogEntry, AccessLogWriter
from app.services.portal_guard import (
    GuardOutcome,
    GuardResult,
    StateCheck,
    TokenRecord,
    TokenType,
    evaluate,
    invoice_payable,
    quote_awaiting_response,
)
from app.services.portal_tokens import make_token_lookup

router = APIRouter()

# =============================================================================
# Guard pipeline
# =============================================================================

_ACTION_VALIDATE = "validate"
_ACTION_QUOTE_VIEWED = "quote_viewed"
_ACTION_INVOICE_VIEWED = "invoice_viewed"
_ACTION_PDF_DOWNLOAD = "pdf_download"
_ACTION_PAYMENT_INITIATED = "payment_initiated"
_ACTION_QUOTE_ACCEPTED = "quote_accepted"
_ACTION_QUOTE_DECLINED = "quote_declined"


def _audit(
    writer: AccessLogWriter,
    request: Request,
    *,
    token_id: uuid.UUID,
    action: str,
    outcome: GuardOutcome,
    now: datetime,
) -> None:
    writer.submit(
        AccessLogEntry(
            token_id=token_id,
            action=action,
            outcome=outcome.value,
            ip_address=get_client_ip(request),
            user_agent=request.headers.get("user-agent"),
            accessed_at=now,
            record_access=outcome is GuardOutcome.VALID,
        )
    )


def _raise_for_verdict(verdict: GuardResult) -> None:
    """Map a non-VALID verdict onto its API error."""
    if verdict.outcome is GuardOutcome.NOT_FOUND:
        raise TokenNotFoundError()
    if verdict.outcome is GuardOutcome.EXPIRED:
        raise TokenExpiredError()
    if verdict.outcome is GuardOutcome.REVOKED:
        raise TokenRevokedError()
    if verdict.outcome is GuardOutcome.INVALID_STATE:
        raise InvalidStateError(verdict.reason or "Action not allowed")


async def _guard(
    db: AsyncSession,
    writer: AccessLogWriter,
    request: Request,
    token: str,
    *,
    token_type: TokenType | None,
    action: str,
    now: datetime,
    state_check: StateCheck | None = None,
    audit_valid: bool = True,
) -> tuple[TokenRecord, Any]:
    """Evaluate a token, auditing and raising for every non-VALID verdict.

    Args:
        audit_valid: Queue the VALID audit entry here. Mutating handlers
            pass False and audit after their action instead.

    Returns:
        The matched token row and its resolved resource.
    """
    lookup = make_token_lookup(db)
    verdict = await evaluate(token, token_type, lookup, now, state_check)

    if verdict.token is not None and (audit_valid or not verdict.is_valid):
        _audit(
            writer,
            request,
            token_id=verdict.token.id,
            action=action,
            outcome=verdict.outcome,
            now=now,
        )

    _raise_for_verdict(verdict)
    if verdict.token is None:
        raise TokenNotFoundError()
    return verdict.token, verdict.resource


# =============================================================================
# GET /validate/{token}
# =============================================================================


@router.get("/validate/{token}")
async def validate_token(
    token: str,
    request: Request,
    db: DbSession,
    writer: AuditWriter,
    _limit: PortalViewLimit,
) -> DataResponse[TokenValidationResponse]:
    """Check a token of any type and return its portal context.

    Read-only: repeated calls return the same verdict for the same token
    state.
    """
    now = datetime.now(UTC)
    row, _ = await _guard(
        db,
        writer,
        request,
        token,
        token_type=None,
        action=_ACTION_VALIDATE,
        now=now,
    )
    organization = await DocumentRepository.get_organization(db, row.org_id)
    customer = await DocumentRepository.get_customer(db, row.customer_id)

    branding = (
        OrganizationBranding(
            name=organization.name,
            logo_url=organization.logo_url,
            primary_color=organization.primary_color,
            email=organization.email,
            phone=organization.phone,
        )
        if organization is not None
        else OrganizationBranding()
    )
    customer_summary = (
        CustomerSummary(name=customer.name, email=customer.email or "")
        if customer is not None
        else CustomerSummary()
    )

    return DataResponse(
        data=TokenValidationResponse(
            token_type=row.token_type,
            resource_id=row.resource_id,
            expires_at=row.expires_at,
            organization=branding,
            customer=customer_summary,
        )
    )


# =============================================================================
# Quotes
# =============================================================================


@router.get("/quotes/{token}")
async def get_portal_quote(
    token: str,
    request: Request,
    db: DbSession,
    writer: AuditWriter,
    _limit: PortalViewLimit,
) -> DataResponse[QuotePortalResponse]:
    """Return the read-only quote a quote token points to."""
    row, resource = await _guard(
        db,
        writer,
        request,
        token,
        token_type=TokenType.QUOTE,
        action=_ACTION_QUOTE_VIEWED,
        now=datetime.now(UTC),
    )
    return DataResponse(data=QuotePortalResponse.from_quote(resource, row.expires_at))


@router.get("/quotes/{token}/pdf", response_model=None)
async def get_portal_quote_pdf(
    token: str,
    request: Request,
    db: DbSession,
    writer: AuditWriter,
    _limit: PortalViewLimit,
) -> RedirectResponse:
    """Redirect to the quote's PDF rendering."""
    _, resource = await _guard(
        db,
        writer,
        request,
        token,
        token_type=TokenType.QUOTE,
        action=_ACTION_PDF_DOWNLOAD,
        now=datetime.now(UTC),
    )
    return _pdf_redirect("quotes", resource.id)


@router.post("/quotes/{token}/accept")
async def accept_portal_quote(
    token: str,
    request: Request,
    db: DbSession,
    writer: AuditWriter,
    _limit: PortalViewLimit,
) -> DataResponse[QuoteResponseAck]:
    """Accept a sent quote on the customer's behalf.

    Only one of several concurrent acceptances succeeds; the rest get 400.
    """
    now = datetime.now(UTC)
    row, quote = await _guard(
        db,
        writer,
        request,
        token,
        token_type=TokenType.QUOTE,
        action=_ACTION_QUOTE_ACCEPTED,
        now=now,
        state_check=quote_awaiting_response("accept"),
        audit_valid=False,
    )

    try:
        await portal_actions.accept_quote(
            db,
            quote_id=quote.id,
            org_id=quote.org_id,
            quote_number=quote.quote_number,
            ip_address=get_client_ip(request),
        )
    except InvalidStateError:
        _audit(
            writer,
            request,
            token_id=row.id,
            action=_ACTION_QUOTE_ACCEPTED,
            outcome=GuardOutcome.INVALID_STATE,
            now=now,
        )
        raise

    _audit(
        writer,
        request,
        token_id=row.id,
        action=_ACTION_QUOTE_ACCEPTED,
        outcome=GuardOutcome.VALID,
        now=now,
    )
    return DataResponse(
        data=QuoteResponseAck(
            quote_id=quote.id,
            status="accepted",
            message="Quote accepted successfully",
        )
    )


@router.post("/quotes/{token}/decline")
async def decline_portal_quote(
    token: str,
    request: Request,
    db: DbSession,
    writer: AuditWriter,
    _limit: PortalViewLimit,
    body: QuoteDeclineRequest | None = None,
) -> DataResponse[QuoteResponseAck]:
    """Decline a sent quote, optionally with a reason."""
    now = datetime.now(UTC)
    row, quote = await _guard(
        db,
        writer,
        request,
        token,
        token_type=TokenType.QUOTE,
        action=_ACTION_QUOTE_DECLINED,
        now=now,
        state_check=quote_awaiting_response("decline"),
        audit_valid=False,
    )
    reason = body.reason.strip() if body is not None and body.reason else None

    try:
        await portal_actions.decline_quote(
            db,
            quote_id=quote.id,
            org_id=quote.org_id,
            quote_number=quote.quote_number,
            ip_address=get_client_ip(request),
            reason=reason,
        )
    except InvalidStateError:
        _audit(
            writer,
            request,
            token_id=row.id,
            action=_ACTION_QUOTE_DECLINED,
            outcome=GuardOutcome.INVALID_STATE,
            now=now,
        )
        raise

    _audit(
        writer,
        request,
        token_id=row.id,
        action=_ACTION_QUOTE_DECLINED,
        outcome=GuardOutcome.VALID,
        now=now,
    )
    return DataResponse(
        data=QuoteResponseAck(
            quote_id=quote.id,
            status="declined",
            message="Quote declined",
        )
    )


# =============================================================================
# Invoices
# =============================================================================


@router.get("/invoices/{token}")
async def get_portal_invoice(
    token: str,
    request: Request,
    db: DbSession,
    writer: AuditWriter,
    _limit: PortalViewLimit,
) -> DataResponse[InvoicePortalResponse]:
    """Return the read-only invoice an invoice token points to."""
    row, resource = await _guard(
        db,
        writer,
        request,
        token,
        token_type=TokenType.INVOICE,
        action=_ACTION_INVOICE_VIEWED,
        now=datetime.now(UTC),
    )
    return DataResponse(
        data=InvoicePortalResponse.from_invoice(resource, row.expires_at)
    )


@router.get("/invoices/{token}/pdf", response_model=None)
async def get_portal_invoice_pdf(
    token: str,
    request: Request,
    db: DbSession,
    writer: AuditWriter,
    _limit: PortalViewLimit,
) -> RedirectResponse:
    """Redirect to the invoice's PDF rendering."""
    _, resource = await _guard(
        db,
        writer,
        request,
        token,
        token_type=TokenType.INVOICE,
        action=_ACTION_PDF_DOWNLOAD,
        now=datetime.now(UTC),
    )
    return _pdf_redirect("invoices", resource.id)


@router.post("/invoices/{token}/pay")
async def pay_portal_invoice(
    token: str,
    request: Request,
    db: DbSession,
    writer: AuditWriter,
    _limit: PortalPayLimit,
) -> DataResponse[PaymentInitiationResponse]:
    """Acknowledge a payment request for an outstanding invoice.

    Payment processing is not wired up; this returns a placeholder
    acknowledgment once the invoice is confirmed payable.
    """
    _, invoice = await _guard(
        db,
        writer,
        request,
        token,
        token_type=TokenType.INVOICE,
        action=_ACTION_PAYMENT_INITIATED,
        now=datetime.now(UTC),
        state_check=invoice_payable,
    )
    return DataResponse(
        data=PaymentInitiationResponse(invoice_id=invoice.id, amount=invoice.total)
    )


def _pdf_redirect(kind: str, resource_id: uuid.UUID) -> RedirectResponse:
    base = settings.app_url.rstrip("/")
    return RedirectResponse(
        url=f"{base}/api/{kind}/{resource_id}/pdf", status_code=307
    )
