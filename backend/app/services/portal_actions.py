"""Customer-initiated quote transitions from the portal.

Accept and decline both require the quote to be ``sent``. The guard
checks that before the action runs, but a concurrent request can move the
quote in between, so the transition itself is a compare-and-swap UPDATE.
When it matches no row the action fails with INVALID_STATE and nothing is
written. The activity log row is added in the same transaction as the
status change.
"""

import uuid

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import InvalidStateError
from app.repositories.access_log_repository import AccessLogRepository
from app.repositories.document_repository import DocumentRepository

logger = structlog.get_logger()

_AWAITING_RESPONSE = "sent"
_SOURCE = "customer_portal"


async def _transition(
    db: AsyncSession,
    *,
    quote_id: uuid.UUID,
    org_id: uuid.UUID,
    quote_number: str,
    to_status: str,
    verb: str,
    ip_address: str | None,
    decline_reason: str | None = None,
) -> None:
    moved = await DocumentRepository.transition_quote_status(
        db, quote_id, from_status=_AWAITING_RESPONSE, to_status=to_status
    )
    if not moved:
        logger.info(
            "portal_quote_transition_conflict",
            quote_id=str(quote_id),
            to_status=to_status,
        )
        raise InvalidStateError(
            f"Cannot {verb} this quote: it is no longer awaiting a response"
        )

    description = f"Quote {quote_number} {to_status} by customer via portal"
    if decline_reason:
        description = f"{description}: {decline_reason}"

    await AccessLogRepository.add_activity(
        db,
        org_id=org_id,
        entity_type="quote",
        entity_id=quote_id,
        action="status_changed",
        description=description,
        metadata={
            "old_status": _AWAITING_RESPONSE,
            "new_status": to_status,
            "source": _SOURCE,
            "ip_address": ip_address,
            "decline_reason": decline_reason,
        },
    )
    logger.info(
        "portal_quote_transitioned", quote_id=str(quote_id), to_status=to_status
    )


async def accept_quote(
    db: AsyncSession,
    *,
    quote_id: uuid.UUID,
    org_id: uuid.UUID,
    quote_number: str,
    ip_address: str | None,
) -> None:
    """Move a sent quote to accepted.

    Args:
        db: Request-scoped async session (committed by get_db).
        quote_id: Quote UUID.
        org_id: Owning organization.
        quote_number: Display number for the activity description.
        ip_address: Client IP recorded in the activity metadata.

    Raises:
        InvalidStateError: If the quote is no longer ``sent``.
    """
    await _transition(
        db,
        quote_id=quote_id,
        org_id=org_id,
        quote_number=quote_number,
        to_status="accepted",
        verb="accept",
        ip_address=ip_address,
    )


async def decline_quote(
    db: AsyncSession,
    *,
    quote_id: uuid.UUID,
    org_id: uuid.UUID,
    quote_number: str,
    ip_address: str | None,
    reason: str | None = None,
) -> None:
    """Move a sent quote to declined, recording the customer's reason.

    Raises:
        InvalidStateError: If the quote is no longer ``sent``.
    """
    await _transition(
        db,
        quote_id=quote_id,
        org_id=org_id,
        quote_number=quote_number,
        to_status="declined",
        verb="decline",
        ip_address=ip_address,
        decline_reason=reason or None,
    )
