"""Repository for quotes, invoices and their owning organization/customer.

Status changes go through transition_quote_status(), a compare-and-swap
UPDATE. Two concurrent portal acceptances of the same quote both issue
``UPDATE ... WHERE id = :id AND status = 'sent'``; the database lets only
one of them match a row.
"""

import uuid
from typing import Any, cast

from sqlalchemy import func, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.invoice import Invoice
from app.models.organization import Customer, Organization
from app.models.quote import Quote


class DocumentRepository:
    """Stateless repository for Quote, Invoice, Organization and Customer.

    All methods are static with no instance state.
    """

    @staticmethod
    async def get_quote(
        db: AsyncSession,
        quote_id: uuid.UUID,
        *,
        org_id: uuid.UUID | None = None,
    ) -> Quote | None:
        """Fetch a quote, optionally restricted to one organization."""
        quote = await db.get(Quote, quote_id)
        if quote is None or (org_id is not None and quote.org_id != org_id):
            return None
        return quote

    @staticmethod
    async def get_invoice(
        db: AsyncSession,
        invoice_id: uuid.UUID,
        *,
        org_id: uuid.UUID | None = None,
    ) -> Invoice | None:
        """Fetch an invoice, optionally restricted to one organization."""
        invoice = await db.get(Invoice, invoice_id)
        if invoice is None or (org_id is not None and invoice.org_id != org_id):
            return None
        return invoice

    @staticmethod
    async def get_organization(
        db: AsyncSession, org_id: uuid.UUID
    ) -> Organization | None:
        """Fetch an organization by primary key."""
        return await db.get(Organization, org_id)

    @staticmethod
    async def get_customer(db: AsyncSession, customer_id: uuid.UUID) -> Customer | None:
        """Fetch a customer by primary key."""
        return await db.get(Customer, customer_id)

    @staticmethod
    async def transition_quote_status(
        db: AsyncSession,
        quote_id: uuid.UUID,
        *,
        from_status: str,
        to_status: str,
    ) -> bool:
        """Atomically move a quote from one status to another.

        Args:
            db: Async database session.
            quote_id: Quote UUID.
            from_status: Status the quote must currently have.
            to_status: Status to set.

        Returns:
            True if the row was updated, False if the quote was not in
            ``from_status`` when the statement ran.
        """
        result = cast(
            CursorResult[Any],
            await db.execute(
                update(Quote)
                .where(Quote.id == quote_id, Quote.status == from_status)
                .values(status=to_status, updated_at=func.now())
                .execution_options(synchronize_session=False)
            ),
        )
        rows_updated: int = result.rowcount
        return rows_updated > 0
