"""SQLAlchemy ORM models for FlowTrade.

All models are exported from this module for convenient imports:
    from app.models import PortalToken, Quote, Invoice, ...

Models are organized by domain:
- organization.py: Organization, Customer (tenancy)
- quote.py: Quote
- invoice.py: Invoice
- portal.py: PortalToken, PortalAccessLog, ActivityLog (customer portal)
"""

from app.models.base import Base, TimestampMixin
from app.models.invoice import INVOICE_STATUSES, Invoice
from app.models.organization import Customer, Organization
from app.models.portal import TOKEN_TYPES, ActivityLog, PortalAccessLog, PortalToken
from app.models.quote import QUOTE_STATUSES, Quote

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",
    # Tenancy
    "Organization",
    "Customer",
    # Billing documents
    "Quote",
    "QUOTE_STATUSES",
    "Invoice",
    "INVOICE_STATUSES",
    # Portal
    "PortalToken",
    "PortalAccessLog",
    "ActivityLog",
    "TOKEN_TYPES",
]
