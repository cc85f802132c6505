"""Portal access guard - token verdicts for customer portal routes.

Every token-scoped portal route runs the same ordered checks before it
touches a resource. The first failing check decides the verdict:

1. Lookup: no row for the token (scoped to the route's token type)
   -> NOT_FOUND
2. Expiry: ``expires_at <= now`` -> EXPIRED
3. Revocation: ``revoked_at`` set -> REVOKED
4. Resource state: the call site's state check returns a reason
   -> INVALID_STATE
5. Otherwise -> VALID, carrying the token and resolved resource

Expiry is checked before revocation, so a token that is both expired and
revoked reports EXPIRED. Routes depend on this ordering.

A token of the wrong type is reported as NOT_FOUND because the lookup is
filtered by type; there is no separate mismatch verdict. An invoice
token can never validate against a quote route.

The guard does no I/O of its own beyond awaiting the injected lookup and
has no side effects. Audit logging and state changes belong to the caller
and happen only after the verdict is known.
"""

import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Protocol

# =============================================================================
# Enums
# =============================================================================


class TokenType(str, Enum):
    """Resource class a portal token may address.

    Values match the ck_portal_tokens_token_type check constraint.
    """

    QUOTE = "quote"
    INVOICE = "invoice"
    JOB = "job"
    DASHBOARD = "dashboard"


class GuardOutcome(str, Enum):
    """Verdict produced by evaluate()."""

    VALID = "valid"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    REVOKED = "revoked"
    INVALID_STATE = "invalid_state"


# =============================================================================
# Data contracts
# =============================================================================


class TokenRecord(Protocol):
    """Token fields the guard reads. Satisfied by the PortalToken model."""

    id: uuid.UUID
    token: str
    token_type: str
    resource_id: uuid.UUID | None
    customer_id: uuid.UUID
    org_id: uuid.UUID
    expires_at: datetime
    revoked_at: datetime | None


@dataclass(frozen=True)
class TokenLookupResult:
    """A token row plus the resource it targets.

    Attributes:
        token: The stored token row.
        resource: The resolved quote/invoice, or None for untyped lookups.
    """

    token: TokenRecord
    resource: Any | None = None


TokenLookupFn = Callable[[str, "TokenType | None"], Awaitable[TokenLookupResult | None]]
"""Looks up a token string, optionally scoped to a token type."""

StateCheck = Callable[[Any], str | None]
"""Returns a human-readable reason when the resource forbids the action."""


@dataclass(frozen=True)
class GuardResult:
    """Verdict for one token presentation.

    Attributes:
        outcome: Which check decided the verdict.
        token: The matched token row (None only for NOT_FOUND).
        resource: The resolved resource (set for VALID and INVALID_STATE).
        reason: Why the resource state forbids the action (INVALID_STATE).
    """

    outcome: GuardOutcome
    token: TokenRecord | None = None
    resource: Any | None = None
    reason: str | None = None

    @property
    def is_valid(self) -> bool:
        """True when the token authorizes the action."""
        return self.outcome is GuardOutcome.VALID


# =============================================================================
# Evaluation
# =============================================================================


def check_token(
    found: TokenLookupResult,
    now: datetime,
    state_check: StateCheck | None = None,
) -> GuardResult:
    """Apply checks 2-5 to a token that the lookup already matched.

    Args:
        found: Lookup result for the presented token.
        now: Timezone-aware evaluation instant.
        state_check: Optional call-site check on the resolved resource.

    Returns:
        GuardResult for the token.
    """
    token = found.token

    if token.expires_at <= now:
        return GuardResult(outcome=GuardOutcome.EXPIRED, token=token)

    if token.revoked_at is not None:
        return GuardResult(outcome=GuardOutcome.REVOKED, token=token)

    if state_check is not None:
        reason = state_check(found.resource)
        if reason is not None:
            return GuardResult(
                outcome=GuardOutcome.INVALID_STATE,
                token=token,
                resource=found.resource,
                reason=reason,
            )

    return GuardResult(outcome=GuardOutcome.VALID, token=token, resource=found.resource)


async def evaluate(
    token: str,
    required_type: TokenType | None,
    lookup: TokenLookupFn,
    now: datetime,
    state_check: StateCheck | None = None,
) -> GuardResult:
    """Decide whether ``token`` currently authorizes an action.

    Args:
        token: Token string from the URL.
        required_type: Token type the call site accepts; None accepts any.
        lookup: Type-scoped token store lookup.
        now: Timezone-aware evaluation instant.
        state_check: Optional call-site check on the resolved resource.

    Returns:
        GuardResult. Expected failures are verdicts, not exceptions.
    """
    if not token:
        return GuardResult(outcome=GuardOutcome.NOT_FOUND)

    found = await lookup(token, required_type)
    if found is None:
        return GuardResult(outcome=GuardOutcome.NOT_FOUND)

    return check_token(found, now, state_check)


# =============================================================================
# Call-site state checks
# =============================================================================

_UNPAYABLE_INVOICE_STATUSES = frozenset({"cancelled", "void"})


def quote_awaiting_response(verb: str) -> StateCheck:
    """Build a state check that only admits quotes in ``sent`` status.

    Args:
        verb: Action named in the reason, e.g. "accept" or "decline".

    Returns:
        StateCheck for quote accept/decline routes.
    """

    def check(quote: Any) -> str | None:
        if quote.status != "sent":
            return f"Cannot {verb} a quote with status: {quote.status}"
        return None

    return check


def invoice_payable(invoice: Any) -> str | None:
    """State check for the invoice pay route."""
    if invoice.status == "paid":
        return "This invoice has already been paid"
    if invoice.status in _UNPAYABLE_INVOICE_STATUSES:
        return "This invoice is no longer payable"
    return None
