"""Tests for the portal access guard.

Verdict ordering: not found -> expired -> revoked -> invalid state -> valid.
The guard is pure, so these tests use an in-memory lookup and fixed clocks.
"""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from app.services.portal_guard import (
    GuardOutcome,
    TokenLookupResult,
    TokenType,
    check_token,
    evaluate,
    invoice_payable,
    quote_awaiting_response,
)

_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


@dataclass
class _Token:
    token: str
    token_type: str
    expires_at: datetime
    revoked_at: datetime | None = None
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    resource_id: uuid.UUID | None = field(default_factory=uuid.uuid4)
    customer_id: uuid.UUID = field(default_factory=uuid.uuid4)
    org_id: uuid.UUID = field(default_factory=uuid.uuid4)


@dataclass
class _Doc:
    status: str
    id: uuid.UUID = field(default_factory=uuid.uuid4)


class _Store:
    """Type-scoped in-memory lookup that counts calls."""

    def __init__(self, *rows: tuple[_Token, Any]) -> None:
        self._rows = {t.token: (t, r) for t, r in rows}
        self.calls: list[tuple[str, TokenType | None]] = []

    async def __call__(
        self, token: str, required_type: TokenType | None
    ) -> TokenLookupResult | None:
        self.calls.append((token, required_type))
        found = self._rows.get(token)
        if found is None:
            return None
        row, resource = found
        if required_type is not None and row.token_type != required_type.value:
            return None
        return TokenLookupResult(token=row, resource=resource)


def _quote_token(**kwargs: Any) -> _Token:
    kwargs.setdefault("expires_at", _NOW + timedelta(days=7))
    return _Token(token=kwargs.pop("token", "quote-tok"), token_type="quote", **kwargs)


def _invoice_token(**kwargs: Any) -> _Token:
    kwargs.setdefault("expires_at", _NOW + timedelta(days=30))
    return _Token(
        token=kwargs.pop("token", "invoice-tok"), token_type="invoice", **kwargs
    )


# =============================================================================
# Lookup
# =============================================================================


class TestNotFound:
    """Tokens that do not resolve for the requested type."""

    async def test_unknown_token_is_not_found(self) -> None:
        result = await evaluate("nope", TokenType.QUOTE, _Store(), _NOW)
        assert result.outcome is GuardOutcome.NOT_FOUND
        assert result.token is None
        assert result.resource is None

    async def test_empty_token_is_not_found_without_lookup(self) -> None:
        store = _Store()
        result = await evaluate("", TokenType.QUOTE, store, _NOW)
        assert result.outcome is GuardOutcome.NOT_FOUND
        assert store.calls == []

    async def test_invoice_token_on_quote_route_is_not_found(self) -> None:
        """A token of another type never leaks through a typed route."""
        store = _Store((_invoice_token(), _Doc(status="sent")))
        result = await evaluate("invoice-tok", TokenType.QUOTE, store, _NOW)
        assert result.outcome is GuardOutcome.NOT_FOUND
        assert store.calls == [("invoice-tok", TokenType.QUOTE)]

    async def test_wrong_type_hides_expiry_and_revocation(self) -> None:
        row = _invoice_token(
            expires_at=_NOW - timedelta(days=1), revoked_at=_NOW - timedelta(days=2)
        )
        store = _Store((row, None))
        result = await evaluate("invoice-tok", TokenType.QUOTE, store, _NOW)
        assert result.outcome is GuardOutcome.NOT_FOUND

    async def test_untyped_lookup_accepts_any_type(self) -> None:
        store = _Store((_invoice_token(), None))
        result = await evaluate("invoice-tok", None, store, _NOW)
        assert result.outcome is GuardOutcome.VALID
        assert result.token is not None
        assert result.token.token_type == "invoice"


# =============================================================================
# Expiry and revocation
# =============================================================================


class TestExpiryAndRevocation:
    """Time-window checks, in order."""

    async def test_expired_token(self) -> None:
        store = _Store((_quote_token(expires_at=_NOW - timedelta(seconds=1)), None))
        result = await evaluate("quote-tok", TokenType.QUOTE, store, _NOW)
        assert result.outcome is GuardOutcome.EXPIRED
        assert result.token is not None

    async def test_expiry_boundary_is_exclusive(self) -> None:
        """expires_at == now is already expired."""
        store = _Store((_quote_token(expires_at=_NOW), None))
        result = await evaluate("quote-tok", TokenType.QUOTE, store, _NOW)
        assert result.outcome is GuardOutcome.EXPIRED

    async def test_one_microsecond_before_expiry_is_valid(self) -> None:
        row = _quote_token(expires_at=_NOW + timedelta(microseconds=1))
        store = _Store((row, _Doc("sent")))
        result = await evaluate("quote-tok", TokenType.QUOTE, store, _NOW)
        assert result.outcome is GuardOutcome.VALID

    async def test_revoked_token(self) -> None:
        store = _Store((_quote_token(revoked_at=_NOW - timedelta(hours=1)), None))
        result = await evaluate("quote-tok", TokenType.QUOTE, store, _NOW)
        assert result.outcome is GuardOutcome.REVOKED

    async def test_expired_and_revoked_reports_expired(self) -> None:
        row = _quote_token(
            expires_at=_NOW - timedelta(days=1),
            revoked_at=_NOW - timedelta(days=3),
        )
        result = await evaluate("quote-tok", TokenType.QUOTE, _Store((row, None)), _NOW)
        assert result.outcome is GuardOutcome.EXPIRED

    async def test_future_revocation_timestamp_still_revokes(self) -> None:
        """Revocation is a flag, not a scheduled time."""
        row = _quote_token(revoked_at=_NOW + timedelta(days=1))
        result = await evaluate("quote-tok", TokenType.QUOTE, _Store((row, None)), _NOW)
        assert result.outcome is GuardOutcome.REVOKED


# =============================================================================
# Resource state
# =============================================================================


class TestStateCheck:
    """Call-site state checks run last and only on live tokens."""

    async def test_state_check_failure_is_invalid_state(self) -> None:
        quote = _Doc(status="accepted")
        store = _Store((_quote_token(), quote))
        result = await evaluate(
            "quote-tok",
            TokenType.QUOTE,
            store,
            _NOW,
            quote_awaiting_response("accept"),
        )
        assert result.outcome is GuardOutcome.INVALID_STATE
        assert result.reason == "Cannot accept a quote with status: accepted"
        assert result.resource is quote

    async def test_state_check_not_run_for_expired_token(self) -> None:
        calls: list[Any] = []

        def check(resource: Any) -> str | None:
            calls.append(resource)
            return "nope"

        row = _quote_token(expires_at=_NOW - timedelta(days=1))
        result = await evaluate(
            "quote-tok", TokenType.QUOTE, _Store((row, _Doc("sent"))), _NOW, check
        )
        assert result.outcome is GuardOutcome.EXPIRED
        assert calls == []

    async def test_valid_carries_token_and_resource(self) -> None:
        row = _quote_token()
        quote = _Doc(status="sent")
        result = await evaluate(
            "quote-tok",
            TokenType.QUOTE,
            _Store((row, quote)),
            _NOW,
            quote_awaiting_response("accept"),
        )
        assert result.is_valid
        assert result.token is row
        assert result.resource is quote
        assert result.reason is None

    async def test_repeated_evaluation_is_stable(self) -> None:
        store = _Store((_quote_token(), _Doc("sent")))
        first = await evaluate("quote-tok", TokenType.QUOTE, store, _NOW)
        second = await evaluate("quote-tok", TokenType.QUOTE, store, _NOW)
        assert first == second


class TestCheckToken:
    """check_token() is the synchronous core of evaluate()."""

    def test_check_token_without_state_check(self) -> None:
        found = TokenLookupResult(token=_quote_token(), resource=None)
        assert check_token(found, _NOW).outcome is GuardOutcome.VALID

    def test_check_token_expired(self) -> None:
        found = TokenLookupResult(token=_quote_token(expires_at=_NOW))
        assert check_token(found, _NOW).outcome is GuardOutcome.EXPIRED


class TestInvoicePayable:
    """State check for the pay route."""

    @pytest.mark.parametrize("status", ["sent", "overdue", "draft"])
    def test_outstanding_invoice_is_payable(self, status: str) -> None:
        assert invoice_payable(_Doc(status=status)) is None

    def test_paid_invoice(self) -> None:
        reason = invoice_payable(_Doc(status="paid"))
        assert reason == "This invoice has already been paid"

    @pytest.mark.parametrize("status", ["cancelled", "void"])
    def test_closed_invoice(self, status: str) -> None:
        reason = invoice_payable(_Doc(status=status))
        assert reason == "This invoice is no longer payable"


class TestQuoteAwaitingResponse:
    """State check for accept/decline."""

    def test_sent_quote_passes(self) -> None:
        assert quote_awaiting_response("accept")(_Doc(status="sent")) is None

    @pytest.mark.parametrize("status", ["draft", "accepted", "declined", "expired"])
    def test_other_statuses_fail(self, status: str) -> None:
        reason = quote_awaiting_response("decline")(_Doc(status=status))
        assert reason == f"Cannot decline a quote with status: {status}"
