"""Concurrent customer actions against PostgreSQL.

Each request gets its own committing session, so the compare-and-swap on
the quote status is decided by the database, not by test ordering.
"""

import asyncio
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select

from app.core.rate_limiting import FixedWindowRateLimiter
from app.models.portal import ActivityLog, PortalToken
from app.services.portal_audit import AccessLogWriter
from tests.conftest import committing_get_db


@pytest_asyncio.fixture
async def portal_db_client(
    db_engine, recording_writer: AccessLogWriter
) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated client with committing sessions per request."""
    from app.core.database import get_db
    from app.core.rate_limiting import get_portal_limiter
    from app.main import app
    from app.services.portal_audit import get_access_log_writer

    limiter = FixedWindowRateLimiter()
    app.dependency_overrides[get_db] = committing_get_db(db_engine)
    app.dependency_overrides[get_access_log_writer] = lambda: recording_writer
    app.dependency_overrides[get_portal_limiter] = lambda: limiter

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def quote_token(db_session, test_quote) -> PortalToken:
    row = PortalToken(
        token="concurrent-quote-token",
        token_type="quote",
        resource_id=test_quote.id,
        customer_id=test_quote.customer_id,
        org_id=test_quote.org_id,
        expires_at=datetime.now(UTC) + timedelta(days=7),
    )
    db_session.add(row)
    await db_session.commit()
    return row


class TestConcurrentQuoteResponses:
    """Only one of several simultaneous responses to a quote succeeds."""

    async def test_two_accepts_one_wins(
        self, portal_db_client, db_session, quote_token, test_quote
    ) -> None:
        url = f"/api/v1/portal/quotes/{quote_token.token}/accept"

        responses = await asyncio.gather(
            portal_db_client.post(url), portal_db_client.post(url)
        )

        assert sorted(r.status_code for r in responses) == [200, 400]
        loser = next(r for r in responses if r.status_code == 400)
        assert loser.json()["error"]["code"] == "INVALID_STATE"

        await db_session.refresh(test_quote)
        assert test_quote.status == "accepted"
        count = await db_session.scalar(
            select(func.count())
            .select_from(ActivityLog)
            .where(ActivityLog.entity_id == test_quote.id)
        )
        assert count == 1

    async def test_accept_and_decline_race(
        self, portal_db_client, db_session, quote_token, test_quote
    ) -> None:
        base = f"/api/v1/portal/quotes/{quote_token.token}"

        accept, decline = await asyncio.gather(
            portal_db_client.post(f"{base}/accept"),
            portal_db_client.post(f"{base}/decline", json={"reason": "changed mind"}),
        )

        assert sorted([accept.status_code, decline.status_code]) == [200, 400]
        await db_session.refresh(test_quote)
        winner = "accepted" if accept.status_code == 200 else "declined"
        assert test_quote.status == winner

    async def test_valid_requests_request_access_bump(
        self, portal_db_client, quote_token, recording_writer, audit_entries
    ) -> None:
        await portal_db_client.get(f"/api/v1/portal/quotes/{quote_token.token}")
        await portal_db_client.get(f"/api/v1/portal/validate/{quote_token.token}")
        await recording_writer.drain()

        assert [e.action for e in audit_entries] == ["quote_viewed", "validate"]
        assert all(e.record_access for e in audit_entries)
