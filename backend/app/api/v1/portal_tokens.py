"""Staff portal token management router.

Authenticated endpoints for issuing, revoking and inspecting the links
customers use to reach the portal. Every lookup is scoped to the caller's
organization; tokens of other organizations are reported as not found.
"""

import uuid
from datetime import UTC, datetime
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query, Request

from app.api.deps import CurrentOrgId, DbSession
from app.core.config import settings
from app.core.errors import NotFoundError
from app.core.pagination import PaginationParams, pagination_params
from app.core.rate_limiting import limiter
from app.core.responses import DataResponse, ListResponse, PaginationMeta
from app.repositories.access_log_repository import AccessLogRepository
from app.repositories.portal_token_repository import PortalTokenRepository
from app.schemas.portal import (
    PortalAccessLogResponse,
    PortalTokenCreateRequest,
    PortalTokenIssueResponse,
    PortalTokenRegenerateRequest,
    PortalTokenResponse,
)
from app.services.portal_guard import TokenType
from app.services.portal_tokens import (
    IssuedToken,
    issue_token_for_resource,
    regenerate_token,
    revoke_token,
)

router = APIRouter()

Pagination = Annotated[PaginationParams, Depends(pagination_params)]


def _issue_response(issued: IssuedToken) -> PortalTokenIssueResponse:
    return PortalTokenIssueResponse(
        id=issued.token.id,
        token=issued.token.token,
        token_type=issued.token.token_type,
        portal_url=issued.portal_url,
        expires_at=issued.token.expires_at,
        reused=issued.reused,
    )


# =============================================================================
# POST / (issue)
# =============================================================================


@router.post("", status_code=201)
@limiter.limit(settings.rate_limit_token_issue)
async def create_portal_token(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: PortalTokenCreateRequest,
    org_id: CurrentOrgId,
    db: DbSession,
) -> DataResponse[PortalTokenIssueResponse]:
    """Issue a portal link for a quote or invoice.

    Returns the existing live token (``reused: true``) when the resource
    already has one.
    """
    issued = await issue_token_for_resource(
        db,
        org_id=org_id,
        resource_type=TokenType(body.resource_type),
        resource_id=body.resource_id,
        expires_in_days=body.expires_in_days,
    )
    return DataResponse(data=_issue_response(issued))


# =============================================================================
# GET / (active tokens for a resource)
# =============================================================================


@router.get("")
async def list_portal_tokens(
    org_id: CurrentOrgId,
    db: DbSession,
    resource_type: Annotated[Literal["quote", "invoice"], Query()],
    resource_id: Annotated[uuid.UUID, Query()],
) -> DataResponse[list[PortalTokenResponse]]:
    """List unrevoked, unexpired tokens for one resource, newest first."""
    rows = await PortalTokenRepository.list_active_for_resource(
        db,
        resource_id=resource_id,
        token_type=resource_type,
        now=datetime.now(UTC),
        org_id=org_id,
    )
    return DataResponse(data=[PortalTokenResponse.from_model(r) for r in rows])


# =============================================================================
# POST /{token_id}/revoke, POST /{token_id}/regenerate
# =============================================================================


@router.post("/{token_id}/revoke")
async def revoke_portal_token(
    token_id: uuid.UUID,
    org_id: CurrentOrgId,
    db: DbSession,
) -> DataResponse[PortalTokenResponse]:
    """Revoke a token. Idempotent: revoking twice keeps the first timestamp."""
    row = await revoke_token(db, org_id=org_id, token_id=token_id)
    return DataResponse(data=PortalTokenResponse.from_model(row))


@router.post("/{token_id}/regenerate", status_code=201)
async def regenerate_portal_token(
    token_id: uuid.UUID,
    org_id: CurrentOrgId,
    db: DbSession,
    body: PortalTokenRegenerateRequest | None = None,
) -> DataResponse[PortalTokenIssueResponse]:
    """Revoke a token and issue a replacement bound to the same resource."""
    issued = await regenerate_token(
        db,
        org_id=org_id,
        token_id=token_id,
        expires_in_days=body.expires_in_days if body is not None else None,
    )
    return DataResponse(data=_issue_response(issued))


# =============================================================================
# GET /{token_id}/access-logs
# =============================================================================


@router.get("/{token_id}/access-logs")
async def list_portal_token_access_logs(
    token_id: uuid.UUID,
    org_id: CurrentOrgId,
    db: DbSession,
    pagination: Pagination,
) -> ListResponse[PortalAccessLogResponse]:
    """Return a token's audit trail, newest first."""
    row = await PortalTokenRepository.get_by_id(db, token_id, org_id=org_id)
    if row is None:
        raise NotFoundError("Portal token", str(token_id))

    logs, total = await AccessLogRepository.list_by_token(
        db,
        token_id,
        offset=pagination.offset,
        limit=pagination.limit,
    )
    return ListResponse(
        data=[PortalAccessLogResponse.from_model(log) for log in logs],
        meta=PaginationMeta(
            total=total,
            page=pagination.page,
            per_page=pagination.per_page,
        ),
    )
