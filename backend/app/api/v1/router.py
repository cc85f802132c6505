"""API v1 router aggregator.

All v1 endpoint routers are included here under the /api/v1 prefix.
"""

from fastapi import APIRouter

from app.api.v1 import portal, portal_tokens

router = APIRouter()

# =============================================================================
# Customer portal (token in URL, unauthenticated)
# =============================================================================

router.include_router(portal.router, prefix="/portal", tags=["portal"])

# =============================================================================
# Staff token management (authenticated)
# =============================================================================

router.include_router(
    portal_tokens.router, prefix="/portal-tokens", tags=["portal-tokens"]
)
