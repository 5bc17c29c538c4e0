"""API v1 router aggregator.

All v1 endpoint routers are included here, under the /api/v1 prefix
applied by main.py.
"""

from fastapi import APIRouter

from credential_service.api.v1 import auth

router = APIRouter()

# =============================================================================
# Authentication
# =============================================================================

router.include_router(auth.router, prefix="/auth", tags=["auth"])
