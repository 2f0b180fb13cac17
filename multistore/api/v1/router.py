"""API v1 router combining all route modules."""

from fastapi import APIRouter

from multistore.api.v1 import health, multi_store, stores

api_router = APIRouter()

# Include health check routes (no prefix)
api_router.include_router(health.router)

# Primary store onboarding
api_router.include_router(
    stores.router,
    prefix="/stores",
    tags=["stores"],
)

# Backup stores, product mappings and checkout routing
# (dashboard endpoints require auth, checkout-redirect is public)
api_router.include_router(
    multi_store.router,
    prefix="/multi-store",
    tags=["multi-store"],
)
