"""API version 1 routes."""

from fastapi import APIRouter

from basket.api.v1 import categories, groups, mappings, overrides, products, suggestions

router = APIRouter(prefix="/api/v1")

# Include routers
router.include_router(mappings.router)
router.include_router(groups.router)
router.include_router(products.router)
router.include_router(suggestions.router)
router.include_router(overrides.router)
router.include_router(categories.router)
