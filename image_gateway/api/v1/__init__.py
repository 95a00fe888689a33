"""API v1 module.

Contains all v1 API routes.
"""

from fastapi import APIRouter

from image_gateway.api.v1.images import router as images_router

router = APIRouter(prefix="/api/v1")
router.include_router(images_router)

__all__ = ["router"]
