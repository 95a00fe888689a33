"""API module for the image gateway.

Contains versioned API routers.
"""

from image_gateway.api.v1 import router as v1_router

__all__ = ["v1_router"]
