"""
API v1 package initialization.

Collects the v1 routers of the storefront API.
"""

from storefront.api.v1.orders import router as orders_router

__all__ = ["orders_router"]
