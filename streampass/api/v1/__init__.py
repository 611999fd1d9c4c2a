"""Versioned API (v1).

Import the aggregated router from the routers subpackage:

    from streampass.api.v1.routers import router as api_v1_router
"""

__all__ = []
