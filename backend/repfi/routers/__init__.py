# backend/repfi/routers/__init__.py
"""
API routers for the REPFI comptable API.

Each router handles a specific domain:
- comptable: Comptable file upload and update, batch status, periods, ETL trigger
- download: Signed links to ETL exports
- navigation: "Retour" redirect
"""

from repfi.routers.comptable import router as comptable_router
from repfi.routers.download import router as download_router
from repfi.routers.navigation import router as navigation_router

__all__ = [
    "comptable_router",
    "download_router",
    "navigation_router",
]
