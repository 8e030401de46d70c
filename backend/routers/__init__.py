"""
Run Ingest Engine - API Routers
"""

from .admin import router as admin_router
from .health import router as health_router
from .ingest import router as ingest_router

__all__ = [
    "admin_router",
    "health_router",
    "ingest_router",
]
