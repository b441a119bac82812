# clinidoc/routers/__init__.py
"""
API routers for v1 endpoints.
"""

from clinidoc.routers.admin_retention import router as admin_retention_router
from clinidoc.routers.documents import router as documents_router
from clinidoc.routers.patients import router as patients_router

__all__ = [
    "admin_retention_router",
    "documents_router",
    "patients_router",
]
