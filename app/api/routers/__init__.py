"""
app/api/routers package marker.
"""

from app.api.routers.case_import import router as case_import_router

__all__ = [
    "case_import_router",
]
