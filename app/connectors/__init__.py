"""
app/connectors package marker.
"""

from app.connectors.import_store_client import HTTPImportStore, ImportStoreRequestError

__all__ = [
    "HTTPImportStore",
    "ImportStoreRequestError",
]
