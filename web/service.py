"""Catalog snapshot shared by the API handlers.

Products are read from the document store once and kept in a
``CatalogFilter``; listing requests never hit the store. Admin imports
call ``refresh`` to load a new snapshot.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from flask import current_app

from catalog.config import PRODUCTS_COLLECTION
from catalog.errors import StoreError
from catalog.filters import CatalogFilter
from catalog.importer import ImportResult
from catalog.storage import KeyValueStore
from catalog.store import DocumentStore

from .state import AppState

__all__ = ["CatalogService", "get_catalog"]

logger = logging.getLogger(__name__)

EXTENSION_KEY = "catalog"

# Key-value entry holding the latest admin import summary
LAST_IMPORT_KEY = "admin.last_import"


class CatalogService:
    """Store, snapshot and app state for one Flask app.

    ``kv_store`` keeps small admin state (the latest import summary) across
    restarts; in safe mode it is the in-memory fallback and lasts only for
    the process.
    """

    def __init__(self, store: DocumentStore, kv_store: KeyValueStore, state: AppState):
        self.store = store
        self.kv_store = kv_store
        self.state = state
        self.filter = CatalogFilter()

    @property
    def products(self) -> List[Dict[str, Any]]:
        return self.filter.products

    def refresh(self) -> int:
        """Reload products from the store; returns the product count.

        A store failure keeps the previous snapshot and enters safe mode.
        """
        try:
            products = self.store.list(PRODUCTS_COLLECTION)
        except StoreError as e:
            logger.error(f"Failed to load products: {e}")
            self.state.enter_safe_mode(f"Product catalog unavailable: {e}")
            return len(self.products)
        self.filter.replace_products(products)
        return len(products)

    def get_product(self, doc_id: str) -> Optional[Dict[str, Any]]:
        return self.filter.get(doc_id)

    def record_import(self, filename: str, result: ImportResult) -> Dict[str, Any]:
        """Remember the latest admin import so the dashboard can show it after a reload."""
        summary = {
            "filename": filename,
            "success": result.success,
            "fail": result.fail,
            "total": result.total,
            "finishedAt": datetime.now(timezone.utc).isoformat(),
        }
        self.kv_store.set(LAST_IMPORT_KEY, summary)
        return summary

    def last_import(self) -> Optional[Dict[str, Any]]:
        return self.kv_store.get(LAST_IMPORT_KEY)


def get_catalog() -> CatalogService:
    """The current app's catalog service."""
    return current_app.extensions[EXTENSION_KEY]
