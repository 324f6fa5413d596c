"""Auto-parts catalog toolkit: filtering, bulk import and maintenance."""

__version__ = "0.1.0"

# Re-export main components for convenient imports
from catalog.config import DB_PATH, PAGE_SIZE, PRODUCTS_COLLECTION
from catalog.errors import ErrorKind, StoreError, classify_error
from catalog.filters import CatalogFilter, FilterResult, filter_and_sort
from catalog.importer import ImportResult, import_rows, store_upsert
from catalog.models import ActiveVehicle, FilterState, Product
from catalog.store import DocumentStore, SQLiteDocumentStore, open_document_store

__all__ = [
    # Version
    "__version__",
    # Config
    "DB_PATH",
    "PAGE_SIZE",
    "PRODUCTS_COLLECTION",
    # Models
    "ActiveVehicle",
    "FilterState",
    "Product",
    # Filtering
    "CatalogFilter",
    "FilterResult",
    "filter_and_sort",
    # Import
    "ImportResult",
    "import_rows",
    "store_upsert",
    # Storage
    "DocumentStore",
    "SQLiteDocumentStore",
    "open_document_store",
    # Errors
    "ErrorKind",
    "StoreError",
    "classify_error",
]
