"""Configuration and constants for the catalog toolkit."""

import os
from pathlib import Path
from typing import Dict, FrozenSet, List

from dotenv import load_dotenv

__all__ = [
    "PROJECT_ROOT",
    "DB_PATH",
    "KV_DB_PATH",
    "PRODUCTS_COLLECTION",
    "TRANSACTIONS_COLLECTION",
    "AFFILIATES_COLLECTION",
    "PAGE_SIZE",
    "SUGGESTION_LIMIT",
    "RELATED_LIMIT",
    "ALL_CATEGORIES",
    "UNIVERSAL_MAKES",
    "UNIVERSAL_CATEGORIES",
    "ALL_YEARS_PHRASES",
    "MIN_YEAR",
    "MAX_YEAR",
    "RATE_LIMIT_COOLDOWN",
    "MAX_RATE_LIMIT_RETRIES",
    "THROTTLE_DELAY",
    "IMPORT_LOG_LIMIT",
    "TEMPLATE_HEADERS",
    "DEFAULT_CATEGORY",
    "MAKE_TYPOS",
    "COMMISSION_MATURITY_DAYS",
    "DEFAULT_COMMISSION_PERCENTAGE",
    "REQUEST_TIMEOUT",
    "SEO_REQUEST_TIMEOUT",
    "HEADERS",
    "RETRY_STATUS_CODES",
    "APPWRITE_ENDPOINT",
    "APPWRITE_PROJECT_ID",
    "APPWRITE_API_KEY",
    "APPWRITE_DATABASE_ID",
    "APPWRITE_PAGE_LIMIT",
]

PROJECT_ROOT = Path(__file__).parent.parent

load_dotenv(dotenv_path=PROJECT_ROOT / ".env")

# Storage
DB_PATH = os.getenv("CATALOG_DB_PATH", "data/catalog.db")
KV_DB_PATH = os.getenv("KV_DB_PATH", "data/kv.db")
PRODUCTS_COLLECTION = "products"
TRANSACTIONS_COLLECTION = "transactions"
AFFILIATES_COLLECTION = "affiliates"

# Storefront listing
PAGE_SIZE = int(os.getenv("PAGE_SIZE", "20"))
SUGGESTION_LIMIT = int(os.getenv("SUGGESTION_LIMIT", "6"))
RELATED_LIMIT = 8

# Sentinel category value meaning "no category filter"
ALL_CATEGORIES = "All"

# Parts tagged with any of these bypass vehicle matching (compared normalized)
UNIVERSAL_MAKES: FrozenSet[str] = frozenset({"universal", "generic", "general", "all"})
UNIVERSAL_CATEGORIES: FrozenSet[str] = frozenset({"universal", "general", "عام", "عامه"})

# yearRange phrases meaning "fits every year"
ALL_YEARS_PHRASES: FrozenSet[str] = frozenset({
    "all",
    "all years",
    "all models",
    "universal",
    "كل السنوات",
    "جميع السنوات",
    "جميع الموديلات",
})

# Bounds for year parsing and for expanding spans into year lists
MIN_YEAR = 1950
MAX_YEAR = 2100

# Bulk import pacing
RATE_LIMIT_COOLDOWN = float(os.getenv("RATE_LIMIT_COOLDOWN", "5.0"))
MAX_RATE_LIMIT_RETRIES = int(os.getenv("MAX_RATE_LIMIT_RETRIES", "3"))
THROTTLE_DELAY = float(os.getenv("THROTTLE_DELAY", "0.25"))
IMPORT_LOG_LIMIT = int(os.getenv("IMPORT_LOG_LIMIT", "50"))

# Spreadsheet columns, in template order
TEMPLATE_HEADERS: List[str] = [
    "productID",
    "name",
    "nameEn",
    "category",
    "subcategory",
    "carMake",
    "carModel",
    "yearRange",
    "partBrand",
    "countryOfOrigin",
    "price",
    "salePrice",
    "viscosity",
    "description",
    "imageUrl",
]
DEFAULT_CATEGORY = "Uncategorized"

# Known make misspellings fixed by the casing repair
MAKE_TYPOS: Dict[str, str] = {
    "CHEVOLET": "CHEVROLET",
}

# Affiliate payouts
COMMISSION_MATURITY_DAYS = int(os.getenv("COMMISSION_MATURITY_DAYS", "14"))
DEFAULT_COMMISSION_PERCENTAGE = 5.0

# HTTP
REQUEST_TIMEOUT = int(os.getenv("REQUEST_TIMEOUT", "15"))
SEO_REQUEST_TIMEOUT = 8
HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
                  "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36",
}
RETRY_STATUS_CODES = {429}

# Remote document store (Appwrite)
APPWRITE_ENDPOINT = os.getenv("APPWRITE_ENDPOINT", "")
APPWRITE_PROJECT_ID = os.getenv("APPWRITE_PROJECT_ID", "")
APPWRITE_API_KEY = os.getenv("APPWRITE_API_KEY", "")
APPWRITE_DATABASE_ID = os.getenv("APPWRITE_DATABASE_ID", "")
APPWRITE_PAGE_LIMIT = 100
