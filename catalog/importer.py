"""Bulk product import from spreadsheet rows.

Rows are submitted one at a time. Rate-limited submits cool down and retry
the same row; every other failure marks the row failed and moves on, so a
bad row never aborts the batch.
"""

import logging
import math
import re
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Sequence

from catalog.config import (
    DEFAULT_CATEGORY,
    IMPORT_LOG_LIMIT,
    MAX_RATE_LIMIT_RETRIES,
    MAX_YEAR,
    MIN_YEAR,
    PRODUCTS_COLLECTION,
    RATE_LIMIT_COOLDOWN,
    THROTTLE_DELAY,
)
from catalog.errors import DocumentNotFoundError, ErrorKind, ValidationError, classify_error
from catalog.logging_config import get_logger, log_catalog_event
from catalog.models import Product, parse_year_range
from catalog.store import DocumentStore

__all__ = [
    "RowState",
    "ImportResult",
    "map_row",
    "row_document_id",
    "import_rows",
    "store_upsert",
]

logger = get_logger("importer")

# Document IDs accepted by the store: alphanumerics plus . _ -, max 36 chars
DOCUMENT_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,35}$")

# Template header -> accepted spellings in uploaded sheets
ROW_ALIASES: Dict[str, Sequence[str]] = {
    "productID": ("productID", "id", "$id"),
    "name": ("name",),
    "nameEn": ("nameEn",),
    "category": ("category",),
    "subcategory": ("subcategory", "subCategory"),
    "carMake": ("carMake", "make", "car_make"),
    "carModel": ("carModel", "model", "car_model"),
    "yearRange": ("yearRange", "years", "year"),
    "partBrand": ("partBrand", "brand"),
    "countryOfOrigin": ("countryOfOrigin", "origin", "country"),
    "price": ("price",),
    "salePrice": ("salePrice",),
    "viscosity": ("viscosity",),
    "description": ("description",),
    "imageUrl": ("imageUrl", "image"),
}

Upsert = Callable[[Optional[str], Dict[str, Any]], Any]


class RowState(str, Enum):
    PENDING = "pending"
    COOLDOWN = "cooldown"
    SUCCESS = "success"
    FAIL = "fail"


@dataclass
class ImportResult:
    """Outcome of a bulk import."""

    success: int = 0
    fail: int = 0
    log: List[str] = field(default_factory=list)
    states: Dict[int, RowState] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.success + self.fail

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "fail": self.fail,
            "total": self.total,
            "log": list(self.log),
        }


def _cell(row: Mapping[str, Any], header: str) -> str:
    for key in ROW_ALIASES.get(header, (header,)):
        value = row.get(key)
        if value is None or (isinstance(value, float) and math.isnan(value)):
            continue
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        text = str(value).strip()
        if text:
            return text
    return ""


def _parse_price(text: str) -> Optional[float]:
    try:
        price = float(text.replace(",", ""))
    except ValueError:
        return None
    return price if math.isfinite(price) else None


def map_row(row: Mapping[str, Any]) -> Product:
    """Map a spreadsheet row to a Product, applying defaults.

    Raises:
        ValidationError: If the row has no name.
    """
    name = _cell(row, "name")
    if not name:
        raise ValidationError("missing product name")

    year_text = _cell(row, "yearRange")
    span = parse_year_range(year_text)
    year_start = year_end = None
    if span is not None and span != (MIN_YEAR, MAX_YEAR):
        year_start, year_end = span

    return Product(
        name=name,
        name_en=_cell(row, "nameEn"),
        category=_cell(row, "category") or DEFAULT_CATEGORY,
        subcategory=_cell(row, "subcategory"),
        make=_cell(row, "carMake"),
        model=_cell(row, "carModel"),
        year_range=year_text,
        year_start=year_start,
        year_end=year_end,
        brand=_cell(row, "partBrand"),
        origin=_cell(row, "countryOfOrigin"),
        price=_parse_price(_cell(row, "price")) or 0.0,
        sale_price=_parse_price(_cell(row, "salePrice")),
        viscosity=_cell(row, "viscosity"),
        description=_cell(row, "description"),
        image=_cell(row, "imageUrl"),
        is_active=True,
    )


def row_document_id(row: Mapping[str, Any]) -> Optional[str]:
    """The row's productID if it is a usable document ID, else None."""
    doc_id = _cell(row, "productID")
    return doc_id if DOCUMENT_ID_RE.match(doc_id) else None


def import_rows(
    rows: Sequence[Mapping[str, Any]],
    upsert: Upsert,
    sleep: Callable[[float], None] = time.sleep,
    on_progress: Optional[Callable[[int, int], None]] = None,
    cooldown: float = RATE_LIMIT_COOLDOWN,
    max_retries: int = MAX_RATE_LIMIT_RETRIES,
    throttle: float = THROTTLE_DELAY,
    log_limit: int = IMPORT_LOG_LIMIT,
) -> ImportResult:
    """Import rows sequentially through ``upsert(doc_id, data)``.

    Args:
        rows: Spreadsheet rows keyed by header.
        upsert: Called with (document ID or None to create, document data).
        sleep: Sleep function (injected in tests).
        on_progress: Called with (rows done, total rows) after each row.
        cooldown: Seconds to wait after a rate-limit error.
        max_retries: Rate-limit retries per row before it fails.
        throttle: Seconds to wait after each successful submit.
        log_limit: Number of most recent log lines kept.

    Returns:
        ImportResult with success/fail counts and the recent log.
    """
    total = len(rows)
    recent: Deque[str] = deque(maxlen=log_limit)
    result = ImportResult()

    def note(message: str) -> None:
        recent.append(message)
        logger.debug(message)

    log_catalog_event("import_start", {"message": f"Importing {total} rows", "rows": total})

    for row_number, row in enumerate(rows, start=1):
        result.states[row_number] = RowState.PENDING
        try:
            product = map_row(row)
        except ValidationError as e:
            result.fail += 1
            result.states[row_number] = RowState.FAIL
            note(f"Row {row_number}: failed, {e}")
            log_catalog_event("row_fail", {"row": row_number, "error": str(e), "kind": e.kind.value})
            if on_progress:
                on_progress(row_number, total)
            continue

        doc_id = row_document_id(row)
        data = product.to_document()
        retries = 0

        while True:
            try:
                upsert(doc_id, data)
            except Exception as e:
                kind = classify_error(e)
                if kind is ErrorKind.RETRYABLE and retries < max_retries:
                    retries += 1
                    result.states[row_number] = RowState.COOLDOWN
                    note(
                        f"Row {row_number}: rate limited, cooling down {cooldown:g}s "
                        f"(attempt {retries}/{max_retries})"
                    )
                    log_catalog_event("row_retry", {
                        "row": row_number,
                        "attempt": retries,
                        "cooldown": cooldown,
                    }, level=logging.WARNING)
                    sleep(cooldown)
                    result.states[row_number] = RowState.PENDING
                    continue

                result.fail += 1
                result.states[row_number] = RowState.FAIL
                note(f"Row {row_number}: failed ({kind.value}), {e}")
                log_catalog_event("row_fail", {
                    "row": row_number,
                    "error": str(e),
                    "kind": kind.value,
                    "retries": retries,
                }, level=logging.ERROR)
                break

            result.success += 1
            result.states[row_number] = RowState.SUCCESS
            note(f"Row {row_number}: saved {product.name}")
            log_catalog_event("row_success", {"row": row_number, "id": doc_id}, level=logging.DEBUG)
            sleep(throttle)
            break

        if on_progress:
            on_progress(row_number, total)

    result.log = list(recent)
    log_catalog_event("import_complete", {
        "message": f"Import complete: {result.success} succeeded, {result.fail} failed",
        "success": result.success,
        "fail": result.fail,
    })
    return result


def store_upsert(store: DocumentStore, collection: str = PRODUCTS_COLLECTION) -> Upsert:
    """Adapt a document store to the importer's upsert callable.

    Rows with a productID update that document, or create it under that ID
    when it does not exist yet.
    """
    def upsert(doc_id: Optional[str], data: Dict[str, Any]) -> str:
        if doc_id is None:
            return store.create(collection, data)
        try:
            store.update(collection, doc_id, data)
        except DocumentNotFoundError:
            return store.create(collection, data, doc_id=doc_id)
        return doc_id

    return upsert
