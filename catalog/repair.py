"""One-shot catalog maintenance: vehicle casing repair and year-field audit."""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from catalog.config import MAKE_TYPOS, PRODUCTS_COLLECTION
from catalog.logging_config import get_logger, log_catalog_event
from catalog.models import product_id
from catalog.store import DocumentStore

__all__ = ["RepairReport", "casing_updates", "repair_casing", "year_field", "audit_year_fields"]

logger = get_logger("repair")

# Year conventions seen in stored documents, in the order they are checked
YEAR_FIELDS = ("yearStart", "yearRange", "carYear", "year", "years")


@dataclass
class RepairReport:
    scanned: int = 0
    updated: int = 0
    changes: List[Dict[str, Any]] = field(default_factory=list)


def _fixed(value: Any, typos: Mapping[str, str]) -> Optional[str]:
    if not isinstance(value, str) or not value.strip():
        return None
    fixed = value.strip().upper()
    return typos.get(fixed, fixed)


def casing_updates(product: Mapping[str, Any], typos: Mapping[str, str] = MAKE_TYPOS) -> Dict[str, str]:
    """Field updates needed to upper-case make/model and fix make typos.

    Whichever key a document uses (``make`` or ``carMake``) is repaired in place.
    """
    updates: Dict[str, str] = {}
    for keys, fixes in ((("make", "carMake"), typos), (("model", "carModel"), {})):
        for key in keys:
            fixed = _fixed(product.get(key), fixes)
            if fixed is not None and fixed != product.get(key):
                updates[key] = fixed
    return updates


def repair_casing(
    store: DocumentStore,
    collection: str = PRODUCTS_COLLECTION,
    dry_run: bool = False,
) -> RepairReport:
    """Normalize vehicle make/model casing across the product collection.

    Args:
        store: Document store holding the products.
        collection: Products collection name.
        dry_run: If True, report changes without writing them.

    Returns:
        RepairReport with counts and the per-product changes.
    """
    report = RepairReport()
    for product in store.list(collection):
        report.scanned += 1
        updates = casing_updates(product)
        if not updates:
            continue

        doc_id = product_id(product)
        report.changes.append({"id": doc_id, "name": product.get("name", ""), **updates})
        logger.info(f"[{product.get('name', doc_id)}]: {updates}")
        if not dry_run:
            updates_with_time = {**updates, "updatedAt": datetime.now(timezone.utc).isoformat()}
            store.update(collection, doc_id, updates_with_time)
        report.updated += 1

    if report.updated:
        logger.info(f"Repaired {report.updated} of {report.scanned} products")
    else:
        logger.info("No casing issues found")
    log_catalog_event("repair_complete", {
        "scanned": report.scanned,
        "updated": report.updated,
        "dry_run": dry_run,
    })
    return report


def year_field(product: Mapping[str, Any]) -> str:
    """Name of the year convention a product uses, or "none"."""
    for key in YEAR_FIELDS:
        value = product.get(key)
        if value is not None and str(value).strip():
            return key
    return "none"


def audit_year_fields(products: Sequence[Any]) -> Dict[str, int]:
    """Count products per year-field convention."""
    counts = Counter(year_field(p) for p in products if isinstance(p, Mapping))
    return dict(counts)
