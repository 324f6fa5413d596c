"""Related-product selection for the product page."""

from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from catalog.config import RELATED_LIMIT
from catalog.models import field_value, is_active, product_id
from catalog.text import normalize_text

__all__ = ["related_products"]

# Each tier contributes at most this many candidates before de-duplication
TIER_LIMIT = 10

_UNIVERSAL = normalize_text("Universal")


def _same(concept: str, value: str) -> Callable[[Mapping[str, Any]], bool]:
    key = normalize_text(value)
    return lambda p: normalize_text(field_value(p, concept)) == key


def related_products(
    products: Sequence[Any],
    target_id: str,
    limit: int = RELATED_LIMIT,
) -> List[Dict[str, Any]]:
    """Pick products related to ``target_id``.

    Tiers, in order, until ``limit`` is reached:
    1. same make and model (skipped for universal or blank fitment)
    2. same category
    3. same category and part brand
    """
    candidates = [p for p in products if isinstance(p, Mapping) and is_active(p)]
    target: Optional[Mapping[str, Any]] = next(
        (p for p in products if isinstance(p, Mapping) and product_id(p) == target_id),
        None,
    )
    if target is None:
        return []

    make = field_value(target, "make")
    model = field_value(target, "model")
    category = field_value(target, "category")
    brand = field_value(target, "brand")

    tiers: List[List[Callable[[Mapping[str, Any]], bool]]] = []
    if make and model and _UNIVERSAL not in (normalize_text(make), normalize_text(model)):
        tiers.append([_same("make", make), _same("model", model)])
    if category:
        tiers.append([_same("category", category)])
        if brand:
            tiers.append([_same("category", category), _same("brand", brand)])

    seen = {target_id}
    related: List[Dict[str, Any]] = []
    for predicates in tiers:
        if len(related) >= limit:
            break
        added = 0
        for product in candidates:
            if added >= TIER_LIMIT:
                break
            pid = product_id(product)
            if pid in seen or not all(pred(product) for pred in predicates):
                continue
            seen.add(pid)
            related.append(dict(product))
            added += 1

    return related[:limit]
