"""Storefront catalog filtering.

Products are normalized once into a DataFrame (one row per record, legacy
field spellings resolved, year conventions folded into a numeric span) and
every listing request is a sequence of boolean masks over that frame:

1. soft-deleted products are dropped
2. garage vehicle OR manual make/model/year
3. category / subcategory
4. brand / origin / viscosity
5. AND-keyword search over normalized text
6. sort by display name, then page

Malformed records never raise; a record missing a field simply fails any
filter that needs the field.
"""

import math
from dataclasses import dataclass, field
from datetime import date
from functools import lru_cache
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

import pandas as pd

from catalog.config import (
    ALL_CATEGORIES,
    MAX_YEAR,
    MIN_YEAR,
    PAGE_SIZE,
    SUGGESTION_LIMIT,
    UNIVERSAL_CATEGORIES,
    UNIVERSAL_MAKES,
)
from catalog.logging_config import get_logger
from catalog.models import (
    ActiveVehicle,
    FilterState,
    field_value,
    is_active,
    parse_year,
    product_id,
    year_span,
)
from catalog.text import keywords, normalize_text

__all__ = [
    "FilterResult",
    "CatalogFilter",
    "build_frame",
    "apply_filter",
    "filter_and_sort",
    "pages_for",
    "is_universal",
    "suggest",
    "available_makes",
    "available_models",
    "available_years",
]

logger = get_logger("filters")

# Text fields concatenated into each product's searchable string
SEARCH_FIELDS = (
    "name",
    "name_en",
    "category",
    "subcategory",
    "brand",
    "brandEn",
    "make",
    "model",
    "origin",
    "viscosity",
)

FRAME_COLUMNS = [
    "pos",
    "id",
    "name",
    "make",
    "model",
    "category",
    "subcategory",
    "brand",
    "origin",
    "viscosity",
    "year_start",
    "year_end",
    "universal",
    "active",
    "search_text",
    "sort_key",
]

_UNIVERSAL_MAKE_KEYS = frozenset(normalize_text(m) for m in UNIVERSAL_MAKES)
_UNIVERSAL_CATEGORY_KEYS = frozenset(normalize_text(c) for c in UNIVERSAL_CATEGORIES)


@dataclass
class FilterResult:
    """One page of filtered products plus the pre-pagination count."""

    results: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0


def is_universal(product: Mapping[str, Any]) -> bool:
    """Universal parts fit every vehicle and skip vehicle matching."""
    for flag in ("isUniversal", "universal"):
        if product.get(flag) is True:
            return True
    if normalize_text(field_value(product, "make")) in _UNIVERSAL_MAKE_KEYS:
        return True
    return any(
        normalize_text(field_value(product, concept)) in _UNIVERSAL_CATEGORY_KEYS
        for concept in ("category", "subcategory")
    )


def _frame_row(pos: int, product: Mapping[str, Any]) -> Dict[str, Any]:
    span = year_span(product)
    name = field_value(product, "name")
    searchable = " ".join(field_value(product, concept) for concept in SEARCH_FIELDS)
    return {
        "pos": pos,
        "id": product_id(product),
        "name": name,
        "make": normalize_text(field_value(product, "make")),
        "model": normalize_text(field_value(product, "model")),
        "category": field_value(product, "category"),
        "subcategory": field_value(product, "subcategory"),
        "brand": field_value(product, "brand"),
        "origin": field_value(product, "origin"),
        "viscosity": field_value(product, "viscosity"),
        "year_start": span[0] if span else math.nan,
        "year_end": span[1] if span else math.nan,
        "universal": is_universal(product),
        "active": is_active(product),
        "search_text": normalize_text(searchable),
        "sort_key": normalize_text(name),
    }


def build_frame(products: Sequence[Any]) -> pd.DataFrame:
    """Normalize products into the filter frame.

    ``pos`` points back into ``products``; non-mapping records are skipped.
    """
    rows = [
        _frame_row(pos, product)
        for pos, product in enumerate(products)
        if isinstance(product, Mapping)
    ]
    skipped = len(products) - len(rows)
    if skipped:
        logger.warning(f"Skipped {skipped} malformed product records")

    df = pd.DataFrame(rows, columns=FRAME_COLUMNS)
    df["year_start"] = pd.to_numeric(df["year_start"], errors="coerce")
    df["year_end"] = pd.to_numeric(df["year_end"], errors="coerce")
    df["universal"] = df["universal"].astype(bool)
    df["active"] = df["active"].astype(bool)
    return df


def apply_filter(df: pd.DataFrame, column: str, value: Optional[str]) -> pd.DataFrame:
    """Exact-match filter on a frame column; empty values leave it unfiltered."""
    if not value or df.empty:
        return df
    return df[df[column] == value]


def _year_mask(df: pd.DataFrame, year: int) -> pd.Series:
    # NaN spans compare False, so products without years never match
    return (df["year_start"] <= year) & (df["year_end"] >= year)


def _vehicle_mask(df: pd.DataFrame, vehicle: ActiveVehicle) -> pd.Series:
    mask = df["make"] == normalize_text(vehicle.make)
    if vehicle.model:
        mask &= df["model"] == normalize_text(vehicle.model)
    if vehicle.year is not None:
        mask &= _year_mask(df, vehicle.year)
    return df["universal"] | mask


def _search_mask(df: pd.DataFrame, query: str) -> pd.Series:
    mask = pd.Series(True, index=df.index)
    for keyword in keywords(query):
        mask &= df["search_text"].str.contains(keyword, regex=False)
    return mask


def _narrow(
    df: pd.DataFrame,
    filters: FilterState,
    vehicle: Optional[ActiveVehicle] = None,
) -> pd.DataFrame:
    df = df[df["active"]]

    if vehicle is not None:
        df = df[_vehicle_mask(df, vehicle)]
    else:
        df = apply_filter(df, "make", normalize_text(filters.make))
        df = apply_filter(df, "model", normalize_text(filters.model))
        if filters.year:
            year = parse_year(filters.year)
            if year is None:
                logger.debug(f"Unusable year filter {filters.year!r}, nothing matches")
                return df.iloc[0:0]
            df = df[_year_mask(df, year)]

    if filters.category != ALL_CATEGORIES:
        df = apply_filter(df, "category", filters.category)
    df = apply_filter(df, "subcategory", filters.subcategory)

    df = apply_filter(df, "brand", filters.brand)
    df = apply_filter(df, "origin", filters.origin)
    df = apply_filter(df, "viscosity", filters.viscosity)

    if filters.search and not df.empty:
        df = df[_search_mask(df, filters.search)]

    return df.sort_values(["sort_key", "name", "id"], kind="mergesort")


def _page_positions(df: pd.DataFrame, page: int, page_size: int) -> List[int]:
    page = max(page, 1)
    start = (page - 1) * page_size
    return [int(pos) for pos in df["pos"].iloc[start:start + page_size]]


def _run_query(
    df: pd.DataFrame,
    products: Sequence[Any],
    filters: FilterState,
    vehicle: Optional[ActiveVehicle],
    page_size: int,
) -> FilterResult:
    matched = _narrow(df, filters, vehicle)
    positions = _page_positions(matched, filters.page, page_size)
    return FilterResult(results=[products[pos] for pos in positions], total=len(matched))


def _coerce_filters(filters: Union[FilterState, Mapping[str, Any], None]) -> FilterState:
    if filters is None:
        return FilterState()
    if isinstance(filters, FilterState):
        return filters
    return FilterState.from_mapping(filters)


def filter_and_sort(
    all_products: Sequence[Any],
    filters: Union[FilterState, Mapping[str, Any], None] = None,
    active_vehicle: Optional[ActiveVehicle] = None,
    page_size: int = PAGE_SIZE,
) -> FilterResult:
    """Filter, sort and paginate a product snapshot.

    Results are ordered by the normalized display name in code-point order
    (ties broken by raw name, then id), not by a locale collation, so the
    order is identical on every host regardless of the process locale.

    Args:
        all_products: Product documents (dicts) as fetched from the store.
        filters: Current filter state (or a plain mapping of filter values).
        active_vehicle: Garage vehicle; replaces make/model/year filters.
        page_size: Products per page.

    Returns:
        FilterResult with the requested page and the total match count.
    """
    products = list(all_products)
    return _run_query(
        build_frame(products), products, _coerce_filters(filters), active_vehicle, page_size
    )


def pages_for(total: int, page_size: int = PAGE_SIZE) -> int:
    if total <= 0 or page_size <= 0:
        return 0
    return -(-total // page_size)


@dataclass(frozen=True)
class _Snapshot:
    products: List[Any]
    frame: pd.DataFrame
    query: Callable[[FilterState, Optional[ActiveVehicle], int], FilterResult]


def _build_snapshot(products: Sequence[Any], cache_size: int) -> _Snapshot:
    products = list(products)
    frame = build_frame(products)

    @lru_cache(maxsize=cache_size)
    def query(filters: FilterState, vehicle: Optional[ActiveVehicle], page_size: int) -> FilterResult:
        return _run_query(frame, products, filters, vehicle, page_size)

    return _Snapshot(products=products, frame=frame, query=query)


class CatalogFilter:
    """A product snapshot with memoized listing queries.

    The frame is built once per snapshot; identical (filters, vehicle,
    page size) requests are answered from an LRU cache until
    ``replace_products`` installs a new snapshot. The product list, frame
    and cache are published together, so a request always reads one
    consistent snapshot even while another thread replaces it.
    """

    def __init__(self, products: Sequence[Any] = (), cache_size: int = 256):
        self._cache_size = cache_size
        self._snapshot = _build_snapshot(products, cache_size)

    def replace_products(self, products: Sequence[Any]) -> None:
        snapshot = _build_snapshot(products, self._cache_size)
        self._snapshot = snapshot
        logger.info(f"Catalog snapshot loaded: {len(snapshot.frame)} products")

    @property
    def products(self) -> List[Any]:
        return self._snapshot.products

    def filter(
        self,
        filters: Union[FilterState, Mapping[str, Any], None] = None,
        active_vehicle: Optional[ActiveVehicle] = None,
        page_size: int = PAGE_SIZE,
    ) -> FilterResult:
        cached = self._snapshot.query(_coerce_filters(filters), active_vehicle, page_size)
        # Copy so callers cannot mutate the cached page
        return FilterResult(results=list(cached.results), total=cached.total)

    def cache_info(self):
        return self._snapshot.query.cache_info()

    def get(self, doc_id: str) -> Optional[Dict[str, Any]]:
        snapshot = self._snapshot
        matches = snapshot.frame.index[snapshot.frame["id"] == doc_id]
        if len(matches) == 0:
            return None
        return snapshot.products[int(snapshot.frame.at[matches[0], "pos"])]


def suggest(
    products: Sequence[Any],
    query: str,
    limit: int = SUGGESTION_LIMIT,
) -> List[Dict[str, Any]]:
    """Search-box suggestions: active products matching every keyword."""
    if not keywords(query):
        return []
    products = list(products)
    df = build_frame(products)
    df = df[df["active"]]
    if df.empty:
        return []
    df = df[_search_mask(df, query)].sort_values(["sort_key", "name", "id"], kind="mergesort")
    return [products[int(pos)] for pos in df["pos"].head(limit)]


def _unique_sorted(values: List[str]) -> List[str]:
    seen: Dict[str, str] = {}
    for value in values:
        key = normalize_text(value)
        if key and key not in seen:
            seen[key] = value
    return [seen[key] for key in sorted(seen)]


def _active_mappings(products: Sequence[Any]) -> List[Mapping[str, Any]]:
    return [p for p in products if isinstance(p, Mapping) and is_active(p)]


def available_makes(products: Sequence[Any]) -> List[str]:
    """Distinct vehicle makes across active, non-universal products."""
    return _unique_sorted([
        field_value(p, "make") for p in _active_mappings(products) if not is_universal(p)
    ])


def available_models(products: Sequence[Any], make: str) -> List[str]:
    make_key = normalize_text(make)
    return _unique_sorted([
        field_value(p, "model")
        for p in _active_mappings(products)
        if make_key and normalize_text(field_value(p, "make")) == make_key
    ])


def available_years(products: Sequence[Any], make: str, model: str) -> List[int]:
    """Model years covered by a make/model, newest first.

    Open "all years" spans are ignored and spans are clipped at next year
    so the selector lists real production years only.
    """
    make_key, model_key = normalize_text(make), normalize_text(model)
    last_year = date.today().year + 1
    years = set()
    for p in _active_mappings(products):
        if normalize_text(field_value(p, "make")) != make_key:
            continue
        if normalize_text(field_value(p, "model")) != model_key:
            continue
        span = year_span(p)
        if span is None or span == (MIN_YEAR, MAX_YEAR):
            continue
        years.update(range(span[0], min(span[1], last_year) + 1))
    return sorted(years, reverse=True)
