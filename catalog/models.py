"""Data models for catalog products, filter state and vehicles."""

import math
import re
from dataclasses import asdict, dataclass, fields, replace
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from catalog.config import ALL_CATEGORIES, ALL_YEARS_PHRASES, MAX_YEAR, MIN_YEAR
from catalog.text import normalize_text

__all__ = [
    "FIELD_ALIASES",
    "Product",
    "FilterState",
    "ActiveVehicle",
    "field_value",
    "product_id",
    "is_active",
    "parse_year",
    "parse_year_range",
    "year_span",
    "pick_active_vehicle",
    "describe_product",
]

# Legacy documents use several spellings for the same concept; the first
# non-empty key wins.
FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "id": ("id", "$id", "productID"),
    "name": ("name",),
    "name_en": ("nameEn",),
    "category": ("category",),
    "subcategory": ("subcategory", "subCategory"),
    "make": ("make", "carMake", "car_make"),
    "model": ("model", "carModel", "car_model"),
    "brand": ("partBrand", "brand", "brandEn"),
    "origin": ("countryOfOrigin", "origin", "country"),
    "viscosity": ("viscosity",),
    "description": ("description",),
}

_YEAR_RE = re.compile(r"(?<!\d)(\d{4})(?!\d)")
_OPEN_ENDED_RE = re.compile(r"^\s*(\d{4})\s*\+\s*$")
_ALL_YEARS = frozenset(normalize_text(phrase) for phrase in ALL_YEARS_PHRASES)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def field_value(product: Mapping[str, Any], concept: str) -> str:
    """Return a text field by concept name, resolving legacy aliases.

    Numbers are stringified; anything else missing or blank becomes "".
    """
    for key in FIELD_ALIASES.get(concept, (concept,)):
        value = product.get(key)
        if _is_blank(value):
            continue
        if isinstance(value, str):
            return value.strip()
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(int(value)) if float(value).is_integer() else str(value)
    return ""


def product_id(product: Mapping[str, Any]) -> str:
    return field_value(product, "id")


def is_active(product: Mapping[str, Any]) -> bool:
    """Products are soft-deleted by an explicit false ``isActive``."""
    flag = product.get("isActive")
    if flag is None:
        return True
    if isinstance(flag, str):
        return flag.strip().lower() not in ("false", "0", "no")
    return bool(flag)


def parse_year(value: Any) -> Optional[int]:
    """Parse a single model year, returning None for anything unusable."""
    if _is_blank(value) or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not value.is_integer():
            return None
        year = int(value)
    elif isinstance(value, str):
        match = _YEAR_RE.search(value)
        if not match:
            return None
        year = int(match.group(1))
    else:
        return None
    return year if MIN_YEAR <= year <= MAX_YEAR else None


def parse_year_range(text: Any) -> Optional[Tuple[int, int]]:
    """Parse a free-text year range such as "2015-2023".

    Accepts "2015 - 2023", "2015", "2015+" (open ended up to the current
    year) and "All Years" style phrases (every year). Reversed ranges are
    swapped.
    """
    if isinstance(text, (int, float)) and not isinstance(text, bool):
        year = parse_year(text)
        return (year, year) if year is not None else None
    if not isinstance(text, str) or not text.strip():
        return None
    if normalize_text(text) in _ALL_YEARS:
        return (MIN_YEAR, MAX_YEAR)

    open_ended = _OPEN_ENDED_RE.match(text)
    if open_ended:
        start = parse_year(open_ended.group(1))
        if start is None:
            return None
        return (start, max(start, date.today().year))

    years = [int(y) for y in _YEAR_RE.findall(text) if MIN_YEAR <= int(y) <= MAX_YEAR]
    if not years:
        return None
    start, end = years[0], years[-1]
    return (min(start, end), max(start, end))


def year_span(product: Mapping[str, Any]) -> Optional[Tuple[int, int]]:
    """Normalize the three year conventions into an inclusive span.

    Order of precedence: yearStart/yearEnd, then yearRange, then year.
    """
    start = parse_year(product.get("yearStart"))
    if start is not None:
        end = parse_year(product.get("yearEnd"))
        if end is None:
            end = start
        return (min(start, end), max(start, end))

    span = parse_year_range(product.get("yearRange"))
    if span is not None:
        return span

    single = parse_year(product.get("year"))
    if single is not None:
        return (single, single)
    return None


@dataclass
class Product:
    """A product as produced by the bulk importer.

    Stored documents keep the storefront's field names; see ``to_document``.
    """

    name: str
    category: str
    subcategory: str = ""
    name_en: str = ""
    make: str = ""
    model: str = ""
    year_range: str = ""
    year_start: Optional[int] = None
    year_end: Optional[int] = None
    brand: str = ""
    origin: str = ""
    price: float = 0.0
    sale_price: Optional[float] = None
    viscosity: str = ""
    description: str = ""
    image: str = ""
    is_active: bool = True

    # Document ID (set when updating an existing product)
    id: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "nameEn": self.name_en,
            "category": self.category,
            "subcategory": self.subcategory,
            "make": self.make,
            "model": self.model,
            "yearRange": self.year_range,
            "yearStart": self.year_start,
            "yearEnd": self.year_end,
            "partBrand": self.brand,
            "countryOfOrigin": self.origin,
            "price": self.price,
            "salePrice": self.sale_price,
            "viscosity": self.viscosity,
            "description": self.description,
            "image": self.image,
            "isActive": self.is_active,
        }


@dataclass(frozen=True)
class FilterState:
    """Storefront filter values. Immutable so it can key the result cache."""

    make: str = ""
    model: str = ""
    year: str = ""
    category: str = ALL_CATEGORIES
    subcategory: str = ""
    brand: str = ""
    origin: str = ""
    search: str = ""
    viscosity: str = ""
    page: int = 1

    def update(self, key: str, value: Any) -> "FilterState":
        """Return a new state with ``key`` set.

        Changing anything but the page sends the user back to page 1.
        """
        if key not in {f.name for f in fields(self)}:
            raise KeyError(f"Unknown filter: {key}")
        if key == "page":
            try:
                page = int(value)
            except (TypeError, ValueError):
                page = 1
            return replace(self, page=max(page, 1))
        text = "" if value is None else str(value).strip()
        if key == "category" and not text:
            text = ALL_CATEGORIES
        return replace(self, **{key: text, "page": 1})

    def reset(self) -> "FilterState":
        return FilterState()

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "FilterState":
        """Build a state from loose input (query params, CLI pairs)."""
        state = cls()
        for key, value in values.items():
            if key == "page" or _is_blank(value):
                continue
            state = state.update(key, value)
        if "page" in values:
            state = state.update("page", values["page"])
        return state

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ActiveVehicle:
    """The signed-in user's selected garage vehicle."""

    make: str
    model: Optional[str] = None
    year: Optional[int] = None

    @classmethod
    def from_mapping(cls, car: Mapping[str, Any]) -> Optional["ActiveVehicle"]:
        make = field_value(car, "make")
        if not make:
            return None
        return cls(
            make=make,
            model=field_value(car, "model") or None,
            year=parse_year(car.get("year")),
        )


def pick_active_vehicle(garage: Sequence[Mapping[str, Any]]) -> Optional[ActiveVehicle]:
    """Choose the garage car flagged ``isActive``, else the first one."""
    if not garage:
        return None
    chosen = next((car for car in garage if car.get("isActive")), garage[0])
    return ActiveVehicle.from_mapping(chosen)


def _raw_text(product: Mapping[str, Any], key: str) -> str:
    value = product.get(key)
    return value.strip() if isinstance(value, str) else ""


def describe_product(product: Mapping[str, Any], lang: str = "ar") -> str:
    """Build the standard product description line.

    Formula: name + make + model + years + part brand + origin.
    """
    if not product:
        return ""
    is_ar = lang == "ar"
    name = field_value(product, "name") if is_ar else (
        field_value(product, "name_en") or field_value(product, "name")
    )

    years = field_value(product, "yearRange")
    if not years:
        start = field_value(product, "yearStart")
        end = field_value(product, "yearEnd")
        years = "-".join(part for part in (start, end) if part)

    if is_ar:
        brand = field_value(product, "brand")
        origin = field_value(product, "countryOfOrigin")
    else:
        brand = field_value(product, "brandEn") or field_value(product, "brand")
        origin = _raw_text(product, "origin") or field_value(product, "countryOfOrigin")

    parts: List[str] = [
        name,
        field_value(product, "make"),
        field_value(product, "model"),
        years,
        brand,
        origin,
    ]
    return " ".join(part for part in parts if part).strip()
