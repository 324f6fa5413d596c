"""Spreadsheet import and export utilities."""

import os
import zipfile
from io import BytesIO
from pathlib import Path
from typing import IO, Any, Dict, Iterable, List, Mapping, Optional, Union

import pandas as pd
from openpyxl.utils.exceptions import InvalidFileException

from catalog.config import TEMPLATE_HEADERS
from catalog.logging_config import get_logger
from catalog.models import field_value, product_id, year_span

__all__ = [
    "SAMPLE_ROWS",
    "read_rows",
    "write_template",
    "product_to_row",
    "export_products",
]

logger = get_logger("spreadsheet")

PathOrBuffer = Union[str, Path, IO[bytes], BytesIO]

# openpyxl is the only Excel engine installed; legacy .xls is not readable
EXCEL_EXTENSIONS = (".xlsx",)

# Example rows shipped in the download template
SAMPLE_ROWS: List[Dict[str, Any]] = [
    {
        "productID": "",
        "name": "زيت محرك 5W-30",
        "nameEn": "Engine Oil 5W-30",
        "category": "Oils",
        "subcategory": "Engine Oil",
        "carMake": "Universal",
        "carModel": "",
        "yearRange": "All Years",
        "partBrand": "Mobil",
        "countryOfOrigin": "USA",
        "price": 250,
        "salePrice": "",
        "viscosity": "5W-30",
        "description": "",
        "imageUrl": "",
    },
    {
        "productID": "",
        "name": "فلتر زيت",
        "nameEn": "Oil Filter",
        "category": "Filters",
        "subcategory": "Oil Filter",
        "carMake": "TOYOTA",
        "carModel": "COROLLA",
        "yearRange": "2015-2020",
        "partBrand": "Denso",
        "countryOfOrigin": "Japan",
        "price": 120,
        "salePrice": 99,
        "viscosity": "",
        "description": "",
        "imageUrl": "",
    },
]


def _extension(path_or_buffer: PathOrBuffer, filename: Optional[str]) -> str:
    name = filename or (str(path_or_buffer) if isinstance(path_or_buffer, (str, Path)) else "")
    return os.path.splitext(name)[1].lower()


def read_rows(path_or_buffer: PathOrBuffer, filename: Optional[str] = None) -> List[Dict[str, Any]]:
    """Read a product spreadsheet into a list of row dicts keyed by header.

    Args:
        path_or_buffer: File path or binary file object.
        filename: Original file name, used to pick the format for buffers.

    Returns:
        Rows with stripped headers; empty cells are left out of each row.
    """
    ext = _extension(path_or_buffer, filename)
    if ext in EXCEL_EXTENSIONS:
        try:
            df = pd.read_excel(path_or_buffer, dtype=object, engine="openpyxl")
        except (zipfile.BadZipFile, InvalidFileException, KeyError) as e:
            raise ValueError(f"Not a readable .xlsx workbook: {e}") from e
    elif ext == ".csv":
        df = pd.read_csv(path_or_buffer, dtype=str, encoding="utf-8-sig")
    else:
        raise ValueError(f"Unsupported spreadsheet format: {ext or 'unknown'}")

    df.columns = [str(column).strip() for column in df.columns]
    df = df.dropna(how="all")

    rows: List[Dict[str, Any]] = []
    for record in df.to_dict(orient="records"):
        rows.append({
            key: value
            for key, value in record.items()
            if not pd.isna(value) and not (isinstance(value, str) and not value.strip())
        })
    logger.info(f"Read {len(rows)} rows from {filename or path_or_buffer}")
    return rows


def write_template(path: PathOrBuffer) -> None:
    """Write the import template workbook (headers plus sample rows)."""
    df = pd.DataFrame(SAMPLE_ROWS, columns=TEMPLATE_HEADERS)
    df.to_excel(path, index=False, sheet_name="Products", engine="openpyxl")


def _year_range_text(product: Mapping[str, Any]) -> str:
    text = field_value(product, "yearRange")
    if text:
        return text
    span = year_span(product)
    if span is None:
        return ""
    start, end = span
    return str(start) if start == end else f"{start}-{end}"


def product_to_row(product: Mapping[str, Any]) -> Dict[str, Any]:
    """Map a stored product document back onto template columns."""
    return {
        "productID": product_id(product),
        "name": field_value(product, "name"),
        "nameEn": field_value(product, "name_en"),
        "category": field_value(product, "category"),
        "subcategory": field_value(product, "subcategory"),
        "carMake": field_value(product, "make"),
        "carModel": field_value(product, "model"),
        "yearRange": _year_range_text(product),
        "partBrand": field_value(product, "brand"),
        "countryOfOrigin": field_value(product, "origin"),
        "price": product.get("price", ""),
        "salePrice": product.get("salePrice") if product.get("salePrice") is not None else "",
        "viscosity": field_value(product, "viscosity"),
        "description": field_value(product, "description"),
        "imageUrl": field_value(product, "image") or field_value(product, "imageUrl"),
    }


def export_products(products: Iterable[Mapping[str, Any]], path: PathOrBuffer) -> int:
    """Export product documents as a workbook (or CSV for .csv paths).

    Returns:
        Number of products exported
    """
    rows = [product_to_row(p) for p in products if isinstance(p, Mapping)]
    df = pd.DataFrame(rows, columns=TEMPLATE_HEADERS)

    if isinstance(path, (str, Path)):
        os.makedirs(os.path.dirname(str(path)) or ".", exist_ok=True)
    if _extension(path, None) == ".csv":
        df.to_csv(path, index=False, encoding="utf-8")
    else:
        df.to_excel(path, index=False, sheet_name="Products", engine="openpyxl")

    logger.info(f"Exported {len(rows)} products")
    return len(rows)
