"""API endpoints for the storefront and admin tools.

Listing endpoints answer from the in-memory catalog snapshot; admin
endpoints talk to the document store and refresh the snapshot afterwards.
"""

import logging
import os
from io import BytesIO
from typing import Any, Dict, Optional, Tuple, Union

from flask import Blueprint, Response, current_app, jsonify, request, send_file

from catalog.config import (
    AFFILIATES_COLLECTION,
    DEFAULT_COMMISSION_PERCENTAGE,
    PAGE_SIZE,
    PRODUCTS_COLLECTION,
    THROTTLE_DELAY,
    TRANSACTIONS_COLLECTION,
)
from catalog.errors import DocumentNotFoundError
from catalog.filters import (
    available_makes,
    available_models,
    available_years,
    pages_for,
    suggest,
)
from catalog.importer import import_rows, store_upsert
from catalog.ledger import summarize_commissions
from catalog.models import ActiveVehicle, FilterState, describe_product, parse_year
from catalog.related import related_products
from catalog.seo import check_tag
from catalog.spreadsheet import export_products, read_rows, write_template

from .config import ALLOWED_UPLOAD_EXTENSIONS, MAX_PAGE_SIZE
from .service import get_catalog

__all__ = ["api"]

logger = logging.getLogger(__name__)

# Create blueprint for API
api = Blueprint("api", __name__, url_prefix="/api")

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# Query parameter -> filter key
FILTER_PARAMS = {
    "make": "make",
    "model": "model",
    "year": "year",
    "category": "category",
    "subcategory": "subcategory",
    "brand": "brand",
    "origin": "origin",
    "q": "search",
    "viscosity": "viscosity",
}

JsonResponse = Union[Response, Tuple[Response, int]]


def _int_arg(name: str, default: int) -> int:
    value = request.args.get(name)
    if value is None or value == "":
        return default
    return int(value)


def _garage_vehicle() -> Optional[ActiveVehicle]:
    make = request.args.get("garage_make", "").strip()
    if not make:
        return None
    return ActiveVehicle(
        make=make,
        model=request.args.get("garage_model", "").strip() or None,
        year=parse_year(request.args.get("garage_year")),
    )


@api.route("/products", methods=["GET"])
def list_products() -> JsonResponse:
    """Filtered, sorted and paginated product listing.

    Query params map onto the filter state (``q`` is the search text);
    ``garage_make``/``garage_model``/``garage_year`` select a garage vehicle
    which replaces the make/model/year filters.
    """
    try:
        page = _int_arg("page", 1)
        page_size = _int_arg("page_size", PAGE_SIZE)
    except ValueError:
        return jsonify({"error": "page and page_size must be integers"}), 400
    page_size = max(1, min(page_size, MAX_PAGE_SIZE))

    values: Dict[str, Any] = {
        key: request.args[param] for param, key in FILTER_PARAMS.items() if param in request.args
    }
    values["page"] = page
    filters = FilterState.from_mapping(values)

    result = get_catalog().filter.filter(filters, active_vehicle=_garage_vehicle(), page_size=page_size)
    return jsonify({
        "results": result.results,
        "total": result.total,
        "page": filters.page,
        "pages": pages_for(result.total, page_size),
    })


@api.route("/products/<doc_id>", methods=["GET"])
def get_product(doc_id: str) -> JsonResponse:
    product = get_catalog().get_product(doc_id)
    if product is None:
        return jsonify({"error": "Product not found"}), 404
    lang = request.args.get("lang", "ar")
    return jsonify({"product": product, "description_line": describe_product(product, lang)})


@api.route("/products/<doc_id>/related", methods=["GET"])
def get_related(doc_id: str) -> JsonResponse:
    service = get_catalog()
    if service.get_product(doc_id) is None:
        return jsonify({"error": "Product not found"}), 404
    return jsonify({"results": related_products(service.products, doc_id)})


@api.route("/suggest", methods=["GET"])
def suggestions() -> Response:
    """Search-box suggestions for ``q``."""
    query = request.args.get("q", "")
    return jsonify({"suggestions": suggest(get_catalog().products, query)})


@api.route("/vehicles/makes", methods=["GET"])
def vehicle_makes() -> Response:
    return jsonify({"makes": available_makes(get_catalog().products)})


@api.route("/vehicles/models", methods=["GET"])
def vehicle_models() -> JsonResponse:
    make = request.args.get("make", "").strip()
    if not make:
        return jsonify({"error": "make is required"}), 400
    return jsonify({"models": available_models(get_catalog().products, make)})


@api.route("/vehicles/years", methods=["GET"])
def vehicle_years() -> JsonResponse:
    make = request.args.get("make", "").strip()
    model = request.args.get("model", "").strip()
    if not make or not model:
        return jsonify({"error": "make and model are required"}), 400
    return jsonify({"years": available_years(get_catalog().products, make, model)})


@api.route("/admin/import", methods=["POST"])
def admin_import() -> JsonResponse:
    """Bulk import an uploaded spreadsheet (multipart field ``file``)."""
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        return jsonify({"error": "file is required"}), 400

    ext = os.path.splitext(upload.filename)[1].lower()
    if ext not in ALLOWED_UPLOAD_EXTENSIONS:
        return jsonify({"error": f"Unsupported file type: {ext or 'none'}"}), 400

    try:
        rows = read_rows(BytesIO(upload.read()), filename=upload.filename)
    except ValueError as e:
        logger.warning(f"Unreadable upload {upload.filename}: {e}")
        return jsonify({"error": f"Could not read spreadsheet: {e}"}), 400

    service = get_catalog()
    throttle = current_app.config.get("IMPORT_THROTTLE", THROTTLE_DELAY)
    result = import_rows(rows, store_upsert(service.store, PRODUCTS_COLLECTION), throttle=throttle)
    logger.info(f"Admin import of {upload.filename}: {result.success} ok, {result.fail} failed")

    service.refresh()
    service.record_import(upload.filename, result)
    return jsonify(result.to_dict())


@api.route("/admin/import/last", methods=["GET"])
def admin_last_import() -> Response:
    """Summary of the most recent admin import, or null if none was run."""
    return jsonify({"last_import": get_catalog().last_import()})


@api.route("/admin/template", methods=["GET"])
def admin_template() -> Response:
    buffer = BytesIO()
    write_template(buffer)
    buffer.seek(0)
    return send_file(
        buffer,
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name="products_template.xlsx",
    )


@api.route("/admin/export", methods=["GET"])
def admin_export() -> Response:
    """Backup of every stored product, including soft-deleted ones."""
    buffer = BytesIO()
    export_products(get_catalog().store.list(PRODUCTS_COLLECTION), buffer)
    buffer.seek(0)
    return send_file(
        buffer,
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name="products_backup.xlsx",
    )


@api.route("/admin/check-seo", methods=["POST"])
def admin_check_seo() -> JsonResponse:
    """Check that a tracking tag is installed on a live page."""
    data = request.get_json(silent=True) or {}
    target_url = data.get("targetUrl")
    tag_name = data.get("tagName")
    if not target_url or not tag_name:
        return jsonify({"error": "Missing targetUrl or tagName"}), 400

    try:
        return jsonify(check_tag(target_url, tag_name, expected=data.get("expectedValue")))
    except ValueError as e:
        return jsonify({"error": "Failed to fetch the website", "details": str(e)}), 502


@api.route("/affiliates/<affiliate_id>/balance", methods=["GET"])
def affiliate_balance(affiliate_id: str) -> Response:
    """Withdrawable and pending commission for one affiliate."""
    store = get_catalog().store
    percentage = DEFAULT_COMMISSION_PERCENTAGE
    try:
        affiliate = store.get(AFFILIATES_COLLECTION, affiliate_id)
        percentage = affiliate.get("commissionPercentage") or DEFAULT_COMMISSION_PERCENTAGE
    except DocumentNotFoundError:
        logger.debug(f"No affiliate profile for {affiliate_id}, using default commission")

    transactions = store.list(TRANSACTIONS_COLLECTION, where={"affiliateId": affiliate_id})
    summary = summarize_commissions(transactions, commission_percentage=percentage)
    return jsonify({"affiliate_id": affiliate_id, **summary.to_dict()})


@api.route("/health", methods=["GET"])
def health() -> Response:
    service = get_catalog()
    return jsonify({
        "status": "degraded" if service.state.safe_mode else "ok",
        "safe_mode": service.state.safe_mode,
        "reason": service.state.reason,
        "products": len(service.products),
    })
