"""Command-line interface for catalog maintenance and queries."""

import argparse
import logging
import sys
from collections import Counter
from typing import Dict, List, Optional

from catalog.config import DB_PATH, PAGE_SIZE, PRODUCTS_COLLECTION
from catalog.errors import StoreError
from catalog.filters import CatalogFilter, pages_for
from catalog.importer import import_rows, store_upsert
from catalog.logging_config import setup_logging
from catalog.models import ActiveVehicle, FilterState, field_value, is_active, parse_year, product_id
from catalog.repair import audit_year_fields, repair_casing
from catalog.seo import check_tag
from catalog.spreadsheet import export_products, read_rows, write_template
from catalog.store import DocumentStore, open_document_store

__all__ = ["main", "parse_args", "parse_filter_pairs", "show_stats", "run_import", "run_search"]


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Auto-parts catalog tools: bulk import, search and repair",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Import products from a spreadsheet
  python -m catalog.cli --import data/products.xlsx

  # Validate a spreadsheet without writing anything
  python -m catalog.cli --import data/products.xlsx --dry-run

  # Download the import template / back up the catalog
  python -m catalog.cli --template data/template.xlsx
  python -m catalog.cli --export data/backup.xlsx

  # Search oil filters that fit a 2017 Toyota Corolla
  python -m catalog.cli --search "فلتر زيت" --garage TOYOTA COROLLA 2017

  # Filter by category and brand, second page
  python -m catalog.cli --filter category=Filters brand=Denso --page 2

  # Upper-case makes/models and fix known typos
  python -m catalog.cli --repair-casing

  # Verify the Facebook pixel is installed
  python -m catalog.cli --check-seo https://shop.example.com facebook-pixel
        """,
    )

    parser.add_argument(
        "--db",
        default=DB_PATH,
        help=f"SQLite database path (default: {DB_PATH})",
    )

    # Import / export
    parser.add_argument("--import", dest="import_path", metavar="FILE",
                        help="Import products from an .xlsx or .csv file")
    parser.add_argument("--export", metavar="PATH", help="Export all products to a spreadsheet")
    parser.add_argument("--template", metavar="PATH", help="Write the import template workbook")

    # Queries
    parser.add_argument("--search", metavar="QUERY", help="Keyword search (all words must match)")
    parser.add_argument(
        "--filter",
        nargs="+",
        metavar="KEY=VALUE",
        help="Filter values, e.g. category=Oils brand=Mobil year=2018",
    )
    parser.add_argument(
        "--garage",
        nargs=3,
        metavar=("MAKE", "MODEL", "YEAR"),
        help="Show products that fit this vehicle (plus universal parts)",
    )
    parser.add_argument("--page", type=int, default=1, help="Result page (default: 1)")
    parser.add_argument("--page-size", type=int, default=PAGE_SIZE,
                        help=f"Results per page (default: {PAGE_SIZE})")

    # Maintenance
    parser.add_argument("--stats", action="store_true", help="Show catalog statistics and exit")
    parser.add_argument("--repair-casing", action="store_true",
                        help="Upper-case vehicle make/model and fix known make typos")
    parser.add_argument("--audit-years", action="store_true",
                        help="Count products per year-field convention")
    parser.add_argument("--check-seo", nargs=2, metavar=("URL", "TAG"),
                        help="Check that a tracking tag or meta tag is present on a page")
    parser.add_argument("--expected", help="Expected tag value for --check-seo")

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would change without writing to the store",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    return parser.parse_args(argv)


def parse_filter_pairs(pairs: Optional[List[str]]) -> Dict[str, str]:
    """Parse KEY=VALUE arguments into a dict."""
    values: Dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Expected KEY=VALUE, got {pair!r}")
        values[key.strip()] = value.strip()
    return values


def show_stats(store: DocumentStore) -> None:
    """Display catalog statistics."""
    products = store.list(PRODUCTS_COLLECTION)
    active = [p for p in products if is_active(p)]

    print(f"\n{'='*50}")
    print("Catalog statistics")
    print(f"{'='*50}")
    print(f"\nTotal products: {len(products)} ({len(active)} active)")

    print("\nProducts by category:")
    by_category = Counter(field_value(p, "category") or "(none)" for p in active)
    for category, count in by_category.most_common():
        print(f"  {category}: {count}")

    print("\nTop makes:")
    by_make = Counter(field_value(p, "make") or "(none)" for p in active)
    for make, count in by_make.most_common(10):
        print(f"  {make}: {count}")
    print()


def run_import(store: DocumentStore, path: str, dry_run: bool = False) -> int:
    """Import a spreadsheet; returns the number of failed rows."""
    rows = read_rows(path)
    print(f"Read {len(rows)} rows from {path}")

    if dry_run:
        result = import_rows(rows, lambda doc_id, data: None, sleep=lambda _: None)
    else:
        def progress(done: int, total: int) -> None:
            print(f"  [{done}/{total}]", end="\r", flush=True)

        result = import_rows(rows, store_upsert(store), on_progress=progress)

    print()
    for line in result.log:
        print(f"  {line}")
    prefix = "[dry-run] " if dry_run else ""
    print(f"\n{prefix}Imported {result.success} products, {result.fail} failed")
    return result.fail


def run_search(
    store: DocumentStore,
    filters: FilterState,
    vehicle: Optional[ActiveVehicle],
    page_size: int,
) -> None:
    catalog = CatalogFilter(store.list(PRODUCTS_COLLECTION))
    result = catalog.filter(filters, active_vehicle=vehicle, page_size=page_size)
    pages = pages_for(result.total, page_size)

    print(f"\n{result.total} products (page {filters.page}/{max(pages, 1)})")
    for product in result.results:
        fitment = " ".join(
            part for part in (field_value(product, "make"), field_value(product, "model")) if part
        )
        print(f"  [{product_id(product)}] {field_value(product, 'name')}"
              + (f"  ({fitment})" if fitment else ""))


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI."""
    args = parse_args(argv)
    setup_logging(level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        if args.template:
            write_template(args.template)
            print(f"Template written to {args.template}")
            return 0

        if args.check_seo:
            url, tag = args.check_seo
            print(check_tag(url, tag, expected=args.expected))
            return 0

        store = open_document_store(args.db)

        if args.stats:
            show_stats(store)
            return 0

        if args.export:
            count = export_products(store.list(PRODUCTS_COLLECTION), args.export)
            print(f"Exported {count} products to {args.export}")
            return 0

        if args.import_path:
            failed = run_import(store, args.import_path, dry_run=args.dry_run)
            return 1 if failed else 0

        if args.repair_casing:
            report = repair_casing(store, dry_run=args.dry_run)
            prefix = "[dry-run] " if args.dry_run else ""
            print(f"{prefix}Repaired {report.updated} of {report.scanned} products")
            return 0

        if args.audit_years:
            counts = audit_year_fields(store.list(PRODUCTS_COLLECTION))
            print("Year fields:")
            for name, count in sorted(counts.items(), key=lambda kv: -kv[1]):
                print(f"  {name}: {count}")
            return 0

        filters = FilterState.from_mapping({
            **parse_filter_pairs(args.filter),
            "search": args.search or "",
            "page": args.page,
        })
        vehicle = None
        if args.garage:
            make, model, year = args.garage
            vehicle = ActiveVehicle(make=make, model=model, year=parse_year(year))
        run_search(store, filters, vehicle, args.page_size)
        return 0

    except (StoreError, ValueError, KeyError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
