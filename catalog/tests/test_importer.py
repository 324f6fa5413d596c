"""Tests for the bulk importer."""

from typing import Any, Dict, List, Optional, Tuple

import pytest

from catalog.errors import RateLimitError, StoreError
from catalog.importer import (
    RowState,
    import_rows,
    map_row,
    row_document_id,
    store_upsert,
)
from catalog.store import SQLiteDocumentStore


class RecordingUpsert:
    """Upsert stub that can fail specific calls."""

    def __init__(self, failures: Optional[Dict[int, Exception]] = None):
        self.failures = failures or {}
        self.calls: List[Tuple[Optional[str], Dict[str, Any]]] = []

    def __call__(self, doc_id: Optional[str], data: Dict[str, Any]) -> None:
        self.calls.append((doc_id, data))
        error = self.failures.get(len(self.calls))
        if error is not None:
            raise error


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def rows():
    return [
        {"name": "فلتر زيت", "category": "Filters", "carMake": "TOYOTA", "yearRange": "2015-2020"},
        {"name": "Brake Pads", "productID": "brake-01", "price": "350"},
        {"name": "Engine Oil", "yearRange": "All Years", "salePrice": 199.5},
    ]


class TestMapRow:
    """Row defaults and field mapping."""

    def test_defaults(self):
        product = map_row({"name": "Part"})
        assert product.category == "Uncategorized"
        assert product.price == 0.0
        assert product.sale_price is None
        assert product.is_active is True
        assert product.make == ""

    def test_year_range_parsed(self):
        product = map_row({"name": "Part", "yearRange": "2015 - 2020"})
        assert (product.year_start, product.year_end) == (2015, 2020)
        assert product.year_range == "2015 - 2020"

    def test_all_years_keeps_text_only(self):
        product = map_row({"name": "Part", "yearRange": "All Years"})
        assert product.year_start is None
        assert product.year_range == "All Years"

    def test_numeric_cells(self):
        product = map_row({"name": "Part", "price": 120.0, "salePrice": "99.5", "carModel": 3.0})
        assert product.price == 120.0
        assert product.sale_price == 99.5
        assert product.model == "3"

    def test_bad_price_defaults_to_zero(self):
        assert map_row({"name": "Part", "price": "call us"}).price == 0.0

    def test_missing_name_rejected(self):
        with pytest.raises(StoreError):
            map_row({"name": "   ", "category": "Filters"})

    def test_document_id(self):
        assert row_document_id({"productID": "abc_1.2-3"}) == "abc_1.2-3"
        assert row_document_id({"productID": 1234.0}) == "1234"
        assert row_document_id({"productID": "_bad"}) is None
        assert row_document_id({"productID": "has space"}) is None
        assert row_document_id({"productID": "x" * 37}) is None
        assert row_document_id({}) is None


class TestImportResilience:
    """Rate limits, failures and pacing."""

    def test_all_rows_succeed(self, rows, sleeps):
        upsert = RecordingUpsert()
        result = import_rows(rows, upsert, sleep=sleeps.append)
        assert (result.success, result.fail) == (3, 0)
        assert [call[0] for call in upsert.calls] == [None, "brake-01", None]
        assert sleeps == [0.25, 0.25, 0.25]

    def test_rate_limited_row_is_retried(self, rows, sleeps):
        upsert = RecordingUpsert({2: RateLimitError("Rate limit exceeded", status_code=429)})
        result = import_rows(rows, upsert, sleep=sleeps.append)

        assert (result.success, result.fail) == (3, 0)
        assert len(upsert.calls) == 4
        assert upsert.calls[1] == upsert.calls[2]
        assert any(line.startswith("Row 2: rate limited, cooling down 5s") for line in result.log)
        assert 5.0 in sleeps

    def test_untyped_rate_limit_message_is_retried(self, rows, sleeps):
        upsert = RecordingUpsert({1: RuntimeError("Too Many Requests")})
        result = import_rows(rows, upsert, sleep=sleeps.append)
        assert (result.success, result.fail) == (3, 0)

    def test_id_containing_429_is_not_cooled_down(self, rows, sleeps):
        upsert = RecordingUpsert({1: RuntimeError("invalid id p4291")})
        result = import_rows(rows, upsert, sleep=sleeps.append)
        assert (result.success, result.fail) == (2, 1)
        assert len(upsert.calls) == 3
        assert 5.0 not in sleeps

    def test_rate_limit_retries_exhausted(self, sleeps):
        error = RateLimitError("Rate limit exceeded", status_code=429)
        upsert = RecordingUpsert({n: error for n in range(1, 5)})
        result = import_rows([{"name": "Part"}], upsert, sleep=sleeps.append)

        assert (result.success, result.fail) == (0, 1)
        assert len(upsert.calls) == 4
        assert sleeps == [5.0, 5.0, 5.0]
        assert result.states[1] is RowState.FAIL

    def test_empty_name_fails_without_submit(self, sleeps):
        rows = [{"name": "A"}, {"name": ""}, {"name": "C"}]
        upsert = RecordingUpsert()
        result = import_rows(rows, upsert, sleep=sleeps.append)

        assert (result.success, result.fail) == (2, 1)
        assert len(upsert.calls) == 2
        assert result.states == {1: RowState.SUCCESS, 2: RowState.FAIL, 3: RowState.SUCCESS}
        assert any(line.startswith("Row 2: failed") for line in result.log)

    def test_fatal_error_skips_row_and_continues(self, rows, sleeps):
        upsert = RecordingUpsert({1: StoreError("HTTP 500: boom", status_code=500)})
        result = import_rows(rows, upsert, sleep=sleeps.append)

        assert (result.success, result.fail) == (2, 1)
        assert len(upsert.calls) == 3
        assert 5.0 not in sleeps

    def test_progress_callback(self, rows, sleeps):
        progress = []
        import_rows(rows, RecordingUpsert(), sleep=sleeps.append,
                    on_progress=lambda done, total: progress.append((done, total)))
        assert progress == [(1, 3), (2, 3), (3, 3)]

    def test_log_keeps_most_recent_lines(self, sleeps):
        rows = [{"name": f"Part {i}"} for i in range(60)]
        result = import_rows(rows, RecordingUpsert(), sleep=sleeps.append)
        assert len(result.log) == 50
        assert result.log[-1] == "Row 60: saved Part 59"
        assert result.log[0] == "Row 11: saved Part 10"

    def test_empty_input(self, sleeps):
        result = import_rows([], RecordingUpsert(), sleep=sleeps.append)
        assert (result.success, result.fail) == (0, 0)
        assert result.to_dict()["total"] == 0


class TestStoreUpsert:
    """Adapting a document store to the importer."""

    @pytest.fixture
    def store(self, tmp_path):
        return SQLiteDocumentStore(str(tmp_path / "catalog.db"))

    def test_creates_and_updates(self, store, sleeps):
        rows = [{"name": "Brake Pads", "productID": "brake-01", "price": "350"}]
        upsert = store_upsert(store)

        import_rows(rows, upsert, sleep=sleeps.append)
        assert store.get("products", "brake-01")["price"] == 350.0

        rows[0]["price"] = "300"
        import_rows(rows, upsert, sleep=sleeps.append)
        assert store.count("products") == 1
        assert store.get("products", "brake-01")["price"] == 300.0

    def test_rows_without_id_create_new_documents(self, store, sleeps):
        rows = [{"name": "Oil"}]
        upsert = store_upsert(store)
        import_rows(rows, upsert, sleep=sleeps.append)
        import_rows(rows, upsert, sleep=sleeps.append)
        assert store.count("products") == 2
