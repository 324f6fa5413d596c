"""Tests for spreadsheet reading and writing."""

import zipfile
from io import BytesIO

import pandas as pd
import pytest

from catalog.config import TEMPLATE_HEADERS
from catalog.spreadsheet import export_products, product_to_row, read_rows, write_template


class TestReadRows:
    """Spreadsheet rows keyed by header."""

    def test_csv_rows(self, tmp_path):
        path = tmp_path / "products.csv"
        path.write_text(
            " name ,carMake,price,salePrice\n"
            "فلتر زيت,TOYOTA,120,\n"
            "Brake Pads,,350,300\n",
            encoding="utf-8",
        )
        rows = read_rows(str(path))
        assert rows == [
            {"name": "فلتر زيت", "carMake": "TOYOTA", "price": "120"},
            {"name": "Brake Pads", "price": "350", "salePrice": "300"},
        ]

    def test_xlsx_buffer_needs_filename(self, tmp_path):
        buffer = BytesIO()
        pd.DataFrame([{"name": "Oil", "price": 250}]).to_excel(buffer, index=False)
        buffer.seek(0)
        rows = read_rows(buffer, filename="upload.xlsx")
        assert rows == [{"name": "Oil", "price": 250}]

    def test_blank_rows_dropped(self, tmp_path):
        path = tmp_path / "products.csv"
        path.write_text("name,price\nOil,10\n,\nFilter,\n", encoding="utf-8")
        assert read_rows(str(path)) == [{"name": "Oil", "price": "10"}, {"name": "Filter"}]

    def test_unsupported_format(self, tmp_path):
        with pytest.raises(ValueError):
            read_rows(str(tmp_path / "products.txt"))

    def test_legacy_xls_is_unsupported(self):
        ole2_header = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1" + b"\x00" * 40
        with pytest.raises(ValueError, match=".xls"):
            read_rows(BytesIO(ole2_header), filename="legacy.xls")

    def test_corrupt_workbook_is_value_error(self):
        truncated_zip = b"PK\x03\x04" + b"\x00" * 40
        with pytest.raises(ValueError, match="Not a readable .xlsx workbook"):
            read_rows(BytesIO(truncated_zip), filename="broken.xlsx")

    def test_zip_that_is_not_a_workbook(self, tmp_path):
        path = tmp_path / "archive.xlsx"
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("readme.txt", "hello")
        with pytest.raises(ValueError):
            read_rows(str(path))


class TestTemplateAndExport:
    """Template download and catalog backup."""

    def test_template_headers(self, tmp_path):
        path = tmp_path / "template.xlsx"
        write_template(str(path))
        df = pd.read_excel(path)
        assert list(df.columns) == TEMPLATE_HEADERS
        assert len(df) == 2

    def test_template_round_trips_through_reader(self, tmp_path):
        path = tmp_path / "template.xlsx"
        write_template(str(path))
        rows = read_rows(str(path))
        assert rows[1]["carMake"] == "TOYOTA"
        assert "productID" not in rows[1]

    def test_product_to_row_resolves_aliases(self):
        row = product_to_row({
            "id": "p1",
            "name": "Pads",
            "carMake": "KIA",
            "brand": "Bosch",
            "yearStart": 2018,
            "yearEnd": 2020,
            "image": "https://cdn.example.com/p1.jpg",
        })
        assert row["productID"] == "p1"
        assert row["carMake"] == "KIA"
        assert row["partBrand"] == "Bosch"
        assert row["yearRange"] == "2018-2020"
        assert row["imageUrl"] == "https://cdn.example.com/p1.jpg"

    def test_export_products(self, tmp_path):
        path = tmp_path / "backup" / "products.xlsx"
        count = export_products([{"id": "p1", "name": "Oil", "price": 10}, None], str(path))
        assert count == 1
        df = pd.read_excel(path)
        assert df.loc[0, "productID"] == "p1"
        assert df.loc[0, "name"] == "Oil"

    def test_export_csv(self, tmp_path):
        path = tmp_path / "products.csv"
        export_products([{"id": "p1", "name": "Oil", "yearRange": "2015+"}], str(path))
        rows = read_rows(str(path))
        assert rows[0]["yearRange"] == "2015+"
