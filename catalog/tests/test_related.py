"""Tests for related-product selection."""

import pytest

from catalog.related import related_products


def _p(doc_id, **fields):
    return {"id": doc_id, "name": f"Part {doc_id}", **fields}


@pytest.fixture
def products():
    return [
        _p("target", make="TOYOTA", model="COROLLA", category="Filters", partBrand="Denso"),
        _p("same-car", make="toyota", model="corolla", category="Brakes"),
        _p("same-cat", make="KIA", model="RIO", category="Filters", partBrand="Bosch"),
        _p("same-brand", make="KIA", model="RIO", category="Filters", partBrand="Denso"),
        _p("other", make="BMW", model="X5", category="Lights"),
        _p("inactive", make="TOYOTA", model="COROLLA", category="Filters", isActive=False),
    ]


class TestRelatedProducts:
    """Tiered selection: vehicle, then category, then category and brand."""

    def test_tier_order(self, products):
        ids = [p["id"] for p in related_products(products, "target")]
        assert ids == ["same-car", "same-cat", "same-brand"]

    def test_excludes_self_and_inactive(self, products):
        ids = {p["id"] for p in related_products(products, "target")}
        assert "target" not in ids
        assert "inactive" not in ids
        assert "other" not in ids

    def test_limit(self, products):
        assert len(related_products(products, "target", limit=2)) == 2

    def test_universal_skips_vehicle_tier(self):
        products = [
            _p("target", make="Universal", model="Universal", category="Oils"),
            _p("other-universal", make="Universal", model="Universal", category="Lights"),
            _p("same-cat", make="KIA", category="Oils"),
        ]
        assert [p["id"] for p in related_products(products, "target")] == ["same-cat"]

    def test_vehicle_tier_capped_at_ten(self):
        products = [_p("target", make="KIA", model="RIO")]
        products += [_p(f"k{i}", make="KIA", model="RIO") for i in range(15)]
        assert len(related_products(products, "target", limit=20)) == 10

    def test_unknown_product(self, products):
        assert related_products(products, "missing") == []

    def test_returns_copies(self, products):
        related = related_products(products, "target")
        related[0]["name"] = "changed"
        assert products[1]["name"] == "Part same-car"
