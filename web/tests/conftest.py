"""Shared test fixtures for the web test suite."""

from datetime import datetime, timedelta, timezone

import pytest

from catalog.storage import MemoryKeyValueStore
from catalog.store import SQLiteDocumentStore
from web.app import create_app

PRODUCTS = {
    "p1": {"name": "Oil Filter", "category": "Filters", "make": "TOYOTA", "model": "COROLLA",
           "yearRange": "2015-2020", "partBrand": "Denso", "countryOfOrigin": "Japan"},
    "p2": {"name": "Air Filter", "category": "Filters", "carMake": "NISSAN", "carModel": "SUNNY",
           "yearStart": 2012, "yearEnd": 2014},
    "p3": {"name": "Engine Oil 5W-30", "category": "Oils", "make": "Universal",
           "yearRange": "All Years", "viscosity": "5W-30"},
    "p4": {"name": "Brake Pads", "category": "Brakes", "make": "TOYOTA", "model": "COROLLA",
           "yearStart": 2018, "yearEnd": 2019},
    "p5": {"name": "Wiper Blade", "category": "Accessories", "make": "TOYOTA",
           "isActive": False},
}


@pytest.fixture
def store(tmp_path):
    """SQLite document store seeded with a small catalog."""
    store = SQLiteDocumentStore(str(tmp_path / "catalog.db"))
    for doc_id, data in PRODUCTS.items():
        store.create("products", data, doc_id=doc_id)

    now = datetime.now(timezone.utc)
    store.create("affiliates", {"commissionPercentage": 7.5}, doc_id="aff1")
    store.create("transactions", {"affiliateId": "aff1", "commission": 10,
                                  "createdAt": (now - timedelta(days=30)).isoformat()})
    store.create("transactions", {"affiliateId": "aff1", "commission": 4,
                                  "createdAt": (now - timedelta(days=2)).isoformat()})
    store.create("transactions", {"affiliateId": "other", "commission": 99,
                                  "createdAt": (now - timedelta(days=30)).isoformat()})
    return store


@pytest.fixture
def kv_store():
    return MemoryKeyValueStore()


@pytest.fixture
def app(store, kv_store):
    app = create_app(store=store, kv_store=kv_store)
    app.config["TESTING"] = True
    app.config["IMPORT_THROTTLE"] = 0
    return app


@pytest.fixture
def client(app):
    """Create Flask test client."""
    with app.test_client() as test_client:
        yield test_client
