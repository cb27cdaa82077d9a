"""Pytest configuration and shared fixtures."""

import pytest
from mongomock_motor import AsyncMongoMockClient

from storefront import catalog
from storefront.config import settings
from storefront.database import set_db

ADMIN_TOKEN = "test-admin-token"


@pytest.fixture
def db():
    """In-memory Motor database, swapped in for the duration of a test."""
    mock_db = AsyncMongoMockClient()["storefront_test"]
    set_db(mock_db)
    yield mock_db
    set_db(None)


@pytest.fixture
def admin_headers(monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_TOKEN", ADMIN_TOKEN)
    return {"X-Admin-Token": ADMIN_TOKEN}


@pytest.fixture
async def product(db):
    return await catalog.add_item("product", {
        "name": "Wireless Earbuds",
        "price": 1000.0,
        "images": ["https://cdn.example.com/earbuds.jpg"],
        "stock": 3,
        "sold": 0,
        "featured_category": "Earbuds",
        "colors": ["Black", "White"],
        "warranty": "6 months",
        "coupon_codes": {
            "inside_dhaka_code": "FREEDHAKA",
            "outside_dhaka_code": "FREEBD",
            "price_reduction_code": "SAVE300",
            "price_reduction_amount": 300,
        },
    })


@pytest.fixture
async def offer(db):
    return await catalog.add_item("offer", {
        "title": "Watch + Earbuds Combo",
        "description": "**Bundle** deal",
        "combo_price": 2500.0,
        "original_price": 3200.0,
        "stock": 2,
        "sold": 0,
    })
