"""
Shared fixtures: an in-memory Mongo (mongomock), a recording asset service
and a TestClient wired to both.
"""
from typing import Optional

import mongomock
import pytest
from fastapi.testclient import TestClient

from assets import AssetService, StoredAsset
from cascade import CascadeCoordinator
from config import Settings, get_settings
from database import CATEGORY, PRODUCT, EntityStore
from deps import get_assets, get_store
from errors import DependencyFailure
from main import app
from ratings import RatingAggregator


class FakeAssets(AssetService):
    """Keeps uploads in memory and records every delete request."""

    def __init__(self):
        self.stored = []
        self.deleted = []
        self.failing = set()

    def store(self, data: bytes, folder: Optional[str] = None, filename: Optional[str] = None) -> StoredAsset:
        storage_id = f"{folder or 'uploads'}/img{len(self.stored)}"
        asset = StoredAsset(
            url=f"https://res.cloudinary.com/demo/image/upload/v1700000000/{storage_id}.jpg",
            storage_id=storage_id,
        )
        self.stored.append(asset)
        return asset

    def delete(self, storage_id: str) -> bool:
        self.deleted.append(storage_id)
        if storage_id in self.failing:
            raise DependencyFailure(f"Image delete failed for {storage_id}")
        return True


@pytest.fixture
def settings():
    return Settings(secret_key="test-secret")


@pytest.fixture
def store():
    return EntityStore(mongomock.MongoClient()["catalog_test"])


@pytest.fixture
def assets():
    return FakeAssets()


@pytest.fixture
def aggregator(store):
    return RatingAggregator(store)


@pytest.fixture
def coordinator(store, assets, aggregator, settings):
    return CascadeCoordinator(store, assets, aggregator, settings)


@pytest.fixture
def client(store, assets, settings):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_assets] = lambda: assets
    app.dependency_overrides[get_settings] = lambda: settings
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def category(store):
    return store.create(
        CATEGORY,
        {
            "name": "Groceries",
            "slug": "groceries",
            "images": [],
            "color": "#FFFFFF",
            "parent_id": None,
            "subcategory_ids": [],
        },
    )


@pytest.fixture
def product(store, category):
    return store.create(
        PRODUCT,
        {
            "name": "Olive Oil",
            "slug": "olive-oil-abc123",
            "description": "Cold pressed",
            "brand": "Acme",
            "price": 9.5,
            "category_id": category["_id"],
            "sub_category_id": None,
            "count_in_stock": 10,
            "images": [
                {"url": "https://res.cloudinary.com/demo/image/upload/v1/ecommerce/products/a.jpg",
                 "storage_id": "ecommerce/products/a"},
                {"url": "https://res.cloudinary.com/demo/image/upload/v1/ecommerce/products/b.jpg",
                 "storage_id": "ecommerce/products/b"},
            ],
            "ratings": [],
            "average_rating": 0.0,
            "num_reviews": 0,
            "rating_version": 0,
        },
    )
