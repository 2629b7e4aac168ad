"""
Pytest configuration and fixtures for discovery tests.

Provides an isolated in-memory database, a Redis-shaped cache double and
small seeding helpers.
"""
import fnmatch
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from localmarket.cache.layers import CacheClient
from localmarket.db import Base
from localmarket.models import DeliveryZone, Local, MarketStand, Product, ProductDeliveryListing

# One shared in-memory connection so every session sees the same data
test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    echo=False,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False)


@pytest.fixture(scope="session", autouse=True)
def setup_test_db():
    Base.metadata.drop_all(bind=test_engine)
    Base.metadata.create_all(bind=test_engine)
    yield
    Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def connection():
    """
    Connection with an open outer transaction, rolled back after each test
    so no seeded rows leak between tests.
    """
    connection = test_engine.connect()
    transaction = connection.begin()
    try:
        yield connection
    finally:
        transaction.rollback()
        connection.close()


@pytest.fixture(scope="function")
def db(connection):
    session = TestingSessionLocal(bind=connection)
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def session_factory(connection):
    """Factory for the repository; sessions join the test transaction"""
    return sessionmaker(autocommit=False, autoflush=False, bind=connection)


@pytest.fixture
def redis_store():
    return {}


@pytest.fixture
def mock_redis(redis_store):
    """Asyncio Redis client double backed by a dict"""
    client = MagicMock()

    def get(key):
        return redis_store.get(key)

    def setex(key, ttl, value):
        redis_store[key] = value
        return True

    def delete(*keys):
        removed = 0
        for key in keys:
            if redis_store.pop(key, None) is not None:
                removed += 1
        return removed

    async def scan_iter(match="*", count=None):
        for key in [k for k in list(redis_store) if fnmatch.fnmatch(k, match)]:
            yield key

    client.get = AsyncMock(side_effect=get)
    client.setex = AsyncMock(side_effect=setex)
    client.delete = AsyncMock(side_effect=delete)
    client.scan_iter = MagicMock(side_effect=scan_iter)
    client.ping = AsyncMock(return_value=True)
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def cache(mock_redis):
    with patch('redis.asyncio.from_url') as mock_from_url:
        mock_from_url.return_value = mock_redis
        return CacheClient("redis://test:6379/0")


# Seeding helpers

@pytest.fixture
def make_stand(db):
    def _make(id="stand-1", latitude=37.77, longitude=-122.41, **kwargs):
        stand = MarketStand(
            id=id,
            name=kwargs.pop("name", f"Stand {id}"),
            latitude=latitude,
            longitude=longitude,
            location_name=kwargs.pop("location_name", "Mission District"),
            is_active=kwargs.pop("is_active", True),
            status=kwargs.pop("status", "APPROVED"),
            **kwargs,
        )
        db.add(stand)
        db.flush()
        return stand
    return _make


@pytest.fixture
def make_farm(db):
    def _make(id="farm-1", latitude=37.8, longitude=-122.3, **kwargs):
        farm = Local(
            id=id,
            name=kwargs.pop("name", f"Farm {id}"),
            latitude=latitude,
            longitude=longitude,
            location_name=kwargs.pop("location_name", "East Bay"),
            is_active=kwargs.pop("is_active", True),
            status=kwargs.pop("status", "APPROVED"),
            **kwargs,
        )
        db.add(farm)
        db.flush()
        return farm
    return _make


@pytest.fixture
def make_zone(db):
    def _make(id="zone-1", **kwargs):
        zone = DeliveryZone(
            id=id,
            name=kwargs.pop("name", "SF Delivery"),
            zip_codes=kwargs.pop("zip_codes", ["94110"]),
            cities=kwargs.pop("cities", []),
            states=kwargs.pop("states", []),
            delivery_fee=kwargs.pop("delivery_fee", 500),
            free_delivery_threshold=kwargs.pop("free_delivery_threshold", 5000),
            delivery_days=kwargs.pop("delivery_days", []),
            is_active=kwargs.pop("is_active", True),
            **kwargs,
        )
        db.add(zone)
        db.flush()
        return zone
    return _make


@pytest.fixture
def make_product(db):
    def _make(id="product-1", **kwargs):
        product = Product(
            id=id,
            name=kwargs.pop("name", f"Product {id}"),
            price=kwargs.pop("price", 450),
            inventory=kwargs.pop("inventory", 10),
            tags=kwargs.pop("tags", ["vegetables"]),
            images=kwargs.pop("images", []),
            is_active=kwargs.pop("is_active", True),
            status=kwargs.pop("status", "APPROVED"),
            created_at=kwargs.pop("created_at", datetime(2026, 1, 1, 12, 0, 0)),
            updated_at=kwargs.pop("updated_at", datetime(2026, 1, 1, 12, 0, 0)),
            **kwargs,
        )
        db.add(product)
        db.flush()
        return product
    return _make


@pytest.fixture
def make_listing(db):
    def _make(product, zone, day_of_week, inventory):
        listing = ProductDeliveryListing(
            product=product,
            delivery_zone=zone,
            day_of_week=day_of_week,
            inventory=inventory,
        )
        db.add(listing)
        db.flush()
        return listing
    return _make
