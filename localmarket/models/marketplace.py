"""
Models for local-goods discovery
- MarketStands (pickup points with coordinates)
- Locals (farms)
- DeliveryZones (ZIP/city/state coverage with fee and schedule rules)
- Products (listed at a stand and/or delivered through a zone)
- ProductDeliveryListings (per-weekday stock for recurring delivery)

The discovery core only reads these tables.
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, ForeignKey, Text, Index, JSON
from sqlalchemy.orm import relationship
from ..db import Base


class MarketStand(Base):
    """Physical pickup stand"""
    __tablename__ = "market_stands"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    location_name = Column(String, nullable=False, default="")
    location_guide = Column(Text, nullable=False, default="")
    images = Column(JSON, default=list)
    tags = Column(JSON, default=list)
    is_active = Column(Boolean, default=True, nullable=False)
    status = Column(String, default="PENDING", nullable=False)  # PENDING, APPROVED, REJECTED
    user_id = Column(String, nullable=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    products = relationship("Product", back_populates="market_stand")

    __table_args__ = (
        Index('idx_market_stands_location', 'latitude', 'longitude'),
    )


class Local(Base):
    """Farm profile"""
    __tablename__ = "locals"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, nullable=True)
    tagline = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    location_name = Column(String, nullable=False, default="")
    images = Column(JSON, default=list)
    is_active = Column(Boolean, default=True, nullable=False)
    status = Column(String, default="PENDING", nullable=False)
    user_id = Column(String, nullable=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index('idx_locals_location', 'latitude', 'longitude'),
    )


class DeliveryZone(Base):
    """Named delivery coverage area with fee and schedule rules"""
    __tablename__ = "delivery_zones"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)

    # Coverage: a user matches if ANY dimension matches
    zip_codes = Column(JSON, default=list)
    cities = Column(JSON, default=list)
    states = Column(JSON, default=list)

    # Money in cents
    delivery_fee = Column(Integer, nullable=False, default=0)
    free_delivery_threshold = Column(Integer, nullable=True)
    minimum_order = Column(Integer, nullable=True)

    # Schedule
    delivery_days = Column(JSON, default=list)  # ["Monday", "Thursday"]
    delivery_time_windows = Column(JSON, nullable=True)  # loosely typed, normalized on read

    is_active = Column(Boolean, default=True, nullable=False)
    user_id = Column(String, nullable=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    products = relationship("Product", back_populates="delivery_zone")
    listings = relationship("ProductDeliveryListing", back_populates="delivery_zone")


class Product(Base):
    """Listed product"""
    __tablename__ = "products"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=True)
    price = Column(Integer, nullable=False)  # cents
    images = Column(JSON, default=list)
    tags = Column(JSON, default=list)
    inventory = Column(Integer, default=0, nullable=False)
    inventory_updated_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    status = Column(String, default="PENDING", nullable=False)

    # Delivery
    delivery_available = Column(Boolean, default=False, nullable=False)
    delivery_type = Column(String, nullable=True)  # ONE_TIME, RECURRING
    delivery_dates = Column(JSON, default=list)  # ISO dates for ONE_TIME
    available_date = Column(DateTime, nullable=True)
    available_until = Column(DateTime, nullable=True)

    market_stand_id = Column(String, ForeignKey("market_stands.id", ondelete="SET NULL"), nullable=True, index=True)
    delivery_zone_id = Column(String, ForeignKey("delivery_zones.id", ondelete="SET NULL"), nullable=True, index=True)
    user_id = Column(String, nullable=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    market_stand = relationship("MarketStand", back_populates="products")
    delivery_zone = relationship("DeliveryZone", back_populates="products")
    delivery_listings = relationship("ProductDeliveryListing", back_populates="product", cascade="all, delete-orphan")


class ProductDeliveryListing(Base):
    """Per-weekday delivery stock for a product in a zone"""
    __tablename__ = "product_delivery_listings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(String, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    delivery_zone_id = Column(String, ForeignKey("delivery_zones.id", ondelete="CASCADE"), nullable=False, index=True)
    day_of_week = Column(String, nullable=False)  # "Monday"
    inventory = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    product = relationship("Product", back_populates="delivery_listings")
    delivery_zone = relationship("DeliveryZone", back_populates="listings")
