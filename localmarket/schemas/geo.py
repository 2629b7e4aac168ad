"""
Schemas for location-based product discovery
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Literal


class Coordinates(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    accuracy: Optional[float] = None  # meters
    timestamp: Optional[float] = None  # epoch ms from the client


class LocationSignal(BaseModel):
    """Where the shopper is, and how we know. Never persisted."""
    source: Literal['browser', 'zipcode', 'ip']
    coords: Coordinates
    zip_code: Optional[str] = None


class MarketStandRef(BaseModel):
    id: str
    name: str
    latitude: float
    longitude: float
    location_name: str


class DeliveryInfo(BaseModel):
    is_available: bool
    delivery_fee: Optional[int] = None  # cents
    zone_name: Optional[str] = None
    zone_id: Optional[str] = None
    minimum_order: Optional[int] = None
    free_delivery_threshold: Optional[int] = None
    delivery_days: Optional[List[str]] = None


class SerializedProduct(BaseModel):
    """Stable product DTO; every key is always present"""
    id: str
    name: str
    description: Optional[str] = None
    price: int  # cents
    images: List[str] = []
    inventory: int
    tags: List[str] = []
    is_active: bool
    delivery_available: bool
    available_date: Optional[str] = None
    available_until: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    market_stand: Optional[MarketStandRef] = None
    distance: Optional[float] = None  # km
    delivery_info: Optional[DeliveryInfo] = None
    is_fulfillable: bool = True

    class Config:
        from_attributes = True


class GeocodeResult(BaseModel):
    lat: float
    lng: float
    zip_code: str
    city: Optional[str] = None
    state: Optional[str] = None
    source: Literal['zipcode'] = 'zipcode'
    accuracy: float = 5000
