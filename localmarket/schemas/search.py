"""
Schemas for global search and result composition
"""
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Literal, Dict, Any

from .geo import SerializedProduct


class SearchFilterState(BaseModel):
    """Sidebar filter state applied to merged search results"""
    result_type: Literal['all', 'products', 'stands', 'farms'] = 'all'
    categories: List[str] = []
    distance: float = Field(100, ge=0)  # miles
    price_min: Optional[float] = Field(None, ge=0)  # dollars
    price_max: Optional[float] = Field(None, ge=0)  # dollars
    fulfillment: List[Literal['pickup', 'delivery']] = []

    @field_validator('categories')
    @classmethod
    def lowercase_categories(cls, v: List[str]) -> List[str]:
        return [c.strip().lower() for c in v if c and c.strip()]


class ProductResult(SerializedProduct):
    result_type: Literal['product'] = 'product'


class MarketStandResult(BaseModel):
    result_type: Literal['market-stand'] = 'market-stand'
    id: str
    name: str
    description: Optional[str] = None
    latitude: float
    longitude: float
    location_name: str = ""
    location_guide: str = ""
    images: List[str] = []
    tags: List[str] = []
    distance: Optional[float] = None  # km
    href: str
    product_count: int = 0


class FarmResult(BaseModel):
    result_type: Literal['farm'] = 'farm'
    id: str
    name: str
    description: Optional[str] = None
    latitude: float
    longitude: float
    location_name: str = ""
    images: List[str] = []
    distance: Optional[float] = None  # km
    href: str
    slug: Optional[str] = None
    tagline: Optional[str] = None


class SearchLocation(BaseModel):
    lat: float
    lng: float
    zip_code: str


class GlobalSearchResults(BaseModel):
    products: List[ProductResult] = []
    market_stands: List[MarketStandResult] = []
    farms: List[FarmResult] = []
    location: Optional[SearchLocation] = None


class ComposeRequest(BaseModel):
    """Raw result arrays plus the filter state to apply"""
    products: List[Dict[str, Any]] = []
    stands: List[Dict[str, Any]] = []
    farms: List[Dict[str, Any]] = []
    filters: SearchFilterState = SearchFilterState()


class ResultCounts(BaseModel):
    all: int
    products: int
    stands: int
    farms: int


class ComposeResponse(BaseModel):
    results: List[Dict[str, Any]]
    counts: ResultCounts  # before filtering
