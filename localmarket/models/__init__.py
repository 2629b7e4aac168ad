from .marketplace import (
    MarketStand,
    Local,
    DeliveryZone,
    Product,
    ProductDeliveryListing,
)

__all__ = [
    "MarketStand",
    "Local",
    "DeliveryZone",
    "Product",
    "ProductDeliveryListing",
]
