from pydantic_settings import BaseSettings
from typing import Optional
import os

class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite:///./localmarket.db"
    read_database_url: Optional[str] = None

    # Redis
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout_s: float = float(os.getenv("REDIS_SOCKET_TIMEOUT_S", "0.5"))
    redis_connect_timeout_s: float = float(os.getenv("REDIS_CONNECT_TIMEOUT_S", "0.5"))
    cache_op_timeout_s: float = float(os.getenv("CACHE_OP_TIMEOUT_S", "1.0"))  # upper bound per cache call

    # Logging
    log_level: str = "INFO"

    # Environment / region
    env: str = os.getenv("ENV", "dev")
    region: str = "local"

    # CORS
    cors_allow_origins: str = os.getenv("ALLOWED_ORIGINS", "*")

    # Cache TTLs (seconds)
    product_listing_ttl_s: int = int(os.getenv("PRODUCT_LISTING_TTL_S", "300"))
    geocode_cache_ttl_s: int = int(os.getenv("GEOCODE_CACHE_TTL_S", "86400"))

    # Discovery radii and limits
    home_radius_browser_km: float = float(os.getenv("HOME_RADIUS_BROWSER_KM", "250"))  # ~155 miles
    home_radius_zipcode_km: float = float(os.getenv("HOME_RADIUS_ZIPCODE_KM", "320"))  # ~200 miles
    search_radius_km: float = float(os.getenv("SEARCH_RADIUS_KM", "320"))
    home_limit: int = int(os.getenv("HOME_LIMIT", "20"))
    search_limit: int = int(os.getenv("SEARCH_LIMIT", "50"))

    # Delivery scheduling
    recurring_window_days: int = int(os.getenv("RECURRING_WINDOW_DAYS", "56"))  # 8 weeks
    default_time_window: str = os.getenv("DEFAULT_TIME_WINDOW", "9am - 5pm")

    # Spatial query retry (bounded)
    spatial_query_max_attempts: int = int(os.getenv("SPATIAL_QUERY_MAX_ATTEMPTS", "2"))
    spatial_query_retry_delay_s: float = float(os.getenv("SPATIAL_QUERY_RETRY_DELAY_S", "0.1"))

    # ZIP geocoding (Zippopotam.us, no auth)
    geocoder_base_url: str = os.getenv("GEOCODER_BASE_URL", "https://api.zippopotam.us/us")
    geocoder_timeout_s: float = float(os.getenv("GEOCODER_TIMEOUT_S", "5"))

    class Config:
        env_file = ".env"
        case_sensitive = False

# Global settings instance
settings = Settings()
