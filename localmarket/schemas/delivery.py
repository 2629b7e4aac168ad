"""
Schemas for delivery eligibility checks
"""
import logging
import re
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

DAYS_OF_WEEK = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday']
_DAY_LOOKUP = {day.lower(): day for day in DAYS_OF_WEEK}

ZIP_RE = re.compile(r"^\d{5}(-\d{4})?$")
STATE_RE = re.compile(r"^[A-Za-z]{2}$")


def canonical_day(value: Any) -> Optional[str]:
    """'monday' / 'MONDAY' / 'Monday' -> 'Monday'; None if not a weekday"""
    if not isinstance(value, str):
        return None
    return _DAY_LOOKUP.get(value.strip().lower())


def normalize_time_windows(raw: Any) -> Dict[str, str]:
    """
    Coerce the loosely-typed zone time-window JSON into {day: window}.

    Accepts either {"Monday": "9am - 5pm"} or
    [{"day": "Monday", "startTime": "9am", "endTime": "5pm"}].
    Malformed entries are dropped.
    """
    if not raw:
        return {}

    windows: Dict[str, str] = {}
    if isinstance(raw, dict):
        for key, window in raw.items():
            day = canonical_day(key)
            if day is None or not isinstance(window, str) or not window.strip():
                logger.warning(f"Dropping malformed time window entry {key!r}: {window!r}")
                continue
            windows[day] = window.strip()
        return windows

    if isinstance(raw, list):
        for entry in raw:
            if not isinstance(entry, dict):
                logger.warning(f"Dropping malformed time window entry: {entry!r}")
                continue
            day = canonical_day(entry.get("day"))
            start, end = entry.get("startTime"), entry.get("endTime")
            if day is None or not start or not end:
                logger.warning(f"Dropping malformed time window entry: {entry!r}")
                continue
            windows[day] = f"{start} - {end}"
        return windows

    logger.warning(f"Unrecognized time window payload type: {type(raw).__name__}")
    return {}


class EligibilityStatus(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    NO_DELIVERY = "NO_DELIVERY"
    NO_ZONE = "NO_ZONE"
    NOT_MATCHED = "NOT_MATCHED"
    ELIGIBLE = "ELIGIBLE"
    ERROR = "ERROR"


class DeliveryCheckRequest(BaseModel):
    """Request schema for a delivery eligibility check"""
    product_id: str = Field(..., min_length=1)
    user_zip_code: Optional[str] = None
    user_city: Optional[str] = None
    user_state: Optional[str] = None
    order_subtotal: Optional[int] = Field(None, ge=0)  # cents

    @field_validator('product_id')
    @classmethod
    def product_id_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('product_id is required')
        return v

    @field_validator('user_zip_code')
    @classmethod
    def zip_is_us_format(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        v = v.strip()
        if not ZIP_RE.match(v):
            raise ValueError('ZIP code must be 5 digits (optionally ZIP+4)')
        return v[:5]

    @field_validator('user_city')
    @classmethod
    def city_trimmed(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator('user_state')
    @classmethod
    def state_is_two_letters(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        v = v.strip()
        if not STATE_RE.match(v):
            raise ValueError('State must be a 2-letter code')
        return v.upper()


class DeliveryZoneConfig(BaseModel):
    """Validated read-side view of a delivery zone row"""
    id: str
    name: str
    zip_codes: List[str] = []
    cities: List[str] = []
    states: List[str] = []
    delivery_fee: int = Field(0, ge=0)
    free_delivery_threshold: Optional[int] = Field(None, ge=0)
    minimum_order: Optional[int] = Field(None, ge=0)
    delivery_days: List[str] = []
    delivery_time_windows: Dict[str, str] = {}
    is_active: bool = True

    class Config:
        from_attributes = True

    @field_validator('zip_codes', 'cities', 'states', 'delivery_days', mode='before')
    @classmethod
    def none_as_empty(cls, v):
        return v or []

    @field_validator('zip_codes')
    @classmethod
    def keep_valid_zips(cls, v: List[str]) -> List[str]:
        valid = []
        for zip_code in v:
            zip_code = str(zip_code).strip()
            if not ZIP_RE.match(zip_code):
                logger.warning(f"Dropping malformed zone ZIP {zip_code!r}")
                continue
            valid.append(zip_code[:5])
        return valid

    @field_validator('states')
    @classmethod
    def keep_valid_states(cls, v: List[str]) -> List[str]:
        valid = []
        for state in v:
            state = str(state).strip()
            if not STATE_RE.match(state):
                logger.warning(f"Dropping malformed zone state {state!r}")
                continue
            valid.append(state)
        return valid

    @field_validator('delivery_days')
    @classmethod
    def keep_real_days(cls, v: List[str]) -> List[str]:
        days = []
        for value in v:
            day = canonical_day(value)
            if day is None:
                logger.warning(f"Dropping unknown delivery day {value!r}")
                continue
            days.append(day)
        return days

    @field_validator('delivery_time_windows', mode='before')
    @classmethod
    def normalize_windows(cls, v):
        return normalize_time_windows(v)

    @model_validator(mode='after')
    def has_coverage(self):
        if not (self.zip_codes or self.cities or self.states):
            raise ValueError('delivery zone has no ZIP, city or state coverage')
        return self


class DeliveryOption(BaseModel):
    date: str  # ISO date
    day_of_week: str
    time_window: str
    delivery_fee: int  # cents, threshold-adjusted
    free_delivery_threshold: Optional[int] = None
    minimum_order: Optional[int] = None
    inventory: int
    is_recurring: bool
    delivery_zone_id: str


class DeliveryEligibilityResult(BaseModel):
    is_eligible: bool
    status: EligibilityStatus
    reason: Optional[str] = None
    matched_zip_code: Optional[str] = None
    matched_city: Optional[str] = None
    delivery_options: List[DeliveryOption] = []
