import datetime as dt
import hashlib
import uuid
from typing import Union

import pygeohash as pgh

GEOHASH_PRECISION = 7  # ~150m cells


def normalize_category(category: str) -> str:
    """Normalize a device category for comparison"""
    return (category or "").strip().casefold()


def is_valid_coordinates(latitude: float, longitude: float) -> bool:
    """Validate latitude and longitude ranges"""
    return -90 <= latitude <= 90 and -180 <= longitude <= 180


def encode_geohash(latitude: float, longitude: float) -> str:
    return pgh.encode(latitude, longitude, precision=GEOHASH_PRECISION)


def to_utc_datetime(value: Union[str, dt.datetime]) -> dt.datetime:
    """Parse an ISO 8601 string (trailing 'Z' allowed); naive values are UTC"""
    if isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        value = dt.datetime.fromisoformat(text)
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def generate_report_id(report_type: str) -> str:
    return f"{report_type}_{uuid.uuid4().hex[:8]}"


def match_id_for(lost_report_id: str, found_report_id: str) -> str:
    """Deterministic match id for an ordered (lost, found) pair"""
    digest = hashlib.sha1(f"{lost_report_id}:{found_report_id}".encode("utf-8")).hexdigest()
    return f"match_{digest[:20]}"
