"""
Device Match Scoring
--------------------
Pure scoring functions: Haversine distance, Jaccard text similarity,
incident time proximity and the weighted lost/found match confidence.
"""

from __future__ import annotations

import datetime as dt
from math import atan2, cos, radians, sin, sqrt
from typing import Set, Tuple, Union

from stolen_ai.common.errors import ValidationError
from stolen_ai.common.schemas import (DeviceReport, FoundReport, LostReport,
                                      MatchCriteria, ReportType)
from stolen_ai.common.utils import normalize_category, to_utc_datetime

EARTH_RADIUS_KM = 6371

# Location bands (km)
NEAR_DISTANCE_KM = 5
PARTIAL_DISTANCE_KM = 20

# Weights
LOCATION_WEIGHT = 0.4
PARTIAL_LOCATION_WEIGHT = 0.2
CATEGORY_WEIGHT = 0.3
MODEL_WEIGHT = 0.2
PARTIAL_MODEL_WEIGHT = 0.1
TIME_WEIGHT = 0.1
DESCRIPTION_WEIGHT = 0.1

# Similarity thresholds
MODEL_STRONG_SIMILARITY = 0.8
MODEL_WEAK_SIMILARITY = 0.5
TIME_FLAG_SCORE = 0.6
DESCRIPTION_BONUS_SIMILARITY = 0.3

# Candidates at or below this confidence are never suggested
MIN_MATCH_CONFIDENCE = 0.3

# (upper bound in hours, score), checked in order
TIME_BANDS = (
    (1, 1.0),
    (24, 0.8),
    (168, 0.6),   # 1 week
    (720, 0.4),   # 1 month
)
TIME_FLOOR_SCORE = 0.2

CONFIDENCE_DECIMALS = 6


def calculate_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Calculate distance between two points in kilometers using Haversine formula"""
    lat1, lng1, lat2, lng2 = map(radians, [lat1, lng1, lat2, lng2])
    dlat = lat2 - lat1
    dlng = lng2 - lng1

    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlng / 2) ** 2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def tokenize(text: str) -> Set[str]:
    return set((text or "").lower().split())


def calculate_text_similarity(text1: str, text2: str) -> float:
    """
    Jaccard similarity of the unique lower-cased words of both texts.
    Two texts without any words score 0.0.
    """
    words1 = tokenize(text1)
    words2 = tokenize(text2)

    union = words1 | words2
    if not union:
        return 0.0
    return len(words1 & words2) / len(union)


def calculate_time_proximity(date1: Union[str, dt.datetime],
                             date2: Union[str, dt.datetime]) -> float:
    """Step score of the gap between two incident timestamps"""
    diff_hours = abs(
        (to_utc_datetime(date1) - to_utc_datetime(date2)).total_seconds()
    ) / 3600

    for upper_hours, score in TIME_BANDS:
        if diff_hours <= upper_hours:
            return score
    return TIME_FLOOR_SCORE


def _require_type(report: DeviceReport, report_type: ReportType, role: str) -> None:
    if report.report_type != report_type:
        raise ValidationError(
            f"{role} report must be '{report_type.value}', got '{report.report_type.value}' ({report.id})"
        )


def calculate_match_confidence(lost_report: LostReport,
                               found_report: FoundReport) -> Tuple[float, MatchCriteria]:
    """
    Calculate the confidence that a lost and a found report describe the
    same device. Returns (confidence, criteria) with confidence in [0, 1].
    """
    _require_type(lost_report, ReportType.LOST, "Lost")
    _require_type(found_report, ReportType.FOUND, "Found")

    criteria = MatchCriteria()
    confidence = 0.0

    # Location (40%, 20% when only nearby)
    distance = calculate_distance(
        lost_report.location_lat, lost_report.location_lng,
        found_report.location_lat, found_report.location_lng
    )
    if distance <= NEAR_DISTANCE_KM:
        criteria.location_match = True
        confidence += LOCATION_WEIGHT
    elif distance <= PARTIAL_DISTANCE_KM:
        confidence += PARTIAL_LOCATION_WEIGHT

    # Device category (30%)
    if normalize_category(lost_report.device_category) == normalize_category(found_report.device_category):
        criteria.device_category_match = True
        confidence += CATEGORY_WEIGHT

    # Device model (20%, 10% on a weak match)
    if lost_report.device_model and found_report.device_model:
        model_similarity = calculate_text_similarity(
            lost_report.device_model, found_report.device_model
        )
        if model_similarity > MODEL_STRONG_SIMILARITY:
            criteria.device_model_match = True
            confidence += MODEL_WEIGHT
        elif model_similarity > MODEL_WEAK_SIMILARITY:
            confidence += PARTIAL_MODEL_WEIGHT

    # Time proximity (10%, continuous)
    time_score = calculate_time_proximity(lost_report.incident_date, found_report.incident_date)
    if time_score > TIME_FLAG_SCORE:
        criteria.time_proximity = True
    confidence += time_score * TIME_WEIGHT

    # Description similarity (bonus)
    description_similarity = calculate_text_similarity(
        lost_report.description, found_report.description
    )
    criteria.description_similarity = description_similarity
    if description_similarity > DESCRIPTION_BONUS_SIMILARITY:
        confidence += description_similarity * DESCRIPTION_WEIGHT

    return round(min(1.0, confidence), CONFIDENCE_DECIMALS), criteria
