"""
Shared fixtures: Johannesburg lost/found scenario reports and a matching
service wired to in-memory stores.
"""
import pytest

from stolen_ai.common.schemas import DeviceReport, ReportType
from stolen_ai.matching_db import (InMemoryMatchStore, InMemoryReportStore,
                                   MatchingService)

JHB_LAT, JHB_LNG = -26.2041, 28.0473


def make_report(
    report_id: str,
    report_type: ReportType,
    lat: float = JHB_LAT,
    lng: float = JHB_LNG,
    category: str = "phone",
    model: str | None = "iPhone 15 Pro",
    description: str = "black iPhone with cracked screen",
    incident_date: str = "2024-01-01T10:00:00Z",
) -> DeviceReport:
    return DeviceReport(
        id=report_id,
        report_type=report_type,
        device_category=category,
        device_model=model,
        description=description,
        location_lat=lat,
        location_lng=lng,
        location_address="Johannesburg",
        incident_date=incident_date,
    )


class RecordingNotifier:
    def __init__(self):
        self.notified = []

    async def notify_new_match(self, match):
        self.notified.append(match)


@pytest.fixture
def lost_report():
    return make_report("lost_1", ReportType.LOST)


@pytest.fixture
def found_perfect():
    # ~0.12 km from lost_1, 30 minutes later
    return make_report(
        "found_perfect", ReportType.FOUND,
        lat=-26.2050, lng=28.0480,
        description="found black iPhone cracked screen near mall",
        incident_date="2024-01-01T10:30:00Z",
    )


@pytest.fixture
def found_mid():
    # ~10 km away, different model, two days later: 0.2 + 0.3 + 0.06
    return make_report(
        "found_mid", ReportType.FOUND,
        lat=-26.2941,
        model="iPhone 14",
        description="phone found at the station",
        incident_date="2024-01-03T10:00:00Z",
    )


@pytest.fixture
def found_floor():
    # ~10 km away, other category, same hour: 0.2 + 0.1 = exactly 0.3
    return make_report(
        "found_floor", ReportType.FOUND,
        lat=-26.2941,
        category="laptop",
        model=None,
        description="silver laptop bag",
        incident_date="2024-01-01T10:30:00Z",
    )


@pytest.fixture
def found_far():
    # ~60 km away, otherwise identical to found_perfect
    return make_report(
        "found_far", ReportType.FOUND,
        lat=-26.7441,
        description="found black iPhone cracked screen near mall",
        incident_date="2024-01-01T10:30:00Z",
    )


@pytest.fixture
def report_store(lost_report, found_perfect, found_mid, found_floor, found_far):
    return InMemoryReportStore([lost_report, found_perfect, found_mid, found_floor, found_far])


@pytest.fixture
def match_store():
    return InMemoryMatchStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def service(report_store, match_store, notifier):
    return MatchingService(report_store, match_store, notifier)
