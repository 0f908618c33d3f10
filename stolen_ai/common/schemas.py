"""
STOLEN Device Matching Schemas
------------------------------
Reports, match criteria, persisted matches and the result envelope
returned by every store-touching matching operation.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, List, Optional

from pydantic import BaseModel, Field, model_validator


class ReportType(str, Enum):
    LOST = "lost"
    FOUND = "found"

    @property
    def opposite(self) -> "ReportType":
        return ReportType.FOUND if self is ReportType.LOST else ReportType.LOST


class MatchStatus(str, Enum):
    PENDING = "pending"
    CONTACTED = "contacted"
    VERIFIED = "verified"
    RECOVERED = "recovered"
    REJECTED = "rejected"


class DeviceReport(BaseModel):
    """A user-submitted lost or found device report"""

    # Subclasses pin the report type they accept
    expected_type: ClassVar[Optional[ReportType]] = None

    id: str
    report_type: ReportType = Field(frozen=True)
    device_category: str
    device_model: Optional[str] = None
    serial_number: Optional[str] = None
    description: str = ""

    # Incident location (WGS84)
    location_lat: float
    location_lng: float
    location_address: str = ""

    incident_date: dt.datetime
    reward_amount: Optional[float] = None
    photos: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_expected_type(self):
        if self.expected_type is not None and self.report_type != self.expected_type:
            raise ValueError(
                f"{type(self).__name__} requires report_type '{self.expected_type.value}'"
            )
        return self


class LostReport(DeviceReport):
    expected_type: ClassVar[Optional[ReportType]] = ReportType.LOST
    report_type: ReportType = Field(default=ReportType.LOST, frozen=True)


class FoundReport(DeviceReport):
    expected_type: ClassVar[Optional[ReportType]] = ReportType.FOUND
    report_type: ReportType = Field(default=ReportType.FOUND, frozen=True)


def as_typed_report(report: DeviceReport) -> DeviceReport:
    """Return the report as a LostReport or FoundReport according to its type"""
    cls = LostReport if report.report_type == ReportType.LOST else FoundReport
    if isinstance(report, cls):
        return report
    return cls(**report.model_dump())


class MatchCriteria(BaseModel):
    location_match: bool = False
    device_category_match: bool = False
    device_model_match: bool = False
    time_proximity: bool = False
    description_similarity: float = Field(default=0.0, ge=0.0, le=1.0)


class DeviceMatch(BaseModel):
    """Candidate or persisted pairing of one lost and one found report"""
    id: Optional[str] = None
    lost_report_id: str
    found_report_id: str
    match_confidence: float = Field(ge=0.0, le=1.0)
    match_criteria: MatchCriteria = Field(default_factory=MatchCriteria)
    status: MatchStatus = MatchStatus.PENDING
    created_at: Optional[dt.datetime] = None


# ─── result envelope ────────────────────────────────────────────

class ResultStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class ErrorKind(str, Enum):
    STORE_ERROR = "store_error"
    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"
    INVALID_INPUT = "invalid_input"
    DUPLICATE = "duplicate"


@dataclass
class ServiceResult:
    """Success/error union returned at the matching service boundary"""
    status: ResultStatus
    data: Any = None
    error_message: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    @classmethod
    def success(cls, data: Any = None) -> "ServiceResult":
        return cls(status=ResultStatus.SUCCESS, data=data)

    @classmethod
    def error(cls, kind: ErrorKind, message: str, data: Any = None) -> "ServiceResult":
        return cls(status=ResultStatus.ERROR, data=data, error_message=message, error_kind=kind)

    @property
    def ok(self) -> bool:
        return self.status == ResultStatus.SUCCESS

    @property
    def failed(self) -> bool:
        return not self.ok


@dataclass
class AutoMatchSummary:
    """Outcome of one auto-match run"""
    created: List[DeviceMatch] = field(default_factory=list)
    skipped: List[DeviceMatch] = field(default_factory=list)
    failed: List[DeviceMatch] = field(default_factory=list)
