"""
Report & Match Stores
---------------------
Abstract collaborators consumed by the matching service, plus the
in-memory backend used for local runs and tests.

Every store failure surfaces as StoreError (or one of its subclasses).
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from stolen_ai.common.errors import (DuplicateMatchError, DuplicateReportError,
                                     MatchNotFoundError)
from stolen_ai.common.schemas import (DeviceMatch, DeviceReport, MatchStatus,
                                      ReportType)
from stolen_ai.common.utils import match_id_for, utcnow

logger = logging.getLogger(__name__)


class ReportStore(ABC):

    @abstractmethod
    async def query_reports_by_type(self, report_type: ReportType,
                                    exclude_id: Optional[str] = None) -> List[DeviceReport]:
        """All reports of `report_type` except `exclude_id`, in store order"""

    @abstractmethod
    async def get_report_by_id(self, report_id: str) -> Optional[DeviceReport]:
        ...

    @abstractmethod
    async def insert_report(self, report: DeviceReport) -> DeviceReport:
        """Persist a new report. Raises DuplicateReportError when the id is taken"""


class MatchStore(ABC):

    @abstractmethod
    async def find_existing_match(self, lost_report_id: str,
                                  found_report_id: str) -> Optional[DeviceMatch]:
        ...

    @abstractmethod
    async def insert_match(self, match: DeviceMatch) -> DeviceMatch:
        """
        Persist a match under its pair id. Raises DuplicateMatchError when
        the (lost, found) pair is already stored; the check and the write
        are a single atomic step.
        """

    @abstractmethod
    async def get_match(self, match_id: str) -> Optional[DeviceMatch]:
        ...

    @abstractmethod
    async def update_match_status(self, match_id: str, status: MatchStatus) -> DeviceMatch:
        """Set only the status field. Raises MatchNotFoundError for unknown ids"""

    @abstractmethod
    async def list_matches(self, status: Optional[MatchStatus] = None,
                           limit: int = 20, offset: int = 0) -> List[DeviceMatch]:
        """Newest first"""

    @abstractmethod
    async def list_matches_for_report(self, report_id: str) -> List[DeviceMatch]:
        """Matches on either side of `report_id`, highest confidence first"""


class MatchNotifier(ABC):

    @abstractmethod
    async def notify_new_match(self, match: DeviceMatch) -> None:
        ...


class LoggingNotifier(MatchNotifier):
    """Default notifier: records new matches in the log"""

    async def notify_new_match(self, match: DeviceMatch) -> None:
        logger.info(
            f"New match {match.id}: lost={match.lost_report_id} "
            f"found={match.found_report_id} confidence={match.match_confidence:.2f}"
        )


# ─── in-memory backend ──────────────────────────────────────────

class InMemoryReportStore(ReportStore):

    def __init__(self, reports: Optional[List[DeviceReport]] = None):
        self._reports: Dict[str, DeviceReport] = {}
        self._lock = asyncio.Lock()
        for report in reports or []:
            self._reports[report.id] = report.model_copy(deep=True)

    async def query_reports_by_type(self, report_type: ReportType,
                                    exclude_id: Optional[str] = None) -> List[DeviceReport]:
        return [
            report.model_copy(deep=True)
            for report in self._reports.values()
            if report.report_type == report_type and report.id != exclude_id
        ]

    async def get_report_by_id(self, report_id: str) -> Optional[DeviceReport]:
        report = self._reports.get(report_id)
        return report.model_copy(deep=True) if report else None

    async def insert_report(self, report: DeviceReport) -> DeviceReport:
        async with self._lock:
            if report.id in self._reports:
                raise DuplicateReportError(report.id)
            self._reports[report.id] = report.model_copy(deep=True)
        return report


class InMemoryMatchStore(MatchStore):

    def __init__(self):
        self._matches: Dict[str, DeviceMatch] = {}  # insertion ordered
        self._lock = asyncio.Lock()

    async def find_existing_match(self, lost_report_id: str,
                                  found_report_id: str) -> Optional[DeviceMatch]:
        match = self._matches.get(match_id_for(lost_report_id, found_report_id))
        return match.model_copy(deep=True) if match else None

    async def insert_match(self, match: DeviceMatch) -> DeviceMatch:
        match_id = match_id_for(match.lost_report_id, match.found_report_id)
        async with self._lock:
            if match_id in self._matches:
                raise DuplicateMatchError(match.lost_report_id, match.found_report_id)
            stored = match.model_copy(update={"id": match_id, "created_at": utcnow()}, deep=True)
            self._matches[match_id] = stored
        return stored.model_copy(deep=True)

    async def get_match(self, match_id: str) -> Optional[DeviceMatch]:
        match = self._matches.get(match_id)
        return match.model_copy(deep=True) if match else None

    async def update_match_status(self, match_id: str, status: MatchStatus) -> DeviceMatch:
        async with self._lock:
            match = self._matches.get(match_id)
            if match is None:
                raise MatchNotFoundError(match_id)
            updated = match.model_copy(update={"status": status})
            self._matches[match_id] = updated
        return updated.model_copy(deep=True)

    async def list_matches(self, status: Optional[MatchStatus] = None,
                           limit: int = 20, offset: int = 0) -> List[DeviceMatch]:
        matches = [
            m for m in reversed(list(self._matches.values()))
            if status is None or m.status == status
        ]
        return [m.model_copy(deep=True) for m in matches[offset:offset + limit]]

    async def list_matches_for_report(self, report_id: str) -> List[DeviceMatch]:
        matches = [
            m.model_copy(deep=True) for m in self._matches.values()
            if report_id in (m.lost_report_id, m.found_report_id)
        ]
        return sorted(matches, key=lambda m: m.match_confidence, reverse=True)
