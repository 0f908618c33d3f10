"""
Device Matching Service
-----------------------
Candidate search, auto-creation of high-confidence matches, suggestions
and match status updates on top of injected report/match stores.

Every operation that touches a store returns a ServiceResult; failures are
logged and reported in the result, never raised to the caller.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from stolen_ai.common import config
from stolen_ai.common.errors import (DuplicateMatchError, DuplicateReportError,
                                     InvalidStatusTransition, MatchNotFoundError)
from stolen_ai.common.schemas import (AutoMatchSummary, DeviceMatch, DeviceReport,
                                      ErrorKind, MatchCriteria, MatchStatus,
                                      ReportType, ServiceResult, as_typed_report)
from stolen_ai.common.utils import is_valid_coordinates

from .lifecycle import MatchAction, status_for_action, validate_status_transition
from .models import (MIN_MATCH_CONFIDENCE, calculate_distance,
                     calculate_match_confidence)
from .stores import (InMemoryMatchStore, InMemoryReportStore, LoggingNotifier,
                     MatchNotifier, MatchStore, ReportStore)

logger = logging.getLogger(__name__)

DEFAULT_RADIUS_KM = 50.0
DEFAULT_AUTO_MATCH_CONFIDENCE = 0.8
MANUAL_MATCH_CONFIDENCE = 0.8


class MatchingService:
    """Matches lost reports with found reports and manages the resulting matches"""

    def __init__(self,
                 report_store: ReportStore,
                 match_store: MatchStore,
                 notifier: Optional[MatchNotifier] = None,
                 *,
                 default_radius_km: float = DEFAULT_RADIUS_KM,
                 auto_match_min_confidence: float = DEFAULT_AUTO_MATCH_CONFIDENCE,
                 strict_transitions: bool = False):
        self.report_store = report_store
        self.match_store = match_store
        self.notifier = notifier or LoggingNotifier()
        self.default_radius_km = default_radius_km
        self.auto_match_min_confidence = auto_match_min_confidence
        self.strict_transitions = strict_transitions

    # ── candidate search ──────────────────────────────────────
    def _score_candidate(self, report: DeviceReport, candidate: DeviceReport,
                         radius_km: float) -> Optional[DeviceMatch]:
        distance = calculate_distance(
            report.location_lat, report.location_lng,
            candidate.location_lat, candidate.location_lng
        )
        if distance > radius_km:
            return None

        if report.report_type == ReportType.LOST:
            lost, found = report, candidate
        else:
            lost, found = candidate, report

        confidence, criteria = calculate_match_confidence(
            as_typed_report(lost), as_typed_report(found)
        )
        if confidence <= MIN_MATCH_CONFIDENCE:
            return None

        return DeviceMatch(
            lost_report_id=lost.id,
            found_report_id=found.id,
            match_confidence=confidence,
            match_criteria=criteria,
            status=MatchStatus.PENDING,
        )

    async def find_potential_matches(self, report: DeviceReport,
                                     radius_km: Optional[float] = None) -> ServiceResult:
        """
        Score all opposite-type reports within `radius_km` of `report`.

        Args:
            report: The lost or found report to match
            radius_km: Search radius, defaults to the service radius

        Returns:
            ServiceResult whose data is the list of candidate DeviceMatch
            objects with confidence > 0.3, highest confidence first
        """
        if radius_km is None:
            radius_km = self.default_radius_km
        opposite_type = report.report_type.opposite

        try:
            candidates = await self.report_store.query_reports_by_type(opposite_type, exclude_id=report.id)
        except Exception as e:
            logger.error(f"Error fetching {opposite_type.value} reports for {report.id}: {e}")
            return ServiceResult.error(ErrorKind.STORE_ERROR, str(e), data=[])

        matches: List[DeviceMatch] = []
        for candidate in candidates:
            if candidate.id == report.id or candidate.report_type != opposite_type:
                logger.warning(f"Ignoring unexpected candidate {candidate.id} for report {report.id}")
                continue
            match = self._score_candidate(report, candidate, radius_km)
            if match is not None:
                matches.append(match)

        matches.sort(key=lambda m: m.match_confidence, reverse=True)
        logger.info(f"Found {len(matches)} potential matches for {report.report_type.value} report {report.id}")
        return ServiceResult.success(matches)

    # ── auto-creation ─────────────────────────────────────────
    async def _notify(self, match: DeviceMatch) -> None:
        try:
            await self.notifier.notify_new_match(match)
        except Exception as e:
            logger.warning(f"Match notification failed for {match.id}: {e}")

    async def auto_create_matches(self, report: DeviceReport,
                                  min_confidence: Optional[float] = None) -> ServiceResult:
        """
        Persist every candidate match with confidence >= `min_confidence`
        that is not stored yet. Each insert is attempted independently.

        Returns:
            ServiceResult whose data is an AutoMatchSummary
        """
        if min_confidence is None:
            min_confidence = self.auto_match_min_confidence

        search = await self.find_potential_matches(report)
        if search.failed:
            return ServiceResult.error(search.error_kind, search.error_message, data=AutoMatchSummary())

        summary = AutoMatchSummary()
        for match in search.data:
            if match.match_confidence < min_confidence:
                continue
            try:
                existing = await self.match_store.find_existing_match(match.lost_report_id, match.found_report_id)
                if existing is not None:
                    summary.skipped.append(existing)
                    continue
                created = await self.match_store.insert_match(
                    match.model_copy(update={"status": MatchStatus.PENDING})
                )
            except DuplicateMatchError:
                logger.info(f"Match already created concurrently: {match.lost_report_id} / {match.found_report_id}")
                summary.skipped.append(match)
                continue
            except Exception as e:
                logger.error(f"Error creating auto-match {match.lost_report_id} / {match.found_report_id}: {e}")
                summary.failed.append(match)
                continue

            logger.info(f"Auto-created match with confidence: {created.match_confidence}")
            summary.created.append(created)
            await self._notify(created)

        return ServiceResult.success(summary)

    # ── suggestions ───────────────────────────────────────────
    async def get_match_suggestions(self, report_id: str) -> ServiceResult:
        loaded = await self.get_report(report_id)
        if loaded.failed:
            return ServiceResult.error(loaded.error_kind, loaded.error_message, data=[])
        return await self.find_potential_matches(loaded.data)

    # ── status lifecycle ──────────────────────────────────────
    async def update_match_status(self, match_id: str, status: MatchStatus | str) -> ServiceResult:
        """Change only the status of a persisted match. `result.ok` is the success flag"""
        try:
            status = MatchStatus(status)
        except ValueError:
            return ServiceResult.error(ErrorKind.INVALID_INPUT, f"Invalid status: {status}")

        try:
            if self.strict_transitions:
                current = await self.match_store.get_match(match_id)
                if current is None:
                    raise MatchNotFoundError(match_id)
                validate_status_transition(current.status, status)
            updated = await self.match_store.update_match_status(match_id, status)
        except InvalidStatusTransition as e:
            logger.warning(f"Refused status change for {match_id}: {e}")
            return ServiceResult.error(ErrorKind.INVALID_TRANSITION, str(e))
        except MatchNotFoundError as e:
            logger.warning(str(e))
            return ServiceResult.error(ErrorKind.NOT_FOUND, str(e))
        except Exception as e:
            logger.error(f"Error updating match status for {match_id}: {e}")
            return ServiceResult.error(ErrorKind.STORE_ERROR, str(e))

        logger.info(f"Match {match_id} is now {status.value}")
        return ServiceResult.success(updated)

    async def apply_match_action(self, match_id: str, action: MatchAction | str) -> ServiceResult:
        try:
            status = status_for_action(action)
        except ValueError as e:
            return ServiceResult.error(ErrorKind.INVALID_INPUT, str(e))
        return await self.update_match_status(match_id, status)

    # ── reports & manual matches ──────────────────────────────
    async def get_report(self, report_id: str) -> ServiceResult:
        try:
            report = await self.report_store.get_report_by_id(report_id)
        except Exception as e:
            logger.error(f"Error fetching report {report_id}: {e}")
            return ServiceResult.error(ErrorKind.STORE_ERROR, str(e))
        if report is None:
            logger.warning(f"Report not found: {report_id}")
            return ServiceResult.error(ErrorKind.NOT_FOUND, f"Report not found: {report_id}")
        return ServiceResult.success(report)

    async def register_report(self, report: DeviceReport) -> ServiceResult:
        if not is_valid_coordinates(report.location_lat, report.location_lng):
            return ServiceResult.error(ErrorKind.INVALID_INPUT, "Invalid coordinates")
        if not report.device_category.strip():
            return ServiceResult.error(ErrorKind.INVALID_INPUT, "Device category cannot be empty")

        try:
            saved = await self.report_store.insert_report(report)
        except DuplicateReportError as e:
            logger.warning(str(e))
            return ServiceResult.error(ErrorKind.DUPLICATE, str(e))
        except Exception as e:
            logger.error(f"Error saving report {report.id}: {e}")
            return ServiceResult.error(ErrorKind.STORE_ERROR, str(e))

        logger.info(f"Registered {saved.report_type.value} report {saved.id} ({saved.device_category})")
        return ServiceResult.success(saved)

    async def create_match(self,
                           lost_report_id: str,
                           found_report_id: str,
                           match_confidence: Optional[float] = None,
                           match_criteria: Optional[MatchCriteria] = None) -> ServiceResult:
        """Persist a user-proposed match between two existing reports"""
        try:
            lost = await self.report_store.get_report_by_id(lost_report_id)
            found = await self.report_store.get_report_by_id(found_report_id)
        except Exception as e:
            logger.error(f"Error fetching reports for manual match: {e}")
            return ServiceResult.error(ErrorKind.STORE_ERROR, str(e))

        if (lost is None or found is None
                or lost.report_type != ReportType.LOST
                or found.report_type != ReportType.FOUND):
            return ServiceResult.error(ErrorKind.INVALID_INPUT, "Invalid report IDs")

        try:
            match = DeviceMatch(
                lost_report_id=lost.id,
                found_report_id=found.id,
                match_confidence=MANUAL_MATCH_CONFIDENCE if match_confidence is None else match_confidence,
                match_criteria=match_criteria or MatchCriteria(),
                status=MatchStatus.PENDING,
            )
        except ValueError as e:
            return ServiceResult.error(ErrorKind.INVALID_INPUT, str(e))

        try:
            created = await self.match_store.insert_match(match)
        except DuplicateMatchError as e:
            return ServiceResult.error(ErrorKind.DUPLICATE, str(e))
        except Exception as e:
            logger.error(f"Error creating match: {e}")
            return ServiceResult.error(ErrorKind.STORE_ERROR, str(e))

        await self._notify(created)
        return ServiceResult.success(created)

    async def list_matches(self, status: Optional[MatchStatus] = None,
                           limit: int = 20, offset: int = 0) -> ServiceResult:
        try:
            return ServiceResult.success(await self.match_store.list_matches(status, limit, offset))
        except Exception as e:
            logger.error(f"Error fetching matches: {e}")
            return ServiceResult.error(ErrorKind.STORE_ERROR, str(e), data=[])

    async def get_matches_for_report(self, report_id: str) -> ServiceResult:
        try:
            return ServiceResult.success(await self.match_store.list_matches_for_report(report_id))
        except Exception as e:
            logger.error(f"Error fetching matches for report {report_id}: {e}")
            return ServiceResult.error(ErrorKind.STORE_ERROR, str(e), data=[])


def build_matching_service(notifier: Optional[MatchNotifier] = None) -> MatchingService:
    """Wire a MatchingService with the stores selected by STORE_BACKEND"""
    backend = config.STORE_BACKEND

    if backend == "firestore":
        if not config.PROJECT_ID:
            raise RuntimeError("PROJECT_ID must be set for the firestore backend")

        from google.cloud import firestore
        from .firestore_store import FirestoreMatchStore, FirestoreReportStore

        client = firestore.AsyncClient(project=config.PROJECT_ID)
        report_store = FirestoreReportStore(client, config.REPORTS_COLLECTION)
        match_store = FirestoreMatchStore(client, config.MATCHES_COLLECTION)
    elif backend == "memory":
        report_store = InMemoryReportStore()
        match_store = InMemoryMatchStore()
    else:
        raise RuntimeError(f"Unknown STORE_BACKEND: {backend}")

    logger.info(f"Matching service using {backend} stores")
    return MatchingService(
        report_store,
        match_store,
        notifier,
        default_radius_km=config.MATCH_RADIUS_KM,
        auto_match_min_confidence=config.AUTO_MATCH_MIN_CONFIDENCE,
        strict_transitions=config.STRICT_STATUS_TRANSITIONS,
    )
