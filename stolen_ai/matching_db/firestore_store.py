"""
Firestore Stores
----------------
ReportStore / MatchStore backed by Cloud Firestore (async client).

Collections:
    lost_found_reports   one document per report, keyed by report id
    device_matches       one document per (lost, found) pair, keyed by match_id_for()

Keying matches by pair lets Firestore's create() reject duplicates atomically.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from google.api_core import exceptions as gexc
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from stolen_ai.common.errors import (DuplicateMatchError, DuplicateReportError,
                                     MatchNotFoundError, StoreError)
from stolen_ai.common.schemas import (DeviceMatch, DeviceReport, MatchStatus,
                                      ReportType)
from stolen_ai.common.utils import encode_geohash, match_id_for, utcnow

from .stores import MatchStore, ReportStore

logger = logging.getLogger(__name__)


def report_to_document(report: DeviceReport) -> Dict[str, Any]:
    doc = report.model_dump(mode="json")
    doc["incident_date"] = report.incident_date
    doc["location_geohash"] = encode_geohash(report.location_lat, report.location_lng)
    return doc


def report_from_document(doc: Dict[str, Any]) -> DeviceReport:
    doc = dict(doc)
    doc.pop("location_geohash", None)
    return DeviceReport(**doc)


def match_to_document(match: DeviceMatch) -> Dict[str, Any]:
    doc = match.model_dump(mode="json")
    doc["created_at"] = match.created_at
    return doc


def match_from_document(doc: Dict[str, Any]) -> DeviceMatch:
    return DeviceMatch(**doc)


class FirestoreReportStore(ReportStore):

    def __init__(self, client: firestore.AsyncClient, collection: str = "lost_found_reports"):
        self._db = client
        self._collection = collection

    async def query_reports_by_type(self, report_type: ReportType,
                                    exclude_id: Optional[str] = None) -> List[DeviceReport]:
        query = self._db.collection(self._collection).where(
            filter=FieldFilter("report_type", "==", report_type.value)
        )
        try:
            reports = []
            async for snapshot in query.stream():
                if snapshot.id == exclude_id:
                    continue
                reports.append(report_from_document(snapshot.to_dict()))
            return reports
        except gexc.GoogleAPIError as e:
            raise StoreError(f"Failed to query {report_type.value} reports: {e}") from e

    async def get_report_by_id(self, report_id: str) -> Optional[DeviceReport]:
        try:
            snapshot = await self._db.collection(self._collection).document(report_id).get()
        except gexc.GoogleAPIError as e:
            raise StoreError(f"Failed to load report {report_id}: {e}") from e
        if not snapshot.exists:
            return None
        return report_from_document(snapshot.to_dict())

    async def insert_report(self, report: DeviceReport) -> DeviceReport:
        try:
            await self._db.collection(self._collection).document(report.id).create(
                report_to_document(report)
            )
        except gexc.AlreadyExists as e:
            raise DuplicateReportError(report.id) from e
        except gexc.GoogleAPIError as e:
            raise StoreError(f"Failed to save report {report.id}: {e}") from e
        logger.info(f"Saved report to Firestore: {report.id}")
        return report


class FirestoreMatchStore(MatchStore):

    def __init__(self, client: firestore.AsyncClient, collection: str = "device_matches"):
        self._db = client
        self._collection = collection

    def _doc(self, match_id: str):
        return self._db.collection(self._collection).document(match_id)

    async def find_existing_match(self, lost_report_id: str,
                                  found_report_id: str) -> Optional[DeviceMatch]:
        return await self.get_match(match_id_for(lost_report_id, found_report_id))

    async def insert_match(self, match: DeviceMatch) -> DeviceMatch:
        match_id = match_id_for(match.lost_report_id, match.found_report_id)
        stored = match.model_copy(update={"id": match_id, "created_at": utcnow()})
        try:
            await self._doc(match_id).create(match_to_document(stored))
        except gexc.AlreadyExists as e:
            raise DuplicateMatchError(match.lost_report_id, match.found_report_id) from e
        except gexc.GoogleAPIError as e:
            raise StoreError(f"Failed to create match {match_id}: {e}") from e
        return stored

    async def get_match(self, match_id: str) -> Optional[DeviceMatch]:
        try:
            snapshot = await self._doc(match_id).get()
        except gexc.GoogleAPIError as e:
            raise StoreError(f"Failed to load match {match_id}: {e}") from e
        if not snapshot.exists:
            return None
        return match_from_document(snapshot.to_dict())

    async def update_match_status(self, match_id: str, status: MatchStatus) -> DeviceMatch:
        ref = self._doc(match_id)
        try:
            await ref.update({"status": status.value})
            snapshot = await ref.get()
        except gexc.NotFound as e:
            raise MatchNotFoundError(match_id) from e
        except gexc.GoogleAPIError as e:
            raise StoreError(f"Failed to update match {match_id}: {e}") from e
        return match_from_document(snapshot.to_dict())

    async def list_matches(self, status: Optional[MatchStatus] = None,
                           limit: int = 20, offset: int = 0) -> List[DeviceMatch]:
        query = self._db.collection(self._collection)
        if status is not None:
            query = query.where(filter=FieldFilter("status", "==", status.value))
        query = query.order_by("created_at", direction=firestore.Query.DESCENDING)
        query = query.offset(offset).limit(limit)
        try:
            return [match_from_document(s.to_dict()) async for s in query.stream()]
        except gexc.GoogleAPIError as e:
            raise StoreError(f"Failed to list matches: {e}") from e

    async def list_matches_for_report(self, report_id: str) -> List[DeviceMatch]:
        matches: Dict[str, DeviceMatch] = {}
        try:
            for field_name in ("lost_report_id", "found_report_id"):
                query = self._db.collection(self._collection).where(
                    filter=FieldFilter(field_name, "==", report_id)
                )
                async for snapshot in query.stream():
                    matches[snapshot.id] = match_from_document(snapshot.to_dict())
        except gexc.GoogleAPIError as e:
            raise StoreError(f"Failed to list matches for report {report_id}: {e}") from e
        return sorted(matches.values(), key=lambda m: m.match_confidence, reverse=True)
