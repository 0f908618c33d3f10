"""
Matching Service Tests
======================
Candidate search, auto-creation with deduplication, suggestions, manual
matches and status updates against in-memory stores.

Store failures are simulated with AsyncMock; nothing touches Firestore.
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import make_report
from stolen_ai.common.errors import StoreError
from stolen_ai.common.schemas import (ErrorKind, MatchCriteria, MatchStatus,
                                      ReportType)
from stolen_ai.matching_db import (InMemoryMatchStore, InMemoryReportStore,
                                   MatchingService, MatchNotifier, ReportStore)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
class FlakyMatchStore(InMemoryMatchStore):
    """Fails every insert for one found report id"""

    def __init__(self, failing_found_id):
        super().__init__()
        self.failing_found_id = failing_found_id

    async def insert_match(self, match):
        if match.found_report_id == self.failing_found_id:
            raise StoreError("write rejected")
        return await super().insert_match(match)


def _failing_report_store():
    store = MagicMock(spec=ReportStore)
    store.query_reports_by_type = AsyncMock(side_effect=StoreError("backend unavailable"))
    store.get_report_by_id = AsyncMock(side_effect=StoreError("backend unavailable"))
    return store


# ===================================================================
# Candidate search
# ===================================================================
def test_find_potential_matches_orders_by_confidence(service, lost_report):
    async def run_test():
        result = await service.find_potential_matches(lost_report)

        assert result.ok
        ids = [m.found_report_id for m in result.data]
        assert ids == ["found_perfect", "found_mid"]
        assert result.data[0].match_confidence == 1.0
        assert result.data[1].match_confidence == pytest.approx(0.56)
        assert all(m.lost_report_id == "lost_1" for m in result.data)
        assert all(m.status == MatchStatus.PENDING for m in result.data)

    asyncio.run(run_test())


def test_radius_excludes_far_candidates(service, lost_report):
    """A 60 km candidate is not scored at 50 km, but is at 100 km."""
    async def run_test():
        within_50 = await service.find_potential_matches(lost_report, 50)
        within_100 = await service.find_potential_matches(lost_report, 100)

        assert "found_far" not in [m.found_report_id for m in within_50.data]
        far = [m for m in within_100.data if m.found_report_id == "found_far"]
        assert len(far) == 1
        assert far[0].match_confidence == pytest.approx(0.65)

    asyncio.run(run_test())


def test_confidence_floor_is_exclusive(service, lost_report):
    async def run_test():
        result = await service.find_potential_matches(lost_report)
        assert "found_floor" not in [m.found_report_id for m in result.data]
        assert all(m.match_confidence > 0.3 for m in result.data)

    asyncio.run(run_test())


def test_found_report_searches_lost_reports(service, found_perfect):
    """Pair order is always (lost, found) whichever side searches."""
    async def run_test():
        result = await service.find_potential_matches(found_perfect)

        assert result.ok
        assert len(result.data) == 1
        assert result.data[0].lost_report_id == "lost_1"
        assert result.data[0].found_report_id == "found_perfect"

    asyncio.run(run_test())


def test_ties_keep_store_order(match_store, lost_report):
    async def run_test():
        twins = [
            make_report(f"found_twin_{i}", ReportType.FOUND, description="found black iPhone")
            for i in range(3)
        ]
        service = MatchingService(InMemoryReportStore([lost_report, *twins]), match_store)

        result = await service.find_potential_matches(lost_report)

        assert [m.found_report_id for m in result.data] == ["found_twin_0", "found_twin_1", "found_twin_2"]

    asyncio.run(run_test())


def test_store_failure_returns_error_result(match_store, lost_report):
    async def run_test():
        service = MatchingService(_failing_report_store(), match_store)

        result = await service.find_potential_matches(lost_report)

        assert result.failed
        assert result.error_kind == ErrorKind.STORE_ERROR
        assert result.data == []
        assert "backend unavailable" in result.error_message

    asyncio.run(run_test())


# ===================================================================
# Auto-creation
# ===================================================================
def test_auto_create_persists_only_high_confidence(service, match_store, notifier, lost_report):
    async def run_test():
        result = await service.auto_create_matches(lost_report)

        assert result.ok
        assert [m.found_report_id for m in result.data.created] == ["found_perfect"]
        stored = await match_store.list_matches()
        assert len(stored) == 1
        assert stored[0].status == MatchStatus.PENDING
        assert stored[0].id is not None
        assert [m.id for m in notifier.notified] == [stored[0].id]

    asyncio.run(run_test())


def test_auto_create_respects_custom_threshold(service, match_store, lost_report):
    async def run_test():
        result = await service.auto_create_matches(lost_report, min_confidence=0.5)

        assert sorted(m.found_report_id for m in result.data.created) == ["found_mid", "found_perfect"]
        assert len(await match_store.list_matches()) == 2

    asyncio.run(run_test())


def test_auto_create_twice_creates_one_match(service, match_store, found_perfect):
    async def run_test():
        first = await service.auto_create_matches(found_perfect)
        second = await service.auto_create_matches(found_perfect)

        assert len(first.data.created) == 1
        assert second.data.created == []
        assert len(second.data.skipped) == 1
        assert len(await match_store.list_matches()) == 1

    asyncio.run(run_test())


def test_concurrent_auto_create_creates_one_match(service, match_store, lost_report, found_perfect):
    async def run_test():
        await asyncio.gather(
            service.auto_create_matches(lost_report),
            service.auto_create_matches(found_perfect),
            service.auto_create_matches(lost_report),
        )
        stored = await match_store.list_matches_for_report("found_perfect")
        assert len(stored) == 1

    asyncio.run(run_test())


def test_auto_create_isolates_insert_failures(lost_report, found_perfect):
    async def run_test():
        second_found = make_report(
            "found_bad", ReportType.FOUND,
            description="found black iPhone cracked screen near mall",
            incident_date="2024-01-01T10:15:00Z",
        )
        match_store = FlakyMatchStore("found_bad")
        service = MatchingService(
            InMemoryReportStore([lost_report, found_perfect, second_found]), match_store
        )

        result = await service.auto_create_matches(lost_report)

        assert result.ok
        assert [m.found_report_id for m in result.data.created] == ["found_perfect"]
        assert [m.found_report_id for m in result.data.failed] == ["found_bad"]
        assert len(await match_store.list_matches()) == 1

    asyncio.run(run_test())


def test_notifier_failure_does_not_undo_match(report_store, match_store, lost_report):
    async def run_test():
        notifier = MagicMock(spec=MatchNotifier)
        notifier.notify_new_match = AsyncMock(side_effect=RuntimeError("smtp down"))
        service = MatchingService(report_store, match_store, notifier)

        result = await service.auto_create_matches(lost_report)

        assert len(result.data.created) == 1
        notifier.notify_new_match.assert_awaited_once()
        assert len(await match_store.list_matches()) == 1

    asyncio.run(run_test())


def test_auto_create_reports_search_failure(match_store, lost_report):
    async def run_test():
        service = MatchingService(_failing_report_store(), match_store)

        result = await service.auto_create_matches(lost_report)

        assert result.failed
        assert result.error_kind == ErrorKind.STORE_ERROR
        assert result.data.created == []

    asyncio.run(run_test())


# ===================================================================
# Suggestions
# ===================================================================
def test_suggestions_for_known_report(service):
    async def run_test():
        result = await service.get_match_suggestions("lost_1")
        assert result.ok
        assert [m.found_report_id for m in result.data] == ["found_perfect", "found_mid"]

    asyncio.run(run_test())


def test_suggestions_for_unknown_report(service):
    async def run_test():
        result = await service.get_match_suggestions("missing")
        assert result.failed
        assert result.error_kind == ErrorKind.NOT_FOUND
        assert result.data == []

    asyncio.run(run_test())


def test_suggestions_store_failure(match_store):
    async def run_test():
        service = MatchingService(_failing_report_store(), match_store)
        result = await service.get_match_suggestions("lost_1")
        assert result.error_kind == ErrorKind.STORE_ERROR
        assert result.data == []

    asyncio.run(run_test())


# ===================================================================
# Status updates
# ===================================================================
async def _persist_perfect_match(service, lost_report):
    result = await service.auto_create_matches(lost_report)
    return result.data.created[0]


def test_status_update_changes_only_status(service, match_store, lost_report):
    async def run_test():
        match = await _persist_perfect_match(service, lost_report)
        before = (await match_store.get_match(match.id)).model_dump(exclude={"status"})

        result = await service.update_match_status(match.id, MatchStatus.CONTACTED)

        assert result.ok
        after = await match_store.get_match(match.id)
        assert after.status == MatchStatus.CONTACTED
        assert after.model_dump(exclude={"status"}) == before

    asyncio.run(run_test())


def test_status_update_accepts_any_transition_by_default(service, match_store, lost_report):
    async def run_test():
        match = await _persist_perfect_match(service, lost_report)

        assert (await service.update_match_status(match.id, "recovered")).ok
        assert (await service.update_match_status(match.id, "pending")).ok
        assert (await match_store.get_match(match.id)).status == MatchStatus.PENDING

    asyncio.run(run_test())


def test_strict_transitions_refuse_skipping_steps(report_store, match_store, lost_report):
    async def run_test():
        service = MatchingService(report_store, match_store, strict_transitions=True)
        match = await _persist_perfect_match(service, lost_report)

        refused = await service.update_match_status(match.id, MatchStatus.RECOVERED)
        assert refused.failed
        assert refused.error_kind == ErrorKind.INVALID_TRANSITION
        assert (await match_store.get_match(match.id)).status == MatchStatus.PENDING

        for status in (MatchStatus.CONTACTED, MatchStatus.VERIFIED, MatchStatus.RECOVERED):
            assert (await service.update_match_status(match.id, status)).ok

    asyncio.run(run_test())


def test_status_update_unknown_match(service):
    async def run_test():
        result = await service.update_match_status("match_missing", MatchStatus.REJECTED)
        assert not result.ok
        assert result.error_kind == ErrorKind.NOT_FOUND

    asyncio.run(run_test())


def test_status_update_rejects_unknown_status(service):
    async def run_test():
        result = await service.update_match_status("match_any", "lost")
        assert result.error_kind == ErrorKind.INVALID_INPUT

    asyncio.run(run_test())


def test_status_update_store_failure(report_store, lost_report):
    async def run_test():
        match_store = InMemoryMatchStore()
        match_store.update_match_status = AsyncMock(side_effect=StoreError("timeout"))
        service = MatchingService(report_store, match_store)

        result = await service.update_match_status("match_any", MatchStatus.CONTACTED)

        assert result.ok is False
        assert result.error_kind == ErrorKind.STORE_ERROR

    asyncio.run(run_test())


def test_match_actions_map_to_statuses(service, lost_report):
    async def run_test():
        match = await _persist_perfect_match(service, lost_report)

        result = await service.apply_match_action(match.id, "contact")
        assert result.data.status == MatchStatus.CONTACTED

        invalid = await service.apply_match_action(match.id, "escalate")
        assert invalid.error_kind == ErrorKind.INVALID_INPUT

    asyncio.run(run_test())


# ===================================================================
# Reports & manual matches
# ===================================================================
def test_register_report_validates_coordinates(service):
    async def run_test():
        bad = make_report("lost_bad", ReportType.LOST, lat=95.0)
        result = await service.register_report(bad)
        assert result.error_kind == ErrorKind.INVALID_INPUT

        good = make_report("lost_new", ReportType.LOST)
        assert (await service.register_report(good)).ok
        assert (await service.get_report("lost_new")).data.id == "lost_new"

    asyncio.run(run_test())


def test_register_report_refuses_existing_id(service, match_store):
    """A re-registered id must not change the stored report type."""
    async def run_test():
        first = await service.register_report(make_report("r1", ReportType.LOST))
        second = await service.register_report(make_report("r1", ReportType.FOUND))

        assert first.ok
        assert second.failed
        assert second.error_kind == ErrorKind.DUPLICATE
        assert (await service.get_report("r1")).data.report_type == ReportType.LOST

        # Existing matches keep pointing at a lost report
        await service.auto_create_matches(first.data)
        stored = await match_store.list_matches_for_report("r1")
        assert [m.lost_report_id for m in stored] == ["r1"]
        assert (await service.register_report(make_report("r1", ReportType.FOUND))).error_kind == ErrorKind.DUPLICATE
        assert (await service.get_report("r1")).data.report_type == ReportType.LOST

    asyncio.run(run_test())


def test_create_manual_match(service, notifier):
    async def run_test():
        result = await service.create_match("lost_1", "found_mid")

        assert result.ok
        assert result.data.match_confidence == 0.8
        assert result.data.match_criteria == MatchCriteria()
        assert notifier.notified[-1].id == result.data.id

        duplicate = await service.create_match("lost_1", "found_mid", match_confidence=0.9)
        assert duplicate.error_kind == ErrorKind.DUPLICATE

    asyncio.run(run_test())


@pytest.mark.parametrize("lost_id,found_id", [
    ("missing", "found_mid"),
    ("found_mid", "lost_1"),
    ("lost_1", "lost_1"),
])
def test_create_manual_match_rejects_invalid_ids(service, lost_id, found_id):
    async def run_test():
        result = await service.create_match(lost_id, found_id)
        assert result.error_kind == ErrorKind.INVALID_INPUT
        assert result.error_message == "Invalid report IDs"

    asyncio.run(run_test())


def test_matches_for_report_sorted_by_confidence(service, lost_report):
    async def run_test():
        await service.auto_create_matches(lost_report, min_confidence=0.5)

        result = await service.get_matches_for_report("lost_1")

        assert [m.found_report_id for m in result.data] == ["found_perfect", "found_mid"]

    asyncio.run(run_test())
