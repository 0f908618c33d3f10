"""
STOLEN Device Matching
----------------------
Public API:

    MatchingService(report_store, match_store, notifier=None, ...)
    build_matching_service()
    calculate_distance / calculate_text_similarity /
    calculate_time_proximity / calculate_match_confidence
"""

from .models import (calculate_distance, calculate_text_similarity,
                     calculate_time_proximity, calculate_match_confidence)
from .lifecycle import (MatchAction, ALLOWED_TRANSITIONS, status_for_action,
                        validate_status_transition)
from .stores import (ReportStore, MatchStore, MatchNotifier, LoggingNotifier,
                     InMemoryReportStore, InMemoryMatchStore)

from .core import MatchingService, build_matching_service   # noqa: F401  (re-export)
