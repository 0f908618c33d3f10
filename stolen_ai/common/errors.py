class StolenError(Exception):
    """Base exception for STOLEN matching operations"""
    pass


class ValidationError(StolenError, ValueError):
    """Invalid report or match input"""
    pass


class StoreError(StolenError):
    """Report or match store failure (network, query, write)"""
    pass


class DuplicateMatchError(StoreError):
    """A match for the same lost/found pair is already persisted"""

    def __init__(self, lost_report_id: str, found_report_id: str):
        super().__init__(
            f"Match already exists for lost={lost_report_id} found={found_report_id}"
        )
        self.lost_report_id = lost_report_id
        self.found_report_id = found_report_id


class MatchNotFoundError(StoreError):
    """Referenced match id does not exist"""

    def __init__(self, match_id: str):
        super().__init__(f"Match not found: {match_id}")
        self.match_id = match_id


class InvalidStatusTransition(StolenError):
    """Refused match status change"""

    def __init__(self, current, new):
        super().__init__(f"Cannot move match from '{current.value}' to '{new.value}'")
        self.current = current
        self.new = new


class DuplicateReportError(StoreError):
    """A report with the same id is already persisted"""

    def __init__(self, report_id: str):
        super().__init__(f"Report already exists: {report_id}")
        self.report_id = report_id
