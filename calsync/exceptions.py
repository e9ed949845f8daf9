"""
Calendar sync exceptions.

Services raise these; the orchestrator turns per-pair failures into failed
SyncRun rows and the router turns review failures into HTTP errors.
"""

from typing import Optional


class CalendarSyncError(Exception):
    """Base class for calendar sync errors"""


class FetchError(CalendarSyncError):
    """Feed could not be retrieved (timeout, connection failure, non-2xx status)"""
    
    def __init__(
        self,
        unit_id: str,
        platform: str,
        message: str,
        status_code: Optional[int] = None
    ):
        self.unit_id = unit_id
        self.platform = platform
        self.status_code = status_code
        super().__init__(f"[{unit_id}/{platform}] {message}")


class ParseError(CalendarSyncError):
    """Calendar text is malformed; carries the offending block when known"""
    
    def __init__(self, message: str, block: Optional[str] = None):
        self.block = block
        super().__init__(message)
    
    def __str__(self) -> str:
        message = super().__str__()
        if self.block:
            return f"{message} (in block: {self.block[:200]})"
        return message


class StagedRecordNotFound(CalendarSyncError):
    """No staged reservation with the given id"""


class InvalidStageTransition(CalendarSyncError):
    """Operator action not allowed from the record's current stage status"""
