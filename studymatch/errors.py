"""Exception hierarchy for the auto-match cycle"""

from typing import Optional


class StudyMatchError(Exception):
    """Base class for all studymatch errors"""


class StoreUnavailableError(StudyMatchError):
    """The member store could not be queried. Aborts the whole cycle."""


class DuplicatePairingError(StudyMatchError):
    """An active pairing already exists for this unordered pair"""

    def __init__(self, member_a: str, member_b: str):
        self.member_a = member_a
        self.member_b = member_b
        super().__init__(f"Active pairing already exists between {member_a} and {member_b}")


class StoreWriteError(StudyMatchError):
    """A write to one of the backing tables failed"""

    def __init__(self, table: str, detail: str):
        self.table = table
        self.detail = detail
        super().__init__(f"Write to {table} failed: {detail}")


class OpenerGenerationError(StudyMatchError):
    """External opener generation failed, timed out, or returned unusable text"""


class CycleAbortedError(StudyMatchError):
    """Raised by the orchestrator when a fatal error stops the cycle"""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        self.cause = cause
        super().__init__(message)
