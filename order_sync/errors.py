# Error kinds for order service results

from enum import Enum


class ErrorKind(str, Enum):
    """Why a remote call failed. Decides retry vs. de-authentication."""
    NETWORK = 'network'        # timeout / unreachable, worth retrying
    AUTH = 'auth'              # session rejected, retrying cannot succeed
    REJECTED = 'rejected'      # server answered with an error
    MISSING_REFERENCE = 'missing_reference'
    UNKNOWN = 'unknown'


class SyncError(Exception):
    """Raised for local misuse of the sync components"""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.UNKNOWN):
        super().__init__(message)
        self.kind = kind


def failure(error: str, kind: ErrorKind, status_code: int = 0) -> dict:
    """Build a failed result dict in the shape every client call returns."""
    return {
        'success': False,
        'error': error,
        'error_kind': kind,
        'status_code': status_code,
    }
