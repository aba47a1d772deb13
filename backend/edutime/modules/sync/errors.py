"""Batch-level sync failures.

Only these abort a batch. Problems with individual events are reported as
values in the batch result and are never raised.
"""

from fastapi import status

INVALID_HASH = "INVALID_HASH"
FUTURE_TIMESTAMP = "FUTURE_TIMESTAMP"
DURATION_TOO_SHORT = "DURATION_TOO_SHORT"
DURATION_ADJUSTED = "DURATION_ADJUSTED"
DURATION_CAPPED = "DURATION_CAPPED"
OVERLAPPING_EVENT = "OVERLAPPING_EVENT"
DUPLICATE_EVENT = "DUPLICATE_EVENT"


class SyncBatchError(Exception):
    Code = "SYNC_FAILED"
    StatusCode = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.Message = message

    def AsDetail(self) -> dict[str, str]:
        return {"code": self.Code, "message": self.Message}


class Unauthenticated(SyncBatchError):
    Code = "UNAUTHENTICATED"
    StatusCode = status.HTTP_401_UNAUTHORIZED


class PermissionDenied(SyncBatchError):
    Code = "PERMISSION_DENIED"
    StatusCode = status.HTTP_403_FORBIDDEN


class InvalidArgument(SyncBatchError):
    Code = "INVALID_ARGUMENT"
    StatusCode = status.HTTP_400_BAD_REQUEST


class RateLimited(SyncBatchError):
    Code = "RATE_LIMITED"
    StatusCode = status.HTTP_429_TOO_MANY_REQUESTS


class CommitFailed(SyncBatchError):
    Code = "COMMIT_FAILED"
    StatusCode = status.HTTP_503_SERVICE_UNAVAILABLE
