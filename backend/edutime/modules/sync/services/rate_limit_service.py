from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from threading import Lock

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from edutime.modules.sync.errors import RateLimited
from edutime.modules.sync.models import ProcessedBatch, SyncRateLimit
from edutime.modules.sync.schemas import RequestTimestamps, SyncBatchResponse
from edutime.modules.sync.settings import SyncSettings

logger = logging.getLogger("sync")

# child id -> [lock, number of batches holding or waiting on it]
_child_locks: dict[str, list] = {}
_child_locks_guard = Lock()


@contextmanager
def ChildSyncLock(child_id: str):
    """Serialise batch processing for one child inside this process."""
    with _child_locks_guard:
        entry = _child_locks.setdefault(child_id, [Lock(), 0])
        entry[1] += 1
    try:
        with entry[0]:
            yield
    finally:
        with _child_locks_guard:
            entry[1] -= 1
            if entry[1] == 0:
                del _child_locks[child_id]


@dataclass(frozen=True)
class GuardDecision:
    Timestamps: list[int]
    PriorResponse: SyncBatchResponse | None = None

    @property
    def IsDuplicate(self) -> bool:
        return self.PriorResponse is not None


def _ParseTimestamps(record: SyncRateLimit) -> list[int]:
    try:
        return RequestTimestamps.validate_json(record.RequestTimestampsJson or "[]")
    except ValidationError as exc:
        raise ValueError(f"corrupt rate limit record for child={record.ChildUserId}") from exc


def LockRateLimit(db: Session, child_id: str) -> SyncRateLimit:
    """Fetch the child's rate limit row with a write lock, creating it if needed.

    Must be the first write of the batch transaction: losing the insert race
    rolls the transaction back before re-reading the winner's row.
    """
    record = (
        db.query(SyncRateLimit)
        .filter(SyncRateLimit.ChildUserId == child_id)
        .with_for_update()
        .first()
    )
    if record:
        return record

    try:
        db.add(SyncRateLimit(ChildUserId=child_id, RequestTimestampsJson="[]"))
        db.flush()
    except IntegrityError:
        db.rollback()
        logger.info("rate limit row created concurrently child=%s", child_id)
    return (
        db.query(SyncRateLimit)
        .filter(SyncRateLimit.ChildUserId == child_id)
        .with_for_update()
        .one()
    )


def LoadProcessedResponse(db: Session, child_id: str, batch_id: str) -> SyncBatchResponse | None:
    row = (
        db.query(ProcessedBatch)
        .filter(ProcessedBatch.ChildUserId == child_id, ProcessedBatch.BatchId == batch_id)
        .first()
    )
    if not row:
        return None
    return SyncBatchResponse.model_validate_json(row.ResponseJson)


def CheckRateLimit(
    db: Session,
    record: SyncRateLimit,
    batch_id: str,
    now_ms: int,
    settings: SyncSettings,
) -> GuardDecision:
    prior = LoadProcessedResponse(db, record.ChildUserId, batch_id)
    window_start = now_ms - settings.RateLimitWindowMs
    recent = [ts for ts in _ParseTimestamps(record) if ts > window_start]
    if prior is not None:
        return GuardDecision(Timestamps=recent, PriorResponse=prior)

    if len(recent) >= settings.RateLimitMaxRequests:
        raise RateLimited("Too many sync requests")
    return GuardDecision(Timestamps=recent)


def RecordRequest(
    db: Session,
    record: SyncRateLimit,
    decision: GuardDecision,
    batch_id: str,
    now_ms: int,
    response: SyncBatchResponse,
) -> None:
    record.RequestTimestampsJson = json.dumps(decision.Timestamps + [now_ms])
    record.UpdatedAt = datetime.utcnow()
    db.add(record)
    db.add(
        ProcessedBatch(
            ChildUserId=record.ChildUserId,
            BatchId=batch_id,
            ResponseJson=response.model_dump_json(by_alias=True),
        )
    )
