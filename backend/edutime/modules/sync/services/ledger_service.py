from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from edutime.modules.family.services.ratio_service import ComputeEarnedSeconds
from edutime.modules.sync.errors import CommitFailed
from edutime.modules.sync.models import ActivitySession, SyncRateLimit
from edutime.modules.sync.schemas import SyncBatchRequest, SyncBatchResponse
from edutime.modules.sync.services.rate_limit_service import (
    GuardDecision,
    LoadProcessedResponse,
    RecordRequest,
)
from edutime.modules.sync.services.validation_service import AcceptedEvent
from edutime.modules.wallet.services.wallet_service import CreditWallet, GetWalletBalance

logger = logging.getLogger("sync.ledger")


@dataclass(frozen=True)
class LedgerResult:
    ProcessedEvents: int
    StudySessions: int
    EarnedSeconds: int
    WalletBalance: int


def _BuildSession(
    request: SyncBatchRequest,
    item: AcceptedEvent,
    earned_seconds: int,
    now_ms: int,
) -> ActivitySession:
    event = item.Event
    device = request.DeviceInfo
    return ActivitySession(
        Id=str(uuid.uuid4()),
        ChildUserId=request.ChildId,
        ActivityType=event.Type,
        Status="COMPLETED",
        PackageName=event.PackageName,
        SubjectId=event.SubjectId,
        ClientSessionId=event.SessionId,
        ClaimedDurationSeconds=event.DurationSeconds,
        DurationSeconds=item.DurationSeconds,
        EarnedSeconds=earned_seconds,
        StartedAtMs=event.StartTimestamp,
        EndedAtMs=event.EndTimestamp,
        DeviceId=device.DeviceId,
        OsVersion=device.OsVersion,
        AppVersion=device.AppVersion,
        Timezone=device.Timezone,
        BatchId=request.BatchId,
        SyncedAtMs=now_ms,
    )


def ApplyLedger(
    db: Session,
    request: SyncBatchRequest,
    accepted: list[AcceptedEvent],
    ratio: float,
    now_ms: int,
) -> LedgerResult:
    """Stage sessions and the wallet credit for accepted events. Nothing is committed here."""
    total_earned = 0
    study_sessions = 0
    for item in accepted:
        earned = ComputeEarnedSeconds(item.Event.Type, item.DurationSeconds, ratio)
        db.add(_BuildSession(request, item, earned, now_ms))
        if item.Event.Type == "study":
            study_sessions += 1
            total_earned += earned

    if total_earned > 0:
        entry = CreditWallet(
            db,
            request.ChildId,
            total_earned,
            description=f"Sync: {study_sessions} study sessions",
            batch_id=request.BatchId,
        )
        balance = entry.BalanceAfter
    else:
        balance = GetWalletBalance(db, request.ChildId)

    db.flush()
    return LedgerResult(
        ProcessedEvents=len(accepted),
        StudySessions=study_sessions,
        EarnedSeconds=total_earned,
        WalletBalance=balance,
    )


def CommitBatch(
    db: Session,
    record: SyncRateLimit,
    decision: GuardDecision,
    batch_id: str,
    now_ms: int,
    response: SyncBatchResponse,
) -> SyncBatchResponse:
    """Record the request and processed batch, then commit everything staged at once.

    A unique-key clash on the processed batch means another worker committed
    the same batch first; its stored result is returned instead.
    """
    child_id = record.ChildUserId
    try:
        RecordRequest(db, record, decision, batch_id, now_ms, response)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        prior = LoadProcessedResponse(db, child_id, batch_id)
        if prior is not None:
            logger.info("batch committed concurrently child=%s batch=%s", child_id, batch_id)
            return prior.model_copy(update={"Replayed": True})
        logger.exception("sync commit failed child=%s batch=%s", child_id, batch_id)
        raise CommitFailed("Sync commit failed, retry with the same batchId") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("sync commit failed child=%s batch=%s", child_id, batch_id)
        raise CommitFailed("Sync commit failed, retry with the same batchId") from exc
    return response
