from __future__ import annotations

import logging
import time

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from edutime.core.logging import format_event_fields
from edutime.modules.auth.deps import CallerContext
from edutime.modules.family.services.ratio_service import ResolveStudyRatio
from edutime.modules.sync.errors import CommitFailed, SyncBatchError
from edutime.modules.sync.schemas import SyncBatchRequest, SyncBatchResponse, SyncEventIssue
from edutime.modules.sync.services.ledger_service import ApplyLedger, CommitBatch
from edutime.modules.sync.services.rate_limit_service import (
    ChildSyncLock,
    CheckRateLimit,
    LockRateLimit,
)
from edutime.modules.sync.services.validation_service import (
    CheckBatchBounds,
    EventIssue,
    LoadRecentWindows,
    ValidateEvents,
    ValidationReport,
)
from edutime.modules.sync.settings import SyncSettings
from edutime.modules.sync.utils.rbac import AuthorizeChildSync
from edutime.modules.wallet.services.wallet_service import FormatDuration

logger = logging.getLogger("sync")


def NowMs() -> int:
    return int(time.time() * 1000)


def _IssueOut(issue: EventIssue) -> SyncEventIssue:
    return SyncEventIssue(EventIndex=issue.Index, Code=issue.Code, Message=issue.Message)


def AssembleResponse(
    report: ValidationReport,
    wallet_balance: int | None,
    server_ms: int,
) -> SyncBatchResponse:
    return SyncBatchResponse(
        Success=True,
        ProcessedEvents=len(report.Accepted),
        RejectedEvents=len(report.Rejected),
        WalletBalance=wallet_balance,
        Errors=[_IssueOut(issue) for issue in report.Rejected],
        Adjustments=[_IssueOut(issue) for issue in report.Adjustments],
        ServerTimestamp=server_ms,
    )


def _WarnOnClockDrift(request: SyncBatchRequest, server_ms: int, settings: SyncSettings) -> None:
    drift = abs(server_ms - request.ClientSyncTimestamp)
    if drift > settings.MaxTimeDriftMs:
        logger.warning(
            "large time drift detected %s",
            format_event_fields(
                child=request.ChildId,
                drift_ms=drift,
                client_ms=request.ClientSyncTimestamp,
                server_ms=server_ms,
            ),
        )


def _ProcessLocked(
    db: Session,
    request: SyncBatchRequest,
    settings: SyncSettings,
    server_ms: int,
) -> SyncBatchResponse:
    child_id = request.ChildId
    record = LockRateLimit(db, child_id)
    decision = CheckRateLimit(db, record, request.BatchId, server_ms, settings)
    if decision.IsDuplicate:
        db.rollback()
        logger.info("replaying processed batch child=%s batch=%s", child_id, request.BatchId)
        return decision.PriorResponse.model_copy(update={"Replayed": True})

    if not request.Events:
        db.rollback()
        return SyncBatchResponse(
            Success=True,
            ProcessedEvents=0,
            RejectedEvents=0,
            ServerTimestamp=server_ms,
        )

    CheckBatchBounds(request.Events, settings)
    _WarnOnClockDrift(request, server_ms, settings)

    windows = LoadRecentWindows(db, child_id, server_ms, settings)
    ratio = ResolveStudyRatio(db, child_id)
    report = ValidateEvents(child_id, request.Events, server_ms, windows, settings)
    for issue in report.Adjustments:
        logger.info(
            "event duration corrected child=%s batch=%s index=%s code=%s",
            child_id,
            request.BatchId,
            issue.Index,
            issue.Code,
        )

    ledger = ApplyLedger(db, request, report.Accepted, ratio, server_ms)
    response = AssembleResponse(report, ledger.WalletBalance, server_ms)
    response = CommitBatch(db, record, decision, request.BatchId, server_ms, response)

    logger.info(
        "sync completed %s",
        format_event_fields(
            child=child_id,
            batch=request.BatchId,
            processed=response.ProcessedEvents,
            rejected=response.RejectedEvents,
            earned=FormatDuration(ledger.EarnedSeconds),
        ),
    )
    return response


def ProcessSyncBatch(
    db: Session,
    caller: CallerContext | None,
    request: SyncBatchRequest,
    settings: SyncSettings,
    now_ms: int | None = None,
) -> SyncBatchResponse:
    """Validate one offline batch and apply it to the child's ledger exactly once.

    Raises SyncBatchError subclasses for batch-level failures; per-event
    rejections are reported in the returned response.
    """
    server_ms = NowMs() if now_ms is None else now_ms
    AuthorizeChildSync(db, caller, request.ChildId)

    with ChildSyncLock(request.ChildId):
        try:
            return _ProcessLocked(db, request, settings, server_ms)
        except SyncBatchError as exc:
            db.rollback()
            logger.warning(
                "sync batch rejected child=%s batch=%s code=%s",
                request.ChildId,
                request.BatchId,
                exc.Code,
            )
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("sync staging failed child=%s batch=%s", request.ChildId, request.BatchId)
            raise CommitFailed("Sync commit failed, retry with the same batchId") from exc
