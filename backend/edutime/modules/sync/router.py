import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import ProgrammingError
from sqlalchemy.orm import Session

from edutime.db import GetDb
from edutime.modules.auth.deps import CallerContext, RequireAuthenticated
from edutime.modules.sync.errors import SyncBatchError
from edutime.modules.sync.schemas import SyncBatchRequest, SyncBatchResponse
from edutime.modules.sync.services.sync_service import ProcessSyncBatch
from edutime.modules.sync.settings import LoadSyncSettings, SyncSettings
from edutime.modules.sync.utils.rbac import AuthorizeChildSync
from edutime.modules.wallet.models import Wallet
from edutime.modules.wallet.schemas import WalletSummaryOut, WalletTransactionOut
from edutime.modules.wallet.services.wallet_service import ListRecentTransactions

logger = logging.getLogger("sync")

router = APIRouter(prefix="/api/sync", tags=["sync"])


def _handle_db_error(exc: Exception) -> None:
    logger.exception("sync database error")
    raise HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Sync storage not initialized. Run alembic upgrade head.",
    ) from exc


def GetSyncSettings() -> SyncSettings:
    return LoadSyncSettings()


@router.post(
    "/offline-activity",
    response_model=SyncBatchResponse,
    response_model_exclude_none=True,
)
def SyncOfflineActivity(
    payload: SyncBatchRequest,
    db: Session = Depends(GetDb),
    caller: CallerContext = Depends(RequireAuthenticated),
    settings: SyncSettings = Depends(GetSyncSettings),
) -> SyncBatchResponse:
    try:
        return ProcessSyncBatch(db, caller, payload, settings)
    except SyncBatchError as exc:
        raise HTTPException(status_code=exc.StatusCode, detail=exc.AsDetail()) from exc
    except ProgrammingError as exc:
        _handle_db_error(exc)


@router.get("/children/{child_id}/wallet", response_model=WalletSummaryOut)
def GetChildWallet(
    child_id: str,
    limit: int = 50,
    db: Session = Depends(GetDb),
    caller: CallerContext = Depends(RequireAuthenticated),
) -> WalletSummaryOut:
    try:
        AuthorizeChildSync(db, caller, child_id)
        wallet = db.query(Wallet).filter(Wallet.UserId == child_id).first()
        entries = ListRecentTransactions(db, child_id, limit=max(1, min(limit, 200)))
    except SyncBatchError as exc:
        raise HTTPException(status_code=exc.StatusCode, detail=exc.AsDetail()) from exc
    except ProgrammingError as exc:
        _handle_db_error(exc)

    return WalletSummaryOut(
        UserId=child_id,
        BalanceSeconds=wallet.BalanceSeconds if wallet else 0,
        LifetimeEarned=wallet.LifetimeEarned if wallet else 0,
        LifetimeSpent=wallet.LifetimeSpent if wallet else 0,
        LastTransactionAt=wallet.LastTransactionAt if wallet else None,
        Transactions=[
            WalletTransactionOut(
                Id=entry.Id,
                Type=entry.Type,
                AmountSeconds=entry.AmountSeconds,
                BalanceAfter=entry.BalanceAfter,
                Description=entry.Description,
                BatchId=entry.BatchId,
                CreatedAt=entry.CreatedAt,
            )
            for entry in entries
        ],
    )
