from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy.orm import Session

from edutime.modules.wallet.models import TRANSACTION_TYPES, Wallet, WalletTransaction


def FormatDuration(seconds: int) -> str:
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def EnsureWallet(db: Session, user_id: str) -> Wallet:
    wallet = db.query(Wallet).filter(Wallet.UserId == user_id).first()
    if wallet:
        return wallet
    wallet = Wallet(
        UserId=user_id,
        BalanceSeconds=0,
        LifetimeEarned=0,
        LifetimeSpent=0,
        LastTransactionAt=None,
    )
    db.add(wallet)
    db.flush()
    return wallet


def GetWalletBalance(db: Session, user_id: str) -> int:
    balance = db.query(Wallet.BalanceSeconds).filter(Wallet.UserId == user_id).scalar()
    return int(balance or 0)


def CreditWallet(
    db: Session,
    user_id: str,
    amount_seconds: int,
    description: str,
    batch_id: str | None = None,
    transaction_type: str = "EARN",
) -> WalletTransaction:
    """Increment balance and lifetime earnings and append the audit row.

    Does not commit; the caller owns the transaction.
    """
    if amount_seconds <= 0:
        raise ValueError("credit amount must be positive")
    if transaction_type not in TRANSACTION_TYPES:
        raise ValueError(f"unknown transaction type {transaction_type}")

    wallet = EnsureWallet(db, user_id)
    now = datetime.utcnow()
    db.query(Wallet).filter(Wallet.UserId == user_id).update(
        {
            Wallet.BalanceSeconds: Wallet.BalanceSeconds + amount_seconds,
            Wallet.LifetimeEarned: Wallet.LifetimeEarned + amount_seconds,
            Wallet.LastTransactionAt: now,
            Wallet.UpdatedAt: now,
        },
        synchronize_session=False,
    )
    db.expire(wallet)
    balance_after = GetWalletBalance(db, user_id)
    entry = WalletTransaction(
        Id=str(uuid.uuid4()),
        WalletUserId=user_id,
        Type=transaction_type,
        AmountSeconds=amount_seconds,
        BalanceAfter=balance_after,
        Description=description[:300],
        BatchId=batch_id,
        CreatedAt=now,
    )
    db.add(entry)
    return entry


def ListRecentTransactions(db: Session, user_id: str, limit: int = 50) -> list[WalletTransaction]:
    return (
        db.query(WalletTransaction)
        .filter(WalletTransaction.WalletUserId == user_id)
        .order_by(WalletTransaction.CreatedAt.desc())
        .limit(limit)
        .all()
    )
