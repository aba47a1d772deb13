from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String

from edutime.db import Base

TRANSACTION_TYPES = ("EARN", "SPEND", "BONUS", "ADJUSTMENT", "PENALTY")


class Wallet(Base):
    __tablename__ = "wallets"
    __table_args__ = (
        CheckConstraint("BalanceSeconds >= 0", name="ck_wallets_balance_non_negative"),
    )

    UserId = Column(String(128), primary_key=True)
    BalanceSeconds = Column(Integer, nullable=False, default=0)
    LifetimeEarned = Column(Integer, nullable=False, default=0)
    LifetimeSpent = Column(Integer, nullable=False, default=0)
    LastTransactionAt = Column(DateTime(timezone=True))
    CreatedAt = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    UpdatedAt = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)


class WalletTransaction(Base):
    __tablename__ = "wallet_transactions"

    Id = Column(String(36), primary_key=True)
    WalletUserId = Column(String(128), nullable=False, index=True)
    Type = Column(String(20), nullable=False)
    AmountSeconds = Column(Integer, nullable=False)
    BalanceAfter = Column(Integer, nullable=False)
    Description = Column(String(300), nullable=False)
    BatchId = Column(String(128), index=True)
    CreatedAt = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
