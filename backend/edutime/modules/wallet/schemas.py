from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class WalletTransactionOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    Id: str = Field(alias="id")
    Type: str = Field(alias="type")
    AmountSeconds: int = Field(alias="amountSeconds")
    BalanceAfter: int = Field(alias="balanceAfter")
    Description: str = Field(alias="description")
    BatchId: str | None = Field(default=None, alias="batchId")
    CreatedAt: datetime = Field(alias="createdAt")


class WalletSummaryOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    UserId: str = Field(alias="userId")
    BalanceSeconds: int = Field(alias="balanceSeconds")
    LifetimeEarned: int = Field(alias="lifetimeEarned")
    LifetimeSpent: int = Field(alias="lifetimeSpent")
    LastTransactionAt: datetime | None = Field(default=None, alias="lastTransactionAt")
    Transactions: list[WalletTransactionOut] = Field(default_factory=list, alias="transactions")
