from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

ActivityType = Literal["study", "leisure", "break"]


class DeviceInfoIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    DeviceId: str = Field(alias="deviceId", min_length=1, max_length=128)
    OsVersion: str | None = Field(default=None, alias="osVersion", max_length=64)
    AppVersion: str | None = Field(default=None, alias="appVersion", max_length=64)
    Timezone: str | None = Field(default=None, alias="timezone", max_length=64)


class ActivityEventIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    PackageName: str = Field(alias="packageName", min_length=1, max_length=255)
    DurationSeconds: float = Field(alias="durationSeconds", gt=0)
    ClientHash: str = Field(alias="clientHash", min_length=1, max_length=128)
    Type: ActivityType = Field(alias="type")
    SubjectId: str | None = Field(default=None, alias="subjectId", max_length=128)
    StartTimestamp: int = Field(alias="startTimestamp")
    EndTimestamp: int = Field(alias="endTimestamp")
    SessionId: str | None = Field(default=None, alias="sessionId", max_length=128)


class SyncBatchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ChildId: str = Field(alias="childId", min_length=1, max_length=128)
    # Upper bound is enforced by the pipeline so oversized batches get INVALID_ARGUMENT.
    Events: list[ActivityEventIn] = Field(default_factory=list, alias="events")
    DeviceInfo: DeviceInfoIn = Field(alias="deviceInfo")
    BatchId: str = Field(alias="batchId", min_length=1, max_length=128)
    ClientSyncTimestamp: int = Field(alias="clientSyncTimestamp")


class SyncEventIssue(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    EventIndex: int = Field(alias="eventIndex")
    Code: str = Field(alias="code")
    Message: str = Field(alias="message")


class SyncBatchResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    Success: bool = Field(alias="success")
    ProcessedEvents: int = Field(alias="processedEvents")
    RejectedEvents: int = Field(alias="rejectedEvents")
    WalletBalance: int | None = Field(default=None, alias="walletBalance")
    Errors: list[SyncEventIssue] = Field(default_factory=list, alias="errors")
    Adjustments: list[SyncEventIssue] = Field(default_factory=list, alias="adjustments")
    ServerTimestamp: int = Field(alias="serverTimestamp")
    Replayed: bool = Field(default=False, alias="replayed")


RequestTimestamps = TypeAdapter(list[int])
