from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from edutime.db import Base


class ActivitySession(Base):
    __tablename__ = "activity_sessions"
    __table_args__ = (
        Index("ix_activity_sessions_child_ended", "ChildUserId", "EndedAtMs"),
    )

    Id = Column(String(36), primary_key=True)
    ChildUserId = Column(String(128), nullable=False, index=True)
    ActivityType = Column(String(20), nullable=False)
    Status = Column(String(20), nullable=False, default="COMPLETED")
    PackageName = Column(String(255), nullable=False)
    SubjectId = Column(String(128))
    ClientSessionId = Column(String(128))
    ClaimedDurationSeconds = Column(Float, nullable=False)
    DurationSeconds = Column(Integer, nullable=False)
    EarnedSeconds = Column(Integer, nullable=False, default=0)
    StartedAtMs = Column(BigInteger, nullable=False)
    EndedAtMs = Column(BigInteger, nullable=False)
    DeviceId = Column(String(128))
    OsVersion = Column(String(64))
    AppVersion = Column(String(64))
    Timezone = Column(String(64))
    BatchId = Column(String(128), nullable=False, index=True)
    SyncedAtMs = Column(BigInteger, nullable=False)
    CreatedAt = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)


class SyncRateLimit(Base):
    __tablename__ = "sync_rate_limits"

    ChildUserId = Column(String(128), primary_key=True)
    RequestTimestampsJson = Column(Text, nullable=False, default="[]")
    UpdatedAt = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)


class ProcessedBatch(Base):
    __tablename__ = "sync_processed_batches"
    __table_args__ = (
        UniqueConstraint("ChildUserId", "BatchId", name="uq_sync_processed_batches_child_batch"),
    )

    Id = Column(Integer, primary_key=True, index=True)
    ChildUserId = Column(String(128), nullable=False, index=True)
    BatchId = Column(String(128), nullable=False)
    ResponseJson = Column(Text, nullable=False)
    CreatedAt = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
