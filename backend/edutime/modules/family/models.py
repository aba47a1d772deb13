from datetime import datetime

from sqlalchemy import Column, DateTime, Float, Integer, String, UniqueConstraint

from edutime.db import Base

DEFAULT_GLOBAL_RATIO = 1.0


class Family(Base):
    __tablename__ = "families"

    Id = Column(String(128), primary_key=True)
    Name = Column(String(200), nullable=False)
    OwnerUserId = Column(String(128), nullable=False, index=True)
    # Study seconds to leisure seconds multiplier (1.0 = 1:1, 0.5 = 2:1).
    GlobalRatio = Column(Float, nullable=False, default=DEFAULT_GLOBAL_RATIO)
    CreatedAt = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    UpdatedAt = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)


class FamilyChild(Base):
    __tablename__ = "family_children"
    __table_args__ = (
        UniqueConstraint("FamilyId", "ChildUserId", name="uq_family_children_family_child"),
    )

    Id = Column(Integer, primary_key=True, index=True)
    FamilyId = Column(String(128), nullable=False, index=True)
    ChildUserId = Column(String(128), nullable=False, index=True)
    CreatedAt = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
