from datetime import datetime

from sqlalchemy import Column, DateTime, String

from edutime.db import Base

PARENT_ROLE = "PARENT"
CHILD_ROLE = "CHILD"
OBSERVER_ROLE = "OBSERVER"


class User(Base):
    __tablename__ = "users"

    Id = Column(String(128), primary_key=True)
    DisplayName = Column(String(200))
    Email = Column(String(254))
    Role = Column(String(20), nullable=False, default=CHILD_ROLE)
    FamilyId = Column(String(128), index=True)
    Timezone = Column(String(64))
    CreatedAt = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
