import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from edutime.db import Base
from edutime.modules.auth.models import CHILD_ROLE, PARENT_ROLE, User
from edutime.modules.family.models import Family, FamilyChild
from edutime.modules.sync import models as sync_models  # noqa: F401
from edutime.modules.sync.schemas import ActivityEventIn, DeviceInfoIn, SyncBatchRequest
from edutime.modules.sync.services.validation_service import ComputeEventHash
from edutime.modules.sync.settings import SyncSettings
from edutime.modules.wallet import models as wallet_models  # noqa: F401

HASH_SECRET = "test-anticheat-secret"
NOW_MS = 1_760_000_000_000
HOUR_MS = 60 * 60 * 1000


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


@pytest.fixture()
def settings():
    return SyncSettings(HashSecret=HASH_SECRET)


@pytest.fixture()
def family(db):
    db.add_all(
        [
            Family(Id="fam-1", Name="Garcia", OwnerUserId="parent-1", GlobalRatio=1.0),
            Family(Id="fam-2", Name="Lopez", OwnerUserId="parent-2", GlobalRatio=1.0),
            User(Id="parent-1", DisplayName="Ana", Role=PARENT_ROLE, FamilyId="fam-1"),
            User(Id="kid-1", DisplayName="Leo", Role=CHILD_ROLE, FamilyId="fam-1"),
            User(Id="kid-3", DisplayName="Mia", Role=CHILD_ROLE, FamilyId="fam-1"),
            User(Id="parent-2", DisplayName="Luis", Role=PARENT_ROLE, FamilyId="fam-2"),
            FamilyChild(FamilyId="fam-1", ChildUserId="kid-1"),
            FamilyChild(FamilyId="fam-1", ChildUserId="kid-3"),
        ]
    )
    db.commit()
    return "fam-1"


@pytest.fixture()
def make_event():
    def _make(
        start_ms: int = NOW_MS - 3 * HOUR_MS,
        duration: float = 1800,
        end_ms: int | None = None,
        activity_type: str = "study",
        child_id: str = "kid-1",
        package: str = "com.edutime.math",
        client_hash: str | None = None,
    ) -> ActivityEventIn:
        if end_ms is None:
            end_ms = start_ms + int(duration * 1000)
        if client_hash is None:
            client_hash = ComputeEventHash(HASH_SECRET, child_id, package, duration, start_ms, end_ms)
        return ActivityEventIn(
            PackageName=package,
            DurationSeconds=duration,
            ClientHash=client_hash,
            Type=activity_type,
            StartTimestamp=start_ms,
            EndTimestamp=end_ms,
        )

    return _make


@pytest.fixture()
def make_batch():
    def _make(events, batch_id: str = "batch-1", child_id: str = "kid-1", client_ms: int = NOW_MS):
        return SyncBatchRequest(
            ChildId=child_id,
            Events=list(events),
            DeviceInfo=DeviceInfoIn(
                DeviceId="pixel-7",
                OsVersion="14",
                AppVersion="1.2.0",
                Timezone="America/Argentina/Buenos_Aires",
            ),
            BatchId=batch_id,
            ClientSyncTimestamp=client_ms,
        )

    return _make
