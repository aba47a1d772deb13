import threading
import uuid

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from edutime.db import Base
from edutime.modules.auth.deps import CallerContext
from edutime.modules.auth.models import CHILD_ROLE, User
from edutime.modules.family.models import Family
from edutime.modules.sync.errors import CommitFailed, InvalidArgument, RateLimited
from edutime.modules.sync.models import ActivitySession, ProcessedBatch, SyncRateLimit
from edutime.modules.sync.services import ledger_service, rate_limit_service
from edutime.modules.sync.services.sync_service import ProcessSyncBatch
from edutime.modules.sync.settings import SyncSettings
from edutime.modules.wallet.models import Wallet, WalletTransaction

from conftest import HASH_SECRET, HOUR_MS, NOW_MS

KID = CallerContext(Id="kid-1")
PARENT = CallerContext(Id="parent-1")


def _Balance(db, user_id="kid-1") -> int:
    wallet = db.query(Wallet).filter(Wallet.UserId == user_id).first()
    return wallet.BalanceSeconds if wallet else 0


def _Persisted(db, start_ms: int, end_ms: int, activity_type: str = "leisure") -> None:
    db.add(
        ActivitySession(
            Id=str(uuid.uuid4()),
            ChildUserId="kid-1",
            ActivityType=activity_type,
            Status="COMPLETED",
            PackageName="com.video.app",
            ClaimedDurationSeconds=(end_ms - start_ms) // 1000,
            DurationSeconds=(end_ms - start_ms) // 1000,
            EarnedSeconds=0,
            StartedAtMs=start_ms,
            EndedAtMs=end_ms,
            BatchId="older-batch",
            SyncedAtMs=end_ms,
        )
    )
    db.commit()


def test_study_credit_and_history_duplicate_in_one_batch(db, family, settings, make_event, make_batch):
    _Persisted(db, NOW_MS - 2 * HOUR_MS, NOW_MS - HOUR_MS)
    study = make_event(start_ms=NOW_MS - 4 * HOUR_MS, duration=1800)
    leisure = make_event(start_ms=NOW_MS - 90 * 60 * 1000, duration=600, activity_type="leisure")

    response = ProcessSyncBatch(db, KID, make_batch([study, leisure]), settings, now_ms=NOW_MS)

    assert response.Success is True
    assert response.ProcessedEvents == 1
    assert response.RejectedEvents == 1
    assert [(e.EventIndex, e.Code) for e in response.Errors] == [(1, "DUPLICATE_EVENT")]
    assert response.WalletBalance == 1800
    assert _Balance(db) == 1800

    transactions = db.query(WalletTransaction).all()
    assert len(transactions) == 1
    assert transactions[0].Type == "EARN"
    assert transactions[0].AmountSeconds == 1800
    assert transactions[0].BalanceAfter == 1800
    assert transactions[0].BatchId == "batch-1"

    sessions = db.query(ActivitySession).filter(ActivitySession.BatchId == "batch-1").all()
    assert len(sessions) == 1
    assert sessions[0].EarnedSeconds == 1800
    assert sessions[0].DeviceId == "pixel-7"
    assert sessions[0].SyncedAtMs == NOW_MS


def test_parent_can_sync_for_child(db, family, settings, make_event, make_batch):
    response = ProcessSyncBatch(db, PARENT, make_batch([make_event()]), settings, now_ms=NOW_MS)
    assert response.ProcessedEvents == 1
    assert _Balance(db) == 1800


def test_same_batch_twice_is_applied_once(db, family, settings, make_event, make_batch):
    batch = make_batch([make_event(), make_event(start_ms=NOW_MS - HOUR_MS, duration=600)])

    first = ProcessSyncBatch(db, KID, batch, settings, now_ms=NOW_MS)
    second = ProcessSyncBatch(db, KID, batch, settings, now_ms=NOW_MS + 5_000)

    assert first.Replayed is False
    assert second.Replayed is True
    assert second.ProcessedEvents == first.ProcessedEvents == 2
    assert second.WalletBalance == first.WalletBalance == 2400
    assert second.ServerTimestamp == NOW_MS
    assert _Balance(db) == 2400
    assert db.query(WalletTransaction).count() == 1
    assert db.query(ActivitySession).count() == 2
    assert db.query(ProcessedBatch).count() == 1


def test_eleventh_request_in_a_minute_is_rate_limited(db, family, settings, make_event, make_batch):
    for number in range(10):
        bogus = make_event(client_hash="f" * 64)
        response = ProcessSyncBatch(
            db, KID, make_batch([bogus], batch_id=f"batch-{number}"), settings, now_ms=NOW_MS + number
        )
        assert response.RejectedEvents == 1

    with pytest.raises(RateLimited):
        ProcessSyncBatch(db, KID, make_batch([make_event()], batch_id="batch-10"), settings, now_ms=NOW_MS + 10)
    assert _Balance(db) == 0

    later = ProcessSyncBatch(
        db, KID, make_batch([make_event()], batch_id="batch-10"), settings, now_ms=NOW_MS + 61_000
    )
    assert later.ProcessedEvents == 1


def test_retried_batch_is_replayed_even_when_rate_limited(db, family, make_event, make_batch):
    settings = SyncSettings(HashSecret=HASH_SECRET, RateLimitMaxRequests=1)
    batch = make_batch([make_event()])
    ProcessSyncBatch(db, KID, batch, settings, now_ms=NOW_MS)
    replay = ProcessSyncBatch(db, KID, batch, settings, now_ms=NOW_MS + 1)
    assert replay.Replayed is True
    with pytest.raises(RateLimited):
        ProcessSyncBatch(db, KID, make_batch([], batch_id="batch-2"), settings, now_ms=NOW_MS + 2)


def test_family_ratio_scales_study_earnings(db, family, settings, make_event, make_batch):
    db.query(Family).filter(Family.Id == "fam-1").update({Family.GlobalRatio: 0.5})
    db.commit()
    study = make_event(duration=1801)
    leisure = make_event(start_ms=NOW_MS - HOUR_MS, duration=900, activity_type="leisure")

    response = ProcessSyncBatch(db, KID, make_batch([study, leisure]), settings, now_ms=NOW_MS)

    assert response.ProcessedEvents == 2
    assert response.WalletBalance == 900
    assert db.query(WalletTransaction).one().Description == "Sync: 1 study sessions"


def test_leisure_only_batch_records_sessions_without_credit(db, family, settings, make_event, make_batch):
    leisure = make_event(activity_type="leisure")
    rest = make_event(start_ms=NOW_MS - HOUR_MS, duration=300, activity_type="break")

    response = ProcessSyncBatch(db, KID, make_batch([leisure, rest]), settings, now_ms=NOW_MS)

    assert response.ProcessedEvents == 2
    assert response.WalletBalance == 0
    assert db.query(WalletTransaction).count() == 0
    assert db.query(ActivitySession).count() == 2
    assert db.query(ProcessedBatch).count() == 1


def test_lifetime_earned_accumulates(db, family, settings, make_event, make_batch):
    ProcessSyncBatch(db, KID, make_batch([make_event()], batch_id="a"), settings, now_ms=NOW_MS)
    ProcessSyncBatch(
        db,
        KID,
        make_batch([make_event(start_ms=NOW_MS - HOUR_MS, duration=600)], batch_id="b"),
        settings,
        now_ms=NOW_MS + 1_000,
    )
    wallet = db.query(Wallet).filter(Wallet.UserId == "kid-1").one()
    assert wallet.LifetimeEarned == 2400
    assert wallet.BalanceSeconds == 2400
    balances = [tx.BalanceAfter for tx in db.query(WalletTransaction).all()]
    assert sorted(balances) == [1800, 2400]


def test_second_batch_cannot_reuse_committed_window(db, family, settings, make_event, make_batch):
    event = make_event()
    ProcessSyncBatch(db, KID, make_batch([event], batch_id="a"), settings, now_ms=NOW_MS)
    response = ProcessSyncBatch(db, KID, make_batch([event], batch_id="b"), settings, now_ms=NOW_MS + 1_000)
    assert response.ProcessedEvents == 0
    assert [e.Code for e in response.Errors] == ["DUPLICATE_EVENT"]
    assert _Balance(db) == 1800


def test_zero_length_events_earn_nothing_across_batches(db, family, settings, make_event, make_batch):
    instant = NOW_MS - HOUR_MS
    for batch_id in ("z1", "z2", "z3"):
        events = [make_event(start_ms=instant, duration=59, end_ms=instant) for _ in range(5)]
        response = ProcessSyncBatch(db, KID, make_batch(events, batch_id=batch_id), settings, now_ms=NOW_MS)
        assert response.ProcessedEvents == 0
        assert {e.Code for e in response.Errors} == {"DURATION_TOO_SHORT"}
    assert _Balance(db) == 0
    assert db.query(ActivitySession).count() == 0


def test_fractional_claim_is_stored_as_sent(db, family, settings, make_event, make_batch):
    event = make_event(duration=1800.7)
    ProcessSyncBatch(db, KID, make_batch([event]), settings, now_ms=NOW_MS)
    session = db.query(ActivitySession).one()
    assert session.ClaimedDurationSeconds == pytest.approx(1800.7)
    assert session.DurationSeconds == 1800


def test_sessions_outside_overlap_window_are_ignored(db, family, settings, make_event, make_batch):
    _Persisted(db, NOW_MS - 30 * HOUR_MS, NOW_MS - 25 * HOUR_MS, activity_type="study")
    old = make_event(start_ms=NOW_MS - 27 * HOUR_MS, duration=1800)
    response = ProcessSyncBatch(db, KID, make_batch([old]), settings, now_ms=NOW_MS)
    assert response.ProcessedEvents == 1


def test_empty_batch_is_trivial_success(db, family, settings, make_batch):
    response = ProcessSyncBatch(db, KID, make_batch([]), settings, now_ms=NOW_MS)
    assert response.Success is True
    assert response.ProcessedEvents == 0
    assert response.RejectedEvents == 0
    assert response.Errors == []
    assert db.query(ProcessedBatch).count() == 0


def test_oversized_batch_is_invalid(db, family, make_event, make_batch):
    settings = SyncSettings(HashSecret=HASH_SECRET, MaxEventsPerBatch=1)
    events = [make_event(), make_event(start_ms=NOW_MS - HOUR_MS, duration=600)]
    with pytest.raises(InvalidArgument):
        ProcessSyncBatch(db, KID, make_batch(events), settings, now_ms=NOW_MS)
    assert db.query(ActivitySession).count() == 0
    assert db.query(ProcessedBatch).count() == 0


def test_commit_failure_leaves_no_partial_state(db, family, settings, make_event, make_batch, monkeypatch):
    def _boom(*_args, **_kwargs):
        raise OperationalError("UPDATE sync_rate_limits", {}, Exception("disk I/O error"))

    monkeypatch.setattr(ledger_service, "RecordRequest", _boom)
    batch = make_batch([make_event()])
    with pytest.raises(CommitFailed):
        ProcessSyncBatch(db, KID, batch, settings, now_ms=NOW_MS)

    assert db.query(ActivitySession).count() == 0
    assert db.query(WalletTransaction).count() == 0
    assert _Balance(db) == 0

    monkeypatch.undo()
    retry = ProcessSyncBatch(db, KID, batch, settings, now_ms=NOW_MS + 1_000)
    assert retry.Replayed is False
    assert retry.WalletBalance == 1800


def test_rate_limit_window_is_pruned_on_commit(db, family, settings, make_event, make_batch):
    ProcessSyncBatch(db, KID, make_batch([make_event()], batch_id="a"), settings, now_ms=NOW_MS)
    ProcessSyncBatch(
        db,
        KID,
        make_batch([make_event(start_ms=NOW_MS - HOUR_MS, duration=600)], batch_id="b"),
        settings,
        now_ms=NOW_MS + 120_000,
    )
    record = db.query(SyncRateLimit).filter(SyncRateLimit.ChildUserId == "kid-1").one()
    assert record.RequestTimestampsJson == f"[{NOW_MS + 120_000}]"


def test_concurrent_submissions_of_one_batch_apply_once(tmp_path, settings, make_event, make_batch):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'sync.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    with factory() as setup:
        setup.add(User(Id="kid-1", Role=CHILD_ROLE))
        setup.commit()

    batch = make_batch([make_event()])
    results = []
    errors = []
    barrier = threading.Barrier(2)

    def _submit():
        with factory() as session:
            barrier.wait()
            try:
                results.append(ProcessSyncBatch(session, KID, batch, settings, now_ms=NOW_MS))
            except Exception as exc:  # noqa: BLE001
                errors.append(exc)

    threads = [threading.Thread(target=_submit) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert sorted(result.Replayed for result in results) == [False, True]
    with factory() as check:
        assert check.query(WalletTransaction).count() == 1
        assert check.query(ActivitySession).count() == 1
        assert check.query(Wallet).one().BalanceSeconds == 1800
    engine.dispose()
    assert "kid-1" not in rate_limit_service._child_locks


def test_child_lock_is_released_after_use():
    with rate_limit_service.ChildSyncLock("kid-9"):
        with rate_limit_service._child_locks_guard:
            assert rate_limit_service._child_locks["kid-9"][1] == 1
    assert "kid-9" not in rate_limit_service._child_locks

    with pytest.raises(RuntimeError):
        with rate_limit_service.ChildSyncLock("kid-9"):
            raise RuntimeError("boom")
    assert "kid-9" not in rate_limit_service._child_locks
