from __future__ import annotations

import hashlib
import hmac
import math
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from edutime.modules.sync.errors import (
    DUPLICATE_EVENT,
    DURATION_ADJUSTED,
    DURATION_CAPPED,
    DURATION_TOO_SHORT,
    FUTURE_TIMESTAMP,
    INVALID_HASH,
    OVERLAPPING_EVENT,
    InvalidArgument,
)
from edutime.modules.sync.models import ActivitySession
from edutime.modules.sync.schemas import ActivityEventIn
from edutime.modules.sync.settings import SyncSettings


@dataclass(frozen=True)
class EventIssue:
    Index: int
    Code: str
    Message: str


@dataclass(frozen=True)
class TemporalCheck:
    IsValid: bool
    DurationSeconds: int | None = None
    Code: str | None = None
    Message: str | None = None


@dataclass(frozen=True)
class SessionWindow:
    StartMs: int
    EndMs: int


@dataclass
class AcceptedEvent:
    Index: int
    Event: ActivityEventIn
    DurationSeconds: int
    Adjustment: EventIssue | None = None


@dataclass
class ValidationReport:
    Accepted: list[AcceptedEvent] = field(default_factory=list)
    Rejected: list[EventIssue] = field(default_factory=list)

    @property
    def Adjustments(self) -> list[EventIssue]:
        return [item.Adjustment for item in self.Accepted if item.Adjustment]


def _FormatNumber(value: int | float) -> str:
    # Match how the mobile client stringifies numbers: 1800.0 hashes as "1800".
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def ComputeEventHash(
    secret: str,
    child_id: str,
    package_name: str,
    duration_seconds: int | float,
    start_ms: int,
    end_ms: int,
) -> str:
    payload = ":".join(
        [child_id, package_name, _FormatNumber(duration_seconds), str(start_ms), str(end_ms)]
    )
    return hmac.new(secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()


def VerifyEventHash(secret: str, child_id: str, event: ActivityEventIn) -> bool:
    expected = ComputeEventHash(
        secret,
        child_id,
        event.PackageName,
        event.DurationSeconds,
        event.StartTimestamp,
        event.EndTimestamp,
    )
    return hmac.compare_digest(expected.encode("ascii"), event.ClientHash.lower().encode("utf-8"))


def _BoundAdjustedDuration(adjusted: int, settings: SyncSettings) -> TemporalCheck:
    if adjusted < settings.MinEventDurationSeconds:
        return TemporalCheck(
            IsValid=False,
            Code=DURATION_TOO_SHORT,
            Message="Event duration too short",
        )
    if adjusted > settings.MaxEventDurationSeconds:
        return TemporalCheck(
            IsValid=True,
            DurationSeconds=settings.MaxEventDurationSeconds,
            Code=DURATION_ADJUSTED,
            Message="Duration adjusted to match timestamps and capped to maximum allowed",
        )
    return TemporalCheck(
        IsValid=True,
        DurationSeconds=adjusted,
        Code=DURATION_ADJUSTED,
        Message="Duration adjusted to match timestamps",
    )


def CheckTemporalConsistency(
    event: ActivityEventIn,
    server_ms: int,
    settings: SyncSettings,
) -> TemporalCheck:
    client_duration_ms = event.EndTimestamp - event.StartTimestamp
    reported_duration_ms = event.DurationSeconds * 1000

    if event.EndTimestamp > server_ms + settings.MaxTimeDriftMs:
        return TemporalCheck(
            IsValid=False,
            Code=FUTURE_TIMESTAMP,
            Message="Event timestamp is in the future",
        )

    # An empty or reversed window can never collide with another session.
    if client_duration_ms <= 0:
        return TemporalCheck(
            IsValid=False,
            Code=DURATION_TOO_SHORT,
            Message="Event duration too short",
        )

    # Timestamps win when they disagree by more than both tolerances.
    difference = abs(client_duration_ms - reported_duration_ms)
    if (
        difference > reported_duration_ms * settings.DurationToleranceRatio
        and difference > settings.DurationToleranceMs
    ):
        return _BoundAdjustedDuration(math.floor(client_duration_ms / 1000), settings)

    if event.DurationSeconds > settings.MaxEventDurationSeconds:
        return TemporalCheck(
            IsValid=True,
            DurationSeconds=settings.MaxEventDurationSeconds,
            Code=DURATION_CAPPED,
            Message="Duration capped to maximum allowed",
        )

    if event.DurationSeconds < settings.MinEventDurationSeconds:
        return TemporalCheck(
            IsValid=False,
            Code=DURATION_TOO_SHORT,
            Message="Event duration too short",
        )

    return TemporalCheck(IsValid=True, DurationSeconds=math.floor(event.DurationSeconds))


def FindBatchOverlaps(
    candidates: list[AcceptedEvent],
) -> tuple[list[AcceptedEvent], list[EventIssue]]:
    """Keep the earliest-starting event of every colliding group within the batch."""
    ordered = sorted(candidates, key=lambda item: (item.Event.StartTimestamp, item.Index))
    kept: list[AcceptedEvent] = []
    rejected: list[EventIssue] = []
    furthest_end: int | None = None
    for item in ordered:
        if furthest_end is not None and item.Event.StartTimestamp < furthest_end:
            rejected.append(
                EventIssue(
                    Index=item.Index,
                    Code=OVERLAPPING_EVENT,
                    Message="Event overlaps with another event",
                )
            )
            continue
        kept.append(item)
        end = item.Event.EndTimestamp
        furthest_end = end if furthest_end is None else max(furthest_end, end)
    return kept, rejected


def FindHistoryOverlaps(
    candidates: list[AcceptedEvent],
    windows: list[SessionWindow],
) -> tuple[list[AcceptedEvent], list[EventIssue]]:
    kept: list[AcceptedEvent] = []
    rejected: list[EventIssue] = []
    for item in candidates:
        start = item.Event.StartTimestamp
        end = item.Event.EndTimestamp
        if any(start < window.EndMs and end > window.StartMs for window in windows):
            rejected.append(
                EventIssue(
                    Index=item.Index,
                    Code=DUPLICATE_EVENT,
                    Message="Event overlaps with existing session",
                )
            )
            continue
        kept.append(item)
    return kept, rejected


def LoadRecentWindows(
    db: Session,
    child_id: str,
    now_ms: int,
    settings: SyncSettings,
) -> list[SessionWindow]:
    cutoff = now_ms - settings.OverlapWindowMs
    rows = (
        db.query(ActivitySession.StartedAtMs, ActivitySession.EndedAtMs)
        .filter(ActivitySession.ChildUserId == child_id, ActivitySession.EndedAtMs > cutoff)
        .all()
    )
    return [SessionWindow(StartMs=row.StartedAtMs, EndMs=row.EndedAtMs) for row in rows]


def CheckBatchBounds(events: list[ActivityEventIn], settings: SyncSettings) -> None:
    if len(events) > settings.MaxEventsPerBatch:
        raise InvalidArgument(f"Maximum {settings.MaxEventsPerBatch} events per batch")


def ValidateEvents(
    child_id: str,
    events: list[ActivityEventIn],
    server_ms: int,
    windows: list[SessionWindow],
    settings: SyncSettings,
) -> ValidationReport:
    """Run the anti-cheat checks over a batch.

    Integrity and temporal checks run per event first; overlap checks only
    see the survivors. An event keeps the first reason it was rejected for.
    Accepted and rejected lists are returned in submission order.
    """
    rejected: list[EventIssue] = []
    candidates: list[AcceptedEvent] = []

    for index, event in enumerate(events):
        if not VerifyEventHash(settings.HashSecret, child_id, event):
            rejected.append(
                EventIssue(Index=index, Code=INVALID_HASH, Message="Event integrity check failed")
            )
            continue

        check = CheckTemporalConsistency(event, server_ms, settings)
        if not check.IsValid:
            rejected.append(EventIssue(Index=index, Code=check.Code, Message=check.Message))
            continue

        adjustment = None
        if check.Code:
            adjustment = EventIssue(Index=index, Code=check.Code, Message=check.Message)
        candidates.append(
            AcceptedEvent(
                Index=index,
                Event=event,
                DurationSeconds=check.DurationSeconds,
                Adjustment=adjustment,
            )
        )

    candidates, batch_overlaps = FindBatchOverlaps(candidates)
    candidates, history_overlaps = FindHistoryOverlaps(candidates, windows)
    rejected.extend(batch_overlaps)
    rejected.extend(history_overlaps)

    return ValidationReport(
        Accepted=sorted(candidates, key=lambda item: item.Index),
        Rejected=sorted(rejected, key=lambda item: item.Index),
    )
