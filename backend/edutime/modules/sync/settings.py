import os
from dataclasses import dataclass


def _require_env(name: str) -> str:
    value = os.getenv(name, "").strip()
    if not value:
        raise RuntimeError(f"Missing required env var: {name}")
    return value


def _read_int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer") from exc


@dataclass(frozen=True)
class SyncSettings:
    HashSecret: str
    MaxEventsPerBatch: int = 100
    RateLimitWindowSeconds: int = 60
    RateLimitMaxRequests: int = 10
    MaxTimeDriftSeconds: int = 5 * 60
    MaxEventDurationSeconds: int = 8 * 60 * 60
    MinEventDurationSeconds: int = 10
    DurationToleranceRatio: float = 0.1
    DurationToleranceMs: int = 60 * 1000
    OverlapWindowHours: int = 24

    @property
    def RateLimitWindowMs(self) -> int:
        return self.RateLimitWindowSeconds * 1000

    @property
    def MaxTimeDriftMs(self) -> int:
        return self.MaxTimeDriftSeconds * 1000

    @property
    def OverlapWindowMs(self) -> int:
        return self.OverlapWindowHours * 60 * 60 * 1000


def LoadSyncSettings() -> SyncSettings:
    return SyncSettings(
        HashSecret=_require_env("ANTICHEAT_HASH_SECRET"),
        MaxEventsPerBatch=_read_int_env("SYNC_MAX_EVENTS_PER_BATCH", 100),
        RateLimitWindowSeconds=_read_int_env("SYNC_RATE_LIMIT_WINDOW_SECONDS", 60),
        RateLimitMaxRequests=_read_int_env("SYNC_RATE_LIMIT_MAX_REQUESTS", 10),
        MaxTimeDriftSeconds=_read_int_env("SYNC_MAX_TIME_DRIFT_SECONDS", 5 * 60),
        OverlapWindowHours=_read_int_env("SYNC_OVERLAP_WINDOW_HOURS", 24),
    )
