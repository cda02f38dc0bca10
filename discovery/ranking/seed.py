from __future__ import annotations

import enum
import hashlib
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

GLOBAL_REGION = "global"


class PeriodMode(str, enum.Enum):
    MONTH = "month"
    BUCKET = "bucket"


@dataclass(frozen=True)
class PeriodSeed:
    period: str
    region: str
    expires_at: datetime

    @property
    def seed(self) -> str:
        return f"{self.period}:{self.region}"


def normalize_region(region: str | None) -> str:
    """Trim, lower-case and collapse whitespace; blank regions are ``global``."""
    if not region:
        return GLOBAL_REGION
    text = " ".join(region.split()).lower()
    return text or GLOBAL_REGION


def _as_utc(now: datetime) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def _month_window(now: datetime) -> tuple[str, datetime]:
    if now.month == 12:
        next_month = datetime(now.year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        next_month = datetime(now.year, now.month + 1, 1, tzinfo=timezone.utc)
    return now.strftime("%Y-%m"), next_month


def _bucket_window(now: datetime, minutes: int) -> tuple[str, datetime]:
    minutes = max(1, minutes)
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    elapsed = int((now - day_start).total_seconds() // 60)
    start = day_start + timedelta(minutes=elapsed - elapsed % minutes)
    expires_at = min(start + timedelta(minutes=minutes), day_start + timedelta(days=1))
    return start.strftime("%Y-%m-%dT%H:%MZ"), expires_at


def build_seed(
    now: datetime,
    region: str | None = None,
    mode: PeriodMode = PeriodMode.MONTH,
    granularity_minutes: int = 15,
) -> PeriodSeed:
    """Return the seed for the period containing *now*.

    Month mode yields ``YYYY-MM``. Bucket mode yields the UTC start of the
    current ``granularity_minutes`` bucket, aligned to midnight so buckets
    never straddle a day boundary.
    """
    now = _as_utc(now)
    if mode is PeriodMode.MONTH:
        period, expires_at = _month_window(now)
    else:
        period, expires_at = _bucket_window(now, granularity_minutes)
    return PeriodSeed(period=period, region=normalize_region(region), expires_at=expires_at)


def tie_break_hash(seed: str, candidate_id: str) -> str:
    """Stable hex digest used only to order exact score ties."""
    return hashlib.sha256(f"{seed}:{candidate_id}".encode()).hexdigest()
