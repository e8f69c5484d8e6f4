"""
Next-prayer selection and prayer-window checks over a computed day.
Sunrise is informational only and never counts as a prayer here.
"""

from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone

from prayer_times import DailyResult, PrayerName, PrayerTimeResult


@dataclass(frozen=True)
class Countdown:
    hours: int
    minutes: int
    seconds: int
    total_seconds: int


@dataclass(frozen=True)
class NextPrayer:
    prayer: PrayerTimeResult
    countdown: Countdown


def _epoch_ms(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


def next_prayer(daily: DailyResult, now: datetime) -> NextPrayer | None:
    """
    First prayer of ``daily`` (Sunrise skipped) still ahead of ``now``.
    Returns None once Isha has passed; the caller then computes tomorrow's Fajr.
    Naive ``now`` values are taken as UTC.
    """
    current = _epoch_ms(now)
    for prayer in daily.prayers:
        if prayer.name is PrayerName.SUNRISE:
            continue
        if prayer.timestamp > current:
            total = (prayer.timestamp - current) // 1000
            hours, rest = divmod(total, 3600)
            minutes, seconds = divmod(rest, 60)
            return NextPrayer(prayer, Countdown(hours, minutes, seconds, total))
    return None


def is_within_prayer_time(name: PrayerName | str, daily: DailyResult, now: datetime) -> bool:
    name = PrayerName(name)
    if name is PrayerName.SUNRISE:
        return False
    prayers = list(daily.prayers)
    index = next(i for i, p in enumerate(prayers) if p.name is name)
    current = _epoch_ms(now)
    start = prayers[index].timestamp
    if index + 1 < len(prayers):
        return start <= current < prayers[index + 1].timestamp

    # Isha runs until the end of the local day
    tz = timezone(timedelta(minutes=daily.utc_offset_minutes))
    end_of_day = datetime.combine(daily.date, time(23, 59, 59, 999000), tzinfo=tz)
    return start <= current <= _epoch_ms(end_of_day)


def format_countdown(upcoming: NextPrayer) -> str:
    """Compact countdown label, e.g. '1h05' or '7m'."""
    total_minutes = max(upcoming.countdown.total_seconds // 60, 0)
    hours, minutes = divmod(total_minutes, 60)
    if hours > 0:
        return f"{hours}h{minutes:02d}"
    return f"{minutes}m"
