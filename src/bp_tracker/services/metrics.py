"""
Derived metrics over a sequence of readings.

Every function here is pure: given the same readings, targets and clock it
returns the same answer, performs no I/O and never raises on empty input.
Readings are expected newest-first, which is how the reading store returns
them. Calendar-day logic (streaks, consistency, "today") is evaluated in the
caller's timezone.
"""

from collections.abc import Sequence
from datetime import date, datetime, timedelta
from typing import Any

from pydantic import BaseModel, Field

from bp_tracker.domain.reading import Reading, UserTargets
from bp_tracker.utils.rounding import round_half_up
from bp_tracker.utils.timezone_utils import local_date, local_today, now_utc

SCORE_WINDOW = 30
TREND_WINDOW = 15
CONSISTENCY_DAYS = 30
NEUTRAL_SCORE = 50

ON_TARGET_WEIGHT = 0.40
CONSISTENCY_WEIGHT = 0.30
SYSTOLIC_DEVIATION_WEIGHT = 0.15
DIASTOLIC_DEVIATION_WEIGHT = 0.15


class HealthScore(BaseModel):
    """Weighted 0-100 health score and the components shown next to it."""

    score: int = Field(ge=0, le=100)
    trend: int = 0
    on_target_percentage: int = 0
    consistency_percentage: int = 0
    streak: int = 0
    category: str


class Achievements(BaseModel):
    """Unlock flags. Recomputed from scratch on every call, never persisted."""

    first_reading: bool = False
    week1: bool = False
    week2: bool = False
    month1: bool = False
    streak7: bool = False
    streak30: bool = False
    on_target10: bool = False
    readings50: bool = False
    readings100: bool = False

    def unlocked(self) -> list[str]:
        return [name for name, value in self.model_dump().items() if value]


class GoalsProgress(BaseModel):
    """Weekly goals and achievement summary."""

    avg_systolic: int = 0
    avg_diastolic: int = 0
    weekly_readings: int = 0
    streak: int = 0
    systolic_progress: int = 0
    diastolic_progress: int = 0
    achievements: Achievements = Field(default_factory=Achievements)


class TodayStats(BaseModel):
    """Quick statistics for the current calendar day."""

    today_readings: int = 0
    avg_systolic: int = 0
    avg_diastolic: int = 0
    avg_pulse: int = 0
    streak: int = 0
    on_target: int = 0
    last_reading: Reading | None = None


class ReadingStats(BaseModel):
    """Lifetime totals and averages."""

    total_readings: int = 0
    average_systolic: int = 0
    average_diastolic: int = 0
    average_pulse: int = 0
    latest_reading: Reading | None = None


def _field_mean(readings: Sequence[Reading], field: str) -> float:
    return sum(getattr(r, field) for r in readings) / len(readings)


def rolling_average(readings: Sequence[Reading], n: int, field: str = "systolic") -> int:
    """
    Mean of ``field`` over the ``n`` most recent readings, rounded.

    Returns 0 for an empty sequence or a non-positive window.
    """
    window = list(readings[: max(n, 0)])
    if not window:
        return 0
    return round_half_up(_field_mean(window, field))


def is_on_target(reading: Reading, targets: UserTargets) -> bool:
    """Both systolic and diastolic must be at or below target."""
    return reading.systolic <= targets.systolic and reading.diastolic <= targets.diastolic


def on_target_count(
    readings: Sequence[Reading], targets: UserTargets, window: int | None = SCORE_WINDOW
) -> int:
    """Count readings in the most recent ``window`` that are on target."""
    scoped = readings if window is None else readings[:window]
    return sum(1 for r in scoped if is_on_target(r, targets))


def reading_days(readings: Sequence[Reading], timezone: str = "UTC") -> set[date]:
    """Local calendar days that have at least one reading."""
    return {local_date(r.date, timezone) for r in readings}


def current_streak(
    readings: Sequence[Reading], today: date | None = None, timezone: str = "UTC"
) -> int:
    """
    Number of consecutive days, ending today, with at least one reading.

    The walk starts at today, so a day without readings today means a streak
    of 0 even if yesterday and the days before are covered.
    """
    if not readings:
        return 0

    days = reading_days(readings, timezone)
    current = today or local_today(timezone)

    streak = 0
    while current in days:
        streak += 1
        current -= timedelta(days=1)
    return streak


def trend(readings: Sequence[Reading]) -> int | None:
    """
    Change in mean arterial load between the last two 15-reading windows.

    Compares the mean of (systolic + diastolic) / 2 over readings 0-14 with the
    same mean over readings 15-29. Returns None unless both windows have data.
    """
    recent = readings[:TREND_WINDOW]
    previous = readings[TREND_WINDOW : 2 * TREND_WINDOW]
    if not recent or not previous:
        return None

    def combined_mean(window: Sequence[Reading]) -> float:
        return sum(r.systolic + r.diastolic for r in window) / (len(window) * 2)

    return round_half_up(combined_mean(recent) - combined_mean(previous))


def consistency_percentage(
    readings: Sequence[Reading],
    now: datetime | None = None,
    timezone: str = "UTC",
    days: int = CONSISTENCY_DAYS,
) -> int:
    """Share of the last ``days`` days that have at least one reading, 0-100."""
    current = now or now_utc()
    cutoff = current - timedelta(days=days)
    recent = [r for r in readings if r.date >= cutoff]
    # The cutoff falls mid-day, so the window can touch days + 1 local days
    return min(100, round_half_up(len(reading_days(recent, timezone)) / days * 100))


def deviation_score(average: float, target: int) -> float:
    """100 minus twice the distance from target, floored at 0."""
    return max(0.0, 100 - abs(average - target) * 2)


def clamp_score(raw: float) -> int:
    return int(min(100, max(0, round_half_up(raw))))


def score_category(score: int) -> str:
    if score >= 80:
        return "Excellent"
    if score >= 60:
        return "Good"
    if score >= 40:
        return "Fair"
    return "Needs Improvement"


def health_score(
    readings: Sequence[Reading],
    targets: UserTargets,
    now: datetime | None = None,
    timezone: str = "UTC",
) -> HealthScore:
    """
    Weighted health score.

    40% on-target percentage over the last 30 readings, 30% consistency over
    the last 30 days, 15% each for how close the average systolic and
    diastolic are to target. With fewer than 16 readings the trend windows
    cannot both be filled, so a neutral 50 is reported as "Insufficient Data".
    """
    if not readings:
        return HealthScore(score=0, category="No Data")

    current = now or now_utc()
    window = readings[:SCORE_WINDOW]
    on_target_pct = round_half_up(on_target_count(window, targets) / len(window) * 100)

    change = trend(readings)
    if change is None:
        return HealthScore(
            score=NEUTRAL_SCORE,
            on_target_percentage=on_target_pct,
            category="Insufficient Data",
        )

    consistency = consistency_percentage(readings, current, timezone)
    systolic_score = deviation_score(_field_mean(window, "systolic"), targets.systolic)
    diastolic_score = deviation_score(_field_mean(window, "diastolic"), targets.diastolic)

    raw = (
        on_target_pct * ON_TARGET_WEIGHT
        + consistency * CONSISTENCY_WEIGHT
        + systolic_score * SYSTOLIC_DEVIATION_WEIGHT
        + diastolic_score * DIASTOLIC_DEVIATION_WEIGHT
    )
    score = clamp_score(raw)

    return HealthScore(
        score=score,
        trend=change,
        on_target_percentage=on_target_pct,
        consistency_percentage=consistency,
        streak=current_streak(readings, local_date(current, timezone), timezone),
        category=score_category(score),
    )


def days_since_first(readings: Sequence[Reading], now: datetime | None = None) -> int:
    """Whole days elapsed since the oldest reading."""
    if not readings:
        return 0
    first = min(r.date for r in readings)
    return ((now or now_utc()) - first) // timedelta(days=1)


def achievements(
    readings: Sequence[Reading],
    targets: UserTargets,
    now: datetime | None = None,
    timezone: str = "UTC",
) -> Achievements:
    """Evaluate every achievement predicate against the current readings."""
    if not readings:
        return Achievements()

    current = now or now_utc()
    total = len(readings)
    elapsed = days_since_first(readings, current)
    streak = current_streak(readings, local_date(current, timezone), timezone)
    on_target = on_target_count(readings, targets, window=None)

    return Achievements(
        first_reading=total >= 1,
        week1=elapsed >= 7 and total >= 3,
        week2=elapsed >= 14 and total >= 6,
        month1=elapsed >= 30 and total >= 15,
        streak7=streak >= 7,
        streak30=streak >= 30,
        on_target10=on_target >= 10,
        readings50=total >= 50,
        readings100=total >= 100,
    )


def target_progress(current: int, target: int, reverse: bool = False) -> int:
    """
    Percentage progress towards a target.

    With ``reverse`` lower is better: at or under target is 100%, and being
    30% of the target over it drops progress to 0%.
    """
    if reverse:
        if current <= target:
            return 100
        max_deviation = target * 0.3
        return max(0, round_half_up((1 - (current - target) / max_deviation) * 100))
    if target <= 0:
        return 0
    return min(100, round_half_up(current / target * 100))


def goals_progress(
    readings: Sequence[Reading],
    targets: UserTargets,
    now: datetime | None = None,
    timezone: str = "UTC",
) -> GoalsProgress:
    """Seven-reading averages, weekly count, streak and achievements."""
    if not readings:
        return GoalsProgress()

    current = now or now_utc()
    avg_systolic = rolling_average(readings, 7, "systolic")
    avg_diastolic = rolling_average(readings, 7, "diastolic")
    week_ago = current - timedelta(days=7)

    return GoalsProgress(
        avg_systolic=avg_systolic,
        avg_diastolic=avg_diastolic,
        weekly_readings=sum(1 for r in readings if r.date >= week_ago),
        streak=current_streak(readings, local_date(current, timezone), timezone),
        systolic_progress=target_progress(avg_systolic, targets.systolic, reverse=True),
        diastolic_progress=target_progress(avg_diastolic, targets.diastolic, reverse=True),
        achievements=achievements(readings, targets, current, timezone),
    )


def today_stats(
    readings: Sequence[Reading],
    targets: UserTargets,
    today: date | None = None,
    timezone: str = "UTC",
) -> TodayStats:
    """Counts and averages for readings taken on the current local day."""
    if not readings:
        return TodayStats()

    day = today or local_today(timezone)
    todays = [r for r in readings if local_date(r.date, timezone) == day]

    return TodayStats(
        today_readings=len(todays),
        avg_systolic=rolling_average(todays, len(todays), "systolic"),
        avg_diastolic=rolling_average(todays, len(todays), "diastolic"),
        avg_pulse=rolling_average(todays, len(todays), "pulse"),
        streak=current_streak(readings, day, timezone),
        on_target=on_target_count(todays, targets, window=None),
        last_reading=readings[0],
    )


def reading_stats(readings: Sequence[Reading]) -> ReadingStats:
    if not readings:
        return ReadingStats()
    total = len(readings)
    return ReadingStats(
        total_readings=total,
        average_systolic=rolling_average(readings, total, "systolic"),
        average_diastolic=rolling_average(readings, total, "diastolic"),
        average_pulse=rolling_average(readings, total, "pulse"),
        latest_reading=readings[0],
    )


def summary(
    readings: Sequence[Reading],
    targets: UserTargets,
    now: datetime | None = None,
    timezone: str = "UTC",
) -> dict[str, Any]:
    """Collect every dashboard metric in one JSON-friendly dictionary."""
    current = now or now_utc()
    return {
        "stats": reading_stats(readings).model_dump(mode="json"),
        "today": today_stats(readings, targets, local_date(current, timezone), timezone).model_dump(
            mode="json"
        ),
        "health_score": health_score(readings, targets, current, timezone).model_dump(),
        "goals": goals_progress(readings, targets, current, timezone).model_dump(),
    }
