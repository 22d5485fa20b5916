"""Pure aggregation helpers over logged sets.

Timestamps are naive UTC datetimes. ``timezone_offset_minutes`` follows the
browser convention (minutes to add to local time to reach UTC), so a user at
UTC-5 sends 300.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Literal, Optional

from app.core.records import SetRecord

TrendMetric = Literal["reps", "duration"]

TREND_DAYS = 14
TOP_EXERCISES_LIMIT = 4


@dataclass
class TrendPointData:
    date: str
    label: str
    value: int


@dataclass
class ExerciseTrend:
    metric: TrendMetric
    points: list[TrendPointData]
    total: int
    best_day: int


@dataclass
class ExerciseTotals:
    exercise_id: int
    exercise_name: str
    sets: int = 0
    reps: int = 0
    duration_seconds: int = 0


@dataclass
class TodayTotals:
    total_sets: int
    total_reps: int
    total_duration_seconds: int
    top_exercises: list[ExerciseTotals]


@dataclass
class ExercisePerformance:
    total_sets: int
    total_reps: int
    total_duration_seconds: int
    best_reps: int
    best_duration_seconds: int
    last_performed_at: Optional[datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_local(moment: datetime, timezone_offset_minutes: int = 0) -> datetime:
    return moment - timedelta(minutes=timezone_offset_minutes)


def day_key(moment: datetime, timezone_offset_minutes: int = 0) -> str:
    return to_local(moment, timezone_offset_minutes).date().isoformat()


def day_label(moment: datetime) -> str:
    return f"{moment:%b} {moment.day}"


def today_range(timezone_offset_minutes: int = 0, now: Optional[datetime] = None) -> tuple[datetime, datetime]:
    """UTC [start, end) bounds of the user's current local day."""
    local_now = to_local(now or utcnow(), timezone_offset_minutes)
    local_midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    start = local_midnight + timedelta(minutes=timezone_offset_minutes)
    return start, start + timedelta(days=1)


def aggregate_exercise_trend(
    sets: Iterable[SetRecord],
    days: int = TREND_DAYS,
    reference_time: Optional[datetime] = None,
    timezone_offset_minutes: int = 0,
) -> ExerciseTrend:
    sets = list(sets)
    metric: TrendMetric = "reps" if any(s.reps is not None for s in sets) else "duration"

    by_day: dict[str, int] = {}
    for entry in sets:
        key = day_key(entry.performed_at, timezone_offset_minutes)
        value = (entry.reps or 0) if metric == "reps" else (entry.duration_seconds or 0)
        by_day[key] = by_day.get(key, 0) + value

    local_reference = to_local(reference_time or utcnow(), timezone_offset_minutes)
    start = local_reference.replace(hour=0, minute=0, second=0, microsecond=0) - timedelta(days=days - 1)
    points = []
    for index in range(days):
        current = start + timedelta(days=index)
        key = current.date().isoformat()
        points.append(TrendPointData(date=key, label=day_label(current), value=by_day.get(key, 0)))

    total = sum(point.value for point in points)
    best_day = max((point.value for point in points), default=0)
    return ExerciseTrend(metric=metric, points=points, total=total, best_day=max(best_day, 0))


def summarize_today_sets(sets: Iterable[SetRecord], exercise_names: dict[int, str]) -> TodayTotals:
    sets = list(sets)
    by_exercise: dict[int, ExerciseTotals] = {}
    total_reps = 0
    total_duration = 0

    for entry in sets:
        total_reps += entry.reps or 0
        total_duration += entry.duration_seconds or 0
        current = by_exercise.get(entry.exercise_id)
        if current is None:
            current = ExerciseTotals(
                exercise_id=entry.exercise_id,
                exercise_name=exercise_names.get(entry.exercise_id, "Unknown Exercise"),
            )
            by_exercise[entry.exercise_id] = current
        current.sets += 1
        current.reps += entry.reps or 0
        current.duration_seconds += entry.duration_seconds or 0

    # sorted() is stable, so ties keep first-seen order.
    top = sorted(by_exercise.values(), key=lambda item: item.sets, reverse=True)[:TOP_EXERCISES_LIMIT]
    return TodayTotals(
        total_sets=len(sets),
        total_reps=total_reps,
        total_duration_seconds=total_duration,
        top_exercises=top,
    )


def summarize_exercise_performance(sets: Iterable[SetRecord]) -> ExercisePerformance:
    sets = list(sets)
    if not sets:
        return ExercisePerformance(0, 0, 0, 0, 0, None)

    return ExercisePerformance(
        total_sets=len(sets),
        total_reps=sum(s.reps or 0 for s in sets),
        total_duration_seconds=sum(s.duration_seconds or 0 for s in sets),
        best_reps=max(s.reps or 0 for s in sets),
        best_duration_seconds=max(s.duration_seconds or 0 for s in sets),
        last_performed_at=max(s.performed_at for s in sets),
    )


def format_duration(seconds: int) -> str:
    minutes, remainder = divmod(max(int(seconds), 0), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{remainder:02d}"
    return f"{minutes}:{remainder:02d}"


def format_seconds_short(seconds: int) -> str:
    if seconds < 60:
        return f"{seconds} sec"
    if seconds % 60 == 0:
        return f"{seconds // 60} min"
    return format_duration(seconds)


def format_weight(weight: float) -> str:
    return str(int(weight)) if float(weight).is_integer() else f"{weight:g}"


def format_set_metric(entry: SetRecord, fallback_unit: str) -> str:
    if entry.duration_seconds is not None:
        return format_seconds_short(entry.duration_seconds)
    if entry.reps is None:
        return "Unknown"
    if entry.weight is not None and entry.weight > 0:
        return f"{entry.reps} reps @ {format_weight(entry.weight)} {entry.unit or fallback_unit}"
    return f"{entry.reps} reps"


def format_timestamp(moment: datetime, timezone_offset_minutes: int = 0) -> str:
    local = to_local(moment, timezone_offset_minutes)
    hour = local.hour % 12 or 12
    meridiem = "AM" if local.hour < 12 else "PM"
    return f"{local:%b} {local.day}, {local.year} {hour}:{local.minute:02d} {meridiem}"
