from datetime import date, datetime

from app.core.analytics import (
    aggregate_exercise_trend,
    day_key,
    format_duration,
    format_seconds_short,
    format_set_metric,
    format_timestamp,
    format_weight,
    summarize_exercise_performance,
    summarize_today_sets,
    today_range,
)
from app.core.records import ExerciseRecord, SetRecord
from app.services.insights import (
    build_focus_suggestions,
    classify_overload,
    compute_streaks,
    detect_personal_records,
)

REFERENCE = datetime(2026, 3, 10, 18, 0)


def _set(set_id: int, performed_at: datetime, exercise_id: int = 1, **fields) -> SetRecord:
    return SetRecord(id=set_id, exercise_id=exercise_id, performed_at=performed_at, **fields)


def test_trend_buckets_reps_by_day() -> None:
    sets = [
        _set(1, datetime(2026, 3, 10, 9), reps=10),
        _set(2, datetime(2026, 3, 10, 12), reps=15),
        _set(3, datetime(2026, 3, 8, 9), reps=20),
        _set(4, datetime(2026, 1, 1, 9), reps=99),
    ]
    trend = aggregate_exercise_trend(sets, reference_time=REFERENCE)
    assert trend.metric == "reps"
    assert len(trend.points) == 14
    assert trend.points[0].date == "2026-02-25"
    assert trend.points[-1].date == "2026-03-10"
    assert trend.points[-1].label == "Mar 10"
    assert trend.points[-1].value == 25
    assert trend.total == 45
    assert trend.best_day == 25


def test_trend_uses_duration_when_no_reps() -> None:
    sets = [_set(1, datetime(2026, 3, 9, 9), duration_seconds=60), _set(2, datetime(2026, 3, 10, 9), duration_seconds=90)]
    trend = aggregate_exercise_trend(sets, reference_time=REFERENCE)
    assert trend.metric == "duration"
    assert trend.total == 150
    assert trend.best_day == 90


def test_empty_trend_is_flat() -> None:
    trend = aggregate_exercise_trend([], reference_time=REFERENCE)
    assert trend.metric == "duration"
    assert trend.total == 0
    assert trend.best_day == 0
    assert all(point.value == 0 for point in trend.points)


def test_day_key_applies_timezone_offset() -> None:
    # 03:00 UTC is still the previous evening five hours west of UTC.
    moment = datetime(2026, 3, 2, 3, 0)
    assert day_key(moment) == "2026-03-02"
    assert day_key(moment, timezone_offset_minutes=300) == "2026-03-01"


def test_today_range_for_local_day() -> None:
    start, end = today_range(timezone_offset_minutes=300, now=datetime(2026, 3, 2, 3, 0))
    assert start == datetime(2026, 3, 1, 5, 0)
    assert end == datetime(2026, 3, 2, 5, 0)

    start, end = today_range(timezone_offset_minutes=-60, now=datetime(2026, 3, 2, 23, 30))
    assert start == datetime(2026, 3, 2, 23, 0)
    assert end == datetime(2026, 3, 3, 23, 0)


def test_today_summary_ranks_top_exercises() -> None:
    names = {1: "Push-ups", 2: "Squats", 3: "Plank"}
    sets = [
        _set(1, REFERENCE, exercise_id=1, reps=10),
        _set(2, REFERENCE, exercise_id=2, reps=12),
        _set(3, REFERENCE, exercise_id=2, reps=12),
        _set(4, REFERENCE, exercise_id=3, duration_seconds=60),
    ]
    summary = summarize_today_sets(sets, names)
    assert summary.total_sets == 4
    assert summary.total_reps == 34
    assert summary.total_duration_seconds == 60
    assert [item.exercise_name for item in summary.top_exercises] == ["Squats", "Push-ups", "Plank"]


def test_exercise_performance() -> None:
    sets = [_set(1, datetime(2026, 3, 1), reps=8), _set(2, datetime(2026, 3, 5), reps=12)]
    performance = summarize_exercise_performance(sets)
    assert performance.total_sets == 2
    assert performance.total_reps == 20
    assert performance.best_reps == 12
    assert performance.last_performed_at == datetime(2026, 3, 5)
    assert summarize_exercise_performance([]).total_sets == 0


def test_formatters() -> None:
    assert format_seconds_short(45) == "45 sec"
    assert format_seconds_short(120) == "2 min"
    assert format_seconds_short(90) == "1:30"
    assert format_duration(3725) == "1:02:05"
    assert format_weight(135.0) == "135"
    assert format_weight(22.5) == "22.5"
    assert format_timestamp(datetime(2026, 3, 1, 15, 5)) == "Mar 1, 2026 3:05 PM"
    assert format_timestamp(datetime(2026, 3, 1, 5, 0), timezone_offset_minutes=300) == "Mar 1, 2026 12:00 AM"


def test_format_set_metric() -> None:
    assert format_set_metric(_set(1, REFERENCE, reps=5, weight=60.0, unit="kg"), "lbs") == "5 reps @ 60 kg"
    assert format_set_metric(_set(2, REFERENCE, reps=5, weight=60.0), "lbs") == "5 reps @ 60 lbs"
    assert format_set_metric(_set(3, REFERENCE, reps=12), "lbs") == "12 reps"
    assert format_set_metric(_set(4, REFERENCE, duration_seconds=60), "lbs") == "1 min"


def test_streaks_count_through_yesterday() -> None:
    today = date(2026, 3, 10)
    days = {date(2026, 3, 9), date(2026, 3, 8), date(2026, 3, 7), date(2026, 3, 1), date(2026, 2, 28)}
    stats = compute_streaks(days, today)
    assert stats.current_streak == 3
    assert stats.longest_streak == 3
    assert stats.total_workouts == 5

    broken = compute_streaks({date(2026, 3, 7)}, today)
    assert broken.current_streak == 0
    assert compute_streaks(set(), today).total_workouts == 0


def test_personal_records_track_improvements() -> None:
    sets = [
        _set(1, datetime(2026, 3, 1), reps=10),
        _set(2, datetime(2026, 3, 3), reps=12),
        _set(3, datetime(2026, 3, 4), reps=11),
    ]
    records = detect_personal_records(sets, {1: "Push-ups"})
    assert len(records) == 1
    assert records[0].exercise_name == "Push-ups"
    assert records[0].pr_type == "reps"
    assert records[0].improvement == 2


def test_overload_classification() -> None:
    rising = [_set(i, datetime(2026, 3, i), reps=reps) for i, reps in enumerate([10, 10, 12, 14], start=1)]
    flat = [_set(i, datetime(2026, 3, i), reps=10) for i in range(1, 5)]
    falling = [_set(i, datetime(2026, 3, i), reps=reps) for i, reps in enumerate([14, 14, 10, 10], start=1)]
    assert classify_overload(rising) == "improving"
    assert classify_overload(flat) == "plateau"
    assert classify_overload(falling) == "declining"
    assert classify_overload(rising[:3]) is None


def test_focus_suggestions_prioritize_stale_exercises() -> None:
    exercises = [
        ExerciseRecord(id=1, name="Push-ups", muscle_groups=["Chest"]),
        ExerciseRecord(id=2, name="Squats", muscle_groups=["Legs"]),
        ExerciseRecord(id=3, name="Plank"),
    ]
    sets = [
        _set(1, datetime(2026, 3, 10, 9), exercise_id=1, reps=10),
        _set(2, datetime(2026, 3, 2, 9), exercise_id=2, reps=10),
    ]
    suggestions = build_focus_suggestions(exercises, sets, date(2026, 3, 10))
    assert [(item.priority, item.title) for item in suggestions] == [
        ("high", "Train Squats"),
        ("medium", "Train Plank"),
        ("low", "Legs needs attention"),
    ]
    assert suggestions[0].reason == "Last trained 8 days ago."
    assert suggestions[2].suggested_exercises == ["Squats"]
