import math
from collections import defaultdict
from datetime import date, timedelta
from typing import Optional, Protocol

from fastapi import Depends
from sqlalchemy.orm import Session

from app.api.auth import get_current_user
from app.core.analytics import day_key, utcnow
from app.core.records import (
    DashboardAnalytics,
    DayFrequency,
    ExerciseRecord,
    FocusSuggestion,
    OverloadTrend,
    PersonalRecord,
    ReportSummary,
    SetRecord,
    StreakStats,
    SubscriptionStatus,
)
from app.db.models import ReportRecord, User
from app.db.session import get_db
from app.services.data_store import SqlCoachDataStore, user_record

FREQUENCY_DAYS = 30
STALE_AFTER_DAYS = 3
NEGLECTED_AFTER_DAYS = 7
OVERLOAD_WINDOW_DAYS = 28
MAX_FOCUS_SUGGESTIONS = 5
MAX_RECENT_PRS = 8
PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}


class CoachInsights(Protocol):
    async def get_focus_suggestions(self) -> list[FocusSuggestion]:
        ...

    async def get_dashboard_analytics(self) -> DashboardAnalytics:
        ...

    async def get_report_history(self, limit: int = 8) -> list[ReportSummary]:
        ...

    async def get_subscription_status(self) -> SubscriptionStatus:
        ...


def _set_volume(entry: SetRecord) -> float:
    reps = entry.reps or 0
    if entry.weight:
        return reps * entry.weight
    return float(reps or entry.duration_seconds or 0)


def compute_streaks(workout_days: set[date], today: date) -> StreakStats:
    if not workout_days:
        return StreakStats(current_streak=0, longest_streak=0, total_workouts=0)

    ordered = sorted(workout_days)
    longest = run = 1
    for previous, current in zip(ordered, ordered[1:]):
        run = run + 1 if current - previous == timedelta(days=1) else 1
        longest = max(longest, run)

    # An unfinished today does not break a streak that ran through yesterday.
    cursor = today if today in workout_days else today - timedelta(days=1)
    current_streak = 0
    while cursor in workout_days:
        current_streak += 1
        cursor -= timedelta(days=1)

    return StreakStats(current_streak=current_streak, longest_streak=longest, total_workouts=len(ordered))


def detect_personal_records(sets: list[SetRecord], names: dict[int, str]) -> list[PersonalRecord]:
    by_exercise: dict[int, list[SetRecord]] = defaultdict(list)
    for entry in sets:
        by_exercise[entry.exercise_id].append(entry)

    records: list[PersonalRecord] = []
    for exercise_id, entries in by_exercise.items():
        best_reps = 0
        best_weight = 0.0
        best_duration = 0
        for entry in sorted(entries, key=lambda item: item.performed_at):
            name = names.get(exercise_id, "Unknown exercise")
            if entry.weight and entry.weight > best_weight:
                if best_weight > 0:
                    records.append(PersonalRecord(name, "weight", entry.weight - best_weight, entry.performed_at))
                best_weight = entry.weight
            elif entry.reps and entry.reps > best_reps:
                if best_reps > 0:
                    records.append(PersonalRecord(name, "reps", entry.reps - best_reps, entry.performed_at))
            if entry.reps:
                best_reps = max(best_reps, entry.reps)
            if entry.duration_seconds and entry.duration_seconds > best_duration:
                if best_duration > 0:
                    records.append(
                        PersonalRecord(name, "duration", entry.duration_seconds - best_duration, entry.performed_at)
                    )
                best_duration = entry.duration_seconds

    records.sort(key=lambda item: item.performed_at, reverse=True)
    return records[:MAX_RECENT_PRS]


def classify_overload(entries: list[SetRecord]) -> Optional[str]:
    if len(entries) < 4:
        return None
    ordered = sorted(entries, key=lambda item: item.performed_at)
    half = len(ordered) // 2
    first = sum(_set_volume(item) for item in ordered[:half]) / half
    second = sum(_set_volume(item) for item in ordered[half:]) / (len(ordered) - half)
    if first <= 0:
        return "improving" if second > 0 else "plateau"
    change = (second - first) / first
    if change > 0.05:
        return "improving"
    if change < -0.05:
        return "declining"
    return "plateau"


def build_focus_suggestions(
    exercises: list[ExerciseRecord], sets: list[SetRecord], now_key: date
) -> list[FocusSuggestion]:
    last_seen: dict[int, date] = {}
    for entry in sets:
        performed = entry.performed_at.date()
        if entry.exercise_id not in last_seen or performed > last_seen[entry.exercise_id]:
            last_seen[entry.exercise_id] = performed

    suggestions: list[FocusSuggestion] = []
    for exercise in exercises:
        seen = last_seen.get(exercise.id)
        if seen is None:
            suggestions.append(
                FocusSuggestion(
                    type="exercise",
                    priority="medium",
                    title=f"Train {exercise.name}",
                    reason="No sets logged yet for this exercise.",
                )
            )
            continue
        idle_days = (now_key - seen).days
        if idle_days >= NEGLECTED_AFTER_DAYS:
            priority = "high"
        elif idle_days >= STALE_AFTER_DAYS:
            priority = "medium"
        else:
            continue
        suggestions.append(
            FocusSuggestion(
                type="exercise",
                priority=priority,
                title=f"Train {exercise.name}",
                reason=f"Last trained {idle_days} days ago.",
            )
        )

    recent_cutoff = now_key - timedelta(days=NEGLECTED_AFTER_DAYS)
    trained_groups: set[str] = set()
    group_exercises: dict[str, list[str]] = defaultdict(list)
    by_id = {exercise.id: exercise for exercise in exercises}
    for exercise in exercises:
        for group in exercise.muscle_groups:
            group_exercises[group].append(exercise.name)
    for entry in sets:
        exercise = by_id.get(entry.exercise_id)
        if exercise and entry.performed_at.date() >= recent_cutoff:
            trained_groups.update(exercise.muscle_groups)
    for group, names in sorted(group_exercises.items()):
        if group in trained_groups:
            continue
        suggestions.append(
            FocusSuggestion(
                type="muscle_group",
                priority="low",
                title=f"{group} needs attention",
                reason=f"No {group.lower()} work in the last {NEGLECTED_AFTER_DAYS} days.",
                suggested_exercises=names[:3],
            )
        )

    suggestions.sort(key=lambda item: PRIORITY_ORDER[item.priority])
    return suggestions[:MAX_FOCUS_SUGGESTIONS]


def subscription_from_user(user: User) -> SubscriptionStatus:
    record = user_record(user)
    now = utcnow()
    status = record.subscription_status
    trial_days_remaining = 0
    if status == "trial" and record.trial_ends_at is not None:
        if record.trial_ends_at <= now:
            status = "expired"
        else:
            remaining = (record.trial_ends_at - now).total_seconds() / 86400
            trial_days_remaining = max(0, math.ceil(remaining))
    has_access = status in {"trial", "active", "past_due"}
    return SubscriptionStatus(
        status=status,
        has_access=has_access,
        trial_days_remaining=trial_days_remaining,
        period_end=record.subscription_period_end,
    )


class SqlCoachInsights:
    """Recency and streak based insights computed from the user's stored sets."""

    def __init__(self, db: Session, user_id: int) -> None:
        self.db = db
        self.user_id = user_id
        self.store = SqlCoachDataStore(db, user_id)

    async def get_focus_suggestions(self) -> list[FocusSuggestion]:
        exercises = await self.store.list_exercises()
        sets = await self.store.list_sets()
        return build_focus_suggestions(exercises, sets, utcnow().date())

    async def get_dashboard_analytics(self) -> DashboardAnalytics:
        exercises = await self.store.list_exercises(include_deleted=True)
        sets = await self.store.list_sets()
        names = {exercise.id: exercise.name for exercise in exercises}
        now = utcnow()

        per_day: dict[str, list[SetRecord]] = defaultdict(list)
        for entry in sets:
            per_day[day_key(entry.performed_at)].append(entry)
        frequency = []
        for offset in range(FREQUENCY_DAYS - 1, -1, -1):
            key = (now - timedelta(days=offset)).date().isoformat()
            entries = per_day.get(key, [])
            frequency.append(
                DayFrequency(date=key, set_count=len(entries), total_volume=sum(_set_volume(e) for e in entries))
            )

        workout_days = {entry.performed_at.date() for entry in sets}
        cutoff = now - timedelta(days=OVERLOAD_WINDOW_DAYS)
        recent_by_exercise: dict[int, list[SetRecord]] = defaultdict(list)
        for entry in sets:
            if entry.performed_at >= cutoff:
                recent_by_exercise[entry.exercise_id].append(entry)
        overload = []
        for exercise_id, entries in recent_by_exercise.items():
            trend = classify_overload(entries)
            if trend:
                overload.append(OverloadTrend(exercise_name=names.get(exercise_id, "Unknown exercise"), trend=trend))

        active = [exercise for exercise in exercises if not exercise.archived]
        return DashboardAnalytics(
            frequency=frequency,
            streak_stats=compute_streaks(workout_days, now.date()),
            recent_prs=detect_personal_records(sets, names),
            focus_suggestions=build_focus_suggestions(active, sets, now.date()),
            progressive_overload=overload,
        )

    async def get_report_history(self, limit: int = 8) -> list[ReportSummary]:
        rows = (
            self.db.query(ReportRecord)
            .filter(ReportRecord.user_id == self.user_id)
            .order_by(ReportRecord.generated_at.desc())
            .limit(limit)
            .all()
        )
        return [
            ReportSummary(
                id=row.id,
                report_type=row.report_type or "weekly",
                generated_at=row.generated_at,
                model=row.model,
                report_version=row.report_version or "1.0",
            )
            for row in rows
        ]

    async def get_subscription_status(self) -> SubscriptionStatus:
        user = self.db.query(User).filter(User.id == self.user_id).first()
        if not user:
            return SubscriptionStatus(status="expired", has_access=False, trial_days_remaining=0)
        return subscription_from_user(user)


def get_insights(
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
) -> CoachInsights:
    return SqlCoachInsights(db, user.id)
