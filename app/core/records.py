from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Optional

WeightUnit = Literal["lbs", "kg"]
SubscriptionState = Literal["trial", "active", "past_due", "canceled", "expired"]

GOAL_LABELS = {
    "build_muscle": "Build muscle",
    "lose_weight": "Lose weight",
    "maintain_fitness": "Maintain fitness",
    "get_stronger": "Get stronger",
}


@dataclass
class ExerciseRecord:
    id: int
    name: str
    muscle_groups: list[str] = field(default_factory=list)
    deleted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def archived(self) -> bool:
        return self.deleted_at is not None


@dataclass
class SetRecord:
    id: int
    exercise_id: int
    performed_at: datetime
    reps: Optional[int] = None
    duration_seconds: Optional[int] = None
    weight: Optional[float] = None
    unit: Optional[str] = None


@dataclass
class UserRecord:
    id: int
    email: str
    weight_unit: WeightUnit = "lbs"
    sound_enabled: bool = True
    goals: list[str] = field(default_factory=list)
    custom_goal: Optional[str] = None
    training_split: Optional[str] = None
    coach_notes: Optional[str] = None
    subscription_status: SubscriptionState = "trial"
    trial_ends_at: Optional[datetime] = None
    subscription_period_end: Optional[datetime] = None
    billing_customer_id: Optional[str] = None


@dataclass
class FocusSuggestion:
    type: Literal["exercise", "muscle_group", "balance"]
    priority: Literal["high", "medium", "low"]
    title: str
    reason: str
    suggested_exercises: list[str] = field(default_factory=list)


@dataclass
class DayFrequency:
    date: str
    set_count: int
    total_volume: float


@dataclass
class StreakStats:
    current_streak: int
    longest_streak: int
    total_workouts: int


@dataclass
class PersonalRecord:
    exercise_name: str
    pr_type: str
    improvement: float
    performed_at: datetime


@dataclass
class OverloadTrend:
    exercise_name: str
    trend: Literal["improving", "plateau", "declining"]


@dataclass
class DashboardAnalytics:
    frequency: list[DayFrequency]
    streak_stats: StreakStats
    recent_prs: list[PersonalRecord]
    focus_suggestions: list[FocusSuggestion]
    progressive_overload: list[OverloadTrend]


@dataclass
class SubscriptionStatus:
    status: SubscriptionState
    has_access: bool
    trial_days_remaining: int
    period_end: Optional[datetime] = None


@dataclass
class ReportSummary:
    id: int
    report_type: str
    generated_at: datetime
    model: str
    report_version: str = "1.0"
