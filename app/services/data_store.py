import json
from datetime import datetime
from typing import Any, Optional, Protocol

from fastapi import Depends
from sqlalchemy.orm import Session

from app.api.auth import get_current_user
from app.core.analytics import utcnow
from app.core.records import ExerciseRecord, SetRecord, UserRecord
from app.db.models import Exercise, User, WorkoutSet
from app.db.session import get_db

RECENT_EXERCISE_SET_LIMIT = 120

USER_PATCH_FIELDS = {
    "weight_unit",
    "sound_enabled",
    "goals",
    "custom_goal",
    "training_split",
    "coach_notes",
}


class StoreError(RuntimeError):
    pass


class CoachDataStore(Protocol):
    """Per-user data access used by coach tools. Every call is scoped to one user."""

    user_id: int

    async def get_user(self) -> UserRecord:
        ...

    async def patch_user(self, **changes: Any) -> UserRecord:
        ...

    async def list_exercises(self, include_deleted: bool = False) -> list[ExerciseRecord]:
        ...

    async def get_exercise(self, exercise_id: int) -> Optional[ExerciseRecord]:
        ...

    async def insert_exercise(self, name: str) -> ExerciseRecord:
        ...

    async def patch_exercise(self, exercise_id: int, **changes: Any) -> ExerciseRecord:
        ...

    async def merge_exercise(self, source_id: int, target_id: int) -> int:
        ...

    async def list_sets(self, limit: Optional[int] = None) -> list[SetRecord]:
        ...

    async def get_set(self, set_id: int) -> Optional[SetRecord]:
        ...

    async def insert_set(
        self,
        exercise_id: int,
        *,
        reps: Optional[int] = None,
        duration_seconds: Optional[int] = None,
        weight: Optional[float] = None,
        unit: Optional[str] = None,
        performed_at: Optional[datetime] = None,
    ) -> SetRecord:
        ...

    async def delete_set(self, set_id: int) -> bool:
        ...

    async def sets_for_range(self, start: datetime, end: datetime) -> list[SetRecord]:
        ...

    async def recent_sets_for_exercise(
        self, exercise_id: int, limit: int = RECENT_EXERCISE_SET_LIMIT
    ) -> list[SetRecord]:
        ...


def _load_list(raw: Optional[str]) -> list[str]:
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return []
    if not isinstance(parsed, list):
        return []
    return [str(item) for item in parsed if str(item).strip()]


def exercise_record(row: Exercise) -> ExerciseRecord:
    return ExerciseRecord(
        id=row.id,
        name=row.name,
        muscle_groups=_load_list(row.muscle_groups_json),
        deleted_at=row.deleted_at,
        created_at=row.created_at,
    )


def set_record(row: WorkoutSet) -> SetRecord:
    return SetRecord(
        id=row.id,
        exercise_id=row.exercise_id,
        performed_at=row.performed_at,
        reps=row.reps,
        duration_seconds=row.duration_seconds,
        weight=row.weight,
        unit=row.unit,
    )


def user_record(row: User) -> UserRecord:
    return UserRecord(
        id=row.id,
        email=row.email,
        weight_unit="kg" if row.weight_unit == "kg" else "lbs",
        sound_enabled=bool(row.sound_enabled),
        goals=_load_list(row.goals_json),
        custom_goal=row.custom_goal,
        training_split=row.training_split,
        coach_notes=row.coach_notes,
        subscription_status=row.subscription_status or "trial",
        trial_ends_at=row.trial_ends_at,
        subscription_period_end=row.subscription_period_end,
        billing_customer_id=row.billing_customer_id,
    )


class SqlCoachDataStore:
    def __init__(self, db: Session, user_id: int) -> None:
        self.db = db
        self.user_id = user_id

    def _user_row(self) -> User:
        row = self.db.query(User).filter(User.id == self.user_id).first()
        if not row:
            raise StoreError("User not found")
        return row

    def _exercise_row(self, exercise_id: int) -> Exercise:
        row = (
            self.db.query(Exercise)
            .filter(Exercise.id == exercise_id, Exercise.user_id == self.user_id)
            .first()
        )
        if not row:
            raise StoreError("Exercise not found")
        return row

    async def get_user(self) -> UserRecord:
        return user_record(self._user_row())

    async def patch_user(self, **changes: Any) -> UserRecord:
        unknown = set(changes) - USER_PATCH_FIELDS
        if unknown:
            raise StoreError(f"Unsupported user fields: {', '.join(sorted(unknown))}")
        row = self._user_row()
        for key, value in changes.items():
            if key == "goals":
                row.goals_json = json.dumps(list(value or []))
            else:
                setattr(row, key, value)
        self.db.commit()
        self.db.refresh(row)
        return user_record(row)

    async def list_exercises(self, include_deleted: bool = False) -> list[ExerciseRecord]:
        query = self.db.query(Exercise).filter(Exercise.user_id == self.user_id)
        if not include_deleted:
            query = query.filter(Exercise.deleted_at.is_(None))
        rows = query.order_by(Exercise.created_at.asc(), Exercise.id.asc()).all()
        return [exercise_record(row) for row in rows]

    async def get_exercise(self, exercise_id: int) -> Optional[ExerciseRecord]:
        row = (
            self.db.query(Exercise)
            .filter(Exercise.id == exercise_id, Exercise.user_id == self.user_id)
            .first()
        )
        return exercise_record(row) if row else None

    async def insert_exercise(self, name: str) -> ExerciseRecord:
        cleaned = " ".join(name.split())
        if not cleaned:
            raise StoreError("Exercise name is required")
        row = Exercise(user_id=self.user_id, name=cleaned[:120])
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return exercise_record(row)

    async def patch_exercise(self, exercise_id: int, **changes: Any) -> ExerciseRecord:
        row = self._exercise_row(exercise_id)
        if "name" in changes:
            row.name = " ".join(str(changes["name"]).split())[:120]
        if "muscle_groups" in changes:
            row.muscle_groups_json = json.dumps(list(changes["muscle_groups"] or []))
        if "deleted_at" in changes:
            row.deleted_at = changes["deleted_at"]
        self.db.commit()
        self.db.refresh(row)
        return exercise_record(row)

    async def merge_exercise(self, source_id: int, target_id: int) -> int:
        source = self._exercise_row(source_id)
        target = self._exercise_row(target_id)
        moved = (
            self.db.query(WorkoutSet)
            .filter(WorkoutSet.user_id == self.user_id, WorkoutSet.exercise_id == source.id)
            .update({WorkoutSet.exercise_id: target.id}, synchronize_session=False)
        )
        source.deleted_at = utcnow()
        self.db.commit()
        return int(moved or 0)

    async def list_sets(self, limit: Optional[int] = None) -> list[SetRecord]:
        query = (
            self.db.query(WorkoutSet)
            .filter(WorkoutSet.user_id == self.user_id)
            .order_by(WorkoutSet.performed_at.desc(), WorkoutSet.id.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        return [set_record(row) for row in query.all()]

    async def get_set(self, set_id: int) -> Optional[SetRecord]:
        row = (
            self.db.query(WorkoutSet)
            .filter(WorkoutSet.id == set_id, WorkoutSet.user_id == self.user_id)
            .first()
        )
        return set_record(row) if row else None

    async def insert_set(
        self,
        exercise_id: int,
        *,
        reps: Optional[int] = None,
        duration_seconds: Optional[int] = None,
        weight: Optional[float] = None,
        unit: Optional[str] = None,
        performed_at: Optional[datetime] = None,
    ) -> SetRecord:
        exercise = self._exercise_row(exercise_id)
        row = WorkoutSet(
            user_id=self.user_id,
            exercise_id=exercise.id,
            reps=reps,
            duration_seconds=duration_seconds,
            weight=weight,
            unit=unit,
            performed_at=performed_at or utcnow(),
        )
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return set_record(row)

    async def delete_set(self, set_id: int) -> bool:
        row = (
            self.db.query(WorkoutSet)
            .filter(WorkoutSet.id == set_id, WorkoutSet.user_id == self.user_id)
            .first()
        )
        if not row:
            return False
        self.db.delete(row)
        self.db.commit()
        return True

    async def sets_for_range(self, start: datetime, end: datetime) -> list[SetRecord]:
        rows = (
            self.db.query(WorkoutSet)
            .filter(
                WorkoutSet.user_id == self.user_id,
                WorkoutSet.performed_at >= start,
                WorkoutSet.performed_at < end,
            )
            .order_by(WorkoutSet.performed_at.desc(), WorkoutSet.id.desc())
            .all()
        )
        return [set_record(row) for row in rows]

    async def recent_sets_for_exercise(
        self, exercise_id: int, limit: int = RECENT_EXERCISE_SET_LIMIT
    ) -> list[SetRecord]:
        rows = (
            self.db.query(WorkoutSet)
            .filter(WorkoutSet.user_id == self.user_id, WorkoutSet.exercise_id == exercise_id)
            .order_by(WorkoutSet.performed_at.desc(), WorkoutSet.id.desc())
            .limit(limit)
            .all()
        )
        return [set_record(row) for row in rows]


def get_data_store(
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
) -> CoachDataStore:
    return SqlCoachDataStore(db, user.id)
