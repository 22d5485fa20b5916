from typing import Annotated, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.core.blocks import ENTITY_ITEMS_MAX, SHORT_DESCRIPTION_MAX
from app.core.records import WeightUnit

GoalType = Literal["build_muscle", "lose_weight", "maintain_fitness", "get_stronger"]

ExerciseName = Annotated[str, Field(min_length=1, max_length=80)]
MuscleGroup = Annotated[str, Field(min_length=1, max_length=40)]


class ToolArgs(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class NoArgs(ToolArgs):
    pass


class LogSetArgs(ToolArgs):
    exercise_name: ExerciseName
    reps: Optional[int] = Field(default=None, ge=1, le=1000)
    duration_seconds: Optional[int] = Field(default=None, ge=1, le=86_400)
    weight: Optional[float] = Field(default=None, ge=0, le=5000)
    unit: Optional[WeightUnit] = None

    @model_validator(mode="after")
    def require_one_measure(self):
        if (self.reps is None) == (self.duration_seconds is None):
            raise ValueError("Provide exactly one of reps or duration_seconds.")
        return self


class ExerciseNameArgs(ToolArgs):
    exercise_name: ExerciseName


class SetWeightUnitArgs(ToolArgs):
    unit: WeightUnit


class SetSoundArgs(ToolArgs):
    enabled: bool


class HistoryArgs(ToolArgs):
    limit: Optional[int] = Field(default=None, ge=5, le=ENTITY_ITEMS_MAX)


class RenameExerciseArgs(ToolArgs):
    exercise_name: ExerciseName
    new_name: ExerciseName


class MergeExerciseArgs(ToolArgs):
    source_exercise: ExerciseName
    target_exercise: ExerciseName


class UpdateMuscleGroupsArgs(ToolArgs):
    exercise_name: ExerciseName
    muscle_groups: list[MuscleGroup] = Field(min_length=1, max_length=8)


class DeleteSetArgs(ToolArgs):
    set_id: Optional[str] = Field(default=None, min_length=1, max_length=64)
    exercise_name: Optional[str] = Field(default=None, min_length=1, max_length=80)

    @model_validator(mode="after")
    def require_target(self):
        if not self.set_id and not self.exercise_name:
            raise ValueError("Provide set_id or exercise_name.")
        return self


class UpdatePreferencesArgs(ToolArgs):
    goals: Optional[list[GoalType]] = Field(default=None, max_length=4)
    custom_goal: Optional[str] = Field(default=None, max_length=280)
    training_split: Optional[str] = Field(default=None, max_length=280)
    coach_notes: Optional[str] = Field(default=None, max_length=SHORT_DESCRIPTION_MAX)


class ReportHistoryArgs(ToolArgs):
    limit: Optional[int] = Field(default=None, ge=1, le=30)


class QuickLogArgs(ToolArgs):
    exercise_name: Optional[str] = Field(default=None, min_length=1, max_length=80)
