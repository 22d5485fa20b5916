"""The coach's full tool catalog.

Both execution strategies share this registry: the agent planner sends
``catalog()`` to the model, the deterministic router calls ``dispatch`` by name.
"""

from app.services.undo import UndoLedger, get_undo_ledger
from app.tools import library, reports, settings, workout, workspace
from app.tools.registry import ToolRegistry
from app.tools.schemas import (
    DeleteSetArgs,
    ExerciseNameArgs,
    HistoryArgs,
    LogSetArgs,
    MergeExerciseArgs,
    NoArgs,
    QuickLogArgs,
    RenameExerciseArgs,
    ReportHistoryArgs,
    SetSoundArgs,
    SetWeightUnitArgs,
    UpdateMuscleGroupsArgs,
    UpdatePreferencesArgs,
)

TOOL_DEFINITIONS = [
    (
        "log_set",
        LogSetArgs,
        workout.log_set,
        "Log one set. Provide exactly one of reps or duration_seconds. Creates the exercise if it does not exist.",
    ),
    ("get_today_summary", NoArgs, reports.get_today_summary, "Get today's workout totals and top exercises."),
    (
        "get_exercise_report",
        ExerciseNameArgs,
        reports.get_exercise_report,
        "Get a focused report and 14-day trend for a specific exercise.",
    ),
    (
        "get_focus_suggestions",
        NoArgs,
        reports.get_focus_suggestions,
        "Get prioritized suggestions for what to train today.",
    ),
    ("set_weight_unit", SetWeightUnitArgs, settings.set_weight_unit, "Set the default weight unit (lbs or kg)."),
    ("set_sound", SetSoundArgs, settings.set_sound, "Enable or disable tactile sounds."),
    ("show_workspace", NoArgs, workspace.show_workspace, "Show the core workflows the coach can run."),
    (
        "get_history_overview",
        HistoryArgs,
        reports.get_history_overview,
        "List recent sets with their ids, newest first.",
    ),
    (
        "get_analytics_overview",
        NoArgs,
        reports.get_analytics_overview,
        "Show streaks, recent personal records, progressive overload and focus suggestions.",
    ),
    (
        "get_exercise_library",
        NoArgs,
        library.get_exercise_library,
        "List active and archived exercises with their muscle groups.",
    ),
    ("rename_exercise", RenameExerciseArgs, library.rename_exercise, "Rename an active exercise."),
    (
        "merge_exercise",
        MergeExerciseArgs,
        library.merge_exercise,
        "Move every set from the source exercise into the target exercise and archive the source.",
    ),
    (
        "delete_exercise",
        ExerciseNameArgs,
        library.delete_exercise,
        "Archive an exercise. Its logged history is kept and it can be restored.",
    ),
    ("restore_exercise", ExerciseNameArgs, library.restore_exercise, "Restore an archived exercise."),
    (
        "update_exercise_muscle_groups",
        UpdateMuscleGroupsArgs,
        library.update_exercise_muscle_groups,
        "Replace the muscle groups of an active exercise.",
    ),
    (
        "delete_set",
        DeleteSetArgs,
        workout.delete_set,
        "Delete a set by set_id, or the latest set of exercise_name. The deletion can be undone.",
    ),
    (
        "get_settings_overview",
        NoArgs,
        settings.get_settings_overview,
        "Show training preferences and subscription status.",
    ),
    (
        "update_preferences",
        UpdatePreferencesArgs,
        settings.update_preferences,
        "Update goals, custom goal, training split or coach notes. Omitted fields are left unchanged.",
    ),
    ("get_report_history", ReportHistoryArgs, reports.get_report_history, "List previously generated AI reports."),
    ("open_billing", NoArgs, settings.open_billing, "Open checkout, or the billing portal for existing customers."),
    ("show_quick_log", QuickLogArgs, workspace.show_quick_log, "Show a quick log form, optionally for one exercise."),
]

UNDO_HANDLERS = {
    "log_set": workout.undo_log_set,
    "delete_set": workout.undo_delete_set,
}


def register_undo_handlers(ledger: UndoLedger) -> UndoLedger:
    for tool_name, handler in UNDO_HANDLERS.items():
        ledger.register_handler(tool_name, handler)
    return ledger


def build_registry() -> ToolRegistry:
    registry = ToolRegistry()
    for name, args_model, handler, description in TOOL_DEFINITIONS:
        registry.register(name, args_model, handler, description)
    return registry


_registry = build_registry()
register_undo_handlers(get_undo_ledger())


def get_tool_registry() -> ToolRegistry:
    return _registry
