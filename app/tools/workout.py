import logging
from datetime import datetime
from typing import Any

from app.core.analytics import (
    aggregate_exercise_trend,
    format_seconds_short,
    format_set_metric,
    format_weight,
    summarize_exercise_performance,
    summarize_today_sets,
    today_range,
)
from app.core.blocks import MetricItem, MetricsBlock, StatusBlock, SuggestionsBlock, TrendBlock, TrendPoint
from app.core.records import SetRecord
from app.services.data_store import CoachDataStore
from app.services.undo import UndoConflict
from app.tools.context import ToolContext, ToolResult
from app.tools.helpers import ensure_exercise, find_exercise, parse_set_id, status_result, unique_prompts
from app.tools.schemas import DeleteSetArgs, LogSetArgs

logger = logging.getLogger("uvicorn.error")

RECOVERY_PROMPTS = ["show today's summary", "what should I work on today?"]


def set_snapshot(entry: SetRecord) -> dict[str, Any]:
    return {
        "exercise_id": entry.exercise_id,
        "reps": entry.reps,
        "duration_seconds": entry.duration_seconds,
        "weight": entry.weight,
        "unit": entry.unit,
        "performed_at": entry.performed_at.isoformat(),
    }


def trend_block(title: str, subtitle: str, trend) -> TrendBlock:
    return TrendBlock(
        title=title,
        subtitle=subtitle,
        metric=trend.metric,
        points=[TrendPoint(date=p.date, label=p.label, value=p.value) for p in trend.points],
        total=trend.total,
        best_day=trend.best_day,
    )


def describe_logged(args: LogSetArgs, exercise_name: str, unit: str) -> str:
    if args.duration_seconds is not None:
        text = f"{format_seconds_short(args.duration_seconds)} {exercise_name}"
    else:
        text = f"{args.reps} {exercise_name.lower()}"
    if args.weight:
        text += f" @ {format_weight(args.weight)} {unit}"
    return text


async def log_set(args: LogSetArgs, ctx: ToolContext) -> ToolResult:
    try:
        exercise, created = await ensure_exercise(ctx, args.exercise_name)
    except Exception as exc:
        logger.warning("coach log_set exercise create failed user_id=%s error=%r", ctx.user_id, exc)
        return status_result(
            tone="error",
            title="Couldn't create that exercise",
            description=f'Failed to create exercise "{args.exercise_name}".',
            prompts=RECOVERY_PROMPTS,
            output={"status": "error", "error": "exercise_create_failed"},
        )

    unit = args.unit or ctx.default_unit
    try:
        logged = await ctx.store.insert_set(
            exercise.id,
            reps=args.reps,
            duration_seconds=args.duration_seconds,
            weight=args.weight,
            unit=unit if args.weight is not None else None,
        )
    except Exception as exc:
        logger.warning("coach log_set insert failed user_id=%s error=%r", ctx.user_id, exc)
        return status_result(
            tone="error",
            title="Couldn't log that set",
            description="The set was not saved. Please try again.",
            prompts=RECOVERY_PROMPTS,
            output={"status": "error", "error": "log_set_failed"},
        )

    description = describe_logged(args, exercise.name, unit)
    status = StatusBlock(
        tone="success",
        title=f"Logged {description}",
        description=(
            f'Created exercise "{exercise.name}" and saved your set.' if created else "Set saved successfully."
        ),
    )
    ctx.emit([status])

    undo_blocks = []
    if ctx.undo is not None and ctx.undo.supports("log_set"):
        undo_blocks.append(
            ctx.undo.record(
                turn_id=ctx.turn_id,
                user_id=ctx.user_id,
                tool_name="log_set",
                payload={"set_id": logged.id, "snapshot": set_snapshot(logged)},
                title="Undo this set",
                description=f"Remove {description}.",
            )
        )

    try:
        start, end = today_range(ctx.timezone_offset_minutes)
        today_sets = await ctx.store.sets_for_range(start, end)
        recent_sets = await ctx.store.recent_sets_for_exercise(exercise.id)
        exercises = await ctx.store.list_exercises(include_deleted=True)
    except Exception as exc:
        logger.warning("coach log_set summary fetch failed user_id=%s error=%r", ctx.user_id, exc)
        tail = [
            StatusBlock(
                tone="info",
                title="Logged, but couldn't fetch summary",
                description="Your set is saved. Ask for today's summary in a moment.",
            ),
            SuggestionsBlock(
                prompts=unique_prompts(["show today's summary", f"show trend for {exercise.name.lower()}"])
            ),
            *undo_blocks,
        ]
        ctx.emit(tail)
        return ToolResult(
            summary=f"Logged set for {exercise.name}.",
            blocks=[status, *tail],
            output_for_model={
                "status": "ok",
                "set_id": str(logged.id),
                "exercise_name": exercise.name,
                "created_exercise": created,
                "warning": "summary_fetch_failed",
            },
        )

    names = {item.id: item.name for item in exercises}
    names[exercise.id] = exercise.name
    today = summarize_today_sets(today_sets, names)
    performance = summarize_exercise_performance(recent_sets)
    trend = aggregate_exercise_trend(recent_sets, timezone_offset_minutes=ctx.timezone_offset_minutes)

    by_duration = trend.metric == "duration"
    metrics = MetricsBlock(
        title="Immediate impact",
        metrics=[
            MetricItem(label="Today's sets", value=str(today.total_sets)),
            MetricItem(label="Today's reps", value=str(today.total_reps)),
            MetricItem(label=f"{exercise.name} sets", value=str(performance.total_sets)),
            MetricItem(
                label=f"{exercise.name} duration" if by_duration else f"{exercise.name} reps",
                value=(
                    format_seconds_short(performance.total_duration_seconds)
                    if by_duration
                    else str(performance.total_reps)
                ),
            ),
        ],
    )
    ctx.emit([metrics])

    trend_view = trend_block(
        f"{exercise.name} 14-day trend", "Generated from your logged set history.", trend
    )
    ctx.emit([trend_view])

    suggestions = SuggestionsBlock(
        prompts=unique_prompts(
            [
                "what should I work on today?",
                f"show trend for {exercise.name.lower()}",
                "show today's summary",
            ]
        )
    )
    ctx.emit([suggestions])
    ctx.emit(undo_blocks)

    return ToolResult(
        summary=f"Logged set for {exercise.name}.",
        blocks=[status, metrics, trend_view, suggestions, *undo_blocks],
        output_for_model={
            "status": "ok",
            "set_id": str(logged.id),
            "exercise_name": exercise.name,
            "created_exercise": created,
            "today_sets": today.total_sets,
            "today_reps": today.total_reps,
            "trend_metric": trend.metric,
            "trend_total": trend.total,
        },
    )


async def delete_set(args: DeleteSetArgs, ctx: ToolContext) -> ToolResult:
    if args.set_id:
        set_id = parse_set_id(args.set_id)
        target = await ctx.store.get_set(set_id) if set_id is not None else None
        if target is None:
            return status_result(
                tone="error",
                title="Set not found",
                description=f"I couldn't find set {args.set_id}. Check the id in your history.",
                prompts=["show history overview"],
                output={"status": "error", "error": "set_not_found"},
            )
        label = f"set {target.id}"
    else:
        exercises = await ctx.store.list_exercises(include_deleted=True)
        exercise = find_exercise(exercises, args.exercise_name or "")
        if exercise is None:
            return status_result(
                tone="error",
                title="Exercise not found",
                description="I couldn't find that exercise. Provide a valid set id or exercise name.",
                output={"status": "error", "error": "exercise_not_found"},
            )
        recent = await ctx.store.recent_sets_for_exercise(exercise.id, limit=1)
        if not recent:
            return status_result(
                tone="info",
                title="No sets found",
                description=f"No logged sets found for {exercise.name}.",
                output={"status": "ok", "deleted": False, "reason": "no_sets"},
            )
        target = recent[0]
        label = f"latest {exercise.name} set"

    snapshot = set_snapshot(target)
    deleted = await ctx.store.delete_set(target.id)
    if not deleted:
        return status_result(
            tone="error",
            title="Delete failed",
            description="That set could not be deleted. It may already be gone.",
            output={"status": "error", "error": "delete_failed"},
        )

    blocks: list = [
        StatusBlock(
            tone="success",
            title="Set deleted",
            description=f"Deleted {label} ({format_set_metric(target, ctx.default_unit)}).",
        )
    ]
    if ctx.undo is not None and ctx.undo.supports("delete_set"):
        blocks.append(
            ctx.undo.record(
                turn_id=ctx.turn_id,
                user_id=ctx.user_id,
                tool_name="delete_set",
                payload={"snapshot": snapshot},
                title="Restore this set",
                description=f"Put back the {label}.",
            )
        )

    return ToolResult(
        summary=f"Deleted {label}.",
        blocks=blocks,
        output_for_model={"status": "ok", "deleted": True, "set_id": str(target.id)},
    )


async def undo_log_set(payload: dict[str, Any], store: CoachDataStore) -> str:
    set_id = payload.get("set_id")
    expected = payload.get("snapshot")
    if not isinstance(set_id, int):
        raise UndoConflict("missing_target", "Missing affected set id.")

    current = await store.get_set(set_id)
    if current is None:
        raise UndoConflict("missing_target", "Set no longer exists, so undo cannot be applied safely.")
    if isinstance(expected, dict) and set_snapshot(current) != expected:
        raise UndoConflict(
            "conflict", "Set changed after the coach action. Review the latest value before undoing."
        )

    await store.delete_set(set_id)
    return "Removed the logged set."


async def undo_delete_set(payload: dict[str, Any], store: CoachDataStore) -> str:
    snapshot = payload.get("snapshot")
    if not isinstance(snapshot, dict) or "exercise_id" not in snapshot:
        raise UndoConflict("missing_target", "Missing deleted set snapshot.")

    exercise = await store.get_exercise(snapshot["exercise_id"])
    if exercise is None:
        raise UndoConflict("missing_target", "The exercise for that set no longer exists.")

    await store.insert_set(
        exercise.id,
        reps=snapshot.get("reps"),
        duration_seconds=snapshot.get("duration_seconds"),
        weight=snapshot.get("weight"),
        unit=snapshot.get("unit"),
        performed_at=datetime.fromisoformat(snapshot["performed_at"]),
    )
    return f"Restored the deleted {exercise.name} set."
