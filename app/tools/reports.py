"""Read-only tools: daily totals, per-exercise reports and analytics views."""

from app.core.analytics import (
    aggregate_exercise_trend,
    format_seconds_short,
    format_set_metric,
    format_timestamp,
    summarize_exercise_performance,
    summarize_today_sets,
    today_range,
)
from app.core.blocks import (
    ENTITY_ITEMS_MAX,
    TABLE_ROWS_MAX,
    DetailField,
    DetailPanelBlock,
    EntityItem,
    EntityListBlock,
    MetricItem,
    MetricsBlock,
    StatusBlock,
    SuggestionsBlock,
    TableBlock,
    TableRow,
)
from app.tools.context import ToolContext, ToolResult
from app.tools.helpers import find_exercise, unique_prompts
from app.tools.schemas import ExerciseNameArgs, HistoryArgs, NoArgs, ReportHistoryArgs
from app.tools.workout import trend_block

DEFAULT_HISTORY_LIMIT = 25
DEFAULT_REPORT_LIMIT = 8
OVERLOAD_TAGS = {"improving": "improving", "declining": "watch", "plateau": "plateau"}


async def get_today_summary(args: NoArgs, ctx: ToolContext) -> ToolResult:
    start, end = today_range(ctx.timezone_offset_minutes)
    sets = await ctx.store.sets_for_range(start, end)
    exercises = await ctx.store.list_exercises(include_deleted=True)
    summary = summarize_today_sets(sets, {item.id: item.name for item in exercises})

    if summary.total_sets == 0:
        blocks = [
            StatusBlock(
                tone="info",
                title="No sets logged today",
                description="Log one now and I will generate your daily focus.",
            )
        ]
    else:
        rows = []
        for entry in summary.top_exercises:
            if entry.reps > 0:
                meta = f"{entry.reps} reps"
            elif entry.duration_seconds > 0:
                meta = format_seconds_short(entry.duration_seconds)
            else:
                meta = None
            rows.append(TableRow(label=entry.exercise_name, value=f"{entry.sets} sets", meta=meta))
        blocks = [
            MetricsBlock(
                title="Today's totals",
                metrics=[
                    MetricItem(label="Sets", value=str(summary.total_sets)),
                    MetricItem(label="Reps", value=str(summary.total_reps)),
                    MetricItem(label="Duration", value=format_seconds_short(summary.total_duration_seconds)),
                    MetricItem(label="Exercises", value=str(len(summary.top_exercises))),
                ],
            ),
            TableBlock(title="Top exercises today", rows=rows),
        ]

    return ToolResult(
        summary="Prepared today's summary.",
        blocks=blocks,
        output_for_model={
            "status": "ok",
            "total_sets": summary.total_sets,
            "total_reps": summary.total_reps,
            "exercise_count": len(summary.top_exercises),
        },
    )


async def get_exercise_report(args: ExerciseNameArgs, ctx: ToolContext) -> ToolResult:
    exercises = await ctx.store.list_exercises()
    exercise = find_exercise(exercises, args.exercise_name)
    if exercise is None:
        return ToolResult(
            summary=f'Exercise "{args.exercise_name}" not found.',
            blocks=[
                StatusBlock(
                    tone="error",
                    title=f'I can\'t find "{args.exercise_name}"',
                    description="Log a set first, then ask for a trend or report.",
                ),
                SuggestionsBlock(prompts=["10 pushups", "show today's summary"]),
            ],
            output_for_model={
                "status": "error",
                "error": "exercise_not_found",
                "exercise_name": args.exercise_name,
            },
        )

    recent = await ctx.store.recent_sets_for_exercise(exercise.id)
    if not recent:
        return ToolResult(
            summary=f"No history for {exercise.name}.",
            blocks=[
                StatusBlock(
                    tone="info",
                    title=f"{exercise.name} has no history yet",
                    description="Log your first set to start trend tracking.",
                ),
                SuggestionsBlock(
                    prompts=unique_prompts([f"10 {exercise.name.lower()}", "show today's summary"])
                ),
            ],
            output_for_model={"status": "ok", "exercise_name": exercise.name, "total_sets": 0},
        )

    trend = aggregate_exercise_trend(recent, timezone_offset_minutes=ctx.timezone_offset_minutes)
    performance = summarize_exercise_performance(recent)
    latest = recent[0]
    by_duration = trend.metric == "duration"

    return ToolResult(
        summary=f"Prepared report for {exercise.name}.",
        blocks=[
            MetricsBlock(
                title=f"{exercise.name} snapshot",
                metrics=[
                    MetricItem(label="Total sets", value=str(performance.total_sets)),
                    MetricItem(
                        label="Total duration" if by_duration else "Total reps",
                        value=(
                            format_seconds_short(performance.total_duration_seconds)
                            if by_duration
                            else str(performance.total_reps)
                        ),
                    ),
                    MetricItem(
                        label="Best hold" if by_duration else "Best set",
                        value=(
                            format_seconds_short(performance.best_duration_seconds)
                            if by_duration
                            else f"{performance.best_reps} reps"
                        ),
                    ),
                    MetricItem(label="Latest", value=format_set_metric(latest, ctx.default_unit)),
                ],
            ),
            trend_block(f"{exercise.name} 14-day trend", "Computed from recent logged sets.", trend),
            SuggestionsBlock(
                prompts=unique_prompts(
                    [
                        f"10 {exercise.name.lower()}",
                        "what should I work on today?",
                        "show today's summary",
                    ]
                )
            ),
        ],
        output_for_model={
            "status": "ok",
            "exercise_name": exercise.name,
            "total_sets": performance.total_sets,
            "trend_metric": trend.metric,
            "trend_total": trend.total,
            "latest_set": {
                "performed_at": latest.performed_at.date().isoformat(),
                "reps": latest.reps,
                "duration_seconds": latest.duration_seconds,
                "weight": latest.weight,
                "unit": latest.unit,
            },
        },
    )


async def get_focus_suggestions(args: NoArgs, ctx: ToolContext) -> ToolResult:
    suggestions = await ctx.insights.get_focus_suggestions()
    if not suggestions:
        return ToolResult(
            summary="No focus gaps found yet.",
            blocks=[
                StatusBlock(
                    tone="info",
                    title="No major training gaps detected",
                    description="Keep logging consistently and ask again after more sessions.",
                ),
                SuggestionsBlock(
                    prompts=["show today's summary", "show trend for pushups", "show trend for squats"]
                ),
            ],
            output_for_model={"status": "ok", "suggestions": []},
        )

    prompts = ["show today's summary"]
    for item in suggestions:
        if item.title.lower().startswith("train "):
            exercise = item.title[len("train "):].strip().lower()
            prompts.append(f"show trend for {exercise}")
            prompts.append(f"10 {exercise}")
        if item.suggested_exercises:
            prompts.append(f"show trend for {item.suggested_exercises[0].lower()}")

    return ToolResult(
        summary="Prepared focus suggestions.",
        blocks=[
            StatusBlock(
                tone="success",
                title="Today's focus plan",
                description="Based on your logged history and balance checks.",
            ),
            TableBlock(
                title="What to work on today",
                rows=[
                    TableRow(label=item.title, value=item.priority.upper(), meta=item.reason)
                    for item in suggestions[:TABLE_ROWS_MAX]
                ],
            ),
            SuggestionsBlock(prompts=unique_prompts(prompts)),
        ],
        output_for_model={
            "status": "ok",
            "suggestions": [
                {"title": item.title, "priority": item.priority, "reason": item.reason}
                for item in suggestions
            ],
        },
    )


async def get_history_overview(args: HistoryArgs, ctx: ToolContext) -> ToolResult:
    limit = args.limit or DEFAULT_HISTORY_LIMIT
    sets = await ctx.store.list_sets(limit=limit)
    exercises = {item.id: item for item in await ctx.store.list_exercises(include_deleted=True)}

    total_reps = sum(entry.reps or 0 for entry in sets)
    total_duration = sum(entry.duration_seconds or 0 for entry in sets)

    items = []
    for entry in sets:
        exercise = exercises.get(entry.exercise_id)
        when = format_timestamp(entry.performed_at, ctx.timezone_offset_minutes)
        items.append(
            EntityItem(
                id=str(entry.id),
                title=exercise.name if exercise else "Unknown exercise",
                subtitle=f"{format_set_metric(entry, ctx.default_unit)} • {when}",
                meta=f"set_id={entry.id}",
                prompt=f"delete set {entry.id}",
            )
        )

    return ToolResult(
        summary=f"Loaded {len(sets)} recent sets.",
        blocks=[
            DetailPanelBlock(
                title="History snapshot",
                fields=[
                    DetailField(label="Recent sets shown", value=str(len(sets)), emphasis=True),
                    DetailField(label="Total reps", value=str(total_reps)),
                    DetailField(label="Total duration", value=format_seconds_short(total_duration)),
                ],
                prompts=["show analytics overview", "show exercise library", "show today's summary"],
            ),
            EntityListBlock(
                title="Recent sets",
                empty_label="No history yet. Log your first set.",
                items=items,
            ),
        ],
        output_for_model={
            "status": "ok",
            "shown_sets": len(sets),
            "total_reps": total_reps,
            "total_duration_seconds": total_duration,
            "set_ids": [str(entry.id) for entry in sets],
        },
    )


async def get_analytics_overview(args: NoArgs, ctx: ToolContext) -> ToolResult:
    dashboard = await ctx.insights.get_dashboard_analytics()
    workout_days = sum(1 for day in dashboard.frequency if day.set_count > 0)
    recent_volume = sum(day.total_volume for day in dashboard.frequency[-14:])
    streaks = dashboard.streak_stats

    return ToolResult(
        summary="Prepared analytics overview.",
        blocks=[
            MetricsBlock(
                title="Analytics overview",
                metrics=[
                    MetricItem(label="Current streak", value=str(streaks.current_streak)),
                    MetricItem(label="Longest streak", value=str(streaks.longest_streak)),
                    MetricItem(label="Workout days", value=str(workout_days)),
                    MetricItem(label="14d volume", value=str(round(recent_volume))),
                ],
            ),
            EntityListBlock(
                title="Recent PRs",
                empty_label="No PRs yet. Keep logging consistent sets.",
                items=[
                    EntityItem(
                        title=pr.exercise_name,
                        subtitle=f"{pr.pr_type} (+{round(pr.improvement)})",
                        prompt=f"show trend for {pr.exercise_name.lower()}",
                    )
                    for pr in dashboard.recent_prs[:8]
                ],
            ),
            EntityListBlock(
                title="Progressive overload",
                empty_label="Not enough recent data yet.",
                items=[
                    EntityItem(
                        title=entry.exercise_name,
                        subtitle=f"Trend: {entry.trend}",
                        tags=[OVERLOAD_TAGS[entry.trend]],
                        prompt=f"show trend for {entry.exercise_name.lower()}",
                    )
                    for entry in dashboard.progressive_overload[:ENTITY_ITEMS_MAX]
                ],
            ),
            TableBlock(
                title="Focus suggestions",
                rows=[
                    TableRow(label=item.title, value=item.priority.upper(), meta=item.reason)
                    for item in dashboard.focus_suggestions[:6]
                ],
            ),
        ],
        output_for_model={
            "status": "ok",
            "current_streak": streaks.current_streak,
            "longest_streak": streaks.longest_streak,
            "workout_days": workout_days,
            "recent_pr_count": len(dashboard.recent_prs),
            "focus_suggestion_count": len(dashboard.focus_suggestions),
        },
    )


async def get_report_history(args: ReportHistoryArgs, ctx: ToolContext) -> ToolResult:
    reports = await ctx.insights.get_report_history(limit=args.limit or DEFAULT_REPORT_LIMIT)
    return ToolResult(
        summary=f"Loaded {len(reports)} reports.",
        blocks=[
            EntityListBlock(
                title="AI report history",
                empty_label="No reports generated yet.",
                items=[
                    EntityItem(
                        id=str(report.id),
                        title=f"{report.report_type.upper()} report",
                        subtitle=format_timestamp(report.generated_at, ctx.timezone_offset_minutes),
                        meta=f"model={report.model}",
                        tags=[report.report_version],
                        prompt="show analytics overview",
                    )
                    for report in reports
                ],
            ),
            SuggestionsBlock(
                prompts=unique_prompts(
                    ["show analytics overview", "show today's summary", "show settings overview"]
                )
            ),
        ],
        output_for_model={
            "status": "ok",
            "reports": [
                {
                    "id": str(report.id),
                    "type": report.report_type,
                    "generated_at": report.generated_at.isoformat(),
                    "model": report.model,
                    "version": report.report_version,
                }
                for report in reports
            ],
        },
    )
