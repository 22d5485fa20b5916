from app.core.blocks import EntityItem, EntityListBlock, QuickLogFormBlock, StatusBlock, SuggestionsBlock
from app.tools.context import ToolContext, ToolResult
from app.tools.helpers import find_exercise, unique_prompts
from app.tools.schemas import NoArgs, QuickLogArgs

WORKFLOWS = [
    ("today_summary", "Today summary", "Live totals and top exercises", "show today's summary"),
    ("analytics_overview", "Analytics overview", "Streaks, PRs, overload, focus suggestions", "show analytics overview"),
    ("history_overview", "History", "Recent sets and delete operations", "show history overview"),
    ("exercise_library", "Exercise library", "Rename, archive, restore, muscle groups", "show exercise library"),
    ("settings_overview", "Settings and billing", "Goals, coach notes, subscription state", "show settings overview"),
]


async def show_workspace(args: NoArgs, ctx: ToolContext) -> ToolResult:
    return ToolResult(
        summary="Rendered workspace actions.",
        blocks=[
            StatusBlock(
                tone="info",
                title="Agent workspace online",
                description="Use chat to log sets, review progress, and manage account.",
            ),
            EntityListBlock(
                title="Core workflows",
                items=[
                    EntityItem(title=title, subtitle=subtitle, prompt=prompt)
                    for _, title, subtitle, prompt in WORKFLOWS
                ],
            ),
        ],
        output_for_model={"status": "ok", "workflows": [key for key, *_ in WORKFLOWS]},
    )


async def show_quick_log(args: QuickLogArgs, ctx: ToolContext) -> ToolResult:
    exercise_name = None
    if args.exercise_name:
        exercise = find_exercise(await ctx.store.list_exercises(), args.exercise_name)
        exercise_name = exercise.name if exercise else args.exercise_name

    prompts = ["show today's summary"]
    if exercise_name:
        prompts.insert(0, f"show trend for {exercise_name.lower()}")

    return ToolResult(
        summary="Opened quick log form.",
        blocks=[
            QuickLogFormBlock(
                title=f"Log {exercise_name}" if exercise_name else "Quick log",
                exercise_name=exercise_name,
                default_unit=ctx.default_unit,
            ),
            SuggestionsBlock(prompts=unique_prompts(prompts)),
        ],
        output_for_model={"status": "ok", "exercise_name": exercise_name, "default_unit": ctx.default_unit},
    )
