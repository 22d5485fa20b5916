from app.core.analytics import utcnow
from app.core.blocks import (
    ENTITY_ITEMS_MAX,
    ConfirmationBlock,
    ConfirmationLabels,
    DetailField,
    DetailPanelBlock,
    EntityItem,
    EntityListBlock,
    StatusBlock,
    SuggestionsBlock,
)
from app.core.intent import normalize_exercise_lookup
from app.tools.context import ToolContext, ToolResult
from app.tools.helpers import find_exercise, status_result, title_case, unique_prompts
from app.tools.schemas import ExerciseNameArgs, MergeExerciseArgs, NoArgs, RenameExerciseArgs, UpdateMuscleGroupsArgs

LIBRARY_PROMPTS = ["show exercise library", "show today's summary"]


async def get_exercise_library(args: NoArgs, ctx: ToolContext) -> ToolResult:
    exercises = await ctx.store.list_exercises(include_deleted=True)
    active_count = sum(1 for item in exercises if not item.archived)
    archived_count = len(exercises) - active_count
    # Active exercises sort ahead of archived ones before the list cap.
    shown = sorted(exercises, key=lambda item: item.archived)[:ENTITY_ITEMS_MAX]

    items = [
        EntityItem(
            id=str(item.id),
            title=item.name,
            subtitle=", ".join(item.muscle_groups) if item.muscle_groups else "Unclassified",
            tags=["archived" if item.archived else "active"],
            prompt=(
                f"restore exercise {item.name}" if item.archived else f"show trend for {item.name.lower()}"
            ),
        )
        for item in shown
    ]

    return ToolResult(
        summary=f"Loaded {len(exercises)} exercises.",
        blocks=[
            DetailPanelBlock(
                title="Exercise library",
                fields=[
                    DetailField(label="Active", value=str(active_count), emphasis=True),
                    DetailField(label="Archived", value=str(archived_count)),
                    DetailField(label="Total", value=str(len(exercises))),
                ],
                prompts=["show today's summary", "show history overview", "show analytics overview"],
            ),
            EntityListBlock(
                title="Exercises",
                description=(
                    f"Showing {len(shown)} of {len(exercises)} exercises." if len(shown) < len(exercises) else None
                ),
                empty_label="No exercises yet. Log your first set to auto-create one.",
                items=items,
            ),
            SuggestionsBlock(
                prompts=unique_prompts(
                    [
                        "rename exercise Push-ups to Push Ups",
                        "delete exercise Push-ups",
                        "restore exercise Push-ups",
                        "set muscle groups for Push-ups: chest, triceps",
                    ]
                )
            ),
        ],
        output_for_model={
            "status": "ok",
            "active_count": active_count,
            "archived_count": archived_count,
            "exercises": [{"id": str(item.id), "name": item.name, "archived": item.archived} for item in exercises],
        },
    )


async def rename_exercise(args: RenameExerciseArgs, ctx: ToolContext) -> ToolResult:
    exercises = await ctx.store.list_exercises(include_deleted=True)
    exercise = find_exercise(exercises, args.exercise_name)
    if exercise is None or exercise.archived:
        return status_result(
            tone="error",
            title="Exercise not found",
            description="I couldn't find an active exercise with that name to rename.",
            summary=f'Could not rename "{args.exercise_name}".',
            prompts=LIBRARY_PROMPTS,
            output={"status": "error", "error": "exercise_not_found"},
        )

    new_name = title_case(args.new_name)
    wanted = normalize_exercise_lookup(new_name)
    clash = next(
        (
            item
            for item in exercises
            if item.id != exercise.id and not item.archived and normalize_exercise_lookup(item.name) == wanted
        ),
        None,
    )
    if clash is not None:
        return status_result(
            tone="error",
            title="Name already in use",
            description=f"{clash.name} already exists. Merge the two exercises instead.",
            summary=f"Could not rename {exercise.name}.",
            prompts=[f"merge exercise {exercise.name} into {clash.name}", "show exercise library"],
            output={"status": "error", "error": "name_conflict"},
        )

    previous_name = exercise.name
    await ctx.store.patch_exercise(exercise.id, name=new_name)
    return ToolResult(
        summary=f"Renamed {previous_name} to {new_name}.",
        blocks=[
            StatusBlock(tone="success", title="Exercise renamed", description=f"{previous_name} is now {new_name}."),
            SuggestionsBlock(
                prompts=unique_prompts(
                    [f"show trend for {new_name.lower()}", "show exercise library", "show history overview"]
                )
            ),
        ],
        output_for_model={"status": "ok", "previous_name": previous_name, "new_name": new_name},
    )


async def delete_exercise(args: ExerciseNameArgs, ctx: ToolContext) -> ToolResult:
    exercise = find_exercise(await ctx.store.list_exercises(), args.exercise_name)
    if exercise is None:
        return status_result(
            tone="error",
            title="Exercise not found",
            description="I couldn't find that active exercise.",
            summary=f'Could not archive "{args.exercise_name}".',
            prompts=LIBRARY_PROMPTS,
            output={"status": "error", "error": "exercise_not_found"},
        )

    await ctx.store.patch_exercise(exercise.id, deleted_at=utcnow())
    return ToolResult(
        summary=f"Archived {exercise.name}.",
        blocks=[
            StatusBlock(
                tone="success",
                title="Exercise archived",
                description=f"{exercise.name} moved to archived. History remains intact.",
            ),
            ConfirmationBlock(
                title="Need it back?",
                description="You can restore this exercise anytime.",
                confirm_prompt=f"restore exercise {exercise.name}",
                labels=ConfirmationLabels(confirm="Restore"),
            ),
            SuggestionsBlock(prompts=unique_prompts(["show exercise library", "show history overview"])),
        ],
        output_for_model={"status": "ok", "archived_name": exercise.name},
    )


async def restore_exercise(args: ExerciseNameArgs, ctx: ToolContext) -> ToolResult:
    exercise = find_exercise(await ctx.store.list_exercises(include_deleted=True), args.exercise_name)
    if exercise is None:
        return status_result(
            tone="error",
            title="Exercise not found",
            description="I couldn't find that exercise in your library.",
            summary=f'Could not restore "{args.exercise_name}".',
            output={"status": "error", "error": "exercise_not_found"},
        )
    if not exercise.archived:
        return status_result(
            tone="info",
            title="Already active",
            description=f"{exercise.name} is already in active exercises.",
            summary=f"{exercise.name} is already active.",
            output={"status": "ok", "already_active": True},
        )

    await ctx.store.patch_exercise(exercise.id, deleted_at=None)
    return ToolResult(
        summary=f"Restored {exercise.name}.",
        blocks=[
            StatusBlock(tone="success", title="Exercise restored", description=f"{exercise.name} is active again."),
            SuggestionsBlock(
                prompts=unique_prompts(
                    [f"show trend for {exercise.name.lower()}", "show exercise library", "show today's summary"]
                )
            ),
        ],
        output_for_model={"status": "ok", "restored_name": exercise.name},
    )


async def merge_exercise(args: MergeExerciseArgs, ctx: ToolContext) -> ToolResult:
    exercises = await ctx.store.list_exercises(include_deleted=True)
    source = find_exercise(exercises, args.source_exercise)
    target = find_exercise(exercises, args.target_exercise)

    if source is None:
        return status_result(
            tone="error",
            title="Source exercise not found",
            description="I couldn't find that source exercise in your library.",
            summary=f'Could not merge from "{args.source_exercise}".',
            prompts=LIBRARY_PROMPTS,
            output={"status": "error", "error": "source_exercise_not_found"},
        )
    if source.archived:
        return status_result(
            tone="error",
            title="Source already archived",
            description="Pick an active source exercise so historical sets can be moved.",
            summary=f"{source.name} is already archived.",
            output={"status": "error", "error": "source_exercise_archived"},
        )
    if target is None:
        return status_result(
            tone="error",
            title="Target exercise not found",
            description="I couldn't find that target exercise in your library.",
            summary=f'Could not merge into "{args.target_exercise}".',
            prompts=LIBRARY_PROMPTS,
            output={"status": "error", "error": "target_exercise_not_found"},
        )
    if target.archived:
        return status_result(
            tone="error",
            title="Target is archived",
            description="Restore the target exercise first, then retry the merge.",
            summary=f"{target.name} is archived.",
            output={"status": "error", "error": "target_exercise_archived"},
        )
    if source.id == target.id:
        return status_result(
            tone="error",
            title="Same exercise selected",
            description="Choose two different exercises: one source and one target.",
            summary="Merge skipped.",
            output={"status": "error", "error": "same_exercise"},
        )

    moved = await ctx.store.merge_exercise(source.id, target.id)
    noun = "set" if moved == 1 else "sets"
    return ToolResult(
        summary=f"Merged {source.name} into {target.name}.",
        blocks=[
            StatusBlock(
                tone="success",
                title="Exercises merged",
                description=(
                    f"Moved {moved} historical {noun} into {target.name}. {source.name} is now archived."
                ),
            ),
            SuggestionsBlock(
                prompts=unique_prompts(
                    [f"show trend for {target.name.lower()}", "show exercise library", "show history overview"]
                )
            ),
        ],
        output_for_model={
            "status": "ok",
            "source_exercise": source.name,
            "target_exercise": target.name,
            "merged_count": moved,
        },
    )


async def update_exercise_muscle_groups(args: UpdateMuscleGroupsArgs, ctx: ToolContext) -> ToolResult:
    exercise = find_exercise(await ctx.store.list_exercises(), args.exercise_name)
    if exercise is None:
        return status_result(
            tone="error",
            title="Exercise not found",
            description="I couldn't find that active exercise.",
            summary=f'Could not update groups for "{args.exercise_name}".',
            output={"status": "error", "error": "exercise_not_found"},
        )

    groups: list[str] = []
    for raw in args.muscle_groups:
        group = title_case(raw)
        if group and group not in groups:
            groups.append(group)

    await ctx.store.patch_exercise(exercise.id, muscle_groups=groups)
    return ToolResult(
        summary=f"Updated muscle groups for {exercise.name}.",
        blocks=[
            DetailPanelBlock(
                title="Muscle groups updated",
                fields=[
                    DetailField(label="Exercise", value=exercise.name, emphasis=True),
                    DetailField(label="Groups", value=", ".join(groups) or "Other"),
                ],
                prompts=["show exercise library", "show analytics overview"],
            )
        ],
        output_for_model={"status": "ok", "exercise_name": exercise.name, "muscle_groups": groups},
    )
