import re
from typing import Any, Optional

from app.core.blocks import StatusBlock, SuggestionsBlock
from app.core.intent import normalize_exercise_lookup
from app.core.records import ExerciseRecord
from app.tools.context import ToolContext, ToolResult

MAX_PROMPTS = 4


def title_case(value: str) -> str:
    return " ".join(part[:1].upper() + part[1:].lower() for part in value.split())


def unique_prompts(prompts: list[str], limit: int = MAX_PROMPTS) -> list[str]:
    seen: set[str] = set()
    output: list[str] = []
    for prompt in prompts:
        normalized = prompt.lower().strip()
        if not normalized or normalized in seen:
            continue
        seen.add(normalized)
        output.append(prompt)
        if len(output) >= limit:
            break
    return output


def find_exercise(exercises: list[ExerciseRecord], name: str) -> Optional[ExerciseRecord]:
    """Exact normalized match first, then containment in either direction."""
    normalized = normalize_exercise_lookup(name)
    if not normalized:
        return None
    for exercise in exercises:
        if normalize_exercise_lookup(exercise.name) == normalized:
            return exercise
    for exercise in exercises:
        candidate = normalize_exercise_lookup(exercise.name)
        if candidate and (normalized in candidate or candidate in normalized):
            return exercise
    return None


async def ensure_exercise(ctx: ToolContext, exercise_name: str) -> tuple[ExerciseRecord, bool]:
    exercises = await ctx.store.list_exercises()
    matched = find_exercise(exercises, exercise_name)
    if matched:
        return matched, False

    # An archived exercise with the same name is brought back instead of duplicated.
    archived = [item for item in await ctx.store.list_exercises(include_deleted=True) if item.archived]
    normalized = normalize_exercise_lookup(exercise_name)
    for exercise in archived:
        if normalize_exercise_lookup(exercise.name) == normalized:
            return await ctx.store.patch_exercise(exercise.id, deleted_at=None), False

    name = title_case(exercise_name) if exercise_name == exercise_name.lower() else " ".join(exercise_name.split())
    return await ctx.store.insert_exercise(name), True


def parse_set_id(raw: str) -> Optional[int]:
    match = re.fullmatch(r"#?(\d{1,12})", raw.strip())
    return int(match.group(1)) if match else None


def status_result(
    *,
    tone: str,
    title: str,
    description: str,
    summary: Optional[str] = None,
    prompts: Optional[list[str]] = None,
    output: Optional[dict[str, Any]] = None,
) -> ToolResult:
    blocks: list = [StatusBlock(tone=tone, title=title, description=description)]
    if prompts:
        blocks.append(SuggestionsBlock(prompts=unique_prompts(prompts)))
    return ToolResult(
        summary=summary or description,
        blocks=blocks,
        output_for_model=output or {"status": "error" if tone == "error" else "ok"},
    )
