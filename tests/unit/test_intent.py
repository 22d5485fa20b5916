import pytest

from app.core.intent import (
    ExerciseReportIntent,
    LogSetIntent,
    SetSoundIntent,
    SetWeightUnitIntent,
    TodaySummaryIntent,
    UnknownIntent,
    duration_to_seconds,
    normalize_exercise_alias,
    parse_coach_intent,
)


def test_reps_prefix_resolves_alias() -> None:
    intent = parse_coach_intent("10 pushups")
    assert intent == LogSetIntent(exercise_name="Push-ups", reps=10)
    assert intent.type == "log_set"


def test_leading_verb_and_x_marker() -> None:
    intent = parse_coach_intent("did 3x pullups")
    assert intent == LogSetIntent(exercise_name="Pull-ups", reps=3)


def test_reps_suffix_with_weight_clause() -> None:
    intent = parse_coach_intent("squats 15 @ 135 lbs")
    assert isinstance(intent, LogSetIntent)
    assert intent.exercise_name == "Squats"
    assert intent.reps == 15
    assert intent.weight == 135.0
    assert intent.unit == "lbs"


def test_weight_clause_in_kilograms() -> None:
    intent = parse_coach_intent("log 8 bench press at 60kg")
    assert intent == LogSetIntent(exercise_name="Bench Press", reps=8, weight=60.0, unit="kg")


def test_duration_suffix_in_seconds() -> None:
    intent = parse_coach_intent("plank for 90 seconds")
    assert intent == LogSetIntent(exercise_name="Plank", duration_seconds=90)


def test_duration_prefix_in_minutes() -> None:
    assert parse_coach_intent("2 min plank") == LogSetIntent(exercise_name="Plank", duration_seconds=120)
    assert parse_coach_intent("1.5 minutes wall sit") == LogSetIntent(exercise_name="Wall Sit", duration_seconds=90)


def test_zero_reps_is_not_a_log() -> None:
    assert isinstance(parse_coach_intent("0 pushups"), UnknownIntent)


def test_today_summary_phrasings() -> None:
    assert parse_coach_intent("show today's summary") == TodaySummaryIntent()
    assert parse_coach_intent("What did I do today?") == TodaySummaryIntent()


def test_exercise_report_explicit_target() -> None:
    assert parse_coach_intent("show trend for squats") == ExerciseReportIntent(exercise_name="Squats")


def test_exercise_report_strips_stopwords() -> None:
    assert parse_coach_intent("pushups progress") == ExerciseReportIntent(exercise_name="Push-ups")


def test_unit_settings() -> None:
    assert parse_coach_intent("switch to kg") == SetWeightUnitIntent(unit="kg")
    assert parse_coach_intent("set my weight unit to lbs") == SetWeightUnitIntent(unit="lbs")


def test_sound_settings() -> None:
    assert parse_coach_intent("turn sound off") == SetSoundIntent(enabled=False)
    assert parse_coach_intent("sound on please") == SetSoundIntent(enabled=True)


@pytest.mark.parametrize("text", ["purple elephant", "", "   "])
def test_unrecognized_input_is_unknown(text: str) -> None:
    intent = parse_coach_intent(text)
    assert isinstance(intent, UnknownIntent)
    assert intent.input == text


def test_duration_rounding_half_up() -> None:
    assert duration_to_seconds(2.5, "s") == 3
    assert duration_to_seconds(0.75, "min") == 45


def test_alias_falls_back_to_title_case() -> None:
    assert normalize_exercise_alias("romanian deadlift!") == "Romanian Deadlift"
    assert normalize_exercise_alias("sit-ups") == "Sit-ups"
