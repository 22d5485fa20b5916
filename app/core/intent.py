"""Deterministic intent parsing for free-text coach messages.

Rules are pure ``str -> Optional[CoachIntent]`` functions evaluated in a fixed
priority order; the first rule that returns an intent wins.
"""

import math
import re
from dataclasses import dataclass, field
from typing import Callable, Literal, Optional, Union

WeightUnit = Literal["lbs", "kg"]


@dataclass(frozen=True)
class LogSetIntent:
    exercise_name: str
    reps: Optional[int] = None
    duration_seconds: Optional[int] = None
    weight: Optional[float] = None
    unit: Optional[WeightUnit] = None
    type: Literal["log_set"] = field(default="log_set", init=False)


@dataclass(frozen=True)
class TodaySummaryIntent:
    type: Literal["today_summary"] = field(default="today_summary", init=False)


@dataclass(frozen=True)
class ExerciseReportIntent:
    exercise_name: str
    type: Literal["exercise_report"] = field(default="exercise_report", init=False)


@dataclass(frozen=True)
class SetWeightUnitIntent:
    unit: WeightUnit
    type: Literal["set_weight_unit"] = field(default="set_weight_unit", init=False)


@dataclass(frozen=True)
class SetSoundIntent:
    enabled: bool
    type: Literal["set_sound"] = field(default="set_sound", init=False)


@dataclass(frozen=True)
class UnknownIntent:
    input: str
    type: Literal["unknown"] = field(default="unknown", init=False)


CoachIntent = Union[
    LogSetIntent,
    TodaySummaryIntent,
    ExerciseReportIntent,
    SetWeightUnitIntent,
    SetSoundIntent,
    UnknownIntent,
]

STOPWORDS = frozenset(
    {
        "show",
        "me",
        "my",
        "the",
        "for",
        "trend",
        "history",
        "report",
        "insight",
        "insights",
        "analyze",
        "analysis",
        "progress",
        "of",
        "on",
        "please",
        "stats",
        "stat",
        "summary",
        "today",
        "performance",
        "how",
        "am",
        "i",
        "doing",
    }
)

EXERCISE_ALIASES = {
    "pushup": "Push-ups",
    "pushups": "Push-ups",
    "push-up": "Push-ups",
    "push-ups": "Push-ups",
    "squat": "Squats",
    "squats": "Squats",
    "pullup": "Pull-ups",
    "pullups": "Pull-ups",
    "pull-up": "Pull-ups",
    "pull-ups": "Pull-ups",
    "situp": "Sit-ups",
    "situps": "Sit-ups",
    "sit-up": "Sit-ups",
    "sit-ups": "Sit-ups",
    "plank": "Plank",
}

_LEADING_VERBS = re.compile(r"^(log|add|did|completed|complete|i did|i completed)\s+", re.IGNORECASE)
_WEIGHT_CLAUSE = re.compile(
    r"^(.*?)(?:\s+(?:@|at)\s*(\d+(?:\.\d+)?)\s*(kg|kgs|lb|lbs))\s*$", re.IGNORECASE
)
_DURATION_UNITS = r"(seconds?|secs?|s|minutes?|mins?|m)"
_DURATION_PREFIX = re.compile(rf"^(\d+(?:\.\d+)?)\s*{_DURATION_UNITS}\s+(.+)$", re.IGNORECASE)
_DURATION_SUFFIX = re.compile(rf"^(.+?)\s+for\s+(\d+(?:\.\d+)?)\s*{_DURATION_UNITS}$", re.IGNORECASE)
_REPS_PREFIX = re.compile(r"^(\d{1,4})\s*(?:x|reps?|rep)?\s+(.+)$", re.IGNORECASE)
_REPS_SUFFIX = re.compile(r"^(.+?)\s+(?:x\s*)?(\d{1,4})\s*(?:reps?|rep)?$", re.IGNORECASE)

_UNIT_SETTING = re.compile(
    r"\b(?:set|switch|change)?\s*(?:my\s+)?(?:weight\s+)?unit\b.*\b(kg|kgs|lb|lbs)\b", re.IGNORECASE
)
_UNIT_SHORTHAND = re.compile(r"\b(?:switch|change)\b.*\b(?:to|in)\s*(kg|kgs|lb|lbs)\b", re.IGNORECASE)
_SOUND_OFF = re.compile(r"\b(?:sound|audio|click)\b.*\b(?:off|mute|disable|disabled)\b", re.IGNORECASE)
_SOUND_ON = re.compile(r"\b(?:sound|audio|click)\b.*\b(?:on|enable|enabled)\b", re.IGNORECASE)

_TODAY_TOKEN = re.compile(r"\b(?:today|todays)\b")
_SUMMARY_TOKEN = re.compile(r"\b(?:summary|stats|totals?|workout|sets?|progress|doing)\b")
_WHAT_DID_I_DO = re.compile(r"\bwhat did i do today\b")
_REPORT_TOKEN = re.compile(r"\b(?:trend|history|report|insight|analysis|progress)\b")
_EXPLICIT_TARGET = re.compile(r"\b(?:for|on|about)\s+([a-z0-9 -]+)$", re.IGNORECASE)


def _to_unit(token: str) -> WeightUnit:
    return "kg" if token.lower().startswith("kg") else "lbs"


def normalize_whitespace(value: str) -> str:
    return " ".join(value.split())


def _title_case(value: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in value.split(" ") if word)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def normalize_exercise_alias(value: str) -> str:
    normalized = re.sub(r"[^a-z0-9\s-]", "", value.lower()).strip()
    return EXERCISE_ALIASES.get(normalized) or _title_case(normalized)


def normalize_exercise_lookup(value: str) -> str:
    return re.sub(r"[^a-z0-9]", "", value.lower())


def duration_to_seconds(value: float, unit: str) -> int:
    if unit.lower().startswith("m"):
        return _round_half_up(value * 60)
    return _round_half_up(value)


def extract_weight(text: str) -> tuple[str, Optional[float], Optional[WeightUnit]]:
    match = _WEIGHT_CLAUSE.match(text)
    if not match:
        return text, None, None
    weight = float(match.group(2))
    if weight <= 0:
        return text, None, None
    return normalize_whitespace(match.group(1) or ""), weight, _to_unit(match.group(3))


def parse_setting_intent(text: str) -> Optional[CoachIntent]:
    unit_match = _UNIT_SETTING.search(text) or _UNIT_SHORTHAND.search(text)
    if unit_match:
        return SetWeightUnitIntent(unit=_to_unit(unit_match.group(1)))
    if _SOUND_OFF.search(text):
        return SetSoundIntent(enabled=False)
    if _SOUND_ON.search(text):
        return SetSoundIntent(enabled=True)
    return None


def parse_summary_intent(text: str) -> Optional[CoachIntent]:
    if _TODAY_TOKEN.search(text) and _SUMMARY_TOKEN.search(text):
        return TodaySummaryIntent()
    if _WHAT_DID_I_DO.search(text):
        return TodaySummaryIntent()
    return None


def parse_exercise_report_intent(text: str) -> Optional[CoachIntent]:
    if not _REPORT_TOKEN.search(text):
        return None
    explicit = _EXPLICIT_TARGET.search(text)
    if explicit:
        raw = explicit.group(1)
    else:
        raw = " ".join(token for token in text.split(" ") if token not in STOPWORDS)
    exercise_name = normalize_exercise_alias(normalize_whitespace(raw))
    if not exercise_name:
        return None
    return ExerciseReportIntent(exercise_name=exercise_name)


def parse_log_intent(text: str) -> Optional[CoachIntent]:
    stripped = normalize_whitespace(_LEADING_VERBS.sub("", text, count=1))
    body, weight, unit = extract_weight(stripped)
    if not body:
        return None

    for pattern, number_group, name_group in ((_DURATION_PREFIX, 1, 3), (_DURATION_SUFFIX, 2, 1)):
        match = pattern.match(body)
        if not match:
            continue
        unit_group = 2 if number_group == 1 else 3
        seconds = duration_to_seconds(float(match.group(number_group)), match.group(unit_group))
        exercise_name = normalize_exercise_alias(match.group(name_group))
        if exercise_name and seconds > 0:
            return LogSetIntent(exercise_name=exercise_name, duration_seconds=seconds, weight=weight, unit=unit)

    for pattern, number_group, name_group in ((_REPS_PREFIX, 1, 2), (_REPS_SUFFIX, 2, 1)):
        match = pattern.match(body)
        if not match:
            continue
        reps = int(match.group(number_group))
        exercise_name = normalize_exercise_alias(match.group(name_group))
        if exercise_name and reps > 0:
            return LogSetIntent(exercise_name=exercise_name, reps=reps, weight=weight, unit=unit)

    return None


INTENT_RULES: tuple[Callable[[str], Optional[CoachIntent]], ...] = (
    parse_setting_intent,
    parse_summary_intent,
    parse_exercise_report_intent,
    parse_log_intent,
)


def parse_coach_intent(raw: str) -> CoachIntent:
    normalized = normalize_whitespace(raw.lower())
    if not normalized:
        return UnknownIntent(input=raw)
    for rule in INTENT_RULES:
        intent = rule(normalized)
        if intent is not None:
            return intent
    return UnknownIntent(input=raw)
