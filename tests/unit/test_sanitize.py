from app.core.sanitize import DEFAULT_ERROR_MESSAGE, sanitize_error


def test_short_clean_message_passes_through() -> None:
    assert sanitize_error("Exercise not found") == "Exercise not found"


def test_empty_or_non_string_falls_back() -> None:
    assert sanitize_error("") == DEFAULT_ERROR_MESSAGE
    assert sanitize_error("   ") == DEFAULT_ERROR_MESSAGE
    assert sanitize_error(None) == DEFAULT_ERROR_MESSAGE


def test_python_traceback_is_stripped() -> None:
    raw = (
        "Traceback (most recent call last):\n"
        '  File "/srv/app/tools/workout.py", line 42, in log_set\n'
        "    await ctx.store.insert_set(exercise.id)\n"
        "ValueError: boom"
    )
    assert sanitize_error(raw) == "ValueError: boom"


def test_error_prefix_is_stripped() -> None:
    assert sanitize_error("[ERROR E(db)] disk full") == "disk full"


def test_source_paths_are_removed() -> None:
    cleaned = sanitize_error("failed in /srv/app/services/llm.py:88 while sending")
    assert ".py" not in cleaned
    assert cleaned.startswith("failed in")
