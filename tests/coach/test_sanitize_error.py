"""Error message sanitizer tests."""

from app.coach.sanitize_error import DEFAULT_MESSAGE, sanitize_error


def test_short_clean_message_passes_through():
    assert sanitize_error("Exercise name is required.") == "Exercise name is required."


def test_empty_or_non_string_uses_default():
    assert sanitize_error("") == DEFAULT_MESSAGE
    assert sanitize_error("   ") == DEFAULT_MESSAGE
    assert sanitize_error(None) == DEFAULT_MESSAGE


def test_traceback_and_paths_are_stripped():
    raw = (
        "Traceback (most recent call last):\n"
        '  File "/srv/app/coach/tools.py", line 42, in log_set\n'
        "ValueError: reps must be positive"
    )

    cleaned = sanitize_error(raw)

    assert cleaned == "ValueError: reps must be positive"


def test_inline_source_paths_are_removed():
    cleaned = sanitize_error("failed in app/coach/planner.py:88:4 while planning")

    assert "planner.py" not in cleaned
    assert cleaned.startswith("failed in")


def test_log_prefix_is_removed():
    assert sanitize_error("[ERROR E(tools)] Tool timed out") == "Tool timed out"


def test_message_of_only_noise_uses_default():
    assert sanitize_error('  File "/srv/x.py", line 1') == DEFAULT_MESSAGE
