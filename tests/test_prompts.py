"""Tests for prompt builders (generation.prompts)."""

from generation.prompts import (
    BRITISH_SPELLING_INSTRUCTION,
    build_platform_constraints,
    format_author_profile,
    spelling_instruction,
)
from shared.models import DEFAULT_AUTHOR_PROFILE, LengthOverride, LengthUnit, get_platform


def test_platform_constraints_use_catalog_limits():
    text = build_platform_constraints(get_platform("Instagram Caption"))

    assert text == (
        "- Platform: Instagram Caption\n"
        "- Word Count Limit: Approximately 300 words\n"
        "- Character Count Limit: 2200 characters"
    )


def test_platform_constraints_with_range_override():
    text = build_platform_constraints(get_platform("Medium Story"), LengthOverride(min=300, max=600))

    assert "(with custom length)" in text
    assert "- Word Count: Between 300 and 600." in text
    assert "1500" not in text


def test_platform_constraints_with_single_bound():
    maximum = build_platform_constraints(
        get_platform("Medium Story"), LengthOverride(max=900, unit=LengthUnit.CHARS),
    )
    minimum = build_platform_constraints(get_platform("Medium Story"), LengthOverride(min=200))

    assert "- Maximum Character Count: 900." in maximum
    assert "- Minimum Word Count: 200." in minimum


def test_inverted_range_keeps_both_bounds():
    text = build_platform_constraints(get_platform("Medium Story"), LengthOverride(min=800, max=400))

    assert "- Word Count: Between 400 and 800." in text
    assert "Maximum" not in text


def test_unset_override_is_ignored():
    text = build_platform_constraints(get_platform("Medium Story"), LengthOverride(min=0, max=0))

    assert text == "- Platform: Medium Story\n- Word Count Limit: Approximately 1500 words"


def test_spelling_and_profile_helpers():
    assert spelling_instruction(True) == BRITISH_SPELLING_INSTRUCTION
    assert spelling_instruction(False) == ""
    assert '"language": "British English"' in format_author_profile(DEFAULT_AUTHOR_PROFILE)
