# tests/test_recurrence.py

from __future__ import annotations

import json
from datetime import date, datetime, timedelta

import pytest

from itodo.tasks.recurrence import (
    WEEKDAY_CODES,
    RepeatRule,
    RepeatType,
    UnparsedRule,
    describe_repeat,
    next_occurrence,
    parse_repeat_rule,
)

WED = date(2026, 3, 11)


def _weekly(*days: str) -> str:
    return json.dumps({"type": "weekly", "days": list(days)})


def _monthly(*days: int) -> str:
    return json.dumps({"type": "monthly", "daysOfMonth": list(days)})


def test_daily_is_always_next_day() -> None:
    for offset in range(14):
        ref = WED + timedelta(days=offset)
        assert next_occurrence('{"type": "daily"}', ref) == ref + timedelta(days=1)


def test_datetime_reference_is_reduced_to_its_date() -> None:
    assert next_occurrence("daily", datetime(2026, 3, 11, 23, 59)) == date(2026, 3, 12)


@pytest.mark.parametrize(
    ("days", "ref", "expected"),
    [
        (("mon", "fri"), date(2026, 3, 11), date(2026, 3, 13)),  # Wed -> Fri
        (("mon", "fri"), date(2026, 3, 13), date(2026, 3, 16)),  # Fri -> next Mon
        (("mon", "fri"), date(2026, 3, 14), date(2026, 3, 16)),  # Sat -> Mon
        (("wed",), date(2026, 3, 11), date(2026, 3, 18)),  # same weekday -> a week later
        (("sun",), date(2026, 3, 14), date(2026, 3, 15)),  # Sat -> Sun
        (("sun",), date(2026, 3, 15), date(2026, 3, 22)),  # Sun -> next Sun
    ],
)
def test_weekly_examples(days: tuple[str, ...], ref: date, expected: date) -> None:
    assert next_occurrence(_weekly(*days), ref) == expected


@pytest.mark.parametrize(
    "days",
    [("mon",), ("tue", "thu"), ("sun", "sat"), ("mon", "wed", "fri"), WEEKDAY_CODES],
)
def test_weekly_is_smallest_matching_date_after_reference(days: tuple[str, ...]) -> None:
    for offset in range(14):
        ref = WED + timedelta(days=offset)
        got = next_occurrence(_weekly(*days), ref)
        expected = next(
            ref + timedelta(days=n)
            for n in range(1, 8)
            if WEEKDAY_CODES[((ref + timedelta(days=n)).weekday() + 1) % 7] in days
        )
        assert got == expected


def test_weekly_without_days_has_no_next_occurrence() -> None:
    assert next_occurrence('{"type": "weekly"}', WED) is None
    assert next_occurrence(_weekly(), WED) is None


def test_monthly_picks_later_day_in_same_month() -> None:
    assert next_occurrence(_monthly(1, 15), date(2026, 3, 10)) == date(2026, 3, 15)


def test_monthly_rolls_to_following_month() -> None:
    assert next_occurrence(_monthly(1, 15), date(2026, 3, 20)) == date(2026, 4, 1)
    assert next_occurrence(_monthly(1, 15), date(2026, 3, 15)) == date(2026, 4, 1)


def test_monthly_rolls_over_year_end() -> None:
    assert next_occurrence(_monthly(1, 15), date(2026, 12, 20)) == date(2027, 1, 1)


def test_monthly_skips_months_without_that_day() -> None:
    assert next_occurrence(_monthly(31), date(2026, 3, 31)) == date(2026, 5, 31)
    assert next_occurrence(_monthly(30), date(2026, 1, 30)) == date(2026, 3, 30)


def test_monthly_without_days_has_no_next_occurrence() -> None:
    assert next_occurrence('{"type": "monthly", "daysOfMonth": []}', WED) is None


def test_yearly_keeps_month_and_day() -> None:
    for ref in (date(2026, 3, 11), date(2026, 12, 31), date(2027, 1, 1)):
        got = next_occurrence('{"type": "yearly"}', ref)
        assert got is not None
        assert (got.year, got.month, got.day) == (ref.year + 1, ref.month, ref.day)


def test_yearly_from_leap_day_rolls_into_march() -> None:
    assert next_occurrence("yearly", date(2028, 2, 29)) == date(2029, 3, 1)


@pytest.mark.parametrize("raw", ["not-json", '{"type": "hourly"}', "[1, 2]", "42", "{}"])
def test_malformed_rules_degrade_to_raw_label(raw: str) -> None:
    rule = parse_repeat_rule(raw)
    assert rule == UnparsedRule(raw=raw)
    assert next_occurrence(raw, WED) is None
    assert describe_repeat(raw) == raw


def test_missing_rule_is_none() -> None:
    assert parse_repeat_rule(None) is None
    assert parse_repeat_rule("  ") is None
    assert next_occurrence(None, WED) is None
    assert describe_repeat(None) == ""


def test_legacy_bare_values_parse_as_typed_rules() -> None:
    assert parse_repeat_rule("daily") == RepeatRule(type=RepeatType.DAILY)
    assert parse_repeat_rule("Weekly") == RepeatRule(type=RepeatType.WEEKLY)
    assert next_occurrence("weekly", WED) is None
    assert describe_repeat("monthly") == "Monthly"


def test_day_sets_are_normalized() -> None:
    rule = parse_repeat_rule('{"type": "weekly", "days": ["wed", "MON", "mon", "xyz", 0]}')
    assert isinstance(rule, RepeatRule)
    assert rule.days == ("sun", "mon", "wed")

    rule = parse_repeat_rule('{"type": "monthly", "daysOfMonth": [15, 1, 15, 0, 40, "7"]}')
    assert isinstance(rule, RepeatRule)
    assert rule.days_of_month == (1, 7, 15)


def test_day_sets_only_apply_to_their_type() -> None:
    rule = parse_repeat_rule('{"type": "daily", "days": ["mon"], "daysOfMonth": [3]}')
    assert rule == RepeatRule(type=RepeatType.DAILY)


def test_serialized_form_parses_back() -> None:
    rule = RepeatRule(type=RepeatType.MONTHLY, days_of_month=(1, 15))
    assert json.loads(rule.to_json()) == {"type": "monthly", "daysOfMonth": [1, 15]}
    assert parse_repeat_rule(rule.to_json()) == rule


def test_labels() -> None:
    assert describe_repeat(_weekly("mon", "wed")) == "Weekly on Mon, Wed"
    assert describe_repeat(_monthly(15, 1)) == "Monthly on 1, 15"
    assert describe_repeat('{"type": "yearly"}') == "Yearly"
    assert describe_repeat("daily") == "Daily"


def test_projection_is_deterministic() -> None:
    raw = _weekly("tue", "sat")
    assert {next_occurrence(raw, WED) for _ in range(5)} == {date(2026, 3, 14)}
