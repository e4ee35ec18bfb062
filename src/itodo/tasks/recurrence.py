# src/itodo/tasks/recurrence.py

"""
Recurrence engine.

Pure projection of the next occurrence of a repeat rule relative to an
explicit reference date. Nothing here reads the clock, touches the store or
talks to the gateway, so identical inputs always give identical outputs.

Serialized form (what travels in ``Task.repeat_rule``):

    {"type": "weekly", "days": ["mon", "wed"]}
    {"type": "monthly", "daysOfMonth": [1, 15]}

Bare ``daily|weekly|monthly|yearly`` strings are accepted as legacy values.
Anything else becomes an ``UnparsedRule`` and yields no next occurrence.
"""

from __future__ import annotations

import calendar
import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import StrEnum
from typing import Any, TypeAlias

logger = logging.getLogger(__name__)

# Sunday-first week, matching the wrap-around arithmetic below.
WEEKDAY_CODES: tuple[str, ...] = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")


class RepeatType(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


@dataclass(slots=True, frozen=True)
class RepeatRule:
    type: RepeatType
    days: tuple[str, ...] = ()
    days_of_month: tuple[int, ...] = ()

    @property
    def is_scheduled(self) -> bool:
        if self.type == RepeatType.WEEKLY:
            return bool(self.days)
        if self.type == RepeatType.MONTHLY:
            return bool(self.days_of_month)
        return True

    def to_json(self) -> str:
        payload: dict[str, Any] = {"type": self.type.value}
        if self.type == RepeatType.WEEKLY and self.days:
            payload["days"] = list(self.days)
        if self.type == RepeatType.MONTHLY and self.days_of_month:
            payload["daysOfMonth"] = list(self.days_of_month)
        return json.dumps(payload)


@dataclass(slots=True, frozen=True)
class UnparsedRule:
    """A stored rule we could not interpret; shown verbatim."""

    raw: str


RepeatSpec: TypeAlias = RepeatRule | UnparsedRule


# ---- parsing ----


def weekday_index(code: str | int) -> int | None:
    if isinstance(code, bool):
        return None
    if isinstance(code, int):
        return code if 0 <= code <= 6 else None
    s = str(code).strip().lower()[:3]
    try:
        return WEEKDAY_CODES.index(s)
    except ValueError:
        return None


def _norm_days(raw: Any) -> tuple[str, ...]:
    if not isinstance(raw, list):
        return ()
    idx = {i for i in (weekday_index(d) for d in raw) if i is not None}
    return tuple(WEEKDAY_CODES[i] for i in sorted(idx))


def _norm_days_of_month(raw: Any) -> tuple[int, ...]:
    if not isinstance(raw, list):
        return ()
    out: set[int] = set()
    for d in raw:
        if isinstance(d, bool):
            continue
        try:
            n = int(d)
        except (TypeError, ValueError):
            continue
        if 1 <= n <= 31:
            out.add(n)
    return tuple(sorted(out))


def parse_repeat_rule(raw: str | None) -> RepeatSpec | None:
    """
    Convert a stored rule string once, at the store boundary.

    Returns None when there is no rule at all. Never raises.
    """
    if raw is None or not raw.strip():
        return None

    text = raw.strip()
    try:
        return RepeatRule(type=RepeatType(text.lower()))
    except ValueError:
        pass

    try:
        data = json.loads(text)
        kind = RepeatType(str(data["type"]).lower())
    except Exception:
        logger.debug("Unparseable repeat rule: %r", text)
        return UnparsedRule(raw=raw)

    return RepeatRule(
        type=kind,
        days=_norm_days(data.get("days")) if kind == RepeatType.WEEKLY else (),
        days_of_month=(
            _norm_days_of_month(data.get("daysOfMonth")) if kind == RepeatType.MONTHLY else ()
        ),
    )


# ---- projection ----


def _sunday_index(d: date) -> int:
    # date.weekday(): Monday=0 .. Sunday=6
    return (d.weekday() + 1) % 7


def _next_weekly(rule: RepeatRule, ref: date) -> date | None:
    targets = sorted(i for i in (weekday_index(c) for c in rule.days) if i is not None)
    if not targets:
        return None
    today_idx = _sunday_index(ref)
    for idx in targets:
        if idx > today_idx:
            return ref + timedelta(days=idx - today_idx)
    return ref + timedelta(days=7 - today_idx + targets[0])


def _next_monthly(rule: RepeatRule, ref: date) -> date | None:
    targets = sorted(rule.days_of_month)
    if not targets:
        return None

    last = calendar.monthrange(ref.year, ref.month)[1]
    for d in targets:
        if ref.day < d <= last:
            return ref.replace(day=d)

    year, month = ref.year, ref.month
    for _ in range(12):
        month += 1
        if month > 12:
            month, year = 1, year + 1
        last = calendar.monthrange(year, month)[1]
        for d in targets:
            if d <= last:
                return date(year, month, d)
    return None


def _next_yearly(ref: date) -> date:
    try:
        return ref.replace(year=ref.year + 1)
    except ValueError:
        # Feb 29 -> Mar 1 of a non-leap year.
        return date(ref.year + 1, 3, 1)


def next_occurrence(rule: RepeatSpec | str | None, reference: date | datetime) -> date | None:
    """Next occurrence strictly after ``reference``, or None when there is none."""
    if isinstance(rule, str) or rule is None:
        rule = parse_repeat_rule(rule)
    if not isinstance(rule, RepeatRule):
        return None

    ref = reference.date() if isinstance(reference, datetime) else reference

    if rule.type == RepeatType.DAILY:
        return ref + timedelta(days=1)
    if rule.type == RepeatType.WEEKLY:
        return _next_weekly(rule, ref)
    if rule.type == RepeatType.MONTHLY:
        return _next_monthly(rule, ref)
    return _next_yearly(ref)


def describe_repeat(rule: RepeatSpec | str | None) -> str:
    """Short human label; unparsed rules fall back to the raw string."""
    if isinstance(rule, str) or rule is None:
        rule = parse_repeat_rule(rule)
    if rule is None:
        return ""
    if isinstance(rule, UnparsedRule):
        return rule.raw

    if rule.type == RepeatType.WEEKLY and rule.days:
        return "Weekly on " + ", ".join(d.capitalize() for d in rule.days)
    if rule.type == RepeatType.MONTHLY and rule.days_of_month:
        return "Monthly on " + ", ".join(str(d) for d in rule.days_of_month)
    return rule.type.value.capitalize()
