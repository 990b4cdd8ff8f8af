"""Recurring-rule wire codec.

The ``recurring_rule`` column holds JSON text::

    {"frequency": "daily" | "weekly" | "monthly",
     "weekdays"?: ["mon", ..., "sun"],
     "monthDay"?: 1..31}

``parse_rule`` is deliberately forgiving in what it rejects: anything it cannot
understand yields ``None`` (the row then behaves as a one-off transaction) and
it never raises. ``dump_rule`` always emits the canonical form.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from .logging_setup import get_logger
from .models import WEEKDAY_TOKENS, DailyRule, MonthlyRule, RecurringRule, WeeklyRule

_logger = get_logger("bachat.rules")

_WEEKDAY_INDEX = {tok: i for i, tok in enumerate(WEEKDAY_TOKENS)}


def _parse_weekdays(raw: Any) -> frozenset[int] | None | bool:
    """Return a weekday set, ``None`` when absent/empty, or ``False`` when invalid."""

    if raw is None:
        return None
    if not isinstance(raw, list | tuple):
        return False
    days: set[int] = set()
    for tok in raw:
        if not isinstance(tok, str):
            return False
        idx = _WEEKDAY_INDEX.get(tok.strip().lower())
        if idx is None:
            return False
        days.add(idx)
    return frozenset(days) if days else None


def _parse_month_day(raw: Any) -> int | None | bool:
    if raw is None:
        return None
    # bool is an int subclass; "monthDay": true is not a day.
    if isinstance(raw, bool) or not isinstance(raw, int):
        return False
    if not 1 <= raw <= 31:
        return False
    return raw


def parse_rule(raw: str | Mapping[str, Any] | None) -> RecurringRule | None:
    """Parse a stored recurring rule; ``None`` for missing or unparseable input."""

    if raw is None:
        return None
    data: Any = raw
    if isinstance(raw, str):
        if not raw.strip():
            return None
        try:
            data = json.loads(raw)
        except ValueError:
            _logger.debug("Recurring rule is not JSON; treating as one-off")
            return None
    if not isinstance(data, Mapping):
        return None

    frequency = data.get("frequency")
    if not isinstance(frequency, str):
        return None
    frequency = frequency.strip().lower()

    if frequency == "daily":
        return DailyRule()
    if frequency == "weekly":
        weekdays = _parse_weekdays(data.get("weekdays"))
        if weekdays is False:
            _logger.debug("Recurring rule has invalid weekdays")
            return None
        return WeeklyRule(weekdays=weekdays)  # type: ignore[arg-type]
    if frequency == "monthly":
        day = _parse_month_day(data.get("monthDay"))
        if day is False:
            _logger.debug("Recurring rule has invalid monthDay")
            return None
        return MonthlyRule(day=day)  # type: ignore[arg-type]

    _logger.debug("Unknown recurring frequency; treating as one-off")
    return None


def rule_to_wire(rule: RecurringRule) -> dict[str, Any]:
    """Canonical mapping form of ``rule`` (weekdays in Monday-first order)."""

    match rule:
        case DailyRule():
            return {"frequency": "daily"}
        case WeeklyRule(weekdays=weekdays):
            out: dict[str, Any] = {"frequency": "weekly"}
            if weekdays:
                out["weekdays"] = [WEEKDAY_TOKENS[i] for i in sorted(weekdays)]
            return out
        case MonthlyRule(day=day):
            out = {"frequency": "monthly"}
            if day is not None:
                out["monthDay"] = day
            return out
    raise TypeError(f"Not a recurring rule: {rule!r}")


def dump_rule(rule: RecurringRule | None) -> str | None:
    """Serialize ``rule`` to the stored JSON text (``None`` passes through)."""

    if rule is None:
        return None
    return json.dumps(rule_to_wire(rule), separators=(",", ":"))


__all__ = [
    "dump_rule",
    "parse_rule",
    "rule_to_wire",
]
