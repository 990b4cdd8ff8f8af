"""Recurring-transaction materialization.

``expand_for_range`` turns stored template transactions into concrete dated
occurrences for an inclusive date range. It is pure: the same inputs always
produce the same ordered output, nothing is persisted, and the only notion of
"now" is the range the caller passes in.

Output order follows input order; a template's occurrences are emitted in
ascending date order at the template's position.
"""

from __future__ import annotations

import calendar
import dataclasses
from collections.abc import Iterable, Iterator
from datetime import date, timedelta

from .models import DailyRule, MonthlyRule, OccurrenceId, RecurringRule, Transaction, WeeklyRule

_ONE_DAY = timedelta(days=1)


def _days(start: date, end: date) -> Iterator[date]:
    d = start
    while d <= end:
        yield d
        d += _ONE_DAY


def _clamped(year: int, month: int, day: int) -> date:
    """``date(year, month, day)`` with ``day`` clamped to the month's last day."""

    return date(year, month, min(day, calendar.monthrange(year, month)[1]))


def _next_month(year: int, month: int) -> tuple[int, int]:
    return (year + 1, 1) if month == 12 else (year, month + 1)


def occurrence_dates(
    rule: RecurringRule, anchor: date, range_start: date, range_end: date
) -> Iterator[date]:
    """Yield the dates on which ``rule`` anchored at ``anchor`` fires within the range.

    Nothing fires before ``anchor``. A template anchored after ``range_end``
    yields nothing.
    """

    if anchor > range_end or range_start > range_end:
        return
    first = max(anchor, range_start)

    match rule:
        case DailyRule():
            yield from _days(first, range_end)

        case WeeklyRule(weekdays=weekdays):
            wanted = weekdays or frozenset({anchor.weekday()})
            for d in _days(first, range_end):
                if d.weekday() in wanted:
                    yield d

        case MonthlyRule(day=day):
            target = day or anchor.day
            # Months before the range's first month cannot contribute.
            y, m = max((anchor.year, anchor.month), (range_start.year, range_start.month))
            while (y, m) <= (range_end.year, range_end.month):
                d = _clamped(y, m, target)
                if d >= anchor and range_start <= d <= range_end:
                    yield d
                y, m = _next_month(y, m)


def occurrence(template: Transaction, on: date) -> Transaction:
    """Build the occurrence of ``template`` dated ``on``."""

    oid = OccurrenceId(template.id, on)
    return dataclasses.replace(
        template,
        id=str(oid),
        date=on,
        is_recurring=True,
        occurrence_of=oid,
    )


def expand_for_range(
    transactions: Iterable[Transaction], range_start: date, range_end: date
) -> list[Transaction]:
    """Materialize ``transactions`` over ``[range_start, range_end]`` (inclusive).

    - Rows that are not templates (not recurring, or recurring without a
      parseable rule) are included once, unchanged, when their date is in range.
    - Templates contribute one occurrence per firing date; the template row
      itself is never emitted.
    """

    out: list[Transaction] = []
    for tx in transactions:
        rule = tx.recurring_rule
        if not tx.is_recurring or rule is None:
            if range_start <= tx.date <= range_end:
                out.append(tx)
            continue
        out.extend(occurrence(tx, d) for d in occurrence_dates(rule, tx.date, range_start, range_end))
    return out


__all__ = [
    "expand_for_range",
    "occurrence",
    "occurrence_dates",
]
