"""
Expansion of recurring blocked intervals into concrete occurrences.

Monthly recurrences repeat on the same day of the month. Months without that
day (the 31st in April, the 30th in February, ...) are skipped rather than
clamped to the month's last day.
"""

from dataclasses import dataclass
from typing import Iterable, Iterator, List

import pendulum
from pendulum import Date

from .models import (
    BlockedInterval,
    RecurrenceFrequency,
    TimeRange,
    date_key,
    parse_date,
)


@dataclass(frozen=True)
class BlockOccurrence:
    """A single concrete date on which a (possibly recurring) block applies."""
    block: BlockedInterval
    date: str

    @property
    def start_time(self) -> str:
        return self.block.start_time

    @property
    def end_time(self) -> str:
        return self.block.end_time

    @property
    def reason(self) -> str:
        return self.block.reason

    @property
    def time_range(self) -> TimeRange:
        return self.block.time_range(self.date)


def expand_block(block: BlockedInterval, range_start, range_end) -> List[BlockOccurrence]:
    """
    Produce the occurrences of a block that fall within ``[range_start, range_end]``.

    Both bounds are inclusive dates. An inverted range yields nothing.
    """
    first = parse_date(range_start)
    last = parse_date(range_end)
    if first > last:
        return []

    occurrences: List[BlockOccurrence] = []
    for day in _occurrence_dates(block):
        if day > last:
            break
        if day >= first:
            occurrences.append(BlockOccurrence(block=block, date=day.isoformat()))

    return occurrences


def expand_blocks(blocks: Iterable[BlockedInterval], range_start, range_end) -> List[BlockOccurrence]:
    """Expand many blocks, sorted by date and start time."""
    occurrences: List[BlockOccurrence] = []
    for block in blocks:
        occurrences.extend(expand_block(block, range_start, range_end))

    return sorted(occurrences, key=lambda o: (o.date, o.time_range.start))


def occurs_on(block: BlockedInterval, day) -> bool:
    """Check whether a block applies on a given date."""
    return bool(expand_block(block, day, day))


def last_occurrence(block: BlockedInterval) -> Date:
    """The last date the block can apply on (its own date when not recurring)."""
    if block.recurrence is None:
        return parse_date(block.date)
    return parse_date(block.recurrence.until)


def is_expired(block: BlockedInterval, today) -> bool:
    """A block expires naturally once its last possible date is in the past."""
    return last_occurrence(block) < parse_date(today)


def _occurrence_dates(block: BlockedInterval) -> Iterator[Date]:
    """Every date the block applies on, in ascending order, ending at ``until``."""
    origin = parse_date(block.date)

    if block.recurrence is None:
        yield origin
        return

    until = parse_date(block.recurrence.until)

    if block.recurrence.frequency is RecurrenceFrequency.WEEKLY:
        current = origin
        while current <= until:
            yield current
            current = current.add(days=7)
        return

    # Monthly: walk month by month and skip months lacking the day-of-month.
    year, month = origin.year, origin.month
    while True:
        try:
            current = pendulum.date(year, month, origin.day)
        except ValueError:
            current = None

        if current is not None:
            if current > until:
                return
            yield current
        elif pendulum.date(year, month, 1) > until:
            return

        month += 1
        if month > 12:
            year, month = year + 1, 1


def expand_for_date(blocks: Iterable[BlockedInterval], day) -> List[BlockOccurrence]:
    """Shortcut for the occurrences applying on exactly one date."""
    key = date_key(day)
    return expand_blocks(blocks, key, key)
