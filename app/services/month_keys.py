# app/services/month_keys.py
#
# Month Keys & Occurrence Ids
# Value types that identify one calendar month of a series ("YYYY-MM") and
# one occurrence of it (a persisted row id, or "{parentId}::{YYYY-MM}").

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass
from datetime import date
from typing import Union

VIRTUAL_ID_SEPARATOR = "::"

_MONTH_KEY_RE = re.compile(r"^(?P<year>\d{4})-(?P<month>\d{2})$")


# ---- Month Key ----

@dataclass(frozen=True, order=True)
class MonthKey:
    """
    One calendar month. `month` is 1..12, like `date.month`.

    Renders as "YYYY-MM", the format stored in `cancelled_occurrences`
    and embedded in virtual ids.
    """

    year: int
    month: int

    def __post_init__(self):
        if not 1 <= self.month <= 12:
            raise ValueError(f"month must be in 1..12, got {self.month!r}")

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @classmethod
    def from_date(cls, d: date) -> "MonthKey":
        return cls(d.year, d.month)

    @classmethod
    def parse(cls, value: str) -> "MonthKey":
        """
        Parse a "YYYY-MM" string.

        Raises ValueError on anything else.
        """
        match = _MONTH_KEY_RE.match(str(value).strip())
        if not match:
            raise ValueError(f"invalid month key: {value!r}")
        return cls(int(match.group("year")), int(match.group("month")))

    def shift(self, months: int) -> "MonthKey":
        index = self.year * 12 + (self.month - 1) + months
        return MonthKey(index // 12, index % 12 + 1)

    def next(self) -> "MonthKey":
        return self.shift(1)

    def months_since(self, other: "MonthKey") -> int:
        return (self.year - other.year) * 12 + (self.month - other.month)

    @property
    def last_day(self) -> int:
        return calendar.monthrange(self.year, self.month)[1]

    def day(self, preferred_day: int) -> date:
        """
        Date in this month on `preferred_day`, clamped to the month's last day
        (31 -> Feb 28/29, Apr 30, ...).
        """
        return date(self.year, self.month, min(preferred_day, self.last_day))


# ---- Occurrence Ids ----

@dataclass(frozen=True)
class RealId:
    """Occurrence backed by a persisted row (override or single transaction)."""

    id: int

    def __str__(self) -> str:
        return str(self.id)


@dataclass(frozen=True)
class SyntheticId:
    """Occurrence computed from the parent's recurrence rule for one month."""

    parent_id: str
    month_key: MonthKey

    def __str__(self) -> str:
        return f"{self.parent_id}{VIRTUAL_ID_SEPARATOR}{self.month_key}"


OccurrenceId = Union[RealId, SyntheticId]


def generate_virtual_id(parent_id, month_key: MonthKey) -> str:
    return str(SyntheticId(str(parent_id), month_key))


def is_virtual_id(value: str) -> bool:
    return VIRTUAL_ID_SEPARATOR in str(value)


def parse_virtual_id(value: str) -> SyntheticId | None:
    """
    "12::2024-03" -> SyntheticId("12", MonthKey(2024, 3)).

    Returns None when `value` is not a well-formed virtual id.
    """
    if not is_virtual_id(value):
        return None

    parent_id, _, key = str(value).partition(VIRTUAL_ID_SEPARATOR)
    if not parent_id:
        return None
    try:
        return SyntheticId(parent_id, MonthKey.parse(key))
    except ValueError:
        return None


def parse_occurrence_id(value: str) -> OccurrenceId:
    """
    Parse an id coming from the wire into RealId or SyntheticId.

    Raises ValueError if it is neither an integer id nor a valid virtual id.
    """
    if is_virtual_id(value):
        synthetic = parse_virtual_id(value)
        if synthetic is None:
            raise ValueError(f"invalid virtual id: {value!r}")
        return synthetic

    try:
        return RealId(int(value))
    except (TypeError, ValueError):
        raise ValueError(f"invalid transaction id: {value!r}") from None
