from dataclasses import dataclass
from enum import StrEnum
import re


PERIOD_NAME_PATTERN = re.compile(r"^week(\d*)$", re.IGNORECASE)
PERIOD_NUMBER_PATTERN = re.compile(r"week(\d+)", re.IGNORECASE)

IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".gif", ".bmp", ".webp"})

# Unrecognized labels sort after every canonical one.
UNKNOWN_ORDER = 999


class DayOfWeek(StrEnum):
    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    WEEKLY = "Weekly"


SUMMARY_DAY = DayOfWeek.WEEKLY

DAY_ORDER: dict[DayOfWeek, int] = {day: index for index, day in enumerate(DayOfWeek, start=1)}


def is_period_name(name: str) -> bool:
    return PERIOD_NAME_PATTERN.match(name) is not None


def period_number(name: str) -> int:
    """Digits following ``week`` in a directory name, or 0 when there are none."""
    match = PERIOD_NUMBER_PATTERN.search(name)
    return int(match.group(1)) if match else 0


def normalize_label(raw: str) -> str:
    return raw[:1].upper() + raw[1:].lower()


def match_day(raw: str) -> DayOfWeek | None:
    normalized = normalize_label(raw).lower()
    for day in DayOfWeek:
        if day.value.lower() == normalized:
            return day
    return None


@dataclass(frozen=True)
class Category:
    """A category label: one of the canonical days, or a passed-through unknown label."""

    label: str
    day: DayOfWeek | None = None

    @classmethod
    def parse(cls, raw: str) -> "Category":
        day = match_day(raw)
        if day is not None:
            return cls(label=day.value, day=day)
        return cls(label=normalize_label(raw))

    @classmethod
    def of(cls, day: DayOfWeek) -> "Category":
        return cls(label=day.value, day=day)

    @property
    def is_known(self) -> bool:
        return self.day is not None

    @property
    def is_summary(self) -> bool:
        return self.day is SUMMARY_DAY

    @property
    def order(self) -> int:
        return category_order(self.day)

    def __str__(self) -> str:
        return self.label


def category_order(day: DayOfWeek | None) -> int:
    if day is None:
        return UNKNOWN_ORDER
    return DAY_ORDER[day]
