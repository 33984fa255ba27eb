from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Union

from bakery.utils import parse_date

FRESH = "fresh"
MEDIUM = "medium"
OLD = "old"

DateLike = Union[date, datetime, str, None]


@dataclass(frozen=True)
class AgeThresholds:
    fresh_max_days: int = 2   # 0..2 -> fresh
    medium_max_days: int = 7  # 3..7 -> medium, 8+ -> old

    def __post_init__(self):
        if self.fresh_max_days < 0 or self.medium_max_days < self.fresh_max_days:
            raise ValueError("Age thresholds must satisfy 0 <= fresh_max_days <= medium_max_days.")


DEFAULT_AGE_THRESHOLDS = AgeThresholds()

# Badge palette per category (Tailwind-style class names used by the staff UI)
AGE_COLORS = {
    FRESH: {"bg": "bg-green-100", "text": "text-green-800", "border": "border-green-300", "badge": "bg-green-500"},
    MEDIUM: {"bg": "bg-yellow-100", "text": "text-yellow-800", "border": "border-yellow-300", "badge": "bg-yellow-500"},
    OLD: {"bg": "bg-red-100", "text": "text-red-800", "border": "border-red-300", "badge": "bg-red-500"},
}
UNKNOWN_COLORS = {"bg": "bg-gray-100", "text": "text-gray-800", "border": "border-gray-300", "badge": "bg-gray-500"}

AGE_ICONS = {FRESH: "🟢", MEDIUM: "🟡", OLD: "🔴"}


def calculate_batch_age(date_added: DateLike, now: DateLike) -> int:
    """
    Whole days between the batch's calendar date and `now`'s calendar date.

    Time of day never matters: 00:05 and 23:55 on the same day give the same age.
    A missing or unreadable `date_added` gives 0, and so does a date in the future.
    """
    added = parse_date(date_added)
    today = parse_date(now)
    if added is None or today is None:
        return 0
    return max(0, (today - added).days)


def get_batch_age_category(age_days: int, thresholds: AgeThresholds = DEFAULT_AGE_THRESHOLDS) -> str:
    if age_days <= thresholds.fresh_max_days:
        return FRESH
    if age_days <= thresholds.medium_max_days:
        return MEDIUM
    return OLD


def get_batch_age_colors(age_days: int, thresholds: AgeThresholds = DEFAULT_AGE_THRESHOLDS) -> dict:
    category = get_batch_age_category(age_days, thresholds)
    return dict(AGE_COLORS.get(category, UNKNOWN_COLORS))


def age_label(age_days: int) -> str:
    if age_days == 0:
        return "Today"
    if age_days == 1:
        return "1 day"
    return f"{age_days} days"
