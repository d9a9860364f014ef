"""Recurrence rule model.

A RecurrenceRule is the generator of an event's occurrences. It is created
together with its owning Event and is frozen: once occurrences have been
materialized into a recurrence group, changing the rule means replacing the
whole cohort rather than editing the rule in place.
"""

from datetime import date
from enum import Enum

from pydantic import model_validator
from sqlmodel import Field, SQLModel


class RecurrenceFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    CUSTOM = "custom"


class IntervalType(str, Enum):
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"
    YEARS = "years"


# Unit each built-in frequency steps by; custom rules name theirs explicitly.
FREQUENCY_UNITS = {
    RecurrenceFrequency.DAILY: IntervalType.DAYS,
    RecurrenceFrequency.WEEKLY: IntervalType.WEEKS,
    RecurrenceFrequency.MONTHLY: IntervalType.MONTHS,
    RecurrenceFrequency.YEARLY: IntervalType.YEARS,
}

LAST_DAY_OF_MONTH = -1


class RecurrenceRule(SQLModel):
    """How often an event repeats and when the series stops.

    Attributes:
        frequency: Base repetition unit, or "custom" to use interval_type.
        interval: Step count; the event repeats every N units.
        interval_type: Unit for custom rules (days, weeks, months, years).
        end_date: Last date (inclusive) an occurrence may fall on.
        occurrences: Maximum number of occurrences in the series.
        week_days: Weekday indices (0=Sunday ... 6=Saturday) for weekly rules.
        month_day: Day-of-month anchor for monthly rules, or -1 for the
            last day of each month.
    """
    model_config = {"frozen": True}

    frequency: RecurrenceFrequency
    interval: int = Field(default=1, ge=1)
    interval_type: IntervalType | None = None
    end_date: date | None = None
    occurrences: int | None = Field(default=None, ge=1)
    week_days: list[int] = Field(default_factory=list)
    month_day: int | None = None

    @model_validator(mode="after")
    def check_rule(self) -> "RecurrenceRule":
        if self.frequency == RecurrenceFrequency.CUSTOM and self.interval_type is None:
            raise ValueError("interval_type is required for custom recurrence")
        if self.end_date is not None and self.occurrences is not None:
            raise ValueError("end_date and occurrences are mutually exclusive")
        for day in self.week_days:
            if not 0 <= day <= 6:
                raise ValueError(f"Invalid weekday index: {day}")
        if self.month_day is not None and not (
            self.month_day == LAST_DAY_OF_MONTH or 1 <= self.month_day <= 31
        ):
            raise ValueError(f"Invalid month day: {self.month_day}")
        return self

    @property
    def unit(self) -> IntervalType:
        """The unit the interval counts in."""
        if self.frequency == RecurrenceFrequency.CUSTOM:
            return self.interval_type
        return FREQUENCY_UNITS[self.frequency]

    @property
    def is_bounded(self) -> bool:
        return self.end_date is not None or self.occurrences is not None

    def describe(self) -> str:
        """Human-readable summary, e.g. "This event repeats every 2 weeks."."""
        if self.interval == 1 and self.frequency != RecurrenceFrequency.CUSTOM:
            return f"This event repeats {self.frequency.value}."
        return f"This event repeats every {self.interval} {self.unit.value}."
