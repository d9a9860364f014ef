"""Coordinate mapping and snapping for the time grid.

Vertical offsets map to minutes through a fixed pixels-per-hour scale and
horizontal offsets map to day columns through a fixed column width. Every
time delta lands on the snap grid (15 minutes by default).

Two snapping policies exist:

- snap_nearest: plain rounding, used for moves and for the create drag.
- snap_toward_finger: used when a single boundary is dragged. Outward drags
  (extending the event) truncate toward the original boundary so the edge
  never passes the pointer; inward drags round to the nearest snap.
"""

import math
from dataclasses import dataclass

from schedule_engine.core.config import settings

MINUTES_PER_DAY = 24 * 60


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (2.5 -> 3, -2.5 -> -2)."""
    return math.floor(value + 0.5)


@dataclass(frozen=True)
class GridMetrics:
    """Geometry of a rendered time grid.

    Attributes:
        pixels_per_hour: Vertical pixels covering one hour.
        snap_minutes: Granularity every time delta is snapped to.
        min_duration_minutes: Shortest range an editor may produce.
        max_create_duration_minutes: Longest range a create drag may produce.
        day_column_width: Width of one day column in week and month views.
        time_column_width: Width of the hour labels left of the first column.
        month_row_height: Height of one week row in month view.
        day_change_threshold: Fraction of a column the pointer must cross
            before a create drag switches to that column.
        days_visible: Number of day columns in week view.
    """
    pixels_per_hour: float = 60.0
    snap_minutes: int = 15
    min_duration_minutes: int = 15
    max_create_duration_minutes: int = 12 * 60
    day_column_width: float = 50.0
    time_column_width: float = 40.0
    month_row_height: float = 100.0
    day_change_threshold: float = 0.6
    days_visible: int = 7

    @classmethod
    def from_settings(cls) -> "GridMetrics":
        return cls(
            pixels_per_hour=settings.pixels_per_hour,
            snap_minutes=settings.snap_minutes,
            min_duration_minutes=settings.min_duration_minutes,
            max_create_duration_minutes=settings.max_create_duration_minutes,
            day_column_width=settings.day_column_width,
            time_column_width=settings.time_column_width,
            month_row_height=settings.month_row_height,
            day_change_threshold=settings.day_change_threshold,
        )

    @property
    def last_slot_minutes(self) -> int:
        """Latest time of day a single-day boundary may sit at (23:45)."""
        return MINUTES_PER_DAY - self.snap_minutes

    @property
    def last_day_index(self) -> int:
        return self.days_visible - 1

    def pixels_to_minutes(self, pixels: float) -> float:
        return pixels / self.pixels_per_hour * 60

    def minutes_to_pixels(self, minutes: float) -> float:
        return minutes / 60 * self.pixels_per_hour

    def snap_nearest(self, minutes: float) -> int:
        return round_half_up(minutes / self.snap_minutes) * self.snap_minutes

    def snap_toward_finger(self, minutes: float, outward: int) -> int:
        """Snap a boundary delta without letting the edge pass the pointer.

        Args:
            minutes: Raw (unsnapped) delta of the boundary.
            outward: Sign of a delta that extends the range: -1 for a start
                boundary, +1 for an end boundary.
        """
        if minutes * outward > 0:
            return int(minutes / self.snap_minutes) * self.snap_minutes
        return self.snap_nearest(minutes)

    def y_to_minutes(self, y: float, grid_top: float = 0.0) -> int:
        """Snapped time of day under a vertical position, clamped to 00:00-23:45."""
        total = min(self.pixels_to_minutes(max(0.0, y - grid_top)), self.last_slot_minutes)
        return min(self.snap_nearest(total), self.last_slot_minutes)

    def x_to_day_index(self, x: float, grid_left: float = 0.0) -> int:
        """Day column under a horizontal position, clamped to the visible week."""
        relative = x - grid_left - self.time_column_width
        return self.clamp_day_index(math.floor(relative / self.day_column_width))

    def day_delta(self, dx: float) -> int:
        """Whole days a horizontal translation amounts to."""
        return round_half_up(dx / self.day_column_width)

    def week_delta(self, dy: float) -> int:
        """Whole weeks a vertical translation amounts to in month view."""
        return round_half_up(dy / self.month_row_height)

    def column_after_drag(self, start_index: int, dx: float) -> int:
        """Column a create drag has reached.

        The drag only switches to a neighbouring column once the pointer is
        day_change_threshold of the way into it.
        """
        columns = abs(dx) / self.day_column_width
        crossed = math.floor(columns + (1 - self.day_change_threshold))
        return self.clamp_day_index(start_index + (crossed if dx >= 0 else -crossed))

    def clamp_day_index(self, index: int) -> int:
        return max(0, min(self.last_day_index, index))

    def clamp_duration(self, minutes: int) -> int:
        return max(self.min_duration_minutes, min(self.max_create_duration_minutes, minutes))

    def clamp_time_of_day(self, minutes: int) -> int:
        return max(0, min(self.last_slot_minutes, minutes))
