"""Gesture state machine turning pointer samples into proposed time ranges.

One GestureEditor exists per calendar surface. It feeds signals (presses,
cumulative pointer translations, releases, confirm and cancel decisions)
through a single pure transition function:

    transition(state, signal, context) -> (next_state, effects)

States:
    Idle -> CreateDrag -> PlaceholderEditing -> Idle (confirmed or cancelled)
    Idle -> MoveDrag -> Idle
    Idle -> ResizeDrag -> Idle

While any state other than Idle is active, new press signals are ignored,
so two interactions can never overlap on one surface. A press on empty grid
during placeholder editing counts as a tap outside and discards the
placeholder. Signals that make no sense in the current state, and malformed
samples, are logged at debug level and otherwise ignored.

Move signals carry the translation since the press, not since the previous
sample. Resize drags keep both the last snapped delta and the peak delta
reached; on release a component that has decayed back to zero falls back
to its peak so release jitter does not swallow a deliberate resize. Moves
commit the last delta only, so dragging back to the origin abandons them.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta
from enum import Enum

from schedule_engine.engine.collection import EventCollection
from schedule_engine.engine.conflicts import get_conflicting_events
from schedule_engine.engine.grid import GridMetrics
from schedule_engine.engine.recurrence import project_events, sunday_weekday
from schedule_engine.models.event import Event, EventCreate, EventUpdate

logger = logging.getLogger(__name__)

MONTH_VIEW_START = 9 * 60
MONTH_VIEW_END = 10 * 60


class ViewMode(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class Handle(str, Enum):
    TOP = "top"
    BOTTOM = "bottom"
    LEFT = "left"
    RIGHT = "right"
    TOP_LEFT = "top-left"
    TOP_RIGHT = "top-right"
    BOTTOM_LEFT = "bottom-left"
    BOTTOM_RIGHT = "bottom-right"


CORNER_HANDLES = {Handle.TOP_LEFT, Handle.TOP_RIGHT, Handle.BOTTOM_LEFT, Handle.BOTTOM_RIGHT}
EDGE_HANDLES = {Handle.TOP, Handle.BOTTOM}
SPAN_HANDLES = {Handle.LEFT, Handle.RIGHT}


@dataclass(frozen=True)
class GestureContext:
    """What the transition function needs to know about the surface.

    Attributes:
        view: Day, week, or month view.
        anchor_date: The shown day in day view, or the first (Sunday)
            column of the visible week in week view.
        metrics: Grid geometry used to map pixels to time.
    """
    view: ViewMode
    anchor_date: date
    metrics: GridMetrics = field(default_factory=GridMetrics.from_settings)


@dataclass(frozen=True)
class PlaceholderBounds:
    """An uncommitted proposal being shaped before any remote write.

    Attributes:
        start_date: Date of the first day covered.
        start_minutes: Start time of day, in minutes after midnight.
        end_minutes: End time of day on the last covered date.
        start_day_index: Column of start_date within the visible week.
        day_span: Number of day columns covered (1 for single-day).
    """
    start_date: date
    start_minutes: int
    end_minutes: int
    start_day_index: int = 0
    day_span: int = 1

    @property
    def end_date(self) -> date:
        return self.start_date + timedelta(days=self.day_span - 1)

    @property
    def end_day_index(self) -> int:
        return self.start_day_index + self.day_span - 1

    @property
    def is_multi_day(self) -> bool:
        return self.day_span > 1

    def to_range(self) -> tuple[datetime, datetime]:
        start = datetime.combine(self.start_date, time.min) + timedelta(minutes=self.start_minutes)
        end = datetime.combine(self.end_date, time.min) + timedelta(minutes=self.end_minutes)
        return start, end

    @property
    def duration_minutes(self) -> int:
        start, end = self.to_range()
        return int((end - start).total_seconds() // 60)


@dataclass(frozen=True)
class Delta:
    """Snapped translation of a drag, split into independent components."""
    days: int = 0
    minutes: int = 0
    weeks: int = 0

    @property
    def is_zero(self) -> bool:
        return self.days == 0 and self.minutes == 0 and self.weeks == 0

    def extend_peak(self, sample: "Delta") -> "Delta":
        """Keep, per component, whichever value is furthest from zero."""
        return Delta(
            days=sample.days if abs(sample.days) > abs(self.days) else self.days,
            minutes=sample.minutes if abs(sample.minutes) > abs(self.minutes) else self.minutes,
            weeks=sample.weeks if abs(sample.weeks) > abs(self.weeks) else self.weeks,
        )

    def or_peak(self, peak: "Delta") -> "Delta":
        """Replace components that decayed to zero with their peak."""
        return Delta(
            days=self.days or peak.days,
            minutes=self.minutes or peak.minutes,
            weeks=self.weeks or peak.weeks,
        )


# Signals


@dataclass(frozen=True)
class PressEmpty:
    """Long press on empty grid. day is required in month view."""
    x: float = 0.0
    y: float = 0.0
    day: date | None = None


@dataclass(frozen=True)
class PressEvent:
    event: Event


@dataclass(frozen=True)
class PressHandle:
    event: Event
    handle: Handle


@dataclass(frozen=True)
class PressPlaceholder:
    """Press on the placeholder body (handle=None) or one of its handles."""
    handle: Handle | None = None


@dataclass(frozen=True)
class Move:
    dx: float
    dy: float


@dataclass(frozen=True)
class Release:
    pass


@dataclass(frozen=True)
class TapOutside:
    pass


@dataclass(frozen=True)
class Confirm:
    pass


@dataclass(frozen=True)
class Cancel:
    pass


Signal = PressEmpty | PressEvent | PressHandle | PressPlaceholder | Move | Release | TapOutside | Confirm | Cancel

PRESS_SIGNALS = (PressEmpty, PressEvent, PressHandle, PressPlaceholder)


# States


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class CreateDrag:
    origin: PlaceholderBounds
    bounds: PlaceholderBounds


@dataclass(frozen=True)
class PlaceholderDrag:
    handle: Handle | None
    origin: PlaceholderBounds
    last: Delta = field(default_factory=Delta)
    peak: Delta = field(default_factory=Delta)


@dataclass(frozen=True)
class PlaceholderEditing:
    bounds: PlaceholderBounds
    drag: PlaceholderDrag | None = None


@dataclass(frozen=True)
class MoveDrag:
    event: Event
    last: Delta = field(default_factory=Delta)


@dataclass(frozen=True)
class ResizeDrag:
    event: Event
    handle: Handle
    last: Delta = field(default_factory=Delta)
    peak: Delta = field(default_factory=Delta)


GestureState = Idle | CreateDrag | PlaceholderEditing | MoveDrag | ResizeDrag


# Effects


@dataclass(frozen=True)
class Preview:
    """The proposal changed; event_id is set when an existing event is dragged."""
    start_time: datetime
    end_time: datetime
    event_id: str | None = None


@dataclass(frozen=True)
class EditingStarted:
    bounds: PlaceholderBounds


@dataclass(frozen=True)
class CommitUpdate:
    event_id: str
    start_time: datetime
    end_time: datetime


@dataclass(frozen=True)
class CommitCreate:
    start_time: datetime
    end_time: datetime
    bounds: PlaceholderBounds


@dataclass(frozen=True)
class Discarded:
    reason: str


Effect = Preview | EditingStarted | CommitUpdate | CommitCreate | Discarded

Transition = tuple[GestureState, list[Effect]]


# Create


def _start_create(signal: PressEmpty, context: GestureContext) -> Transition | None:
    metrics = context.metrics

    if context.view == ViewMode.MONTH:
        if signal.day is None:
            return None
        bounds = PlaceholderBounds(
            start_date=signal.day,
            start_minutes=MONTH_VIEW_START,
            end_minutes=MONTH_VIEW_END,
            start_day_index=sunday_weekday(signal.day),
        )
    else:
        index = metrics.x_to_day_index(signal.x) if context.view == ViewMode.WEEK else 0
        day = signal.day or context.anchor_date + timedelta(days=index)
        latest_start = metrics.last_slot_minutes - metrics.min_duration_minutes
        start_minutes = min(metrics.y_to_minutes(signal.y), latest_start)
        bounds = PlaceholderBounds(
            start_date=day,
            start_minutes=start_minutes,
            end_minutes=start_minutes + metrics.min_duration_minutes,
            start_day_index=index,
        )

    return CreateDrag(origin=bounds, bounds=bounds), [Preview(*bounds.to_range())]


def _create_bounds(origin: PlaceholderBounds, move: Move, context: GestureContext) -> PlaceholderBounds:
    metrics = context.metrics

    if context.view == ViewMode.MONTH:
        end_index = metrics.clamp_day_index(origin.start_day_index + max(0, metrics.day_delta(move.dx)))
        return replace(origin, day_span=end_index - origin.start_day_index + 1)

    snapped = metrics.snap_nearest(metrics.pixels_to_minutes(move.dy))
    duration = metrics.clamp_duration(metrics.min_duration_minutes + snapped)
    end_minutes = min(origin.start_minutes + duration, metrics.last_slot_minutes)

    day_span = 1
    if context.view == ViewMode.WEEK:
        column = metrics.column_after_drag(origin.start_day_index, move.dx)
        day_span = max(column, origin.start_day_index) - origin.start_day_index + 1

    return replace(origin, end_minutes=end_minutes, day_span=day_span)


def _on_create_drag(state: CreateDrag, signal: Signal, context: GestureContext) -> Transition | None:
    if isinstance(signal, Move):
        bounds = _create_bounds(state.origin, signal, context)
        return replace(state, bounds=bounds), [Preview(*bounds.to_range())]
    if isinstance(signal, Release):
        return PlaceholderEditing(bounds=state.bounds), [EditingStarted(state.bounds)]
    return None


# Placeholder editing


def _placeholder_delta(handle: Handle | None, move: Move, context: GestureContext) -> Delta:
    metrics = context.metrics
    minutes = metrics.pixels_to_minutes(move.dy)

    if handle == Handle.TOP:
        return Delta(minutes=metrics.snap_toward_finger(minutes, outward=-1))
    if handle == Handle.BOTTOM:
        return Delta(minutes=metrics.snap_toward_finger(minutes, outward=1))
    if handle in SPAN_HANDLES:
        return Delta(days=metrics.day_delta(move.dx))

    # Body
    if context.view == ViewMode.MONTH:
        return Delta(days=metrics.day_delta(move.dx), weeks=metrics.week_delta(move.dy))
    if context.view == ViewMode.WEEK:
        return Delta(days=metrics.day_delta(move.dx), minutes=metrics.snap_nearest(minutes))
    return Delta(minutes=metrics.snap_nearest(minutes))


def _fit_single_day(bounds: PlaceholderBounds, metrics: GridMetrics) -> PlaceholderBounds:
    """Restore the minimum duration after a span collapsed to one day."""
    if bounds.is_multi_day or bounds.end_minutes - bounds.start_minutes >= metrics.min_duration_minutes:
        return bounds
    end = min(bounds.start_minutes + metrics.min_duration_minutes, metrics.last_slot_minutes)
    start = min(bounds.start_minutes, end - metrics.min_duration_minutes)
    return replace(bounds, start_minutes=start, end_minutes=end)


def _apply_placeholder(
    origin: PlaceholderBounds, handle: Handle | None, delta: Delta, context: GestureContext
) -> PlaceholderBounds:
    metrics = context.metrics

    if handle == Handle.TOP:
        start = metrics.clamp_time_of_day(origin.start_minutes + delta.minutes)
        if not origin.is_multi_day:
            start = min(start, origin.end_minutes - metrics.min_duration_minutes)
        return replace(origin, start_minutes=start)

    if handle == Handle.BOTTOM:
        end = metrics.clamp_time_of_day(origin.end_minutes + delta.minutes)
        if not origin.is_multi_day:
            end = max(end, origin.start_minutes + metrics.min_duration_minutes)
        return replace(origin, end_minutes=end)

    if handle == Handle.LEFT:
        index = min(metrics.clamp_day_index(origin.start_day_index + delta.days), origin.end_day_index)
        shift = index - origin.start_day_index
        bounds = replace(
            origin,
            start_date=origin.start_date + timedelta(days=shift),
            start_day_index=index,
            day_span=origin.end_day_index - index + 1,
        )
        return _fit_single_day(bounds, metrics)

    if handle == Handle.RIGHT:
        end_index = max(metrics.clamp_day_index(origin.end_day_index + delta.days), origin.start_day_index)
        bounds = replace(origin, day_span=end_index - origin.start_day_index + 1)
        return _fit_single_day(bounds, metrics)

    # Body move keeps the span and duration, and stays inside the visible week and day
    shift = max(-origin.start_day_index, min(metrics.last_day_index - origin.end_day_index, delta.days))
    low = -min(origin.start_minutes, origin.end_minutes)
    high = metrics.last_slot_minutes - max(origin.start_minutes, origin.end_minutes)
    minutes = max(low, min(high, delta.minutes))
    return replace(
        origin,
        start_date=origin.start_date + timedelta(days=shift + 7 * delta.weeks),
        start_day_index=origin.start_day_index + shift,
        start_minutes=origin.start_minutes + minutes,
        end_minutes=origin.end_minutes + minutes,
    )


def _on_placeholder_editing(
    state: PlaceholderEditing, signal: Signal, context: GestureContext
) -> Transition | None:
    if isinstance(signal, (TapOutside, PressEmpty)):
        return Idle(), [Discarded("tap_outside")]
    if isinstance(signal, Confirm):
        start, end = state.bounds.to_range()
        return Idle(), [CommitCreate(start, end, state.bounds)]

    drag = state.drag
    if drag is None:
        if not isinstance(signal, PressPlaceholder):
            return None
        if signal.handle in CORNER_HANDLES:
            return None
        if signal.handle in SPAN_HANDLES and context.view == ViewMode.DAY:
            return None
        return replace(state, drag=PlaceholderDrag(handle=signal.handle, origin=state.bounds)), []

    if isinstance(signal, Move):
        delta = _placeholder_delta(drag.handle, signal, context)
        bounds = _apply_placeholder(drag.origin, drag.handle, delta, context)
        drag = replace(drag, last=delta, peak=drag.peak.extend_peak(delta))
        return PlaceholderEditing(bounds=bounds, drag=drag), [Preview(*bounds.to_range())]
    if isinstance(signal, Release):
        final = drag.last if drag.handle is None else drag.last.or_peak(drag.peak)
        bounds = _apply_placeholder(drag.origin, drag.handle, final, context)
        return PlaceholderEditing(bounds=bounds), [Preview(*bounds.to_range())]
    return None


# Existing events


def _is_single_day(event: Event) -> bool:
    return not event.is_multi_day and not event.is_all_day


def _move_delta(move: Move, context: GestureContext) -> Delta:
    metrics = context.metrics
    if context.view == ViewMode.MONTH:
        return Delta(days=metrics.day_delta(move.dx), weeks=metrics.week_delta(move.dy))
    minutes = metrics.snap_nearest(metrics.pixels_to_minutes(move.dy))
    if context.view == ViewMode.WEEK:
        return Delta(days=metrics.day_delta(move.dx), minutes=minutes)
    return Delta(minutes=minutes)


def moved_range(event: Event, delta: Delta, context: GestureContext) -> tuple[datetime, datetime]:
    """Shift both boundaries of an event by the same amount."""
    minutes = delta.minutes
    if _is_single_day(event) and minutes:
        start_of_day = datetime.combine(event.start_time.date(), time.min)
        start_minutes = int((event.start_time - start_of_day).total_seconds() // 60)
        end_minutes = start_minutes + event.duration_minutes
        high = max(0, context.metrics.last_slot_minutes - end_minutes)
        minutes = max(-start_minutes, min(high, minutes))

    shift = timedelta(days=delta.days + 7 * delta.weeks, minutes=minutes)
    return event.start_time + shift, event.end_time + shift


def _resize_delta(handle: Handle, move: Move, context: GestureContext) -> Delta:
    metrics = context.metrics
    outward = -1 if handle in (Handle.TOP, Handle.TOP_LEFT, Handle.TOP_RIGHT) else 1
    minutes = metrics.snap_toward_finger(metrics.pixels_to_minutes(move.dy), outward)
    if handle in CORNER_HANDLES:
        return Delta(days=metrics.day_delta(move.dx), minutes=minutes)
    return Delta(minutes=minutes)


def resized_range(
    event: Event, handle: Handle, delta: Delta, context: GestureContext
) -> tuple[datetime, datetime]:
    """
    Apply a resize delta to the boundaries a handle controls.

    Edge handles move one boundary by minutes. Corner handles split the
    delta: top-left moves the start date and time, bottom-right moves the
    end date and time, top-right moves the end date and the start time, and
    bottom-left moves the start date and the end time.
    """
    metrics = context.metrics
    minimum = timedelta(minutes=metrics.min_duration_minutes)
    days = timedelta(days=delta.days)
    minutes = timedelta(minutes=delta.minutes)
    start, end = event.start_time, event.end_time

    if handle == Handle.TOP:
        start += minutes
    elif handle == Handle.BOTTOM:
        end += minutes
    elif handle == Handle.TOP_LEFT:
        start += days + minutes
    elif handle == Handle.TOP_RIGHT:
        end += days
        start += minutes
    elif handle == Handle.BOTTOM_LEFT:
        start += days
        end += minutes
    elif handle == Handle.BOTTOM_RIGHT:
        end += days + minutes

    if handle in EDGE_HANDLES:
        if _is_single_day(event):
            start_of_day = datetime.combine(event.start_time.date(), time.min)
            latest_end = max(start_of_day + timedelta(minutes=metrics.last_slot_minutes), event.end_time)
            start = max(start, start_of_day)
            end = min(end, latest_end)
        if handle == Handle.TOP:
            start = min(start, end - minimum)
        else:
            end = max(end, start + minimum)
    elif end - start < minimum:
        end = start + minimum

    return start, end


def _on_move_drag(state: MoveDrag, signal: Signal, context: GestureContext) -> Transition | None:
    if isinstance(signal, Move):
        delta = _move_delta(signal, context)
        start, end = moved_range(state.event, delta, context)
        return replace(state, last=delta), [Preview(start, end, state.event.id)]
    if isinstance(signal, Release):
        final = state.last
        if final.is_zero:
            return Idle(), [Discarded("unchanged")]
        start, end = moved_range(state.event, final, context)
        return Idle(), [CommitUpdate(state.event.id, start, end)]
    return None


def _on_resize_drag(state: ResizeDrag, signal: Signal, context: GestureContext) -> Transition | None:
    if isinstance(signal, Move):
        delta = _resize_delta(state.handle, signal, context)
        start, end = resized_range(state.event, state.handle, delta, context)
        next_state = replace(state, last=delta, peak=state.peak.extend_peak(delta))
        return next_state, [Preview(start, end, state.event.id)]
    if isinstance(signal, Release):
        final = state.last.or_peak(state.peak)
        if final.is_zero:
            return Idle(), [Discarded("unchanged")]
        start, end = resized_range(state.event, state.handle, final, context)
        return Idle(), [CommitUpdate(state.event.id, start, end)]
    return None


def _on_idle(state: Idle, signal: Signal, context: GestureContext) -> Transition | None:
    if isinstance(signal, PressEmpty):
        return _start_create(signal, context)
    if isinstance(signal, PressEvent):
        event = signal.event
        return MoveDrag(event=event), [Preview(event.start_time, event.end_time, event.id)]
    if isinstance(signal, PressHandle):
        event = signal.event
        if signal.handle in SPAN_HANDLES:
            return None
        if signal.handle in CORNER_HANDLES and not event.is_multi_day:
            return None
        return ResizeDrag(event=event, handle=signal.handle), [Preview(event.start_time, event.end_time, event.id)]
    return None


_HANDLERS = {
    Idle: _on_idle,
    CreateDrag: _on_create_drag,
    PlaceholderEditing: _on_placeholder_editing,
    MoveDrag: _on_move_drag,
    ResizeDrag: _on_resize_drag,
}


def transition(state: GestureState, signal: Signal, context: GestureContext) -> Transition:
    """
    Compute the next state and the effects of one signal.

    Pure: the same state, signal and context always give the same result.
    Cancel discards any active interaction. Signals that do not apply to
    the current state leave it unchanged and produce no effects.
    """
    if isinstance(signal, Move) and not (math.isfinite(signal.dx) and math.isfinite(signal.dy)):
        logger.debug(f"Ignoring malformed sample {signal}")
        return state, []

    if isinstance(signal, Cancel):
        if isinstance(state, Idle):
            return state, []
        return Idle(), [Discarded("cancelled")]

    if not isinstance(state, (Idle, PlaceholderEditing)) and isinstance(signal, PRESS_SIGNALS):
        logger.debug(f"Ignoring {type(signal).__name__} while {type(state).__name__} is active")
        return state, []

    result = _HANDLERS[type(state)](state, signal, context)
    if result is None:
        logger.debug(f"Ignoring {type(signal).__name__} in {type(state).__name__}")
        return state, []
    return result


class GestureEditor:
    """
    Drives the gesture state machine for one calendar surface.

    Keeps the live proposal and the events it overlaps (recomputed on every
    preview for highlighting) and forwards commits to an UpdateOrchestrator
    when one is attached. Commits must happen inside a running event loop
    because the orchestrator schedules the remote write as a task.
    """

    def __init__(
        self,
        collection: EventCollection,
        context: GestureContext,
        orchestrator=None,
        default_title: str = "New Event",
    ):
        self.collection = collection
        self.context = context
        self.orchestrator = orchestrator
        self.default_title = default_title
        self.state: GestureState = Idle()
        self.proposal: tuple[datetime, datetime] | None = None
        self.conflicts: list[Event] = []
        self.submitted: list[asyncio.Future] = []

    @property
    def is_active(self) -> bool:
        return not isinstance(self.state, Idle)

    @property
    def placeholder(self) -> PlaceholderBounds | None:
        if isinstance(self.state, PlaceholderEditing):
            return self.state.bounds
        if isinstance(self.state, CreateDrag):
            return self.state.bounds
        return None

    def handle(self, signal: Signal) -> list[Effect]:
        self.state, effects = transition(self.state, signal, self.context)
        for effect in effects:
            self._apply(effect)
        return effects

    def teardown(self) -> None:
        """Discard any active interaction, e.g. when the surface goes away."""
        if self.is_active:
            self.handle(Cancel())

    def _propose(self, start: datetime, end: datetime, exclude_id: str | None = None) -> None:
        self.proposal = (start, end)
        existing = project_events(self.collection.all(), start.date(), end.date())
        self.conflicts = get_conflicting_events(start, end, existing, exclude_id)

    def _clear(self) -> None:
        self.proposal = None
        self.conflicts = []

    def _apply(self, effect: Effect) -> None:
        if isinstance(effect, Preview):
            self._propose(effect.start_time, effect.end_time, effect.event_id)
        elif isinstance(effect, EditingStarted):
            self._propose(*effect.bounds.to_range())
        elif isinstance(effect, CommitUpdate):
            self._clear()
            logger.info(f"Gesture committed {effect.event_id} to {effect.start_time} - {effect.end_time}")
            if self.orchestrator is not None:
                changes = EventUpdate(start_time=effect.start_time, end_time=effect.end_time)
                self.submitted.append(self.orchestrator.submit_update(effect.event_id, changes))
        elif isinstance(effect, CommitCreate):
            self._clear()
            logger.info(f"Gesture created proposal {effect.start_time} - {effect.end_time}")
            if self.orchestrator is not None:
                data = EventCreate(
                    title=self.default_title,
                    start_time=effect.start_time,
                    end_time=effect.end_time,
                )
                self.submitted.append(self.orchestrator.submit_create(data))
        elif isinstance(effect, Discarded):
            self._clear()
