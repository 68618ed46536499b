"""
Plot status state machine

Every status can currently reach every other status. The table below spells
that out per source status. Single edits, bulk updates and canvas saves all
check status changes against it through check_transition().
"""
from datetime import datetime, timezone
from typing import Dict, FrozenSet, Optional, Union

from schemas.plot import Plot, PlotCreate, PlotStatus, PlotStatusUpdate
from services.errors import InvalidTransitionError, ValidationError

TRANSITIONS: Dict[PlotStatus, FrozenSet[PlotStatus]] = {
    PlotStatus.AVAILABLE: frozenset({PlotStatus.BOOKED, PlotStatus.RESERVED, PlotStatus.SOLD}),
    PlotStatus.BOOKED: frozenset({PlotStatus.AVAILABLE, PlotStatus.RESERVED, PlotStatus.SOLD}),
    PlotStatus.RESERVED: frozenset({PlotStatus.AVAILABLE, PlotStatus.BOOKED, PlotStatus.SOLD}),
    PlotStatus.SOLD: frozenset({PlotStatus.AVAILABLE, PlotStatus.BOOKED, PlotStatus.RESERVED}),
}


def parse_status(value: Union[str, PlotStatus]) -> PlotStatus:
    try:
        return PlotStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in PlotStatus)
        raise ValidationError.for_field("status", f"Status must be one of: {allowed}") from None


def can_transition(current: Union[str, PlotStatus], new: Union[str, PlotStatus]) -> bool:
    return PlotStatus(new) in TRANSITIONS[PlotStatus(current)]


def check_transition(current: Union[str, PlotStatus], new: Union[str, PlotStatus],
                     field: str = "status") -> None:
    """
    Raises:
        InvalidTransitionError: the table forbids current -> new (reported on field)
    """
    if not can_transition(current, new):
        raise InvalidTransitionError(PlotStatus(current).value, PlotStatus(new).value, field=field)


def status_update_for(new_status: Union[str, PlotStatus],
                      booked_by: Optional[str] = None,
                      now: Optional[datetime] = None) -> PlotStatusUpdate:
    """
    Fields written when a plot enters new_status.

    booked    -> booking_date (and booked_by when given)
    sold      -> sold_date
    available -> booking and sale fields cleared
    reserved  -> status only
    """
    status = parse_status(new_status)
    now = now or datetime.now(timezone.utc)

    if status == PlotStatus.BOOKED:
        return PlotStatusUpdate(status=status, booked_by=booked_by, booking_date=now)
    if status == PlotStatus.SOLD:
        return PlotStatusUpdate(status=status, booked_by=booked_by, sold_date=now)
    return PlotStatusUpdate(status=status)


def status_update_payload(update: PlotStatusUpdate) -> dict:
    """Columns to write for a status update; None only clears fields on a release."""
    data = update.model_dump(mode="json")
    if update.status == PlotStatus.AVAILABLE:
        return data
    return {k: v for k, v in data.items() if v is not None}


def with_status_fields(plot: PlotCreate, now: Optional[datetime] = None) -> PlotCreate:
    """A plot created straight into booked or sold gets the matching date when none is given."""
    update = status_update_for(plot.status, booked_by=plot.booked_by, now=now)
    changes = {
        k: v for k, v in update.model_dump().items()
        if k != "status" and v is not None and getattr(plot, k) is None
    }
    return plot.model_copy(update=changes) if changes else plot


def apply_status_change(plot: Plot,
                        new_status: Union[str, PlotStatus],
                        booked_by: Optional[str] = None,
                        now: Optional[datetime] = None) -> Plot:
    """
    Return a copy of plot moved to new_status with its side-effect fields set.

    Asking for the status the plot already has is a no-op; the plot is
    returned unchanged and callers skip the store round trip.

    Raises:
        ValidationError: new_status is not a plot status
        InvalidTransitionError: the table forbids the move
    """
    status = parse_status(new_status)
    if status == plot.status:
        return plot

    check_transition(plot.status, status)

    update = status_update_for(status, booked_by=booked_by, now=now)
    changes = update.model_dump()
    if status != PlotStatus.AVAILABLE:
        changes = {k: v for k, v in changes.items() if v is not None}
    return plot.model_copy(update=changes)
