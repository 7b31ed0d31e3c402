"""Calendar arithmetic for billing cycles."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional, Union

from dateutil.relativedelta import relativedelta

from ..catalog.models import BillingCycle

Duration = Union[timedelta, relativedelta]

_CYCLE_STEPS = {
    BillingCycle.MONTHLY: relativedelta(months=1),
    BillingCycle.YEARLY: relativedelta(years=1),
}


def cycle_duration(cycle: BillingCycle, duration: Optional[Duration] = None) -> Duration:
    """Return the period one grant of ``cycle`` lasts.

    Promotional grants have no natural length and must pass ``duration``.
    """

    if duration is not None:
        return duration
    step = _CYCLE_STEPS.get(cycle)
    if step is None:
        raise ValueError(f"A duration is required for {cycle.value} grants")
    return step


def advance(moment: datetime, cycle: BillingCycle, *, duration: Optional[Duration] = None) -> datetime:
    """Move ``moment`` forward by one cycle.

    Month and year steps clamp to the last valid day, so Jan 31 plus one month
    lands on Feb 28 (or Feb 29 in a leap year).
    """

    return moment + cycle_duration(cycle, duration)


__all__ = ["Duration", "advance", "cycle_duration"]
