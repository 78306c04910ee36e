"""Dashboard time windows.

Standard windows are derived from a reference day:

    today       [today, today]
    this_week   [today - 6 days, today]
    this_month  [first of month, last of month]

When the caller asks for an explicit range, the reference day becomes the
range end, every standard window is intersected with the range and a
``range`` window covering the whole request is added. A window that does
not overlap the range maps to None.
"""

import calendar
from datetime import date, timedelta
from typing import Optional, Union

from pulseledger.domain.dates import normalize_date_string
from pulseledger.domain.records import TimeWindow

TODAY = "today"
THIS_WEEK = "this_week"
THIS_MONTH = "this_month"
RANGE = "range"

STANDARD_LABELS = (TODAY, THIS_WEEK, THIS_MONTH)

WindowPlan = dict[str, Optional[TimeWindow]]


def _as_date(value: Union[str, date]) -> date:
    if isinstance(value, date):
        return value
    normalized = normalize_date_string(value)
    if normalized is None:
        raise ValueError(f"Invalid calendar date: {value!r}")
    return date.fromisoformat(normalized)


def standard_windows(today: Union[str, date]) -> list[TimeWindow]:
    """Build the Today / ThisWeek / ThisMonth windows for a reference day."""
    day = _as_date(today)
    last_day = calendar.monthrange(day.year, day.month)[1]
    return [
        TimeWindow(label=TODAY, start_date=day.isoformat(), end_date=day.isoformat()),
        TimeWindow(
            label=THIS_WEEK,
            start_date=(day - timedelta(days=6)).isoformat(),
            end_date=day.isoformat(),
        ),
        TimeWindow(
            label=THIS_MONTH,
            start_date=day.replace(day=1).isoformat(),
            end_date=day.replace(day=last_day).isoformat(),
        ),
    ]


def intersect(window: TimeWindow, start_date: str, end_date: str) -> Optional[TimeWindow]:
    """Clip a window to [start_date, end_date]; None when they do not overlap."""
    start = max(window.start_date, start_date)
    end = min(window.end_date, end_date)
    if start > end:
        return None
    return TimeWindow(label=window.label, start_date=start, end_date=end)


def plan_windows(
    today: Union[str, date],
    start_date: Optional[Union[str, date]] = None,
    end_date: Optional[Union[str, date]] = None,
) -> WindowPlan:
    """Build the window plan for one dashboard refresh.

    Parameters:
        today: Caller's current calendar date
        start_date: Optional first day of a requested range (inclusive)
        end_date: Optional last day of a requested range (inclusive)

    Returns:
        Ordered mapping of window label to window (or None when a standard
        window was intersected away)

    Raises:
        ValueError: If only one range bound is given, a bound is malformed
                    or the range is inverted
    """
    if start_date is None and end_date is None:
        return {window.label: window for window in standard_windows(today)}

    if start_date is None or end_date is None:
        raise ValueError("Both start_date and end_date are required for a range")

    start = _as_date(start_date).isoformat()
    end = _as_date(end_date).isoformat()
    if start > end:
        raise ValueError(f"start_date {start} is after end_date {end}")

    plan: WindowPlan = {
        window.label: intersect(window, start, end)
        for window in standard_windows(end)
    }
    plan[RANGE] = TimeWindow(label=RANGE, start_date=start, end_date=end)
    return plan
