"""
Day-by-day replay shared by the portfolio history and the benchmark.

Both walk every calendar day from a start day to an end day (weekends
included), apply the events booked on that day, then measure the state using
prices forward-filled from the last day that had a quote.
"""
from datetime import date
from typing import Callable, Dict, Iterable, List, Mapping, Optional, TypeVar

import pandas as pd

T = TypeVar("T")
E = TypeVar("E")

DAY_FORMAT = "%Y-%m-%d"


def day_key(value) -> str:
    return pd.Timestamp(value).strftime(DAY_FORMAT)


def calendar_days(start: date, end: date) -> List[str]:
    """Every day between start and end inclusive, as YYYY-MM-DD strings."""
    if pd.Timestamp(start) > pd.Timestamp(end):
        return []
    return [d.strftime(DAY_FORMAT) for d in pd.date_range(start, end, freq="D")]


class ForwardFill:
    """
    Per-key "last known price" cursor over sparse day -> price maps.

    price(key, day) returns the exact-day price when present (and remembers it),
    otherwise the last one seen for that key, otherwise None.
    """

    def __init__(self, prices: Mapping[str, Mapping[str, float]]):
        self._prices = prices
        self._last_known: Dict[str, float] = {}

    def price(self, key: str, day: str) -> Optional[float]:
        series = self._prices.get(key)
        if series is not None and day in series and series[day] is not None:
            self._last_known[key] = float(series[day])
        return self._last_known.get(key)

    def seed(self, before: str) -> None:
        """Primes every key with its last price dated before `before`."""
        for key, series in self._prices.items():
            earlier = [day for day, price in series.items() if day < before and price is not None]
            if earlier:
                self._last_known[key] = float(series[max(earlier)])

    def last_known(self, key: str) -> Optional[float]:
        return self._last_known.get(key)


def group_events_by_day(events: Iterable[E], get_day: Callable[[E], object]) -> Dict[str, List[E]]:
    """Buckets already-ordered events by day, keeping their relative order."""
    grouped: Dict[str, List[E]] = {}
    for event in events:
        grouped.setdefault(day_key(get_day(event)), []).append(event)
    return grouped


def replay_days(
        start: date,
        end: date,
        events_by_day: Mapping[str, List[E]],
        apply_event: Callable[[E, str], None],
        measure: Callable[[str], Optional[T]],
) -> List[T]:
    """
    For each day: apply that day's events in order, then call measure(day).
    Days where measure returns None produce no point.
    """
    points: List[T] = []
    for day in calendar_days(start, end):
        for event in events_by_day.get(day, ()):
            apply_event(event, day)
        point = measure(day)
        if point is not None:
            points.append(point)
    return points
