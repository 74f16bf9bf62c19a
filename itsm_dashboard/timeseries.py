"""Chronological series (inflow, backlog, MTTR, reopen rate) for trend charts."""
from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .tickets import Ticket, ensure_aware, is_reopened, parse_timestamp, round_fixed

LOGGER = logging.getLogger(__name__)

HOURLY_SPAN_LIMIT = timedelta(hours=48)
REOPEN_WEEKS: Tuple[str, ...] = ("W1", "W2", "W3", "W4")

_MONTH_ABBREVIATIONS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


class Granularity(str, Enum):
    HOURLY = "hourly"
    DAILY = "daily"
    MONTHLY = "monthly"


@dataclass(frozen=True)
class TrendPoint:
    date: str
    full_date: str
    value: float

    def to_dict(self) -> Dict[str, object]:
        return {"date": self.date, "fullDate": self.full_date, "value": self.value}


def select_granularity(date_range: str, instants: Sequence[datetime]) -> Granularity:
    """Pick the bucket size for a date-range keyword.

    ``custom`` looks at the observed instants: spans shorter than 48 hours are
    shown hourly, anything wider (or no data at all) daily.
    """
    if date_range == "today":
        return Granularity.HOURLY
    if date_range == "all":
        return Granularity.MONTHLY
    if date_range == "custom" and instants:
        if max(instants) - min(instants) < HOURLY_SPAN_LIMIT:
            return Granularity.HOURLY
    return Granularity.DAILY


def bucket_key(instant: datetime, granularity: Granularity) -> str:
    """Fixed-width UTC sort key: 13 chars hourly, 10 daily, 7 monthly."""
    utc = instant.astimezone(timezone.utc)
    month = f"{utc.year:04d}-{utc.month:02d}"
    if granularity is Granularity.MONTHLY:
        return month
    day = f"{month}-{utc.day:02d}"
    if granularity is Granularity.DAILY:
        return day
    return f"{day}T{utc.hour:02d}"


def bucket_label(key: str, granularity: Granularity) -> str:
    year = int(key[0:4])
    month = _MONTH_ABBREVIATIONS[int(key[5:7]) - 1]
    if granularity is Granularity.HOURLY:
        return f"{key[11:13]}:00"
    if granularity is Granularity.MONTHLY:
        return f"{month} {year}"
    return f"{month} {int(key[8:10])}, {year}"


def _bucket(
    samples: Sequence[Tuple[datetime, float]],
    date_range: str,
    reducer: Callable[[List[float]], float],
) -> List[TrendPoint]:
    granularity = select_granularity(date_range, [instant for instant, _ in samples])
    groups: Dict[str, List[float]] = defaultdict(list)
    for instant, value in samples:
        try:
            key = bucket_key(instant, granularity)
        except OverflowError:
            # Local instants at the edge of the calendar have no UTC equivalent.
            LOGGER.debug("Skipping out-of-range instant %s", instant)
            continue
        groups[key].append(value)
    LOGGER.debug("Bucketed %s samples into %s %s buckets", len(samples), len(groups), granularity.value)
    return [
        TrendPoint(bucket_label(key, granularity), key, reducer(values))
        for key, values in sorted(groups.items())
    ]


def _count(values: List[float]) -> float:
    return len(values)


def _mean(values: List[float]) -> float:
    return round_fixed(sum(values) / len(values), 1)


def _created_samples(tickets: Iterable[Ticket], tz: Optional[tzinfo]) -> List[Tuple[datetime, float]]:
    samples = []
    for ticket in tickets:
        created = parse_timestamp(ticket.created, tz)
        if created is not None:
            samples.append((created, 1.0))
    return samples


def ticket_inflow_trend(
    tickets: Iterable[Ticket], date_range: str = "30d", *, tz: Optional[tzinfo] = None
) -> List[TrendPoint]:
    """Tickets created per bucket."""
    return _bucket(_created_samples(tickets, tz), date_range, _count)


def backlog_trend(
    tickets: Iterable[Ticket], date_range: str = "30d", *, tz: Optional[tzinfo] = None
) -> List[TrendPoint]:
    """Still-open tickets per creation bucket."""
    open_tickets = (ticket for ticket in tickets if ticket.is_open)
    return _bucket(_created_samples(open_tickets, tz), date_range, _count)


def mttr_trend(
    tickets: Iterable[Ticket], date_range: str = "30d", *, tz: Optional[tzinfo] = None
) -> List[TrendPoint]:
    """Mean resolution hours per resolution bucket."""
    samples = []
    for ticket in tickets:
        if ticket.resolved_hours is None:
            continue
        resolved_at = parse_timestamp(ticket.resolved_at, tz)
        if resolved_at is not None:
            samples.append((resolved_at, ticket.resolved_hours))
    return _bucket(samples, date_range, _mean)


# -- Weekly reopen rate -----------------------------------------------------


@dataclass(frozen=True)
class WeeklyReopenRate:
    week: str
    rate: float
    tickets: int
    reopened: int

    def to_dict(self) -> Dict[str, object]:
        return {"week": self.week, "rate": self.rate}


def _days_ago(ticket: Ticket, now: datetime, tz: Optional[tzinfo]) -> Optional[int]:
    created = parse_timestamp(ticket.created, tz)
    if created is None:
        return None
    return math.floor((now - created).total_seconds() / 86400)


def _week_tickets(
    tickets: Iterable[Ticket], index: int, now: datetime, tz: Optional[tzinfo]
) -> List[Ticket]:
    selected = []
    for ticket in tickets:
        days = _days_ago(ticket, now, tz)
        if days is not None and index * 7 <= days < (index + 1) * 7:
            selected.append(ticket)
    return selected


def reopen_rate_trend(
    tickets: Sequence[Ticket],
    *,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> List[WeeklyReopenRate]:
    """Reopen rate for each of the last four weeks; ``W1`` is the most recent."""
    current = ensure_aware(now, tz)
    trend = []
    for index, week in enumerate(REOPEN_WEEKS):
        week_tickets = _week_tickets(tickets, index, current, tz)
        reopened = sum(1 for ticket in week_tickets if is_reopened(ticket))
        rate = round_fixed(reopened / len(week_tickets) * 100, 1) if week_tickets else 0.0
        trend.append(WeeklyReopenRate(week, rate, len(week_tickets), reopened))
    return trend


def reopen_week_tickets(
    tickets: Sequence[Ticket],
    week: str,
    *,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> List[Ticket]:
    """Reopened tickets of one ``W1``..``W4`` week; unknown labels give no tickets."""
    if week not in REOPEN_WEEKS:
        return []
    current = ensure_aware(now, tz)
    return [
        ticket
        for ticket in _week_tickets(tickets, REOPEN_WEEKS.index(week), current, tz)
        if is_reopened(ticket)
    ]
