"""Summary KPIs and their period-over-period comparison."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo
from typing import Dict, Iterable, List, Optional, Sequence, Union

from dateutil import tz as date_tz

from .filters import (
    ALL,
    FilterSelection,
    local_midnight,
    matches_categories,
    parse_calendar_date,
)
from .tickets import Ticket, ensure_aware, format_fixed, is_reopened, parse_timestamp, round_fixed

LOGGER = logging.getLogger(__name__)

HIGH_HOP_THRESHOLD = 3

# Whether an increase of the KPI is good news; drives trend colouring.
KPI_HIGHER_IS_BETTER: Dict[str, bool] = {
    "totalTickets": True,
    "backlogTickets": False,
    "slaMetRate": True,
    "mttr": False,
    "reopenRate": False,
    "highHopTickets": False,
}

_TREND_WINDOW_DAYS = {"7d": 7, "15d": 15, "30d": 30, "90d": 90, "ytd": 365}
_DEFAULT_TREND_DAYS = 15


@dataclass(frozen=True)
class KPISet:
    total_tickets: int
    backlog_tickets: int
    reopen_rate: str
    mttr: str
    high_hop_tickets: int
    sla_met_rate: str

    def to_dict(self) -> Dict[str, Union[int, str]]:
        return {
            "totalTickets": self.total_tickets,
            "backlogTickets": self.backlog_tickets,
            "reopenRate": self.reopen_rate,
            "mttr": self.mttr,
            "highHopTickets": self.high_hop_tickets,
            "slaMetRate": self.sla_met_rate,
        }


def _percentage(part: int, whole: int, digits: int) -> str:
    if not whole:
        return "0.0"
    return format_fixed(part / whole * 100, digits)


def calculate_kpis(tickets: Sequence[Ticket]) -> KPISet:
    """Reduce a (pre-filtered) ticket subset to the dashboard KPIs."""
    total = len(tickets)
    backlog = sum(1 for ticket in tickets if ticket.is_open)

    resolved_hours = [t.resolved_hours for t in tickets if t.resolved_hours is not None]
    mttr = format_fixed(sum(resolved_hours) / len(resolved_hours), 1) if resolved_hours else "0.0"

    reopened = sum(1 for ticket in tickets if is_reopened(ticket))
    met = sum(1 for ticket in tickets if ticket.sla_status == "met")
    high_hop = sum(
        1 for ticket in tickets if (ticket.reassignment_count or 0) >= HIGH_HOP_THRESHOLD
    )

    return KPISet(
        total_tickets=total,
        backlog_tickets=backlog,
        reopen_rate=_percentage(reopened, total, 2),
        mttr=mttr,
        high_hop_tickets=high_hop,
        sla_met_rate=_percentage(met, total, 1),
    )


# -- Period-over-period trends ----------------------------------------------


@dataclass(frozen=True)
class TrendWindow:
    start: datetime
    days: int
    label: str


@dataclass(frozen=True)
class KPITrend:
    value: float
    direction: str
    label: str

    def to_dict(self) -> Dict[str, Union[float, str]]:
        return {"value": self.value, "direction": self.direction, "label": self.label}


def _days_inclusive(start: date, end: date) -> int:
    return max(1, (end - start).days + 1)


def _window(start: date, days: int, zone: tzinfo) -> TrendWindow:
    label = "vs previous day" if days == 1 else f"vs previous {days} days"
    return TrendWindow(local_midnight(start, zone), days, label)


def trend_window(
    filters: FilterSelection,
    *,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> Optional[TrendWindow]:
    """Current period used for the comparison, or ``None`` when no trend applies."""
    zone = tz or date_tz.tzlocal()
    today = ensure_aware(now, zone).astimezone(zone).date()
    date_range = filters.date_range

    if date_range == ALL:
        return None
    if date_range == "custom" and filters.custom_start_date and filters.custom_end_date:
        start = parse_calendar_date(filters.custom_start_date)
        end = parse_calendar_date(filters.custom_end_date)
        if start is None or end is None:
            return None
        return _window(start, _days_inclusive(start, end), zone)
    if date_range == "today":
        return _window(today, 1, zone)
    if date_range == "mtd":
        start = today.replace(day=1)
        return _window(start, _days_inclusive(start, today), zone)
    if date_range == "qtd":
        start = date(today.year, (today.month - 1) // 3 * 3 + 1, 1)
        return _window(start, _days_inclusive(start, today), zone)

    days = _TREND_WINDOW_DAYS.get(date_range, _DEFAULT_TREND_DAYS)
    return _window(today - timedelta(days=days - 1), days, zone)


def previous_period_tickets(
    tickets: Iterable[Ticket],
    filters: FilterSelection,
    window: TrendWindow,
    *,
    tz: Optional[tzinfo] = None,
) -> List[Ticket]:
    """Tickets matching the categorical filters created in the period just before ``window``."""
    zone = window.start.tzinfo or tz or date_tz.tzlocal()
    period_end = window.start
    period_start = local_midnight(period_end.date() - timedelta(days=window.days), zone)
    previous: List[Ticket] = []
    for ticket in tickets:
        if not matches_categories(ticket, filters):
            continue
        created = parse_timestamp(ticket.created, tz)
        if created is not None and period_start <= created < period_end:
            previous.append(ticket)
    return previous


def calculate_trend(
    current: Union[int, float, str],
    previous: Union[int, float, str],
    label: str = "vs last period",
) -> KPITrend:
    curr = float(current)
    prev = float(previous)
    if prev == 0:
        if curr > 0:
            return KPITrend(100.0, "up", label)
        return KPITrend(0.0, "neutral", label)
    change = (curr - prev) / prev * 100
    if change > 0:
        direction = "up"
    elif change < 0:
        direction = "down"
    else:
        direction = "neutral"
    return KPITrend(round_fixed(abs(change), 1), direction, label)


def compare_kpis(current: KPISet, previous: KPISet, label: str) -> Dict[str, KPITrend]:
    before = previous.to_dict()
    return {
        name: calculate_trend(value, before[name], label)
        for name, value in current.to_dict().items()
    }
