"""Filter selection and the predicate engine applied to ticket collections."""
from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace as dataclass_replace
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from dateutil import parser as date_parser
from dateutil import tz as date_tz

from .tickets import Ticket, ensure_aware, is_terminal_status, parse_timestamp

LOGGER = logging.getLogger(__name__)

ALL = "all"

DATE_RANGE_CHOICES: Tuple[str, ...] = ("all", "today", "7d", "15d", "30d", "mtd", "qtd", "custom")
TICKET_STATUS_CHOICES: Tuple[str, ...] = ("all", "open", "closed")

_ROLLING_WINDOW_DAYS = {"7d": 7, "15d": 15, "30d": 30}

_CAMEL_KEYS = {
    "dateRange": "date_range",
    "ticketStatus": "ticket_status",
    "assignmentGroup": "assignment_group",
    "assignedTo": "assigned_to",
    "customStartDate": "custom_start_date",
    "customEndDate": "custom_end_date",
}


@dataclass(frozen=True)
class FilterSelection:
    date_range: str = ALL
    ticket_status: str = ALL
    priority: str = ALL
    region: str = ALL
    assignment_group: str = ALL
    assigned_to: str = ALL
    custom_start_date: Optional[str] = None
    custom_end_date: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "FilterSelection":
        names = {f.name for f in fields(cls)}
        values = {}
        for key, value in data.items():
            name = _CAMEL_KEYS.get(key, key)
            if name in names and value is not None:
                values[name] = str(value)
        return cls(**values)

    def replace(self, **changes: Any) -> "FilterSelection":
        return dataclass_replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            "dateRange": self.date_range,
            "ticketStatus": self.ticket_status,
            "priority": self.priority,
            "region": self.region,
            "assignmentGroup": self.assignment_group,
            "assignedTo": self.assigned_to,
            "customStartDate": self.custom_start_date,
            "customEndDate": self.custom_end_date,
        }


@dataclass(frozen=True)
class DateWindow:
    """Inclusive ``[start, end]`` instant range.

    A window without bounds matches nothing; it results from custom bounds
    that cannot be read as calendar dates.
    """

    start: Optional[datetime]
    end: Optional[datetime]

    def contains(self, instant: datetime) -> bool:
        if self.start is None or self.end is None:
            return False
        return self.start <= instant <= self.end


def local_midnight(day: date, zone: tzinfo) -> datetime:
    return datetime.combine(day, time.min).replace(tzinfo=zone)


def parse_calendar_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date_parser.isoparse(str(value).strip()).date()
    except (ValueError, OverflowError):
        LOGGER.debug("Unable to parse calendar date %r", value)
        return None


def resolve_date_window(
    filters: FilterSelection,
    *,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> Optional[DateWindow]:
    """Translate ``filters.date_range`` into instant bounds.

    Returns ``None`` when no date constraint applies: ``all``, unknown
    keywords, and ``custom`` without both bounds.
    """
    zone = tz or date_tz.tzlocal()
    current = ensure_aware(now, zone)
    today = current.astimezone(zone).date()
    date_range = filters.date_range

    if date_range == "today":
        return DateWindow(local_midnight(today, zone), current)
    if date_range in _ROLLING_WINDOW_DAYS:
        days = _ROLLING_WINDOW_DAYS[date_range]
        return DateWindow(local_midnight(today - timedelta(days=days - 1), zone), current)
    if date_range == "mtd":
        return DateWindow(local_midnight(today.replace(day=1), zone), current)
    if date_range == "qtd":
        quarter_month = (today.month - 1) // 3 * 3 + 1
        return DateWindow(local_midnight(date(today.year, quarter_month, 1), zone), current)
    if date_range == "custom" and filters.custom_start_date and filters.custom_end_date:
        start_day = parse_calendar_date(filters.custom_start_date)
        end_day = parse_calendar_date(filters.custom_end_date)
        if start_day is None or end_day is None:
            return DateWindow(None, None)
        end = datetime.combine(end_day, time.max).replace(tzinfo=zone)
        return DateWindow(local_midnight(start_day, zone), end)
    return None


def matches_categories(ticket: Ticket, filters: FilterSelection) -> bool:
    """Conjunction of the priority, status, region, group and assignee predicates."""
    if filters.priority != ALL and ticket.priority.lower() != filters.priority.lower():
        return False
    if filters.ticket_status == "open" and is_terminal_status(ticket.status):
        return False
    if filters.ticket_status == "closed" and not is_terminal_status(ticket.status):
        return False
    if filters.region != ALL and ticket.region != filters.region:
        return False
    if filters.assignment_group != ALL and ticket.assignment_group != filters.assignment_group:
        return False
    if filters.assigned_to != ALL and ticket.assignee != filters.assigned_to:
        return False
    return True


def filter_tickets(
    tickets: Iterable[Ticket],
    filters: FilterSelection,
    *,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> List[Ticket]:
    """Return the tickets that satisfy every active predicate of ``filters``.

    Tickets whose ``created`` value cannot be parsed drop out as soon as a
    date window is active.
    """
    filtered = [ticket for ticket in tickets if matches_categories(ticket, filters)]
    if filters.date_range == ALL:
        return filtered

    window = resolve_date_window(filters, now=now, tz=tz)
    if window is None:
        return filtered

    result: List[Ticket] = []
    for ticket in filtered:
        created = parse_timestamp(ticket.created, tz)
        if created is not None and window.contains(created):
            result.append(ticket)
    LOGGER.debug(
        "Date range %s kept %s of %s tickets", filters.date_range, len(result), len(filtered)
    )
    return result
