"""Drill-down subsets and the searchable, sortable, paged ticket table."""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from functools import cmp_to_key
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .tickets import Ticket

LOGGER = logging.getLogger(__name__)

PAGE_SIZES: Tuple[int, ...] = (20, 50, 100, 250)
DEFAULT_PAGE_SIZE = 50

DRILLDOWN_COLUMNS: Tuple[Tuple[str, str], ...] = (
    ("ticketId", "Ticket ID"),
    ("title", "Title"),
    ("priority", "Priority"),
    ("status", "Status"),
    ("assignee", "Assignee"),
    ("created", "Created"),
)

_NON_NUMERIC = re.compile(r"[^0-9.\-]")
_NATURAL_CHUNKS = re.compile(r"(\d+)")


def _match_status(ticket: Ticket, value: str) -> bool:
    wanted = value.lower()
    if wanted == "open":
        return ticket.is_open
    if wanted == "closed":
        return not ticket.is_open
    return ticket.status == value


_DIMENSIONS: Dict[str, Callable[[Ticket, str], bool]] = {
    "priority": lambda ticket, value: ticket.priority == value,
    "status": _match_status,
    "region": lambda ticket, value: ticket.region.upper() == value.upper(),
    "assignment_group": lambda ticket, value: ticket.assignment_group == value,
    "assignee": lambda ticket, value: ticket.assignee == value,
    "resolver": lambda ticket, value: ticket.resolver == value,
}

DRILLDOWN_DIMENSIONS: Tuple[str, ...] = tuple(_DIMENSIONS)


def drill_down(
    tickets: Iterable[Ticket],
    dimension: str,
    value: str,
    *,
    open_only: bool = False,
    resolved_only: bool = False,
) -> List[Ticket]:
    """Tickets behind one clicked chart segment.

    ``open_only`` mirrors the backlog charts and ``resolved_only`` the MTTR
    charts, whose segments only ever counted those tickets.
    """
    try:
        predicate = _DIMENSIONS[dimension]
    except KeyError:
        raise ValueError(
            f"Unknown drill-down dimension {dimension!r}; expected one of {DRILLDOWN_DIMENSIONS}"
        ) from None
    selected = []
    for ticket in tickets:
        if open_only and not ticket.is_open:
            continue
        if resolved_only and ticket.resolved_hours is None:
            continue
        if predicate(ticket, value):
            selected.append(ticket)
    return selected


def drilldown_rows(tickets: Iterable[Ticket]) -> List[Dict[str, Any]]:
    return [
        {
            "ticketId": ticket.ticket_id,
            "title": ticket.title,
            "priority": ticket.priority,
            "status": ticket.status,
            "assignee": ticket.assignee,
            "created": ticket.created,
        }
        for ticket in tickets
    ]


# -- Table state ------------------------------------------------------------


@dataclass(frozen=True)
class TableQuery:
    search: str = ""
    sort_key: Optional[str] = None
    sort_direction: str = "asc"
    page: int = 0
    page_size: int = DEFAULT_PAGE_SIZE

    def __post_init__(self) -> None:
        if self.sort_direction not in ("asc", "desc"):
            raise ValueError(f"sort_direction must be 'asc' or 'desc', got {self.sort_direction!r}")
        if self.page_size not in PAGE_SIZES:
            raise ValueError(f"page_size must be one of {PAGE_SIZES}, got {self.page_size!r}")


@dataclass(frozen=True)
class TablePage:
    rows: List[Mapping[str, Any]]
    total_records: int
    total_pages: int
    page: int
    start_index: int
    end_index: int

    @property
    def summary(self) -> str:
        if not self.total_records:
            return "0 records found"
        noun = "record" if self.total_records == 1 else "records"
        return (
            f"{self.total_records} {noun} found - Showing {self.start_index + 1}-{self.end_index}"
        )


def _numeric(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        digits = _NON_NUMERIC.sub("", str(value))
        if not digits:
            return None
        try:
            number = float(digits)
        except ValueError:
            return None
    return number if math.isfinite(number) else None


def _natural_key(value: Any) -> Tuple[Tuple[int, int, str], ...]:
    parts = _NATURAL_CHUNKS.split(str(value).casefold())
    return tuple(
        (0, int(part), "") if part.isdigit() else (1, 0, part) for part in parts if part
    )


def _compare(left: Any, right: Any) -> int:
    left_number = _numeric(left)
    right_number = _numeric(right)
    if left_number is not None and right_number is not None:
        return (left_number > right_number) - (left_number < right_number)
    left_key = _natural_key(left)
    right_key = _natural_key(right)
    return (left_key > right_key) - (left_key < right_key)


def _matches_search(row: Mapping[str, Any], columns: Sequence[str], needle: str) -> bool:
    for column in columns:
        value = row.get(column)
        if value is not None and needle in str(value).lower():
            return True
    return False


def query_table(
    rows: Sequence[Mapping[str, Any]],
    columns: Sequence[str],
    query: TableQuery = TableQuery(),
) -> TablePage:
    """Search, sort and paginate drill-down rows.

    Rows missing the sort column always land at the end. A page past the
    last one falls back to the first page.
    """
    needle = query.search.strip().lower()
    matched = [row for row in rows if _matches_search(row, columns, needle)] if needle else list(rows)

    if query.sort_key:
        key = query.sort_key
        present = [row for row in matched if row.get(key) is not None]
        missing = [row for row in matched if row.get(key) is None]
        present = sorted(
            present,
            key=cmp_to_key(lambda a, b: _compare(a[key], b[key])),
            reverse=query.sort_direction == "desc",
        )
        matched = present + missing

    total = len(matched)
    total_pages = max(1, math.ceil(total / query.page_size))
    page = query.page if 0 <= query.page < total_pages else 0
    start = page * query.page_size
    end = min(total, start + query.page_size)
    LOGGER.debug("Table query %r matched %s rows, page %s of %s", needle, total, page + 1, total_pages)
    return TablePage(matched[start:end], total, total_pages, page, start, end)
