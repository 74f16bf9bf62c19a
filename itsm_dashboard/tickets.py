"""Canonical ticket model and normalisation of raw incident export records."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, tzinfo
from decimal import ROUND_HALF_UP, Decimal, localcontext
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from dateutil import parser as date_parser
from dateutil import tz as date_tz

LOGGER = logging.getLogger(__name__)

PRIORITIES: Tuple[str, ...] = ("P1", "P2", "P3", "P4")
REGIONS: Tuple[str, ...] = ("na", "emea", "apac", "latam", "Other")
TERMINAL_STATUSES = frozenset({"Resolved", "Closed"})

SLA_THRESHOLD_HOURS: Dict[str, float] = {
    "P1": 4.0,
    "P2": 8.0,
    "P3": 24.0,
    "P4": 48.0,
}

UNASSIGNED = "Unassigned"
DEFAULT_BUSINESS_UNIT = "Other"

_LATAM_COUNTRIES = ("mexico", "brazil", "argentina", "colombia")
_SECONDS_PER_DAY = 86400.0

# Spreadsheet export header -> camelCase alias used by JSON exports.
RAW_FIELD_ALIASES: Dict[str, str] = {
    "Number": "number",
    "Short description": "shortDescription",
    "Assignment Group": "assignmentGroup",
    "Assigned to": "assignedTo",
    "State": "state",
    "Priority": "priority",
    "Region": "region",
    "Business Owner Country": "businessOwnerCountry",
    "Business Unit (Division)": "businessUnitDivision",
    "Resolve time": "resolveTime",
    "Resolved": "resolved",
    "Resolved by": "resolvedBy",
    "Opened": "opened",
    "Created": "created",
    "Closed": "closed",
    "Reopen count": "reopenCount",
    "Reassignment count": "reassignmentCount",
}


def format_fixed(value: float, digits: int) -> str:
    """Format ``value`` with ``digits`` decimals, rounding halves away from zero.

    The float is converted exactly, so ``0.25`` becomes ``"0.3"`` while
    ``1.005`` (stored as 1.00499...) stays ``"1.00"``.
    """
    exact = Decimal(value)
    quantum = Decimal(1).scaleb(-digits)
    with localcontext() as context:
        # Enough digits for the integer part plus the requested decimals.
        context.prec = max(context.prec, exact.adjusted() + digits + 2)
        return str(exact.quantize(quantum, rounding=ROUND_HALF_UP))


def round_fixed(value: float, digits: int) -> float:
    return float(format_fixed(value, digits))


def coerce_number(value: Any) -> Optional[float]:
    """Return a finite float for numeric or numeric-string input, else ``None``."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def parse_timestamp(value: Any, tz: Optional[tzinfo] = None) -> Optional[datetime]:
    """Parse an ISO-style timestamp such as ``2024-03-01 10:00:00``.

    Partial values (a bare time, a weekday name) are rejected rather than
    completed from the current date.

    Naive values are interpreted in ``tz`` (the machine's local zone when not
    supplied). Blank or unparseable values return ``None``.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            parsed = date_parser.isoparse(text)
        except (ValueError, OverflowError):
            LOGGER.debug("Unable to parse timestamp %r", value)
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz or date_tz.tzlocal())
    return parsed


def ensure_aware(value: Optional[datetime], tz: Optional[tzinfo] = None) -> datetime:
    """Return ``value`` (default: the current time) as a timezone-aware datetime."""
    zone = tz or date_tz.tzlocal()
    if value is None:
        return datetime.now(tz=zone)
    if value.tzinfo is None:
        return value.replace(tzinfo=zone)
    return value


def map_priority(raw: Any) -> str:
    text = str(raw or "")
    if text.startswith("1"):
        return "P1"
    if text.startswith("2"):
        return "P2"
    if text.startswith("3"):
        return "P3"
    return "P4"


def extract_region(region: Any, country: Any = "") -> str:
    """Classify a ticket into one of :data:`REGIONS`.

    LATAM is decided first, from the region text or a LATAM country name, so
    that Latin American countries never fall through to the ``america`` check.
    """
    region_lower = str(region or "").lower()
    country_lower = str(country or "").lower()

    if "latam" in region_lower or any(name in country_lower for name in _LATAM_COUNTRIES):
        return "latam"
    if "europe" in region_lower or "emea" in region_lower:
        return "emea"
    if "asia" in region_lower or "apac" in region_lower or "amea" in region_lower:
        return "apac"
    if "america" in region_lower or "na" in region_lower:
        return "na"
    return "Other"


def is_terminal_status(status: Optional[str]) -> bool:
    return status in TERMINAL_STATUSES


def calculate_age(
    created: Any,
    resolved: Any = None,
    *,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> Optional[int]:
    """Whole days between creation and resolution (or ``now`` when unresolved)."""
    created_at = parse_timestamp(created, tz)
    if created_at is None:
        return None
    if resolved not in (None, ""):
        end = parse_timestamp(resolved, tz)
        if end is None:
            return None
    else:
        end = ensure_aware(now, tz)
    delta = abs((end - created_at).total_seconds())
    return int(delta // _SECONDS_PER_DAY)


def classify_sla(priority: str, resolved_hours: Optional[float]) -> str:
    if resolved_hours is None:
        return "met"
    return "breached" if resolved_hours > SLA_THRESHOLD_HOURS[priority] else "met"


@dataclass(frozen=True)
class Ticket:
    """Canonical, read-only view of one incident."""

    ticket_id: str
    title: str
    priority: str
    status: str
    assignee: str
    created: str
    age: Optional[int]
    assignment_group: str
    region: str
    business_unit: str
    sla_status: str
    resolved_hours: Optional[float] = None
    resolved_at: Optional[str] = None
    resolver: Optional[str] = None
    reopen_count: Optional[float] = None
    reassignment_count: Optional[float] = None

    @property
    def resolved(self) -> Optional[str]:
        if self.resolved_hours is None:
            return None
        return f"{format_fixed(self.resolved_hours, 1)} hrs"

    @property
    def is_open(self) -> bool:
        return not is_terminal_status(self.status)

    @property
    def age_label(self) -> str:
        return f"{self.age}d" if self.age is not None else ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ticketId": self.ticket_id,
            "title": self.title,
            "priority": self.priority,
            "status": self.status,
            "assignee": self.assignee,
            "created": self.created,
            "age": self.age_label,
            "assignmentGroup": self.assignment_group,
            "region": self.region,
            "businessUnit": self.business_unit,
            "resolved": self.resolved,
            "resolvedAt": self.resolved_at,
            "resolver": self.resolver,
            "slaStatus": self.sla_status,
            "reopenCount": _plain_number(self.reopen_count),
            "reassignmentCount": _plain_number(self.reassignment_count),
        }


class ReopenSource(str, Enum):
    COUNTER = "counter"
    TEXT = "text"


@dataclass(frozen=True)
class ReopenSignal:
    reopened: bool
    source: ReopenSource


def reopen_signal(ticket: Ticket) -> ReopenSignal:
    """Decide whether a ticket was reopened.

    The structured ``reopen_count`` wins when the export carried one. Records
    without a counter fall back to looking for "reopen"/"re-open" in the
    title, or "reopen" in the status.
    """
    if ticket.reopen_count is not None:
        return ReopenSignal(ticket.reopen_count > 0, ReopenSource.COUNTER)
    title = (ticket.title or "").lower()
    status = (ticket.status or "").lower()
    reopened = "reopen" in title or "re-open" in title or "reopen" in status
    return ReopenSignal(reopened, ReopenSource.TEXT)


def is_reopened(ticket: Ticket) -> bool:
    return reopen_signal(ticket).reopened


def _plain_number(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    return int(value) if float(value).is_integer() else value


def _field(raw: Mapping[str, Any], header: str) -> Any:
    if header in raw:
        return raw[header]
    return raw.get(RAW_FIELD_ALIASES.get(header, header))


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def normalize(
    raw: Mapping[str, Any],
    *,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> Ticket:
    """Map a raw export record onto a :class:`Ticket`. Never raises for bad values."""
    priority = map_priority(_field(raw, "Priority"))

    resolve_seconds = coerce_number(_field(raw, "Resolve time"))
    resolved_hours = round_fixed(resolve_seconds / 3600, 1) if resolve_seconds else None

    created = _field(raw, "Opened")
    if created in (None, ""):
        created = _field(raw, "Created")
    resolved_at = _field(raw, "Resolved")
    resolver = _field(raw, "Resolved by")

    return Ticket(
        ticket_id=_text(_field(raw, "Number")),
        title=_text(_field(raw, "Short description")),
        priority=priority,
        status=_text(_field(raw, "State")),
        assignee=_text(_field(raw, "Assigned to")) or UNASSIGNED,
        created=_text(created),
        age=calculate_age(created, resolved_at, now=now, tz=tz),
        assignment_group=_text(_field(raw, "Assignment Group")) or UNASSIGNED,
        region=extract_region(_field(raw, "Region"), _field(raw, "Business Owner Country")),
        business_unit=_text(_field(raw, "Business Unit (Division)")) or DEFAULT_BUSINESS_UNIT,
        sla_status=classify_sla(priority, resolved_hours),
        resolved_hours=resolved_hours,
        resolved_at=_text(resolved_at) or None,
        resolver=_text(resolver) or None,
        reopen_count=coerce_number(_field(raw, "Reopen count")),
        reassignment_count=coerce_number(_field(raw, "Reassignment count")),
    )
