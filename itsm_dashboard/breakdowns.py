"""Grouped breakdowns of a ticket subset for bar, pie and table views."""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import asdict, dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .tickets import PRIORITIES, SLA_THRESHOLD_HOURS, Ticket, format_fixed, round_fixed

LOGGER = logging.getLogger(__name__)

PRIORITY_LABELS: Dict[str, str] = {
    "P1": "P1 Critical",
    "P2": "P2 High",
    "P3": "P3 Moderate",
    "P4": "P4 Low",
}

REGION_ORDER: Tuple[str, ...] = ("NA", "EMEA", "APAC", "LATAM", "Other")

AGEING_BUCKETS: Tuple[Tuple[str, int, Optional[int]], ...] = (
    ("0-2 days", 0, 2),
    ("3-7 days", 3, 7),
    ("8-15 days", 8, 15),
    ("16-30 days", 16, 30),
    (">30 days", 31, None),
)

SLA_RISK_AT_RISK = "at_risk"
SLA_RISK_CRITICAL = "critical"
SLA_RISK_LEVELS = (SLA_RISK_AT_RISK, SLA_RISK_CRITICAL)

_RISK_FRACTION = 0.8
_CRITICAL_FRACTION = 0.9


def _sort_by_count(rows: Iterable, attribute: str) -> List:
    # sorted() is stable, so ties keep first-seen order even with reverse=True.
    return sorted(rows, key=lambda row: getattr(row, attribute), reverse=True)


def _open(tickets: Iterable[Ticket]) -> List[Ticket]:
    return [ticket for ticket in tickets if ticket.is_open]


# -- Backlog views ----------------------------------------------------------


@dataclass(frozen=True)
class AssigneeBacklog:
    name: str
    group: str
    backlog: int
    ageing: str

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


def backlog_by_assignee(tickets: Iterable[Ticket], limit: Optional[int] = 10) -> List[AssigneeBacklog]:
    """Open tickets per assignee with a ``<3d/3-7d/>=7d`` age histogram."""
    groups: Dict[str, str] = {}
    counts: Counter[str] = Counter()
    ageing: Dict[str, List[int]] = {}
    for ticket in _open(tickets):
        name = ticket.assignee
        if name not in groups:
            groups[name] = ticket.assignment_group
            ageing[name] = [0, 0, 0]
        counts[name] += 1
        age = ticket.age or 0
        if age < 3:
            ageing[name][0] += 1
        elif age < 7:
            ageing[name][1] += 1
        else:
            ageing[name][2] += 1

    rows = [
        AssigneeBacklog(
            name=name,
            group=group,
            backlog=counts[name],
            ageing="/".join(str(value) for value in ageing[name]),
        )
        for name, group in groups.items()
    ]
    ranked = _sort_by_count(rows, "backlog")
    return ranked[:limit] if limit is not None else ranked


@dataclass(frozen=True)
class GroupCount:
    group: str
    tickets: int

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


def tickets_by_group(tickets: Iterable[Ticket], limit: Optional[int] = None) -> List[GroupCount]:
    counts: Counter[str] = Counter()
    for ticket in tickets:
        if ticket.assignment_group:
            counts[ticket.assignment_group] += 1
    ranked = _sort_by_count((GroupCount(group, count) for group, count in counts.items()), "tickets")
    return ranked[:limit] if limit is not None else ranked


@dataclass(frozen=True)
class AgeingBucket:
    bucket: str
    p1: int
    p2: int
    p3: int
    p4: int

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


def _in_bucket(age: int, low: int, high: Optional[int]) -> bool:
    return age >= low and (high is None or age <= high)


def ageing_buckets(tickets: Iterable[Ticket]) -> List[AgeingBucket]:
    """Open tickets per age bucket, split by priority."""
    open_tickets = _open(tickets)
    result = []
    for label, low, high in AGEING_BUCKETS:
        counts = Counter(
            ticket.priority for ticket in open_tickets if _in_bucket(ticket.age or 0, low, high)
        )
        result.append(AgeingBucket(label, counts["P1"], counts["P2"], counts["P3"], counts["P4"]))
    return result


# -- Priority and SLA views -------------------------------------------------


@dataclass(frozen=True)
class PriorityCount:
    priority: str
    label: str
    count: int

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


def tickets_by_priority(tickets: Iterable[Ticket]) -> List[PriorityCount]:
    counts = Counter(ticket.priority for ticket in tickets)
    return [PriorityCount(p, PRIORITY_LABELS[p], counts[p]) for p in PRIORITIES]


@dataclass(frozen=True)
class PriorityMTTR:
    priority: str
    hours: float

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


def mttr_by_priority(tickets: Sequence[Ticket]) -> List[PriorityMTTR]:
    rows = []
    for priority in PRIORITIES:
        hours = [
            t.resolved_hours
            for t in tickets
            if t.priority == priority and t.resolved_hours is not None
        ]
        average = round_fixed(sum(hours) / len(hours), 1) if hours else 0.0
        rows.append(PriorityMTTR(priority, average))
    return rows


@dataclass(frozen=True)
class SLATrackingRow:
    priority: str
    met: int
    breached: int
    met_rate: str

    def to_dict(self) -> Dict[str, object]:
        return {
            "priority": self.priority,
            "met": self.met,
            "breached": self.breached,
            "metRate": self.met_rate,
        }


def sla_tracking(tickets: Sequence[Ticket]) -> List[SLATrackingRow]:
    """Met/breached counts per priority, P1 first."""
    rows = []
    for priority in PRIORITIES:
        subset = [ticket for ticket in tickets if ticket.priority == priority]
        met = sum(1 for ticket in subset if ticket.sla_status == "met")
        breached = sum(1 for ticket in subset if ticket.sla_status == "breached")
        met_rate = format_fixed(met / len(subset) * 100, 1) if subset else "0.0"
        rows.append(SLATrackingRow(priority, met, breached, met_rate))
    return rows


def age_hours(ticket: Ticket) -> int:
    # Day-granularity age scaled to hours; intraday precision is not available here.
    return (ticket.age or 0) * 24


def classify_sla_risk(
    ticket: Ticket, thresholds: Mapping[str, float] = SLA_THRESHOLD_HOURS
) -> Optional[str]:
    """``"at_risk"`` in [80%, 90%) of the SLA, ``"critical"`` in [90%, 100%), else ``None``.

    Closed tickets and tickets already past their threshold are not at risk.
    """
    if not ticket.is_open:
        return None
    hours = age_hours(ticket)
    threshold = thresholds[ticket.priority]
    if threshold * _CRITICAL_FRACTION <= hours < threshold:
        return SLA_RISK_CRITICAL
    if threshold * _RISK_FRACTION <= hours < threshold * _CRITICAL_FRACTION:
        return SLA_RISK_AT_RISK
    return None


@dataclass(frozen=True)
class SLARiskRow:
    priority: str
    label: str
    at_risk: int
    critical: int
    total: int

    def to_dict(self) -> Dict[str, object]:
        return {
            "priority": self.label,
            "priorityKey": self.priority,
            "atRisk": self.at_risk,
            "critical": self.critical,
            "total": self.total,
        }


def sla_breach_risk(
    tickets: Sequence[Ticket], thresholds: Mapping[str, float] = SLA_THRESHOLD_HOURS
) -> List[SLARiskRow]:
    rows = []
    for priority in PRIORITIES:
        levels = Counter(
            classify_sla_risk(ticket, thresholds) for ticket in tickets if ticket.priority == priority
        )
        at_risk = levels[SLA_RISK_AT_RISK]
        critical = levels[SLA_RISK_CRITICAL]
        rows.append(SLARiskRow(priority, PRIORITY_LABELS[priority], at_risk, critical, at_risk + critical))
    return rows


def sla_risk_tickets(
    tickets: Iterable[Ticket],
    priority: str,
    level: str,
    thresholds: Mapping[str, float] = SLA_THRESHOLD_HOURS,
) -> List[Dict[str, object]]:
    """Drill-down rows for one priority and risk level."""
    if level not in SLA_RISK_LEVELS:
        raise ValueError(f"Unknown SLA risk level {level!r}; expected one of {SLA_RISK_LEVELS}")
    rows = []
    for ticket in tickets:
        if ticket.priority != priority or classify_sla_risk(ticket, thresholds) != level:
            continue
        remaining = max(0.0, thresholds[ticket.priority] - age_hours(ticket))
        rows.append(
            {
                "ticketId": ticket.ticket_id,
                "title": ticket.title,
                "priority": ticket.priority,
                "status": ticket.status,
                "assignee": ticket.assignee,
                "created": ticket.created,
                "age": ticket.age_label,
                "hoursRemaining": f"{format_fixed(remaining, 1)}h",
                "riskLevel": "Critical" if level == SLA_RISK_CRITICAL else "At Risk",
            }
        )
    return rows


# -- Distribution views -----------------------------------------------------


@dataclass(frozen=True)
class NamedCount:
    name: str
    value: int

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


def region_distribution(tickets: Iterable[Ticket]) -> List[NamedCount]:
    """Tickets per region in a fixed order; empty regions are left out."""
    counts: Counter[str] = Counter()
    for ticket in tickets:
        name = ticket.region.upper()
        counts[name if name in REGION_ORDER else "Other"] += 1
    return [NamedCount(name, counts[name]) for name in REGION_ORDER if counts[name] > 0]


def status_split(tickets: Sequence[Ticket]) -> List[NamedCount]:
    open_count = sum(1 for ticket in tickets if ticket.is_open)
    return [NamedCount("Open", open_count), NamedCount("Closed", len(tickets) - open_count)]


@dataclass(frozen=True)
class ResolverCount:
    name: str
    count: int
    short_name: str

    def to_dict(self) -> Dict[str, object]:
        return {"name": self.name, "count": self.count, "shortName": self.short_name}


def _initials(name: str) -> str:
    initials = "".join(part[0] for part in name.split(" ")[:2] if part)
    return initials or name[:2]


def lead_resolvers(tickets: Iterable[Ticket], limit: Optional[int] = 5) -> List[ResolverCount]:
    counts: Counter[str] = Counter(ticket.resolver for ticket in tickets if ticket.resolver)
    ranked = _sort_by_count(
        (ResolverCount(name, count, _initials(name)) for name, count in counts.items()), "count"
    )
    return ranked[:limit] if limit is not None else ranked
