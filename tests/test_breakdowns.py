from __future__ import annotations

from pathlib import Path
import sys

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from itsm_dashboard.breakdowns import (
    ageing_buckets,
    backlog_by_assignee,
    classify_sla_risk,
    lead_resolvers,
    mttr_by_priority,
    region_distribution,
    sla_breach_risk,
    sla_risk_tickets,
    sla_tracking,
    status_split,
    tickets_by_group,
    tickets_by_priority,
)
from itsm_dashboard.tickets import Ticket


def _make_ticket(**overrides):
    base = {
        "ticket_id": "INC1",
        "title": "Teams audio issue",
        "priority": "P3",
        "status": "New",
        "assignee": "Jane Doe",
        "created": "2024-03-10 09:00:00",
        "age": 1,
        "assignment_group": "Service Desk",
        "region": "na",
        "business_unit": "Finance",
        "sla_status": "met",
    }
    base.update(overrides)
    return Ticket(**base)


def test_backlog_by_assignee_histogram_and_stable_ties():
    tickets = [
        _make_ticket(assignee="Ann", age=1),
        _make_ticket(assignee="Bob", age=4),
        _make_ticket(assignee="Ann", age=9),
        _make_ticket(assignee="Cy", age=2),
        _make_ticket(assignee="Bob", age=None),
        _make_ticket(assignee="Dee", status="Closed"),
    ]
    rows = backlog_by_assignee(tickets)
    assert [(r.name, r.backlog, r.ageing) for r in rows] == [
        ("Ann", 2, "1/0/1"),
        ("Bob", 2, "1/1/0"),
        ("Cy", 1, "1/0/0"),
    ]


def test_backlog_by_assignee_caps_at_limit():
    tickets = [_make_ticket(assignee=f"Agent {i}") for i in range(15)]
    assert len(backlog_by_assignee(tickets)) == 10
    assert len(backlog_by_assignee(tickets, limit=None)) == 15


def test_tickets_by_group_descending():
    tickets = [
        _make_ticket(assignment_group="Network"),
        _make_ticket(assignment_group="Desk"),
        _make_ticket(assignment_group="Desk"),
        _make_ticket(assignment_group="Apps"),
    ]
    assert [(g.group, g.tickets) for g in tickets_by_group(tickets)] == [
        ("Desk", 2),
        ("Network", 1),
        ("Apps", 1),
    ]
    assert len(tickets_by_group(tickets, limit=1)) == 1


def test_priority_views_use_fixed_order():
    tickets = [_make_ticket(priority="P2"), _make_ticket(priority="P4"), _make_ticket(priority="P2")]
    assert [(p.priority, p.count) for p in tickets_by_priority(tickets)] == [
        ("P1", 0),
        ("P2", 2),
        ("P3", 0),
        ("P4", 1),
    ]
    assert tickets_by_priority(tickets)[0].label == "P1 Critical"


def test_sla_tracking_met_rate_per_priority():
    tickets = [
        _make_ticket(priority="P1", sla_status="met"),
        _make_ticket(priority="P1", sla_status="breached"),
        _make_ticket(priority="P1", sla_status="met"),
    ]
    rows = {row.priority: row for row in sla_tracking(tickets)}
    assert rows["P1"].met == 2
    assert rows["P1"].breached == 1
    assert rows["P1"].met_rate == "66.7"
    assert rows["P2"].to_dict() == {"priority": "P2", "met": 0, "breached": 0, "metRate": "0.0"}


def test_mttr_by_priority_ignores_unresolved():
    tickets = [
        _make_ticket(priority="P2", resolved_hours=3.0),
        _make_ticket(priority="P2", resolved_hours=4.0),
        _make_ticket(priority="P2"),
    ]
    rows = {row.priority: row.hours for row in mttr_by_priority(tickets)}
    assert rows == {"P1": 0.0, "P2": 3.5, "P3": 0.0, "P4": 0.0}


def test_ageing_buckets_split_open_tickets_by_priority():
    tickets = [
        _make_ticket(priority="P1", age=0),
        _make_ticket(priority="P4", age=3),
        _make_ticket(priority="P4", age=40),
        _make_ticket(priority="P2", age=40, status="Resolved"),
    ]
    rows = {row.bucket: row for row in ageing_buckets(tickets)}
    assert rows["0-2 days"].p1 == 1
    assert rows["3-7 days"].p4 == 1
    assert rows[">30 days"].p4 == 1
    assert rows[">30 days"].p2 == 0


def test_sla_risk_classification_bands():
    thresholds = {"P1": 4.0, "P2": 8.0, "P3": 24.0, "P4": 50.0}
    critical = _make_ticket(priority="P4", age=2)
    assert classify_sla_risk(critical, thresholds) == "critical"

    at_risk = {"P1": 4.0, "P2": 8.0, "P3": 24.0, "P4": 60.0}
    assert classify_sla_risk(critical, at_risk) == "at_risk"

    closed = _make_ticket(priority="P4", age=2, status="Closed")
    assert classify_sla_risk(closed, thresholds) is None

    already_breached = _make_ticket(priority="P3", age=1)
    assert classify_sla_risk(already_breached) is None


def test_sla_breach_risk_rows_and_drilldown():
    thresholds = {"P1": 4.0, "P2": 8.0, "P3": 24.0, "P4": 50.0}
    tickets = [
        _make_ticket(ticket_id="A", priority="P4", age=2),
        _make_ticket(ticket_id="B", priority="P4", age=0),
    ]
    rows = {row.priority: row for row in sla_breach_risk(tickets, thresholds)}
    assert rows["P4"].to_dict() == {
        "priority": "P4 Low",
        "priorityKey": "P4",
        "atRisk": 0,
        "critical": 1,
        "total": 1,
    }
    detail = sla_risk_tickets(tickets, "P4", "critical", thresholds)
    assert [row["ticketId"] for row in detail] == ["A"]
    assert detail[0]["hoursRemaining"] == "2.0h"
    assert detail[0]["riskLevel"] == "Critical"
    with pytest.raises(ValueError):
        sla_risk_tickets(tickets, "P4", "soon")


def test_region_distribution_skips_empty_regions():
    tickets = [
        _make_ticket(region="emea"),
        _make_ticket(region="na"),
        _make_ticket(region="emea"),
        _make_ticket(region="Other"),
    ]
    assert [(r.name, r.value) for r in region_distribution(tickets)] == [
        ("NA", 1),
        ("EMEA", 2),
        ("Other", 1),
    ]


def test_status_split_and_lead_resolvers():
    tickets = [
        _make_ticket(status="Resolved", resolver="Sam Lee"),
        _make_ticket(status="Closed", resolver="Ana"),
        _make_ticket(status="Resolved", resolver="Sam Lee"),
        _make_ticket(status="New"),
    ]
    assert [(s.name, s.value) for s in status_split(tickets)] == [("Open", 1), ("Closed", 3)]
    leaders = lead_resolvers(tickets)
    assert [leader.to_dict() for leader in leaders] == [
        {"name": "Sam Lee", "count": 2, "shortName": "SL"},
        {"name": "Ana", "count": 1, "shortName": "A"},
    ]
