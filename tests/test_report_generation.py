from __future__ import annotations

from datetime import datetime, timezone
import json
from pathlib import Path
import sys

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from itsm_dashboard.filters import FilterSelection
from itsm_dashboard.report_generation import (
    DashboardReportBuilder,
    render_html,
    render_pdf,
    save_metrics_json,
)
from itsm_dashboard.tickets import Ticket

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)
UTC = timezone.utc


def _make_ticket(**overrides):
    base = {
        "ticket_id": "INC1",
        "title": "Badge reader offline",
        "priority": "P2",
        "status": "New",
        "assignee": "Jane Doe",
        "created": "2024-03-14 09:00:00",
        "age": 1,
        "assignment_group": "Facilities",
        "region": "na",
        "business_unit": "Operations",
        "sla_status": "met",
    }
    base.update(overrides)
    return Ticket(**base)


def _tickets():
    return [
        _make_ticket(ticket_id="INC1"),
        _make_ticket(
            ticket_id="INC2",
            status="Resolved",
            resolved_hours=6.0,
            resolved_at="2024-03-12 15:00:00",
            resolver="Sam Lee",
            created="2024-03-12 09:00:00",
        ),
        _make_ticket(ticket_id="INC3", priority="P1", created="2024-03-12 10:00:00", region="emea"),
        # Previous seven-day period only.
        _make_ticket(ticket_id="INC4", created="2024-03-05 09:00:00"),
    ]


def _builder(**filters):
    return DashboardReportBuilder(_tickets(), FilterSelection(**filters), now=NOW, tz=UTC)


def test_builder_applies_filters_before_aggregating():
    builder = _builder(date_range="7d", priority="P2")
    assert [t.ticket_id for t in builder.tickets] == ["INC1", "INC2"]
    metrics = builder.build()
    assert metrics["ticket_count"] == 2
    assert metrics["kpis"]["totalTickets"] == 2
    assert metrics["kpis"]["backlogTickets"] == 1
    assert metrics["kpis"]["mttr"] == "6.0"
    assert set(metrics) == {
        "generated_at",
        "filters",
        "filter_summary",
        "ticket_count",
        "kpis",
        "kpi_trends",
        "series",
        "breakdowns",
    }


def test_kpi_trends_compare_against_previous_period():
    trends = _builder(date_range="7d").kpi_trends()
    assert trends["totalTickets"]["value"] == 200.0
    assert trends["totalTickets"]["direction"] == "up"
    assert trends["totalTickets"]["improving"] is True
    assert trends["backlogTickets"]["improving"] is False
    assert trends["totalTickets"]["label"] == "vs previous 7 days"
    assert trends["slaMetRate"]["improving"] is None


def test_all_time_selection_has_no_trends():
    assert _builder().kpi_trends() == {}


def test_series_and_breakdowns_are_plain_dicts():
    builder = _builder(date_range="7d")
    series = builder.series()
    assert [point["fullDate"] for point in series["ticket_inflow"]] == ["2024-03-12", "2024-03-14"]
    assert series["mttr"] == [{"date": "Mar 12, 2024", "fullDate": "2024-03-12", "value": 6.0}]
    assert len(series["reopen_rate"]) == 4

    tables = builder.breakdowns()
    assert tables["backlog_by_group"] == [{"group": "Facilities", "tickets": 2}]
    assert tables["lead_resolvers"] == [{"name": "Sam Lee", "count": 1, "shortName": "SL"}]
    assert tables["region_distribution"] == [
        {"name": "NA", "value": 2},
        {"name": "EMEA", "value": 1},
    ]


def test_render_html_and_json(tmp_path):
    metrics = _builder(date_range="7d").build()
    html_path = tmp_path / "report.html"
    render_html(metrics, html_path)
    html = html_path.read_text(encoding="utf-8")
    assert "ITSM Dashboard Report" in html
    assert "vs previous 7 days" in html
    assert "Sam Lee" in html

    json_path = tmp_path / "metrics.json"
    save_metrics_json(metrics, json_path)
    data = json.loads(json_path.read_text(encoding="utf-8"))
    assert data["kpis"]["totalTickets"] == 3
    assert data["filter_summary"][0] == ["Date Range", "7d"]


def test_render_pdf_writes_document(tmp_path):
    metrics = _builder().build()
    path = tmp_path / "report.pdf"
    render_pdf(metrics, path)
    assert path.read_bytes().startswith(b"%PDF")


def test_render_html_escapes_export_text(tmp_path):
    tickets = [_make_ticket(assignee="<script>alert(1)</script>", assignment_group="R&D")]
    metrics = DashboardReportBuilder(tickets, now=NOW, tz=UTC).build()
    path = tmp_path / "report.html"
    render_html(metrics, path)
    html = path.read_text(encoding="utf-8")
    assert "<script>" not in html
    assert "&lt;script&gt;alert(1)&lt;/script&gt;" in html
    assert "R&amp;D" in html
