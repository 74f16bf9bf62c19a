"""Dashboard report assembly and HTML, PDF, chart and JSON rendering."""
from __future__ import annotations

import json
import logging
from datetime import datetime, tzinfo
from enum import Enum
from importlib import import_module
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from fpdf import FPDF
from fpdf.enums import XPos, YPos
from jinja2 import Template

from . import breakdowns, timeseries
from .filters import FilterSelection, filter_tickets
from .kpis import KPI_HIGHER_IS_BETTER, calculate_kpis, compare_kpis, previous_period_tickets, trend_window
from .reporting import format_filter_summary
from .tickets import Ticket, ensure_aware

LOGGER = logging.getLogger(__name__)

KPI_LABELS: Dict[str, str] = {
    "totalTickets": "Total Tickets",
    "backlogTickets": "Backlog Tickets",
    "slaMetRate": "SLA Met %",
    "mttr": "MTTR (hrs)",
    "reopenRate": "Re-open Rate %",
    "highHopTickets": "High-Hop Tickets",
}


class DashboardReportBuilder:
    """Compute every dashboard figure for one filter selection.

    ``tickets`` is the whole dataset; the builder applies ``filters`` itself
    because the KPI trends need the tickets of the preceding period too.
    """

    def __init__(
        self,
        tickets: Sequence[Ticket],
        filters: Optional[FilterSelection] = None,
        *,
        now: Optional[datetime] = None,
        tz: Optional[tzinfo] = None,
        top_assignees: int = 10,
        top_groups: Optional[int] = 10,
        top_resolvers: int = 5,
    ) -> None:
        self.all_tickets = list(tickets)
        self.filters = filters or FilterSelection()
        self.tz = tz
        self.now = ensure_aware(now, tz)
        self.top_assignees = top_assignees
        self.top_groups = top_groups
        self.top_resolvers = top_resolvers
        self.tickets = filter_tickets(self.all_tickets, self.filters, now=self.now, tz=tz)
        LOGGER.debug(
            "Filters %s selected %s of %s tickets",
            self.filters.to_dict(),
            len(self.tickets),
            len(self.all_tickets),
        )

    # -- Headline numbers ----------------------------------------------------
    def kpis(self) -> Dict[str, Any]:
        return calculate_kpis(self.tickets).to_dict()

    def kpi_trends(self) -> Dict[str, Any]:
        window = trend_window(self.filters, now=self.now, tz=self.tz)
        if window is None:
            return {}
        previous = previous_period_tickets(self.all_tickets, self.filters, window, tz=self.tz)
        trends = compare_kpis(calculate_kpis(self.tickets), calculate_kpis(previous), window.label)
        result = {}
        for name, trend in trends.items():
            entry = trend.to_dict()
            improving = trend.direction == ("up" if KPI_HIGHER_IS_BETTER[name] else "down")
            entry["improving"] = improving if trend.direction != "neutral" else None
            result[name] = entry
        return result

    # -- Time series ---------------------------------------------------------
    def series(self) -> Dict[str, List[Dict[str, Any]]]:
        date_range = self.filters.date_range
        return {
            "ticket_inflow": [
                point.to_dict()
                for point in timeseries.ticket_inflow_trend(self.tickets, date_range, tz=self.tz)
            ],
            "backlog": [
                point.to_dict()
                for point in timeseries.backlog_trend(self.tickets, date_range, tz=self.tz)
            ],
            "mttr": [
                point.to_dict()
                for point in timeseries.mttr_trend(self.tickets, date_range, tz=self.tz)
            ],
            "reopen_rate": [
                week.to_dict()
                for week in timeseries.reopen_rate_trend(self.tickets, now=self.now, tz=self.tz)
            ],
        }

    # -- Breakdowns ----------------------------------------------------------
    def breakdowns(self) -> Dict[str, List[Dict[str, Any]]]:
        tickets = self.tickets
        open_tickets = [ticket for ticket in tickets if ticket.is_open]
        return {
            "backlog_by_assignee": _dicts(breakdowns.backlog_by_assignee(tickets, self.top_assignees)),
            "backlog_by_group": _dicts(breakdowns.tickets_by_group(open_tickets, self.top_groups)),
            "ageing_buckets": _dicts(breakdowns.ageing_buckets(tickets)),
            "tickets_by_priority": _dicts(breakdowns.tickets_by_priority(tickets)),
            "mttr_by_priority": _dicts(breakdowns.mttr_by_priority(tickets)),
            "sla_tracking": _dicts(breakdowns.sla_tracking(tickets)),
            "sla_breach_risk": _dicts(breakdowns.sla_breach_risk(tickets)),
            "region_distribution": _dicts(breakdowns.region_distribution(tickets)),
            "status_split": _dicts(breakdowns.status_split(tickets)),
            "lead_resolvers": _dicts(breakdowns.lead_resolvers(tickets, self.top_resolvers)),
        }

    def build(self) -> Dict[str, Any]:
        return {
            "generated_at": self.now.isoformat(),
            "filters": self.filters.to_dict(),
            "filter_summary": format_filter_summary(self.filters),
            "ticket_count": len(self.tickets),
            "kpis": self.kpis(),
            "kpi_trends": self.kpi_trends(),
            "series": self.series(),
            "breakdowns": self.breakdowns(),
        }


def _dicts(rows: Iterable[Any]) -> List[Dict[str, Any]]:
    return [row.to_dict() for row in rows]


HTML_TEMPLATE = Template(
    """
<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <title>ITSM Dashboard Report</title>
    <style>
      body { font-family: Arial, sans-serif; margin: 2rem; }
      h1, h2, h3 { color: #034a82; }
      table { border-collapse: collapse; width: 100%; margin-bottom: 1.5rem; }
      th, td { border: 1px solid #ccc; padding: 0.4rem 0.6rem; text-align: left; }
      th { background-color: #eaf2fb; }
      .meta { font-size: 0.9rem; color: #555; margin-bottom: 2rem; }
      .section { margin-bottom: 2.5rem; }
      .up { color: #166534; } .down { color: #b91c1c; }
    </style>
  </head>
  <body>
    <h1>ITSM Dashboard Report</h1>
    <div class="meta">
      <strong>Generated:</strong> {{ metrics.generated_at }}<br />
      <strong>Tickets:</strong> {{ metrics.ticket_count }}<br />
      {% for label, value in metrics.filter_summary %}<strong>{{ label }}:</strong> {{ value }}<br />{% endfor %}
    </div>

    <div class="section">
      <h2>Key Performance Indicators</h2>
      <table>
        <thead><tr><th>KPI</th><th>Value</th><th>Trend</th></tr></thead>
        <tbody>
          {% for key, label in kpi_labels.items() %}
          {% set trend = metrics.kpi_trends.get(key) %}
          <tr>
            <td>{{ label }}</td>
            <td>{{ metrics.kpis[key] }}</td>
            <td>{% if trend %}<span class="{{ 'up' if trend.improving else 'down' if trend.improving is not none else '' }}">{{ trend.direction }} {{ trend.value }}%</span> {{ trend.label }}{% else %}-{% endif %}</td>
          </tr>
          {% endfor %}
        </tbody>
      </table>
    </div>

    <div class="section">
      <h2>Trends</h2>
      <h3>Ticket Inflow</h3>
      <table>
        <thead><tr><th>Period</th><th>Created</th></tr></thead>
        <tbody>
          {% for row in metrics.series.ticket_inflow %}<tr><td>{{ row.date }}</td><td>{{ row.value }}</td></tr>{% endfor %}
        </tbody>
      </table>
      <h3>MTTR</h3>
      <table>
        <thead><tr><th>Period</th><th>Hours</th></tr></thead>
        <tbody>
          {% for row in metrics.series.mttr %}<tr><td>{{ row.date }}</td><td>{{ row.value }}</td></tr>{% endfor %}
        </tbody>
      </table>
      <h3>Re-open Rate (last four weeks)</h3>
      <table>
        <thead><tr><th>Week</th><th>Rate %</th></tr></thead>
        <tbody>
          {% for row in metrics.series.reopen_rate %}<tr><td>{{ row.week }}</td><td>{{ row.rate }}</td></tr>{% endfor %}
        </tbody>
      </table>
    </div>

    <div class="section">
      <h2>SLA</h2>
      <table>
        <thead><tr><th>Priority</th><th>Met</th><th>Breached</th><th>Met %</th></tr></thead>
        <tbody>
          {% for row in metrics.breakdowns.sla_tracking %}
          <tr><td>{{ row.priority }}</td><td>{{ row.met }}</td><td>{{ row.breached }}</td><td>{{ row.metRate }}</td></tr>
          {% endfor %}
        </tbody>
      </table>
      <h3>To Be Breached</h3>
      <table>
        <thead><tr><th>Priority</th><th>At Risk</th><th>Critical</th></tr></thead>
        <tbody>
          {% for row in metrics.breakdowns.sla_breach_risk %}
          <tr><td>{{ row.priority }}</td><td>{{ row.atRisk }}</td><td>{{ row.critical }}</td></tr>
          {% endfor %}
        </tbody>
      </table>
    </div>

    <div class="section">
      <h2>Backlog</h2>
      <h3>By Assignee</h3>
      <table>
        <thead><tr><th>Assignee</th><th>Group</th><th>Backlog</th><th>&lt;3d / 3-7d / &ge;7d</th></tr></thead>
        <tbody>
          {% for row in metrics.breakdowns.backlog_by_assignee %}
          <tr><td>{{ row.name }}</td><td>{{ row.group }}</td><td>{{ row.backlog }}</td><td>{{ row.ageing }}</td></tr>
          {% endfor %}
        </tbody>
      </table>
      <h3>Ageing</h3>
      <table>
        <thead><tr><th>Bucket</th><th>P1</th><th>P2</th><th>P3</th><th>P4</th></tr></thead>
        <tbody>
          {% for row in metrics.breakdowns.ageing_buckets %}
          <tr><td>{{ row.bucket }}</td><td>{{ row.p1 }}</td><td>{{ row.p2 }}</td><td>{{ row.p3 }}</td><td>{{ row.p4 }}</td></tr>
          {% endfor %}
        </tbody>
      </table>
    </div>

    <div class="section">
      <h2>Distribution</h2>
      <table>
        <thead><tr><th>Region</th><th>Tickets</th></tr></thead>
        <tbody>
          {% for row in metrics.breakdowns.region_distribution %}<tr><td>{{ row.name }}</td><td>{{ row.value }}</td></tr>{% endfor %}
        </tbody>
      </table>
      <h3>Lead Resolvers</h3>
      <table>
        <thead><tr><th>Resolver</th><th>Resolved</th></tr></thead>
        <tbody>
          {% for row in metrics.breakdowns.lead_resolvers %}<tr><td>{{ row.name }}</td><td>{{ row.count }}</td></tr>{% endfor %}
        </tbody>
      </table>
    </div>
  </body>
</html>
""",
    autoescape=True,
)


def render_html(metrics: Dict[str, Any], output_path: Path) -> None:
    html = HTML_TEMPLATE.render(metrics=metrics, kpi_labels=KPI_LABELS)
    output_path.write_text(html, encoding="utf-8")


def _latin1(text: Any) -> str:
    # Core PDF fonts only cover Latin-1.
    return str(text).encode("latin-1", "replace").decode("latin-1")


class _PDFReport(FPDF):
    def header(self) -> None:
        self.set_font("Helvetica", "B", 14)
        self.set_text_color(3, 74, 130)
        self.cell(0, 10, "ITSM Dashboard Report", new_x=XPos.LMARGIN, new_y=YPos.NEXT, align="C")
        self.set_text_color(17, 24, 39)
        self.ln(3)

    def footer(self) -> None:
        self.set_y(-12)
        self.set_font("Helvetica", size=8)
        self.cell(0, 8, f"Page {self.page_no()}", align="C")

    def section(self, title: str, lines: Iterable[str]) -> None:
        self.set_font("Helvetica", "B", 12)
        self.cell(0, 8, _latin1(title), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        self.set_font("Helvetica", size=10)
        for line in lines:
            self.multi_cell(0, 5, _latin1(line), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        self.ln(2)

    def table(self, headers: Sequence[str], rows: Iterable[Sequence[Any]], widths: Sequence[int]) -> None:
        self.set_font("Helvetica", "B", 9)
        self.set_fill_color(234, 242, 251)
        for header, width in zip(headers, widths):
            self.cell(width, 6, _latin1(header), border=1, fill=True)
        self.ln()
        self.set_font("Helvetica", size=9)
        for row in rows:
            for value, width in zip(row, widths):
                text = _latin1(value)
                while text and self.get_string_width(text) > width - 2:
                    text = text[:-1]
                self.cell(width, 6, text, border=1)
            self.ln()
        self.ln(3)


def render_pdf(metrics: Dict[str, Any], output_path: Path) -> None:
    pdf = _PDFReport()
    pdf.set_auto_page_break(auto=True, margin=15)
    pdf.add_page()

    pdf.section(
        "Summary",
        [f"Generated: {metrics['generated_at']}", f"Tickets: {metrics['ticket_count']:,}"]
        + [f"{label}: {value}" for label, value in metrics["filter_summary"]],
    )

    kpis = metrics["kpis"]
    trends = metrics["kpi_trends"]
    kpi_rows = []
    for key, label in KPI_LABELS.items():
        trend = trends.get(key)
        kpi_rows.append(
            (label, kpis[key], f"{trend['direction']} {trend['value']}%" if trend else "-")
        )
    pdf.section("Key Performance Indicators", [])
    pdf.table(("KPI", "Value", "Trend"), kpi_rows, (70, 50, 60))

    pdf.section("SLA by Priority", [])
    pdf.table(
        ("Priority", "Met", "Breached", "Met %"),
        (
            (row["priority"], row["met"], row["breached"], row["metRate"])
            for row in metrics["breakdowns"]["sla_tracking"]
        ),
        (40, 40, 40, 40),
    )

    assignees = metrics["breakdowns"]["backlog_by_assignee"]
    pdf.section("Backlog by Assignee", [] if assignees else ["No open tickets."])
    if assignees:
        pdf.table(
            ("Assignee", "Group", "Backlog", "<3d/3-7d/>=7d"),
            ((row["name"], row["group"], row["backlog"], row["ageing"]) for row in assignees),
            (55, 65, 25, 35),
        )

    pdf.output(str(output_path))


def _get_pyplot():
    matplotlib = import_module("matplotlib")
    matplotlib.use("Agg")
    return import_module("matplotlib.pyplot")


def _plot_line_chart(points: List[Dict[str, Any]], output_path: Path, title: str, ylabel: str) -> None:
    if not points:
        return
    plt = _get_pyplot()
    labels = [row["date"] for row in points]
    values = [row["value"] for row in points]
    plt.figure(figsize=(10, 4))
    plt.plot(range(len(values)), values, marker="o", color="#0460a9")
    plt.xticks(range(len(labels)), labels, rotation=45, ha="right")
    plt.ylabel(ylabel)
    plt.title(title)
    plt.tight_layout()
    plt.savefig(output_path)
    plt.close()


def _plot_bar_chart(labels: Sequence[str], values: Sequence[float], output_path: Path, title: str) -> None:
    if not labels:
        return
    plt = _get_pyplot()
    plt.figure(figsize=(10, 4))
    plt.bar([str(label) for label in labels], values, color="#0460a9")
    plt.xticks(rotation=45, ha="right")
    plt.title(title)
    plt.tight_layout()
    plt.savefig(output_path)
    plt.close()


def render_images(metrics: Dict[str, Any], output_dir: Path) -> List[Path]:
    output_dir.mkdir(parents=True, exist_ok=True)
    series = metrics["series"]
    tables = metrics["breakdowns"]
    generated: List[Path] = []

    charts = [
        ("ticket_inflow.png", lambda path: _plot_line_chart(series["ticket_inflow"], path, "Ticket Inflow", "Tickets")),
        ("mttr_trend.png", lambda path: _plot_line_chart(series["mttr"], path, "MTTR Trend", "Hours")),
        (
            "tickets_by_priority.png",
            lambda path: _plot_bar_chart(
                [row["label"] for row in tables["tickets_by_priority"]],
                [row["count"] for row in tables["tickets_by_priority"]],
                path,
                "Tickets by Priority",
            ),
        ),
        (
            "backlog_by_group.png",
            lambda path: _plot_bar_chart(
                [row["group"] for row in tables["backlog_by_group"]],
                [row["tickets"] for row in tables["backlog_by_group"]],
                path,
                "Backlog by Assignment Group",
            ),
        ),
    ]
    for file_name, draw in charts:
        path = output_dir / file_name
        draw(path)
        if path.exists():
            generated.append(path)
    return generated


def _normalise_for_json(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _normalise_for_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalise_for_json(item) for item in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Path):
        return str(value)
    return value


def save_metrics_json(metrics: Dict[str, Any], output_path: Path) -> None:
    serialisable = _normalise_for_json(metrics)
    output_path.write_text(json.dumps(serialisable, indent=2), encoding="utf-8")
