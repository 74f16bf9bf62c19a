"""CSV and Excel exports of the filtered dashboard data."""
from __future__ import annotations

import csv
import logging
import re
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from .breakdowns import SLATrackingRow
from .filters import FilterSelection
from .kpis import KPISet
from .tickets import Ticket, format_fixed

LOGGER = logging.getLogger(__name__)

EXPORT_PREFIX = "ITSM_Dashboard"

_UNSAFE_FILENAME = re.compile(r'[\\/:*?"<>|]+')

_TITLE_FILL = PatternFill("solid", fgColor="FF0460A9")
_SECTION_FILL = PatternFill("solid", fgColor="FFEAF2FB")
_ZEBRA_FILL = PatternFill("solid", fgColor="FFF8FAFC")
_THIN = Side(style="thin")
_BORDER = Border(top=_THIN, left=_THIN, bottom=_THIN, right=_THIN)

_PRIORITY_STYLES = {
    "P1": ("FFFEE2E2", "FFB91C1C"),
    "P2": ("FFFFEDD5", "FF9A3412"),
    "P3": ("FFFEF3C7", "FFB45309"),
    "P4": ("FFDCFCE7", "FF15803D"),
}
_SLA_STYLES = {
    "met": ("FFDCFCE7", "FF166534"),
    "breached": ("FFFEE2E2", "FFB91C1C"),
}


def safe_filename(value: str) -> str:
    return _UNSAFE_FILENAME.sub("-", value).strip()


def _cell_value(value: Any) -> Any:
    # Worksheets reject ASCII control characters found in free-text fields.
    if isinstance(value, str):
        return ILLEGAL_CHARACTERS_RE.sub("", value)
    return value


def export_file_name(section: str, date_range: str, today: Optional[date] = None) -> str:
    """``ITSM_Dashboard_<section>_<range>_<YYYY-MM-DD>`` without an extension."""
    stamp = (today or date.today()).isoformat()
    return safe_filename(f"{EXPORT_PREFIX}_{section}_{date_range}_{stamp}")


def format_filter_summary(filters: FilterSelection) -> List[Tuple[str, str]]:
    if filters.date_range == "custom":
        date_range = f"Custom ({filters.custom_start_date or ''} to {filters.custom_end_date or ''})"
    else:
        date_range = filters.date_range
    return [
        ("Date Range", date_range),
        ("Ticket Status", filters.ticket_status),
        ("Priority", filters.priority),
        ("Region", filters.region),
        ("Assignment Group", filters.assignment_group),
        ("Assigned To", filters.assigned_to),
    ]


def _kpi_rows(kpis: KPISet) -> List[Tuple[str, str]]:
    return [
        ("Total Tickets", f"{kpis.total_tickets:,}"),
        ("Backlog Tickets", f"{kpis.backlog_tickets:,}"),
        ("SLA Met %", f"{kpis.sla_met_rate}%"),
        ("MTTR (hrs)", kpis.mttr),
        ("Re-open Rate %", f"{kpis.reopen_rate}%"),
        ("High-Hop Tickets", f"{kpis.high_hop_tickets:,}"),
    ]


class TicketExportWriter:
    """Write dashboard exports into ``output_directory``."""

    DASHBOARD_HEADERS: Sequence[str] = ("Section", "Value", "Details")
    TICKET_DETAIL_HEADER = (
        "Priority | Status | Assigned To | Group | Region | Business Unit | "
        "Created | Age | SLA Status | Resolved"
    )
    WORKBOOK_COLUMNS: Sequence[Tuple[str, str, int]] = (
        ("Ticket ID", "ticketId", 14),
        ("Title", "title", 60),
        ("Priority", "priority", 10),
        ("Status", "status", 14),
        ("Assignee", "assignee", 18),
        ("Assignment Group", "assignmentGroup", 22),
        ("Region", "region", 10),
        ("Created", "created", 20),
        ("Resolved At", "resolvedAt", 20),
        ("MTTR (hrs)", "mttr", 12),
        ("SLA Status", "slaStatus", 12),
    )

    def __init__(self, output_directory: Path) -> None:
        self.output_directory = Path(output_directory)
        self.output_directory.mkdir(parents=True, exist_ok=True)

    # -- CSV -----------------------------------------------------------------
    def write_rows_csv(self, rows: Sequence[Mapping[str, Any]], file_stem: str) -> Optional[Path]:
        """Write table rows with every value quoted; header from the first row.

        Nothing is written for an empty table.
        """
        if not rows:
            LOGGER.info("Skipping empty export %s", file_stem)
            return None
        headers = list(rows[0].keys())
        path = self.output_directory / f"{safe_filename(file_stem)}.csv"
        LOGGER.info("Writing %s rows to %s", len(rows), path)
        with path.open("w", encoding="utf-8", newline="") as handle:
            writer = csv.writer(handle, quoting=csv.QUOTE_ALL, lineterminator="\n")
            writer.writerow(headers)
            for row in rows:
                writer.writerow(["" if row.get(header) is None else row.get(header) for header in headers])
        return path

    def dashboard_rows(
        self,
        tickets: Iterable[Ticket],
        kpis: KPISet,
        filters: FilterSelection,
        *,
        exported_at: Optional[datetime] = None,
    ) -> List[Tuple[str, str, str]]:
        exported = exported_at or datetime.now()
        rows: List[Tuple[str, str, str]] = [
            ("=== DASHBOARD SUMMARY ===", "", ""),
            ("Export Date", exported.strftime("%Y-%m-%d %H:%M:%S"), ""),
            ("Date Range Filter", filters.date_range, ""),
            ("Priority Filter", filters.priority, ""),
            ("Region Filter", filters.region, ""),
            ("Assignment Group Filter", filters.assignment_group, ""),
            ("Assigned To Filter", filters.assigned_to, ""),
            ("", "", ""),
            ("=== KEY PERFORMANCE INDICATORS ===", "", ""),
            ("Total Tickets", str(kpis.total_tickets), ""),
            ("Backlog Tickets", str(kpis.backlog_tickets), ""),
            ("Reopen Rate", f"{kpis.reopen_rate}%", ""),
            ("Mean Time To Resolution (MTTR)", f"{kpis.mttr} hours", ""),
            ("High-Hop Tickets (>=3)", str(kpis.high_hop_tickets), ""),
            ("SLA Met Rate", f"{kpis.sla_met_rate}%", ""),
            ("", "", ""),
            ("=== TICKET DETAILS ===", "", ""),
            ("Ticket ID", "Title", self.TICKET_DETAIL_HEADER),
        ]
        for ticket in tickets:
            details = " | ".join(
                [
                    ticket.priority,
                    ticket.status,
                    ticket.assignee,
                    ticket.assignment_group,
                    ticket.region.upper(),
                    ticket.business_unit,
                    ticket.created,
                    ticket.age_label,
                    ticket.sla_status,
                    ticket.resolved or "N/A",
                ]
            )
            rows.append((ticket.ticket_id, ticket.title, details))
        return rows

    def write_dashboard_csv(
        self,
        tickets: Iterable[Ticket],
        kpis: KPISet,
        filters: FilterSelection,
        *,
        exported_at: Optional[datetime] = None,
    ) -> Path:
        exported = exported_at or datetime.now()
        path = self.output_directory / f"{EXPORT_PREFIX}_Dashboard_Export_{exported.date().isoformat()}.csv"
        rows = self.dashboard_rows(tickets, kpis, filters, exported_at=exported)
        LOGGER.info("Writing dashboard export to %s", path)
        with path.open("w", encoding="utf-8", newline="") as handle:
            writer = csv.writer(handle, quoting=csv.QUOTE_ALL, lineterminator="\n")
            writer.writerow(self.DASHBOARD_HEADERS)
            writer.writerows(rows)
        return path

    # -- Excel ---------------------------------------------------------------
    def write_workbook(
        self,
        tickets: Sequence[Ticket],
        kpis: KPISet,
        sla_rows: Sequence[SLATrackingRow],
        filters: FilterSelection,
        *,
        generated_at: Optional[datetime] = None,
    ) -> Path:
        generated = generated_at or datetime.now()
        workbook = Workbook()
        overview = workbook.active
        overview.title = "Overview"
        self._fill_overview(overview, tickets, kpis, sla_rows, filters, generated)
        self._fill_tickets(workbook.create_sheet("Tickets"), tickets)

        path = self.output_directory / f"dashboard-{generated.strftime('%Y%m%d-%H%M')}.xlsx"
        LOGGER.info("Writing Excel workbook to %s", path)
        workbook.save(path)
        return path

    @staticmethod
    def _section_title(sheet, row: int, text: str) -> int:
        sheet.merge_cells(start_row=row, start_column=1, end_row=row, end_column=4)
        cell = sheet.cell(row=row, column=1, value=text)
        cell.fill = _SECTION_FILL
        cell.font = Font(bold=True, size=12, color="FF111827")
        cell.border = _BORDER
        return row + 1

    @staticmethod
    def _key_values(sheet, row: int, pairs: Iterable[Tuple[str, str]]) -> int:
        for key, value in pairs:
            for column, text in ((1, key), (2, value)):
                cell = sheet.cell(row=row, column=column, value=_cell_value(text))
                cell.border = _BORDER
                cell.alignment = Alignment(vertical="top", horizontal="left", wrap_text=True)
            row += 1
        return row + 1

    def _fill_overview(self, sheet, tickets, kpis, sla_rows, filters, generated: datetime) -> None:
        for column, width in zip("ABCD", (26, 54, 18, 18)):
            sheet.column_dimensions[column].width = width
        sheet.freeze_panes = "A3"

        sheet.merge_cells("A1:D1")
        sheet["A1"] = "ITSM Dashboard Report"
        sheet["A1"].fill = _TITLE_FILL
        sheet["A1"].font = Font(bold=True, size=16, color="FFFFFFFF")
        sheet.merge_cells("A2:D2")
        sheet["A2"] = f"Generated: {generated.strftime('%Y-%m-%d %H:%M')}  -  Tickets: {len(tickets):,}"

        row = self._section_title(sheet, 4, "Filters")
        row = self._key_values(sheet, row, format_filter_summary(filters))
        row = self._section_title(sheet, row, "KPIs")
        row = self._key_values(sheet, row, _kpi_rows(kpis))
        row = self._section_title(sheet, row, "SLA by Priority")

        for column, header in enumerate(("Priority", "Met", "Breached", "Met %"), start=1):
            cell = sheet.cell(row=row, column=column, value=header)
            cell.fill = _SECTION_FILL
            cell.font = Font(bold=True)
            cell.border = _BORDER
        row += 1
        for item in sla_rows:
            values = (item.priority, item.met, item.breached, format_fixed(float(item.met_rate), 1))
            for column, value in enumerate(values, start=1):
                sheet.cell(row=row, column=column, value=value).border = _BORDER
            self._paint(sheet.cell(row=row, column=1), _PRIORITY_STYLES.get(item.priority))
            row += 1

    def _fill_tickets(self, sheet, tickets: Sequence[Ticket]) -> None:
        for index, (header, _key, width) in enumerate(self.WORKBOOK_COLUMNS, start=1):
            cell = sheet.cell(row=1, column=index, value=header)
            cell.fill = _TITLE_FILL
            cell.font = Font(bold=True, color="FFFFFFFF")
            cell.border = _BORDER
            sheet.column_dimensions[get_column_letter(index)].width = width
        sheet.freeze_panes = "A2"
        last_column = get_column_letter(len(self.WORKBOOK_COLUMNS))
        sheet.auto_filter.ref = f"A1:{last_column}1"

        for row_number, ticket in enumerate(tickets, start=2):
            record = self._ticket_record(ticket)
            for index, (_header, key, _width) in enumerate(self.WORKBOOK_COLUMNS, start=1):
                cell = sheet.cell(row=row_number, column=index, value=_cell_value(record[key]))
                cell.border = _BORDER
                if row_number % 2 == 0:
                    cell.fill = _ZEBRA_FILL
                if key == "mttr" and isinstance(record[key], float):
                    cell.number_format = "0.0"
            self._paint(sheet.cell(row=row_number, column=3), _PRIORITY_STYLES.get(ticket.priority))
            self._paint(sheet.cell(row=row_number, column=11), _SLA_STYLES.get(ticket.sla_status))

    @staticmethod
    def _ticket_record(ticket: Ticket) -> Dict[str, Any]:
        return {
            "ticketId": ticket.ticket_id,
            "title": ticket.title,
            "priority": ticket.priority,
            "status": ticket.status,
            "assignee": ticket.assignee,
            "assignmentGroup": ticket.assignment_group,
            "region": ticket.region,
            "created": ticket.created,
            "resolvedAt": ticket.resolved_at or "",
            "mttr": ticket.resolved_hours if ticket.resolved_hours is not None else "",
            "slaStatus": ticket.sla_status,
        }

    @staticmethod
    def _paint(cell, style: Optional[Tuple[str, str]]) -> None:
        if style is None:
            return
        fill, font = style
        cell.fill = PatternFill("solid", fgColor=fill)
        cell.font = Font(bold=True, color=font)
