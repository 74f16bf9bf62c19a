"""Higher level workflows used by the command line tools."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from dateutil import tz as date_tz

from .breakdowns import sla_tracking
from .config import ConfigError, load_config, resolve_path
from .dataset import DatasetLoader, JsonCache, TicketDataset
from .drilldown import drilldown_rows
from .filters import ALL, FilterSelection
from .kpis import calculate_kpis
from .logging_setup import configure_logging
from .report_generation import (
    KPI_LABELS,
    DashboardReportBuilder,
    render_html,
    render_images,
    render_pdf,
    save_metrics_json,
)
from .reporting import TicketExportWriter, export_file_name

LOGGER = logging.getLogger(__name__)

REPORT_FORMATS: Tuple[str, ...] = ("html", "pdf", "images", "json", "csv", "xlsx")


def _timestamp(moment: datetime) -> str:
    """Compact timestamp for report folder names."""

    return moment.strftime("%Y%m%d-%H%M%S")


@dataclass
class ReportOptions:
    config_path: Optional[str] = None
    output_directory: Optional[str] = None
    source: Optional[str] = None
    date_range: str = ALL
    ticket_status: str = ALL
    priority: str = ALL
    region: str = ALL
    assignment_group: str = ALL
    assigned_to: str = ALL
    custom_start_date: Optional[str] = None
    custom_end_date: Optional[str] = None
    formats: Optional[List[str]] = None
    disable_console: bool = False
    simple_console: bool = False
    console_level: Optional[str] = None
    now: Optional[datetime] = field(default=None, repr=False)

    def filters(self) -> FilterSelection:
        return FilterSelection(
            date_range=self.date_range,
            ticket_status=self.ticket_status,
            priority=self.priority,
            region=self.region,
            assignment_group=self.assignment_group,
            assigned_to=self.assigned_to,
            custom_start_date=self.custom_start_date,
            custom_end_date=self.custom_end_date,
        )


def _prepare_logging(config: dict, options: ReportOptions, *, base_dir: Path) -> None:
    logging_config = config.setdefault("logging", {})
    console_cfg = logging_config.setdefault("console", {})
    if options.disable_console:
        console_cfg["enabled"] = False
    if options.simple_console:
        console_cfg["rich_format"] = False
    if options.console_level:
        console_cfg["level"] = options.console_level
    configure_logging(config, base_dir=base_dir)


def _resolve_timezone(config: dict) -> Optional[tzinfo]:
    name = config.get("dataset", {}).get("timezone")
    if not name:
        return None
    zone = date_tz.gettz(name)
    if zone is None:
        raise ConfigError(f"Unknown timezone {name!r} in dataset.timezone")
    return zone


def _create_loader(
    config: dict,
    *,
    source: Optional[str] = None,
    base_dir: Path,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> DatasetLoader:
    dataset_cfg = config.get("dataset", {})
    location = source or dataset_cfg.get("source")
    if not location:
        raise ValueError("Configuration missing dataset.source")
    if not re.match(r"^https?://", str(location), re.IGNORECASE):
        location = str(resolve_path(str(location), base=base_dir))

    cache = None
    if dataset_cfg.get("use_cache", True):
        cache_dir = resolve_path(dataset_cfg.get("cache_directory", ".cache/itsm_dashboard"), base=base_dir)
        cache = JsonCache(cache_dir)
    return DatasetLoader(
        location,
        cache=cache,
        cache_key=dataset_cfg.get("cache_key", "incident-data:v1"),
        now=now,
        tz=tz,
        timeout=int(dataset_cfg.get("timeout", 30)),
        verify_ssl=dataset_cfg.get("verify_ssl", True),
    )


def _load(config: dict, options: ReportOptions, base_dir: Path) -> Tuple[TicketDataset, Optional[tzinfo]]:
    zone = _resolve_timezone(config)
    loader = _create_loader(config, source=options.source, base_dir=base_dir, now=options.now, tz=zone)
    return loader.load(), zone


def _requested_formats(options: ReportOptions, config: dict) -> List[str]:
    formats = options.formats or config.get("reporting", {}).get("formats") or ["html", "json"]
    formats = [fmt.strip().lower() for fmt in formats if fmt and fmt.strip()]
    unknown = sorted(set(formats) - set(REPORT_FORMATS))
    if unknown:
        raise ValueError(f"Unsupported report format(s) {unknown}; choose from {list(REPORT_FORMATS)}")
    return formats


def _builder(config: dict, dataset: TicketDataset, options: ReportOptions, zone: Optional[tzinfo]) -> DashboardReportBuilder:
    dashboard_cfg = config.get("dashboard", {})
    return DashboardReportBuilder(
        dataset.tickets,
        options.filters(),
        now=options.now or dataset.loaded_at,
        tz=zone,
        top_assignees=int(dashboard_cfg.get("top_assignees", 10)),
        top_groups=int(dashboard_cfg.get("top_groups", 10)),
        top_resolvers=int(dashboard_cfg.get("top_resolvers", 5)),
    )


def generate_reports(options: ReportOptions, *, base_dir: Optional[Path] = None) -> Path:
    """Load the dataset, apply the filters and write each requested format.

    Returns the timestamped folder the outputs were written to.
    """
    base_dir = base_dir or Path.cwd()
    config = load_config(options.config_path)
    formats = _requested_formats(options, config)
    _prepare_logging(config, options, base_dir=base_dir)

    dataset, zone = _load(config, options, base_dir)
    builder = _builder(config, dataset, options, zone)
    metrics = builder.build()
    LOGGER.info("Building dashboard report for %s tickets", metrics["ticket_count"])

    reporting_cfg = config.get("reporting", {})
    output_directory = resolve_path(
        options.output_directory or reporting_cfg.get("output_directory", "reports"), base=base_dir
    )
    report_root = output_directory / f"dashboard_report_{_timestamp(builder.now)}"
    report_root.mkdir(parents=True, exist_ok=True)

    if "html" in formats:
        html_path = report_root / "report.html"
        render_html(metrics, html_path)
        LOGGER.info("HTML report written to %s", html_path)

    if "pdf" in formats:
        pdf_path = report_root / "report.pdf"
        render_pdf(metrics, pdf_path)
        LOGGER.info("PDF report written to %s", pdf_path)

    if "images" in formats:
        generated = render_images(metrics, report_root / "images")
        LOGGER.info("Generated %s chart images", len(generated))

    if "json" in formats:
        json_path = report_root / "metrics.json"
        save_metrics_json(metrics, json_path)
        LOGGER.info("Metrics JSON written to %s", json_path)

    if "csv" in formats or "xlsx" in formats:
        writer = TicketExportWriter(report_root)
        filters = builder.filters
        kpis = calculate_kpis(builder.tickets)
        local_now = builder.now.astimezone(zone) if zone else builder.now
        if "csv" in formats:
            writer.write_dashboard_csv(builder.tickets, kpis, filters, exported_at=local_now)
            writer.write_rows_csv(
                drilldown_rows(builder.tickets),
                export_file_name("Tickets", filters.date_range, local_now.date()),
            )
        if "xlsx" in formats:
            writer.write_workbook(
                builder.tickets, kpis, sla_tracking(builder.tickets), filters, generated_at=local_now
            )

    return report_root


@dataclass(frozen=True)
class KPISummary:
    rows: List[Tuple[str, str, str]]
    matched: int
    total: int

    @property
    def footer(self) -> str:
        return f"{self.matched} of {self.total} tickets match the filters"


def summarize(options: ReportOptions, *, base_dir: Optional[Path] = None) -> KPISummary:
    """KPI rows (label, value, trend) for the console table."""
    base_dir = base_dir or Path.cwd()
    config = load_config(options.config_path)
    _prepare_logging(config, options, base_dir=base_dir)
    dataset, zone = _load(config, options, base_dir)
    builder = _builder(config, dataset, options, zone)

    kpis = builder.kpis()
    trends: Dict[str, Any] = builder.kpi_trends()
    rows = []
    for key, label in KPI_LABELS.items():
        trend = trends.get(key)
        trend_text = f"{trend['direction']} {trend['value']}% {trend['label']}" if trend else "-"
        rows.append((label, str(kpis[key]), trend_text))
    return KPISummary(rows, len(builder.tickets), len(dataset))
