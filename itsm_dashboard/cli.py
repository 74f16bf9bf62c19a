"""Command line arguments shared by the report tools."""
from __future__ import annotations

import argparse
from typing import Optional

from .filters import DATE_RANGE_CHOICES, TICKET_STATUS_CHOICES
from .workflow import REPORT_FORMATS, ReportOptions


def add_common_arguments(parser: argparse.ArgumentParser, default_config: Optional[str] = None) -> None:
    parser.add_argument(
        "--config",
        help=(
            "Path to configuration YAML file. Defaults to "
            f"{default_config or 'config/config.yaml'} if present."
        ),
    )
    parser.add_argument(
        "--source",
        help="Incident export to load (JSON file path or http(s) URL). Overrides dataset.source.",
    )
    filters = parser.add_argument_group("filters")
    filters.add_argument("--date-range", choices=DATE_RANGE_CHOICES, default="all")
    filters.add_argument("--start-date", help="Custom range start (YYYY-MM-DD); implies --date-range custom.")
    filters.add_argument("--end-date", help="Custom range end (YYYY-MM-DD); implies --date-range custom.")
    filters.add_argument("--status", choices=TICKET_STATUS_CHOICES, default="all")
    filters.add_argument("--priority", default="all", help="P1, P2, P3 or P4.")
    filters.add_argument("--region", default="all", help="na, emea, apac, latam or Other.")
    filters.add_argument("--assignment-group", default="all")
    filters.add_argument("--assigned-to", default="all")
    parser.add_argument(
        "--disable-console-log",
        action="store_true",
        help="Disable console logging output.",
    )
    parser.add_argument(
        "--simple-console",
        action="store_true",
        help="Use a simple console log format instead of Rich formatting.",
    )
    parser.add_argument(
        "--console-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override the console logging level.",
    )


def add_report_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--output-directory",
        help="Directory where the report bundle should be written. Overrides configuration defaults.",
    )
    parser.add_argument(
        "--format",
        action="append",
        choices=REPORT_FORMATS,
        help="Report output formats to generate; repeatable (default: reporting.formats).",
    )


def options_from_args(args: argparse.Namespace) -> ReportOptions:
    date_range = args.date_range
    if args.start_date or args.end_date:
        if not (args.start_date and args.end_date):
            raise ValueError("--start-date and --end-date must be supplied together")
        date_range = "custom"
    return ReportOptions(
        config_path=args.config,
        output_directory=getattr(args, "output_directory", None),
        source=args.source,
        date_range=date_range,
        ticket_status=args.status,
        priority=args.priority,
        region=args.region,
        assignment_group=args.assignment_group,
        assigned_to=args.assigned_to,
        custom_start_date=args.start_date,
        custom_end_date=args.end_date,
        formats=getattr(args, "format", None),
        disable_console=args.disable_console_log,
        simple_console=args.simple_console,
        console_level=args.console_level,
    )
