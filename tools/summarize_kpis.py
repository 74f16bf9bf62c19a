#!/usr/bin/env python3
"""Print the dashboard KPIs and their period trends in the console."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Iterable

from rich.console import Console
from rich.table import Table

BASE_DIR = Path(__file__).resolve().parents[1]
DEFAULT_CONFIG_PATH = BASE_DIR / "config" / "config.yaml"
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from itsm_dashboard.cli import add_common_arguments, options_from_args  # noqa: E402
from itsm_dashboard.config import ConfigError  # noqa: E402
from itsm_dashboard.dataset import DatasetLoadError  # noqa: E402
from itsm_dashboard.workflow import KPISummary, summarize  # noqa: E402

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Print a table of incident KPIs for the selected filters.",
    )
    add_common_arguments(parser, str(DEFAULT_CONFIG_PATH))
    return parser


def build_table(summary: KPISummary) -> Table:
    table = Table(title="Incident KPIs", caption=summary.footer)
    table.add_column("KPI")
    table.add_column("Value", justify="right")
    table.add_column("Trend")
    for label, value, trend in summary.rows:
        table.add_row(label, value, trend)
    return table


def main(argv: Iterable[str] | None = None) -> KPISummary:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        options = options_from_args(args)
    except ValueError as exc:
        parser.error(str(exc))
    try:
        summary = summarize(options, base_dir=BASE_DIR)
    except (ConfigError, DatasetLoadError, ValueError) as exc:
        LOGGER.error("Failed to summarise KPIs: %s", exc)
        raise SystemExit(1) from exc

    Console(highlight=False).print(build_table(summary))
    return summary


if __name__ == "__main__":
    main()
