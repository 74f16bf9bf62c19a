#!/usr/bin/env python3
"""Write the incident dashboard as an HTML/PDF/image/JSON/CSV/Excel bundle."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Iterable

BASE_DIR = Path(__file__).resolve().parents[1]
DEFAULT_CONFIG_PATH = BASE_DIR / "config" / "config.yaml"
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from itsm_dashboard.cli import add_common_arguments, add_report_arguments, options_from_args  # noqa: E402
from itsm_dashboard.config import ConfigError  # noqa: E402
from itsm_dashboard.dataset import DatasetLoadError  # noqa: E402
from itsm_dashboard.workflow import generate_reports  # noqa: E402

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate dashboard reports for a filtered slice of the incident export.",
    )
    add_common_arguments(parser, str(DEFAULT_CONFIG_PATH))
    add_report_arguments(parser)
    return parser


def main(argv: Iterable[str] | None = None) -> Path:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        options = options_from_args(args)
    except ValueError as exc:
        parser.error(str(exc))
    try:
        report_dir = generate_reports(options, base_dir=BASE_DIR)
    except (ConfigError, DatasetLoadError, ValueError) as exc:
        LOGGER.error("Report generation failed: %s", exc)
        raise SystemExit(1) from exc
    print(f"Report bundle available at {report_dir}")
    return report_dir


if __name__ == "__main__":
    main()
