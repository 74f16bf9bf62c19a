from __future__ import annotations

import argparse
from datetime import datetime, timezone
import json
from pathlib import Path
import sys

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from itsm_dashboard import workflow
from itsm_dashboard.cli import add_common_arguments, add_report_arguments, options_from_args
from itsm_dashboard.config import ConfigError

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


def _records():
    return [
        {
            "Number": "INC0010001",
            "Short description": "Printer offline",
            "Assignment Group": "Service Desk",
            "Assigned to": "Jane Doe",
            "State": "New",
            "Priority": "3 - Moderate",
            "Region": "North America",
            "Opened": "2024-03-14 09:00:00",
        },
        {
            "Number": "INC0010002",
            "Short description": "Core switch down",
            "Assignment Group": "Network",
            "Assigned to": "Sam Lee",
            "State": "Resolved",
            "Priority": "1 - Critical",
            "Region": "EMEA",
            "Opened": "2024-03-13 08:00:00",
            "Resolved": "2024-03-13 11:00:00",
            "Resolve time": 10800,
            "Resolved by": "Sam Lee",
        },
    ]


def _write_config(tmp_path: Path, **dataset_overrides) -> Path:
    source = tmp_path / "incident_data.json"
    source.write_text(json.dumps({"records": _records()}), encoding="utf-8")
    dataset = {"source": str(source), "use_cache": False, "timezone": "UTC"}
    dataset.update(dataset_overrides)
    lines = ["dataset:"]
    for key, value in dataset.items():
        lines.append(f"  {key}: {json.dumps(value)}")
    lines += [
        "logging:",
        "  console:",
        "    enabled: false",
        "  file:",
        "    enabled: true",
        f"    path: {json.dumps(str(tmp_path / 'logs' / 'dashboard.log'))}",
    ]
    config_path = tmp_path / "config.yaml"
    config_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return config_path


def test_generate_reports_creates_bundle(tmp_path):
    config_path = _write_config(tmp_path)
    options = workflow.ReportOptions(
        config_path=str(config_path),
        output_directory=str(tmp_path / "out"),
        formats=["html", "json", "csv", "xlsx"],
        now=NOW,
    )
    report_root = workflow.generate_reports(options, base_dir=tmp_path)

    assert report_root == tmp_path / "out" / "dashboard_report_20240315-120000"
    assert (report_root / "report.html").exists()
    assert (report_root / "ITSM_Dashboard_Dashboard_Export_2024-03-15.csv").exists()
    assert (report_root / "ITSM_Dashboard_Tickets_all_2024-03-15.csv").exists()
    assert (report_root / "dashboard-20240315-1200.xlsx").exists()
    assert not (report_root / "report.pdf").exists()

    metrics = json.loads((report_root / "metrics.json").read_text(encoding="utf-8"))
    assert metrics["ticket_count"] == 2
    assert metrics["kpis"]["backlogTickets"] == 1
    assert metrics["kpis"]["mttr"] == "3.0"
    assert (tmp_path / "logs" / "dashboard.log").exists()


def test_generate_reports_applies_filters(tmp_path):
    config_path = _write_config(tmp_path)
    options = workflow.ReportOptions(
        config_path=str(config_path),
        output_directory=str(tmp_path / "out"),
        formats=["json"],
        priority="P1",
        now=NOW,
    )
    report_root = workflow.generate_reports(options, base_dir=tmp_path)
    metrics = json.loads((report_root / "metrics.json").read_text(encoding="utf-8"))
    assert metrics["ticket_count"] == 1
    assert metrics["filters"]["priority"] == "P1"


def test_unknown_format_is_rejected_before_writing(tmp_path):
    config_path = _write_config(tmp_path)
    options = workflow.ReportOptions(
        config_path=str(config_path),
        output_directory=str(tmp_path / "out"),
        formats=["docx"],
        now=NOW,
    )
    with pytest.raises(ValueError):
        workflow.generate_reports(options, base_dir=tmp_path)
    assert not (tmp_path / "out").exists()


def test_unknown_timezone_is_a_config_error(tmp_path):
    config_path = _write_config(tmp_path, timezone="Mars/Olympus")
    options = workflow.ReportOptions(config_path=str(config_path), formats=["json"], now=NOW)
    with pytest.raises(ConfigError):
        workflow.generate_reports(options, base_dir=tmp_path)


def test_summarize_lists_every_kpi(tmp_path):
    config_path = _write_config(tmp_path)
    options = workflow.ReportOptions(config_path=str(config_path), date_range="7d", now=NOW)
    summary = workflow.summarize(options, base_dir=tmp_path)

    assert [label for label, _value, _trend in summary.rows] == list(workflow.KPI_LABELS.values())
    assert summary.rows[0] == ("Total Tickets", "2", "up 100.0% vs previous 7 days")
    assert summary.footer == "2 of 2 tickets match the filters"


def _parse(*argv):
    parser = argparse.ArgumentParser()
    add_common_arguments(parser)
    add_report_arguments(parser)
    return parser.parse_args(list(argv))


def test_options_from_args_maps_filters():
    options = options_from_args(
        _parse("--priority", "P2", "--status", "open", "--format", "pdf", "--format", "json")
    )
    assert options.priority == "P2"
    assert options.ticket_status == "open"
    assert options.formats == ["pdf", "json"]
    assert options.date_range == "all"


def test_start_and_end_dates_imply_custom_range():
    options = options_from_args(_parse("--start-date", "2024-03-01", "--end-date", "2024-03-05"))
    assert options.date_range == "custom"
    assert options.filters().custom_end_date == "2024-03-05"
    with pytest.raises(ValueError):
        options_from_args(_parse("--start-date", "2024-03-01"))
