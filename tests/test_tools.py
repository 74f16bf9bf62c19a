from __future__ import annotations

from importlib import util
import json
from pathlib import Path
import sys

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from itsm_dashboard.workflow import KPISummary


def _load_tool(name: str):
    module_path = PROJECT_ROOT / "tools" / f"{name}.py"
    module_spec = util.spec_from_file_location(f"itsm_dashboard_tools.{name}", module_path)
    assert module_spec and module_spec.loader
    module = util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)
    return module


summarize_kpis = _load_tool("summarize_kpis")
generate_dashboard_report = _load_tool("generate_dashboard_report")


def _config(tmp_path: Path, source: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(
        "dataset:\n"
        f"  source: {json.dumps(str(source))}\n"
        "  use_cache: false\n"
        "logging:\n"
        "  console:\n"
        "    enabled: false\n"
        "  file:\n"
        "    enabled: false\n",
        encoding="utf-8",
    )
    return path


def test_summarize_kpis_prints_table(tmp_path, capsys):
    source = tmp_path / "data.json"
    source.write_text(
        json.dumps([{"Number": "INC1", "State": "New", "Priority": "1 - Critical", "Opened": "2024-03-14"}]),
        encoding="utf-8",
    )
    summary = summarize_kpis.main(["--config", str(_config(tmp_path, source))])
    assert summary.footer == "1 of 1 tickets match the filters"
    output = capsys.readouterr().out
    assert "Backlog Tickets" in output
    assert "Incident KPIs" in output


def test_build_table_has_one_row_per_kpi():
    summary = KPISummary([("Total Tickets", "3", "-"), ("MTTR (hrs)", "2.5", "down 10.0% vs previous day")], 3, 4)
    table = summarize_kpis.build_table(summary)
    assert [column.header for column in table.columns] == ["KPI", "Value", "Trend"]
    assert table.row_count == 2
    assert table.caption == "3 of 4 tickets match the filters"


def test_missing_dataset_exits_with_error(tmp_path):
    config_path = _config(tmp_path, tmp_path / "missing.json")
    with pytest.raises(SystemExit) as excinfo:
        generate_dashboard_report.main(["--config", str(config_path), "--format", "json"])
    assert excinfo.value.code == 1


def test_lone_start_date_is_a_usage_error(tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        generate_dashboard_report.main(["--start-date", "2024-03-01"])
    assert excinfo.value.code == 2
