from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
import sys

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from itsm_dashboard.tickets import (
    ReopenSource,
    calculate_age,
    classify_sla,
    coerce_number,
    extract_region,
    format_fixed,
    map_priority,
    normalize,
    parse_timestamp,
    reopen_signal,
)

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


def _raw(**overrides):
    base = {
        "Number": "INC0010001",
        "Short description": "Printer offline",
        "Assignment Group": "Service Desk",
        "Assigned to": "Jane Doe",
        "State": "In Progress",
        "Priority": "3 - Moderate",
        "Region": "North America",
        "Business Owner Country": "United States",
        "Business Unit (Division)": "Finance",
        "Opened": "2024-03-10 09:00:00",
    }
    base.update(overrides)
    return base


def _normalize(**overrides):
    return normalize(_raw(**overrides), now=NOW, tz=timezone.utc)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1 - Critical", "P1"),
        ("2 - High", "P2"),
        ("3", "P3"),
        ("4 - Low", "P4"),
        ("Urgent", "P4"),
        ("", "P4"),
        (None, "P4"),
    ],
)
def test_map_priority_uses_leading_digit(raw, expected):
    assert map_priority(raw) == expected


def test_extract_region_checks_latam_before_america():
    assert extract_region("Europe/EMEA Hub") == "emea"
    assert extract_region("LATAM Hub") == "latam"
    assert extract_region("Americas", "Brazil") == "latam"
    assert extract_region("North America", "United States") == "na"
    assert extract_region("Asia Pacific") == "apac"
    assert extract_region("AMEA") == "apac"
    assert extract_region("") == "Other"
    assert extract_region(None, None) == "Other"


def test_coerce_number_accepts_numeric_strings_only():
    assert coerce_number("3") == 3.0
    assert coerce_number(" 2.5 ") == 2.5
    assert coerce_number(7) == 7.0
    assert coerce_number("abc") is None
    assert coerce_number("") is None
    assert coerce_number(None) is None
    assert coerce_number(True) is None
    assert coerce_number("nan") is None


def test_format_fixed_rounds_half_up():
    assert format_fixed(0.25, 1) == "0.3"
    assert format_fixed(2 / 3 * 100, 2) == "66.67"
    assert format_fixed(4, 1) == "4.0"


def test_format_fixed_handles_values_beyond_default_precision():
    assert format_fixed(1e30, 1) == "1000000000000000019884624838656.0"
    assert format_fixed(-2.5e28, 2).endswith(".00")


def test_huge_resolve_time_still_normalises():
    ticket = _normalize(**{"Resolve time": "1e31", "State": "Resolved"})
    assert ticket.resolved_hours == pytest.approx(1e31 / 3600)
    assert ticket.sla_status == "breached"


def test_parse_timestamp_applies_zone_to_naive_values():
    parsed = parse_timestamp("2024-03-01 10:00:00", timezone.utc)
    assert parsed == datetime(2024, 3, 1, 10, tzinfo=timezone.utc)
    assert parse_timestamp("not a date", timezone.utc) is None
    assert parse_timestamp("", timezone.utc) is None


def test_parse_timestamp_rejects_partial_values():
    assert parse_timestamp("2024-03-01", timezone.utc) == datetime(2024, 3, 1, tzinfo=timezone.utc)
    assert parse_timestamp("2024-03-01T10:00:00+02:00").hour == 10
    for partial in ("00:01", "Monday", "3"):
        assert parse_timestamp(partial, timezone.utc) is None
    assert _normalize(Opened="00:01").age is None


def test_calculate_age_is_absolute_floor_of_days():
    assert calculate_age("2024-03-10 12:00:00", now=NOW, tz=timezone.utc) == 5
    assert calculate_age("2024-03-14 13:00:00", now=NOW, tz=timezone.utc) == 0
    assert calculate_age("2024-03-01 00:00:00", "2024-03-03 23:00:00", now=NOW, tz=timezone.utc) == 2
    # Creation after "now" still yields a non-negative age.
    assert calculate_age("2024-03-17 12:00:00", now=NOW, tz=timezone.utc) == 2
    assert calculate_age("garbage", now=NOW, tz=timezone.utc) is None


def test_classify_sla_boundary_is_strictly_greater():
    assert classify_sla("P1", 4.0) == "met"
    assert classify_sla("P1", 4.1) == "breached"
    assert classify_sla("P4", 48.0) == "met"
    assert classify_sla("P2", None) == "met"


def test_normalize_resolve_time_of_four_hours():
    ticket = _normalize(**{"Priority": "1 - Critical", "Resolve time": 14400, "State": "Resolved"})
    assert ticket.resolved == "4.0 hrs"
    assert ticket.resolved_hours == 4.0
    assert ticket.sla_status == "met"


def test_normalize_breaches_above_threshold():
    ticket = _normalize(**{"Priority": "1 - Critical", "Resolve time": "18000"})
    assert ticket.resolved == "5.0 hrs"
    assert ticket.sla_status == "breached"


def test_normalize_defaults_for_missing_fields():
    ticket = normalize({}, now=NOW, tz=timezone.utc)
    assert ticket.priority == "P4"
    assert ticket.assignee == "Unassigned"
    assert ticket.assignment_group == "Unassigned"
    assert ticket.business_unit == "Other"
    assert ticket.region == "Other"
    assert ticket.sla_status == "met"
    assert ticket.resolved is None
    assert ticket.age is None
    assert ticket.reopen_count is None
    assert ticket.reassignment_count is None


def test_normalize_reads_camel_case_aliases():
    ticket = normalize(
        {
            "number": "INC1",
            "shortDescription": "VPN down",
            "priority": "2",
            "state": "New",
            "created": "2024-03-14 12:00:00",
            "reassignmentCount": "4",
        },
        now=NOW,
        tz=timezone.utc,
    )
    assert ticket.ticket_id == "INC1"
    assert ticket.priority == "P2"
    assert ticket.created == "2024-03-14 12:00:00"
    assert ticket.age == 1
    assert ticket.reassignment_count == 4.0


def test_normalize_uses_resolution_time_for_age():
    ticket = _normalize(
        **{
            "Opened": "2024-03-01 08:00:00",
            "Resolved": "2024-03-04 09:00:00",
            "Resolved by": "Sam Lee",
            "State": "Closed",
        }
    )
    assert ticket.age == 3
    assert ticket.resolver == "Sam Lee"
    assert not ticket.is_open


def test_ticket_to_dict_uses_export_field_names():
    ticket = _normalize(**{"Reopen count": "1", "Resolve time": 3600})
    data = ticket.to_dict()
    assert data["ticketId"] == "INC0010001"
    assert data["assignmentGroup"] == "Service Desk"
    assert data["region"] == "na"
    assert data["resolved"] == "1.0 hrs"
    assert data["age"] == "5d"
    assert data["reopenCount"] == 1


def test_reopen_signal_prefers_structured_counter():
    counted = _normalize(**{"Reopen count": "0", "Short description": "Reopened: VPN"})
    signal = reopen_signal(counted)
    assert signal.source is ReopenSource.COUNTER
    assert signal.reopened is False

    heuristic = _normalize(**{"Short description": "Re-open request for VPN"})
    signal = reopen_signal(heuristic)
    assert signal.source is ReopenSource.TEXT
    assert signal.reopened is True

    by_status = _normalize(**{"State": "Reopened"})
    assert reopen_signal(by_status).reopened is True
