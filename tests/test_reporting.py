import csv
import json

import pytest
from openpyxl import load_workbook

from admin_reports.analyzers.base import Finding
from admin_reports.collectors.base import CollectorResult
from admin_reports.reporting import export_csv, export_json, export_text, export_workbook
from admin_reports.reporting.csv_export import column_order
from admin_reports.reporting.excel_workbook import SEVERITY_FILLS, sheet_name
from admin_reports.scoring import compute_health

RUN_ID = "20241001_120000"


@pytest.fixture
def result():
    r = CollectorResult("pools")
    r.add_data("pools", [
        {"Pool": "pool01.contoso.com", "Category": "Front End", "UserCount": 120},
        {"Pool": "sba01.contoso.com", "Category": "Survivable Branch Appliance", "UserCount": None,
         "Notes": ["branch", "pstn"]},
    ])
    r.add_data("pool_summary", [])
    r.add_data("_internal", True)
    r.add_warning("Skipping topology row without Identity/Fqdn")
    r.add_skipped("cdp", "not requested")
    return r


@pytest.fixture
def findings():
    return [
        Finding(id="POO-001", report="pools", check="sba_replacement", title="Branch appliance",
                subject="sba01.contoso.com", severity="high", deduction=5,
                detail="Site Branch1", recommendation="Replace", evidence={"users": 0}),
        Finding(id="POO-002", report="pools", check="uncategorized_pool", title="Unknown role",
                subject="=cmd|' /C calc'!A0", severity="critical", deduction=2),
    ]


def test_column_order_unions_keys():
    assert column_order([{"a": 1, "b": 2}, {"b": 3, "c": 4}]) == ["a", "b", "c"]


def test_sheet_name_sanitising():
    taken = set()
    assert sheet_name("Pools/Sites [HQ]", taken) == "Pools_Sites _HQ_"
    long = "privileged_members_with_a_very_long_name"
    first = sheet_name(long, taken)
    second = sheet_name(long, taken)
    assert len(first) == 31
    assert second.endswith("_2") and len(second) == 31


def test_export_csv(tmp_path, result, findings):
    files = export_csv(result, findings, tmp_path, RUN_ID)
    names = sorted(p.name for p in files)
    assert names == [f"findings_{RUN_ID}.csv", f"pools_{RUN_ID}.csv"]

    raw = (tmp_path / f"pools_{RUN_ID}.csv").read_bytes()
    assert raw.startswith(b"\xef\xbb\xbf")
    with open(tmp_path / f"pools_{RUN_ID}.csv", encoding="utf-8-sig", newline="") as fh:
        rows = list(csv.DictReader(fh))
    assert list(rows[0]) == ["Pool", "Category", "UserCount", "Notes"]
    assert rows[1]["UserCount"] == ""
    assert rows[1]["Notes"] == "branch; pstn"

    with open(tmp_path / f"findings_{RUN_ID}.csv", encoding="utf-8-sig", newline="") as fh:
        finding_rows = list(csv.DictReader(fh))
    assert finding_rows[0]["evidence"] == "users=0"
    assert finding_rows[1]["severity"] == "critical"


def test_export_workbook(tmp_path, result, findings):
    health = compute_health(findings)
    path = export_workbook(result, findings, health, tmp_path, RUN_ID,
                           title="Pool Migration", tenant_name="Contoso")
    assert path.name == f"pools_{RUN_ID}.xlsx"

    wb = load_workbook(path)
    assert wb.sheetnames == ["Summary", "pools", "pool_summary", "Findings"]

    summary = wb["Summary"]
    assert summary["A1"].value == "Pool Migration"
    labels = {summary.cell(r, 1).value: summary.cell(r, 2).value for r in range(3, 9)}
    assert labels["Tenant / environment"] == "Contoso"
    assert labels["Health score"] == 93
    assert labels["Rating"] == "Healthy"

    pools = wb["pools"]
    assert pools.freeze_panes == "A2"
    assert [c.value for c in pools[1]] == ["Pool", "Category", "UserCount", "Notes"]
    assert pools["C2"].value == 120
    assert pools["D3"].value == "branch; pstn"

    ws = wb["Findings"]
    severity_col = [c.value for c in ws[1]].index("severity") + 1
    crit = ws.cell(3, severity_col)
    assert crit.value == "critical"
    assert crit.fill.start_color.rgb.endswith(SEVERITY_FILLS["critical"])
    # Subjects that look like formulas stay text
    subject_col = [c.value for c in ws[1]].index("subject") + 1
    assert ws.cell(3, subject_col).data_type == "s"


def test_export_text(tmp_path, result, findings):
    health = compute_health(findings)
    path = export_text(result, findings, health, tmp_path, RUN_ID, title="Pool Migration",
                       tenant_name="Contoso", files=[tmp_path / f"pools_{RUN_ID}.csv"])
    text = path.read_text(encoding="utf-8")

    assert text.startswith("Pool Migration\n==============\n")
    assert "HEALTH: 93/100 (Healthy)" in text
    assert "WARNINGS" in text and "SKIPPED" in text
    assert "ERRORS" not in text
    # Ordered by severity
    assert text.index("[CRITICAL] Unknown role") < text.index("[HIGH] Branch appliance")
    assert "-> Replace" in text
    assert f"pools_{RUN_ID}.csv" in text


def test_export_text_without_findings(tmp_path, result):
    path = export_text(result, [], compute_health([]), tmp_path, RUN_ID)
    text = path.read_text(encoding="utf-8")
    assert "No issues detected." in text
    assert "TOP ISSUES" not in text


def test_export_json(tmp_path, result, findings):
    health = compute_health(findings)
    path = export_json(result, findings, health, tmp_path, RUN_ID, title="Pool Migration")
    payload = json.loads(path.read_text(encoding="utf-8"))

    assert payload["metadata"]["report"] == "pools"
    assert payload["metadata"]["mode"] == "READ-ONLY"
    assert payload["health"]["score"] == 93.0
    assert [f["id"] for f in payload["findings"]] == ["POO-001", "POO-002"]
    assert set(payload["datasets"]) == {"pools", "pool_summary"}
    assert payload["collection"]["warnings"]
