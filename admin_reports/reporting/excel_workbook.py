"""
Excel workbook — Summary, one styled sheet per dataset, and the findings.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side

from .csv_export import FINDING_FIELDS, column_order

_INVALID_SHEET_CHARS = "[]:*?/\\"
MAX_SHEET_NAME = 31

SEVERITY_FILLS = {
    "critical": "C00000",
    "high":     "F4B084",
    "medium":   "FFE699",
    "low":      "9BC2E6",
    "informational": "D9D9D9",
}


def sheet_name(name: str, taken: set[str] | None = None) -> str:
    """Excel sheet names: max 31 chars, none of []:*?/\\, unique per workbook."""
    safe = "".join("_" if ch in _INVALID_SHEET_CHARS else ch for ch in name).strip("'") or "Sheet"
    safe = safe[:MAX_SHEET_NAME]
    taken = taken if taken is not None else set()
    candidate, n = safe, 2
    while candidate.lower() in taken:
        suffix = f"_{n}"
        candidate = safe[:MAX_SHEET_NAME - len(suffix)] + suffix
        n += 1
    taken.add(candidate.lower())
    return candidate


class WorkbookBuilder:
    """Formatted workbook with header styling, frozen header row and auto-fit."""

    def __init__(self):
        self.workbook = Workbook()
        # Remove default sheet
        del self.workbook[self.workbook.sheetnames[0]]
        self._names: set[str] = set()

        self.header_fill = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
        self.header_font = Font(bold=True, color="FFFFFF", size=11)
        self.border = Border(
            left=Side(style="thin"),
            right=Side(style="thin"),
            top=Side(style="thin"),
            bottom=Side(style="thin"),
        )

    def create_sheet(self, name: str):
        return self.workbook.create_sheet(sheet_name(name, self._names))

    def apply_header_style(self, ws, row: int = 1):
        for cell in ws[row]:
            cell.fill = self.header_fill
            cell.font = self.header_font
            cell.alignment = Alignment(horizontal="center", vertical="center")
            cell.border = self.border

    def auto_fit_columns(self, ws, min_width: int = 10, max_width: int = 60):
        for column in ws.columns:
            max_length = max((len(str(c.value)) for c in column if c.value is not None), default=0)
            ws.column_dimensions[column[0].column_letter].width = min(
                max(max_length + 2, min_width), max_width
            )

    def write_table(self, name: str, rows: list[dict], columns: list[str] | None = None):
        ws = self.create_sheet(name)
        columns = columns or column_order(rows)
        ws.append(columns)
        for row in rows:
            ws.append([_excel_value(row.get(c)) for c in columns])
        # Values beginning with "=" are data, not formulas
        for row_cells in ws.iter_rows(min_row=2):
            for cell in row_cells:
                if cell.data_type == "f":
                    cell.data_type = "s"

        self.apply_header_style(ws)
        self.auto_fit_columns(ws)
        ws.freeze_panes = "A2"
        if rows:
            ws.auto_filter.ref = ws.dimensions
        return ws

    def save(self, path: Path) -> Path:
        self.workbook.save(path)
        return path


def _excel_value(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        value = "; ".join(str(v) for v in value)
    elif isinstance(value, dict):
        value = "; ".join(f"{k}={v}" for k, v in value.items())
    if isinstance(value, str):
        return ILLEGAL_CHARACTERS_RE.sub("", value)
    return value


def export_workbook(
    result: Any,
    all_findings: list,
    health: Any,
    output_dir: Path,
    run_id: str,
    title: str = "",
    tenant_name: str = "",
) -> Path:
    """
    Write the .xlsx workbook for one report run.

    Returns:
        Path to the created workbook.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    builder = WorkbookBuilder()
    datasets = result.datasets()

    # --- Summary ---
    ws = builder.create_sheet("Summary")
    ws.cell(1, 1, title or result.collector_name).font = Font(bold=True, size=14)
    row = 3
    for label, value in [
        ("Tenant / environment", tenant_name or "-"),
        ("Run ID", run_id),
        ("Generated (UTC)", datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")),
        ("Health score", round(health.score, 1)),
        ("Rating", health.rating),
        ("Findings", health.total_findings),
    ]:
        ws.cell(row, 1, label).font = Font(bold=True)
        ws.cell(row, 2, value)
        row += 1

    row += 1
    ws.cell(row, 1, "Findings by severity").font = Font(bold=True, size=12)
    row += 1
    for severity, count in health.severity_counts.items():
        ws.cell(row, 1, severity.capitalize())
        cell = ws.cell(row, 2, count)
        if count and severity in SEVERITY_FILLS:
            cell.fill = PatternFill(start_color=SEVERITY_FILLS[severity],
                                    end_color=SEVERITY_FILLS[severity], fill_type="solid")
        row += 1

    row += 1
    ws.cell(row, 1, "Datasets").font = Font(bold=True, size=12)
    row += 1
    for name, rows in datasets.items():
        ws.cell(row, 1, name)
        ws.cell(row, 2, len(rows))
        row += 1
    ws.column_dimensions["A"].width = 30
    ws.column_dimensions["B"].width = 30

    # --- Datasets ---
    for name, rows in datasets.items():
        builder.write_table(name, rows)

    # --- Findings ---
    findings_ws = builder.write_table(
        "Findings", [f.to_row() for f in all_findings], FINDING_FIELDS
    )
    sev_col = FINDING_FIELDS.index("severity") + 1
    for r in range(2, findings_ws.max_row + 1):
        cell = findings_ws.cell(r, sev_col)
        colour = SEVERITY_FILLS.get(str(cell.value))
        if colour:
            cell.fill = PatternFill(start_color=colour, end_color=colour, fill_type="solid")
            if cell.value == "critical":
                cell.font = Font(bold=True, color="FFFFFF")

    return builder.save(output_dir / f"{result.collector_name}_{run_id}.xlsx")
