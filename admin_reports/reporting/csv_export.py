"""
CSV exporter — One CSV per dataset plus a findings CSV.
"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Any, Iterable


def column_order(rows: Iterable[dict]) -> list[str]:
    """Keys of the first row, then any key first seen in a later row."""
    columns: list[str] = []
    seen = set()
    for row in rows:
        for key in row:
            if key not in seen:
                seen.add(key)
                columns.append(key)
    return columns


def write_rows(path: Path, rows: list[dict], columns: list[str] | None = None) -> Path:
    columns = columns or column_order(rows)
    with open(path, "w", newline="", encoding="utf-8-sig") as fh:
        writer = csv.DictWriter(fh, fieldnames=columns, extrasaction="ignore")
        writer.writeheader()
        for row in rows:
            writer.writerow({k: _cell(row.get(k)) for k in columns})
    return path


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return "; ".join(str(v) for v in value)
    return value


FINDING_FIELDS = [
    "id", "report", "check", "title", "subject", "severity",
    "deduction", "detail", "recommendation", "evidence",
]


def export_csv(
    result: Any,
    all_findings: list,
    output_dir: Path,
    run_id: str,
) -> list[Path]:
    """
    Write CSV files for every dataset and for the findings.

    Returns:
        List of created CSV file paths.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    created = []

    # --- Datasets ---
    for name, rows in result.datasets().items():
        if not rows:
            continue
        created.append(write_rows(output_dir / f"{name}_{run_id}.csv", rows))

    # --- Findings CSV ---
    created.append(write_rows(
        output_dir / f"findings_{run_id}.csv",
        [f.to_row() for f in all_findings],
        FINDING_FIELDS,
    ))

    return created
