"""Reporting package — multi-format output generation."""

from .json_export import export_json
from .csv_export import export_csv
from .excel_workbook import export_workbook
from .text_report import export_text

__all__ = [
    "export_json",
    "export_csv",
    "export_workbook",
    "export_text",
]
