"""Editable work-item table: reconciliation, state and export."""

from workitems.table.export import (
    CSV_HEADERS,
    csv_file,
    export_csv,
    export_json,
    format_number,
    json_file,
)
from workitems.table.line_item_table import DEFAULT_NEW_ROW_LABEL, LineItemTable
from workitems.table.reconcile import reconcile

__all__ = [
    "CSV_HEADERS",
    "DEFAULT_NEW_ROW_LABEL",
    "LineItemTable",
    "csv_file",
    "export_csv",
    "export_json",
    "format_number",
    "json_file",
    "reconcile",
]
