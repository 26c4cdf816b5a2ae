"""
Work-Item Table Export

Two flat renderings of the table for download:
- CSV: header "item,quantity,unitPrice,price", descriptions always quoted
  (embedded quotes doubled), numbers written as plain values
- JSON: the rows in wire format, indented by 2 spaces
"""

import json
from typing import Iterable

from workitems.models.work_item import ExportFile, LineItem


CSV_HEADERS = ["item", "quantity", "unitPrice", "price"]

CSV_FILE_NAME = "work-items.csv"
CSV_MIME_TYPE = "text/csv;charset=utf-8"
JSON_FILE_NAME = "work-items.json"
JSON_MIME_TYPE = "application/json;charset=utf-8"


def _plain_number(value: float) -> int | float:
    # 450.0 -> 450, the way the table shows it
    if float(value).is_integer():
        return int(value)
    return float(value)


def format_number(value: float) -> str:
    """Render a number without formatting: 450, 22.5, 0.1."""
    return repr(_plain_number(value))


def _quote(text: str) -> str:
    return '"' + text.replace('"', '""') + '"'


def export_csv(rows: Iterable[LineItem]) -> str:
    """Render rows as delimited text, one line per row."""
    lines = [",".join(CSV_HEADERS)]
    for row in rows:
        lines.append(",".join([
            _quote(row.description),
            format_number(row.quantity),
            format_number(row.unit_price),
            format_number(row.total_price),
        ]))
    return "\n".join(lines)


def export_json(rows: Iterable[LineItem]) -> str:
    """Render rows as a pretty-printed JSON array."""
    records = []
    for row in rows:
        record = row.to_record()
        for key in ("quantity", "unitPrice", "price"):
            record[key] = _plain_number(record[key])
        records.append(record)
    return json.dumps(records, indent=2, ensure_ascii=False)


def csv_file(rows: Iterable[LineItem]) -> ExportFile:
    """CSV export packaged for a download button."""
    return ExportFile(
        file_name=CSV_FILE_NAME,
        mime_type=CSV_MIME_TYPE,
        content=export_csv(rows).encode("utf-8"),
    )


def json_file(rows: Iterable[LineItem]) -> ExportFile:
    """JSON export packaged for a download button."""
    return ExportFile(
        file_name=JSON_FILE_NAME,
        mime_type=JSON_MIME_TYPE,
        content=export_json(rows).encode("utf-8"),
    )
