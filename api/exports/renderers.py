# api/exports/renderers.py
"""
File renderers for verification database exports.

Every format is built from the same row projection so CSV, Excel and JSON
downloads always carry identical data.
"""
import csv
import io
import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter

from db_models.verification_database import VerificationRecord


EXPORT_COLUMNS = (
    "record_id",
    "transaction_id",
    "phone_number",
    "amount",
    "reward_amount",
    "transaction_date",
    "verification_status",
)

FILE_EXTENSIONS = {"csv": "csv", "excel": "xlsx", "json": "json"}

MEDIA_TYPES = {
    "csv": "text/csv",
    "excel": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "json": "application/json",
}

HEADER_FONT = Font(name="Calibri", bold=True, size=11, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="1F4E78", end_color="1F4E78", fill_type="solid")
MONEY_COLUMNS = ("amount", "reward_amount")
CENT = Decimal("0.01")


def header_label(column: str) -> str:
    """'reward_amount' -> 'Reward Amount'"""
    return column.replace("_", " ").title()


def mask_phone(phone_number: str) -> str:
    """Keep only the last four digits visible."""
    if len(phone_number) <= 4:
        return phone_number
    return "*" * (len(phone_number) - 4) + phone_number[-4:]


def record_rows(records: list[VerificationRecord]) -> list[dict[str, Any]]:
    return [
        {
            "record_id": record.id,
            "transaction_id": record.transaction_id,
            "phone_number": mask_phone(record.phone_number),
            "amount": _money(record.amount),
            "reward_amount": _money(record.reward_amount),
            "transaction_date": record.transaction_date.isoformat(),
            "verification_status": record.verification_status,
        }
        for record in records
    ]


def export_filename(database_id: str, file_format: str, generated_at: datetime) -> str:
    return (
        f"verification_{database_id[:8]}_{generated_at.strftime('%Y%m%dT%H%M%S')}"
        f".{FILE_EXTENSIONS[file_format]}"
    )


def render_csv(rows: list[dict[str, Any]], metadata: dict[str, Any]) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow([header_label(column) for column in EXPORT_COLUMNS])
    for row in rows:
        writer.writerow([row[column] for column in EXPORT_COLUMNS])
    return buffer.getvalue().encode("utf-8")


def render_excel(rows: list[dict[str, Any]], metadata: dict[str, Any]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Records"

    ws.append([header_label(column) for column in EXPORT_COLUMNS])
    for cell in ws[1]:
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
    for row in rows:
        ws.append([row[column] for column in EXPORT_COLUMNS])
    for column in MONEY_COLUMNS:
        letter = get_column_letter(EXPORT_COLUMNS.index(column) + 1)
        for cell in ws[letter][1:]:
            cell.number_format = "0.00"

    for index, column in enumerate(EXPORT_COLUMNS, start=1):
        widest = max([len(header_label(column))] + [len(str(row[column] or "")) for row in rows])
        ws.column_dimensions[get_column_letter(index)].width = max(widest + 2, 12)
    ws.freeze_panes = "A2"

    meta = wb.create_sheet("Metadata")
    meta.append(["Field", "Value"])
    for cell in meta[1]:
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
    for key, value in metadata.items():
        meta.append([header_label(key), "" if value is None else str(value)])
    meta.column_dimensions["A"].width = 24
    meta.column_dimensions["B"].width = 48

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def render_json(rows: list[dict[str, Any]], metadata: dict[str, Any]) -> bytes:
    return json.dumps({"metadata": metadata, "records": rows}, indent=2, default=str).encode("utf-8")


RENDERERS: dict[str, Callable[[list[dict[str, Any]], dict[str, Any]], bytes]] = {
    "csv": render_csv,
    "excel": render_excel,
    "json": render_json,
}


def _money(value: Decimal) -> Decimal:
    """Two decimal places, as stored; CSV and JSON write it as "10.10"."""
    return Decimal(value).quantize(CENT)
