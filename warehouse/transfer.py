"""Spreadsheet export/import and JSON backup.

Imports run every row through :func:`warehouse.items.create_item`, so they
get exactly the validation and category rules of a single create.

Copyright (c) Bryn Gwalad 2025
"""

import csv
import io
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from sqlmodel import Session, select

from .access import ensure_admin, scope_filter
from .exceptions import InventoryError, ValidationError
from .identity import Identity
from .items import create_item
from .ledger import HistoryFilters, list_all_history
from .models import Item, ItemCreate
from .serializers import serialize_item

logger = logging.getLogger("warehouse_api.transfer")

ITEM_COLUMNS = [
    "ID",
    "Article",
    "Komponen",
    "No PO",
    "Order",
    "Qty",
    "Min Stock",
    "Lokasi",
    "Created At",
    "Updated At",
]
HISTORY_COLUMNS = [
    "ID",
    "Item ID",
    "Article",
    "Komponen",
    "Lokasi",
    "Old Qty",
    "New Qty",
    "Change",
    "Type",
    "Notes",
    "Updated By",
    "Created At",
]


@dataclass
class ImportResult:
    created: List[Item] = field(default_factory=list)
    errors: List[Tuple[int, str]] = field(default_factory=list)


def _scoped_items(session: Session, identity: Identity) -> List[Item]:
    statement = select(Item).order_by(Item.location_code, Item.article, Item.id)
    scope = scope_filter(identity, Item.category_id)
    if scope is not None:
        statement = statement.where(scope)
    return list(session.exec(statement).all())


def _write_csv(header: List[str], rows: Iterable[list]) -> str:
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(header)
    for row in rows:
        writer.writerow(["" if cell is None else cell for cell in row])
    return output.getvalue()


def export_items_csv(session: Session, identity: Identity) -> str:
    return _write_csv(
        ITEM_COLUMNS,
        (
            [
                item.id,
                item.article,
                item.komponen,
                item.purchase_order_ref,
                item.ordered_qty,
                item.qty,
                item.min_stock,
                item.location_code,
                item.created_at.isoformat(),
                item.updated_at.isoformat(),
            ]
            for item in _scoped_items(session, identity)
        ),
    )


def export_history_csv(session: Session, identity: Identity, filters: Optional[HistoryFilters] = None) -> str:
    return _write_csv(
        HISTORY_COLUMNS,
        (
            [
                entry.id,
                entry.item_id,
                entry.article,
                entry.item.komponen if entry.item is not None else None,
                entry.item.location_code if entry.item is not None else None,
                entry.old_qty,
                entry.new_qty,
                entry.change_amount,
                entry.change_type,
                entry.notes,
                entry.updated_by,
                entry.created_at.isoformat(),
            ]
            for entry in list_all_history(session, identity, filters)
        ),
    )


def read_tabular(filename: str, data: bytes) -> List[dict]:
    """Return the rows of a CSV or XLSX upload as dicts keyed by header."""
    ext = os.path.splitext(filename or "")[1].lower()
    if ext == ".csv":
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ValidationError("CSV import files must be UTF-8 encoded.") from exc
        return list(csv.DictReader(io.StringIO(text)))

    if ext == ".xlsx":
        from openpyxl import load_workbook

        workbook = load_workbook(filename=io.BytesIO(data), read_only=True, data_only=True)
        rows = workbook.active.iter_rows(values_only=True)
        header = [str(cell).strip() if cell is not None else "" for cell in next(rows, [])]
        return [dict(zip(header, row)) for row in rows if any(cell is not None for cell in row)]

    raise ValidationError("Unsupported file type. Upload a CSV or XLSX file.")


def _text(row: dict, column: str) -> Optional[str]:
    value = row.get(column)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _int(row: dict, column: str, default: int) -> int:
    value = _text(row, column)
    if value is None:
        return default
    try:
        return int(float(value))
    except ValueError:
        raise ValidationError(f"{column} must be a whole number, got '{value}'") from None


def row_to_draft(row: dict) -> ItemCreate:
    return ItemCreate(
        article=_text(row, "Article") or "",
        komponen=_text(row, "Komponen") or "",
        purchase_order_ref=_text(row, "No PO"),
        ordered_qty=_int(row, "Order", 0),
        qty=_int(row, "Qty", 0),
        min_stock=_int(row, "Min Stock", 10),
        location_code=_text(row, "Lokasi"),
    )


def import_items(session: Session, identity: Identity, rows: Iterable[dict]) -> ImportResult:
    """Create one item per row. Rows that fail are reported and skipped.

    Row numbers count the header as row 1.
    """
    result = ImportResult()
    for number, row in enumerate(rows, start=2):
        try:
            result.created.append(create_item(session, identity, row_to_draft(row)))
        except InventoryError as exc:
            result.errors.append((number, exc.message))
    logger.info(
        "Import by %s: %d items created, %d rows rejected",
        identity.user_id, len(result.created), len(result.errors),
    )
    return result


def backup_snapshot(session: Session, identity: Identity) -> dict:
    ensure_admin(identity, "download backups")
    items = _scoped_items(session, identity)
    return {
        "timestamp": datetime.utcnow().isoformat(),
        "item_count": len(items),
        "items": [serialize_item(item) for item in items],
    }
