"""Plain-dict representations of the ORM models.

Routes serialize while their session is still open. History and scan rows
carry a summary of their item (article, component, location); the queries
that feed them eager-load ``item`` so this costs no extra round trips.

Copyright (c) Bryn Gwalad 2025
"""

from datetime import datetime
from typing import Optional

from .locations import LocationStock
from .models import Category, Item, QtyHistory, ScanLog, User


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def serialize_category(cat: Category) -> dict:
    return {
        "id": cat.id,
        "name": cat.name,
        "description": cat.description,
    }


def serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "role": user.role,
        "category_id": user.category_id,
    }


def _item_summary(item: Optional[Item]) -> Optional[dict]:
    if item is None:
        return None
    return {
        "article": item.article,
        "komponen": item.komponen,
        "location_code": item.location_code,
    }


def serialize_item(item: Item) -> dict:
    return {
        "id": item.id,
        "article": item.article,
        "komponen": item.komponen,
        "purchase_order_ref": item.purchase_order_ref,
        "ordered_qty": item.ordered_qty,
        "qty": item.qty,
        "location_code": item.location_code,
        "min_stock": item.min_stock,
        "category_id": item.category_id,
        "created_at": _iso(item.created_at),
        "updated_at": _iso(item.updated_at),
    }


def serialize_history(entry: QtyHistory) -> dict:
    return {
        "id": entry.id,
        "item_id": entry.item_id,
        "article": entry.article,
        "old_qty": entry.old_qty,
        "new_qty": entry.new_qty,
        "change_amount": entry.change_amount,
        "change_type": entry.change_type,
        "notes": entry.notes,
        "updated_by": entry.updated_by,
        "created_at": _iso(entry.created_at),
        "item": _item_summary(entry.item),
    }


def serialize_scan(entry: ScanLog) -> dict:
    return {
        "id": entry.id,
        "item_id": entry.item_id,
        "article": entry.article,
        "scan_type": entry.scan_type,
        "scan_data": entry.scan_data,
        "action": entry.action,
        "result": entry.result,
        "scanned_by": entry.scanned_by,
        "created_at": _iso(entry.created_at),
        "item": _item_summary(entry.item),
    }


def serialize_location(stock: LocationStock) -> dict:
    loc = stock.location
    return {
        "id": loc.id,
        "name": loc.name,
        "description": loc.description,
        "capacity": loc.capacity,
        "current_items": stock.current_items,
        "created_at": _iso(loc.created_at),
        "items": [{"id": i.id, "article": i.article, "qty": i.qty} for i in stock.items],
    }
