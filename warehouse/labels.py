"""Label payloads: the text encoded into QR codes and barcodes on item labels.

Rendering the images is left to the client.

Copyright (c) Bryn Gwalad 2025
"""

import json
from typing import List, Sequence

from sqlmodel import Session, select

from .access import can_read
from .exceptions import ValidationError
from .identity import Identity
from .items import get_item
from .models import Category, Item
from .qr import barcode_text


def qr_payload(item: Item, **extra) -> str:
    payload = {
        "id": item.id,
        "article": item.article,
        "komponen": item.komponen,
        "location": item.location_code,
        "minStock": item.min_stock,
    }
    payload.update(extra)
    payload["action"] = "scan_update"
    return json.dumps(payload)


def _category_name(session: Session, item: Item):
    if item.category_id is None:
        return None
    category = session.get(Category, item.category_id)
    return category.name if category is not None else None


def label_data(session: Session, identity: Identity, item_id: int) -> dict:
    item = get_item(session, identity, item_id)
    return {
        "id": item.id,
        "article": item.article,
        "komponen": item.komponen,
        "purchase_order_ref": item.purchase_order_ref,
        "qty": item.qty,
        "min_stock": item.min_stock,
        "location_code": item.location_code,
        "category": _category_name(session, item),
        "created_at": item.created_at.isoformat(),
        "barcode": barcode_text(item.id),
        "qr_data": qr_payload(item),
    }


def bulk_labels(session: Session, identity: Identity, item_ids: Sequence[int]) -> List[dict]:
    """Labels for every readable item in ``item_ids``; others are left out."""
    if not item_ids:
        raise ValidationError("item_ids list is required")
    statement = (
        select(Item)
        .where(Item.id.in_(list(item_ids)))
        .order_by(Item.location_code, Item.article)
    )
    labels = []
    for item in session.exec(statement).all():
        if not can_read(identity, item):
            continue
        labels.append(
            {
                "id": item.id,
                "article": item.article,
                "komponen": item.komponen,
                "qty": item.qty,
                "location_code": item.location_code,
                "min_stock": item.min_stock,
                "purchase_order_ref": item.purchase_order_ref or "",
                "category": _category_name(session, item),
                "barcode": barcode_text(item.id, prefix="WH"),
                "qr_data": qr_payload(item, qty=item.qty),
            }
        )
    return labels
