"""Dashboard figures, restricted to the caller's category scope.

Copyright (c) Bryn Gwalad 2025
"""

from sqlalchemy import func
from sqlalchemy.orm import selectinload
from sqlmodel import Session, select

from .access import scope_filter
from .identity import Identity
from .models import Item, QtyHistory, ScanLog
from .serializers import serialize_history, serialize_scan

RECENT_ACTIVITY_LIMIT = 10
RECENT_SCAN_LIMIT = 5


def dashboard_stats(session: Session, identity: Identity) -> dict:
    scope = scope_filter(identity, Item.category_id)

    def scoped(statement):
        return statement.where(scope) if scope is not None else statement

    total_items = session.exec(scoped(select(func.count(Item.id)))).one()
    total_qty = session.exec(scoped(select(func.coalesce(func.sum(Item.qty), 0)))).one()
    total_ordered = session.exec(scoped(select(func.coalesce(func.sum(Item.ordered_qty), 0)))).one()
    low_stock = session.exec(scoped(select(func.count(Item.id)).where(Item.qty <= Item.min_stock))).one()

    item_count = func.count(Item.id).label("item_count")
    by_location = session.exec(
        scoped(
            select(Item.location_code, item_count, func.coalesce(func.sum(Item.qty), 0))
            .where(Item.location_code.is_not(None))
            .group_by(Item.location_code)
            .order_by(item_count.desc(), Item.location_code)
        )
    ).all()

    recent_history = session.exec(
        scoped(select(QtyHistory).join(Item))
        .options(selectinload(QtyHistory.item))
        .order_by(QtyHistory.created_at.desc(), QtyHistory.id.desc())
        .limit(RECENT_ACTIVITY_LIMIT)
    ).all()
    recent_scans = session.exec(
        scoped(select(ScanLog).join(Item))
        .options(selectinload(ScanLog.item))
        .order_by(ScanLog.created_at.desc(), ScanLog.id.desc())
        .limit(RECENT_SCAN_LIMIT)
    ).all()

    return {
        "total_items": total_items,
        "total_qty": total_qty,
        "total_ordered": total_ordered,
        "low_stock_items": low_stock,
        "items_by_location": [
            {"location_code": code, "item_count": count, "total_qty": qty}
            for code, count, qty in by_location
        ],
        "recent_activities": [serialize_history(h) for h in recent_history],
        "recent_scans": [serialize_scan(s) for s in recent_scans],
    }
