"""Quantity ledger: the only code path that changes ``Item.qty``.

Every change is written together with exactly one ``QtyHistory`` row inside a
single transaction, and no change may take stock below zero. Two entry points
share :func:`post_change` and differ only in how they classify a change when
the caller does not name a type:

* :func:`apply_detail_update`: ``adjustment`` for deltas, ``manual`` for
  absolute targets.
* :func:`apply_qr_update`: ``inbound``/``outbound`` by the sign of the
  change, ``qr_scan`` when nothing changed.

:func:`bulk_apply` runs each line in its own transaction and skips lines that
fail, so one bad line never blocks the rest.

Copyright (c) Bryn Gwalad 2025
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Union

from sqlalchemy.orm import selectinload
from sqlmodel import Session, select

from .access import can_read, ensure_adjust, scope_filter
from .database import atomic
from .exceptions import ConflictError, NotFound, PermissionDenied, ValidationError
from .identity import Identity
from .models import ChangeType, Item, QtyHistory, ScanAction, ScanType
from .qr import parse_qr_payload
from .scans import record_scan, resolve_qr_item_id

logger = logging.getLogger("warehouse_api.ledger")


@dataclass(frozen=True)
class Adjustment:
    """Change the stock by a signed, nonzero ``delta``."""

    delta: int
    change_type: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class SetQuantity:
    """Replace the stock with ``target``."""

    target: int
    change_type: Optional[str] = None
    notes: Optional[str] = None


QuantityRequest = Union[Adjustment, SetQuantity]
ChangeTypeRule = Callable[[QuantityRequest, int], ChangeType]
NotesRule = Callable[[QuantityRequest, int, int], str]


@dataclass
class LedgerResult:
    item: Item
    history: QtyHistory


@dataclass(frozen=True)
class BulkLine:
    item_id: int
    adjustment: Optional[int] = None
    new_qty: Optional[int] = None


@dataclass
class BulkResult:
    attempted: int
    results: List[dict] = field(default_factory=list)

    @property
    def updated_count(self) -> int:
        return len(self.results)


@dataclass
class HistoryFilters:
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    change_type: Optional[str] = None
    limit: int = 100
    offset: int = 0


def quantity_request(
    new_qty: Optional[int] = None,
    adjustment: Optional[int] = None,
    change_type: Optional[str] = None,
    notes: Optional[str] = None,
) -> QuantityRequest:
    """Build a request from loose input; an absolute target wins over a delta."""
    if new_qty is not None:
        return SetQuantity(target=new_qty, change_type=change_type, notes=notes)
    if adjustment is not None:
        return Adjustment(delta=adjustment, change_type=change_type, notes=notes)
    raise ValidationError("Either new_qty or adjustment is required")


def validate_change_type(value: str) -> str:
    try:
        return ChangeType(value).value
    except ValueError:
        allowed = ", ".join(t.value for t in ChangeType)
        raise ValidationError(f"unknown change type '{value}' (expected one of: {allowed})") from None


def _signed(amount: int) -> str:
    return f"{amount:+d}"


def detail_change_type(request: QuantityRequest, change_amount: int) -> ChangeType:
    if isinstance(request, Adjustment):
        return ChangeType.ADJUSTMENT
    return ChangeType.MANUAL


def detail_notes(request: QuantityRequest, old_qty: int, new_qty: int) -> str:
    if isinstance(request, Adjustment):
        return f"Adjusted by {_signed(request.delta)}"
    return f"Updated from {old_qty} to {new_qty}"


def qr_change_type(request: QuantityRequest, change_amount: int) -> ChangeType:
    if change_amount > 0:
        return ChangeType.INBOUND
    if change_amount < 0:
        return ChangeType.OUTBOUND
    return ChangeType.QR_SCAN


def qr_notes(request: QuantityRequest, old_qty: int, new_qty: int) -> str:
    if isinstance(request, Adjustment):
        return f"QR Scan Update: Adjusted by {_signed(request.delta)}"
    return f"QR Scan Update: Set to {request.target}"


def bulk_change_type(request: QuantityRequest, change_amount: int) -> ChangeType:
    return ChangeType.ADJUSTMENT


def bulk_notes(request: QuantityRequest, old_qty: int, new_qty: int) -> str:
    if isinstance(request, Adjustment):
        return f"Bulk update: Adjusted by {request.delta}"
    return f"Bulk update: Set to {request.target}"


def load_item_for_update(session: Session, item_id: int) -> Item:
    """Load an item for a change, locking its row where the backend supports it.

    SQLite ignores the lock; there the version counter on ``Item`` rejects the
    losing write with ``ConflictError`` when the surrounding block commits.
    """
    statement = (
        select(Item)
        .where(Item.id == item_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    item = session.exec(statement).first()
    if item is None:
        raise NotFound(f"Item {item_id} not found", item_id=item_id)
    return item


def _history_entry(item: Item, old_qty: int, new_qty: int, change_type: str, notes: Optional[str], actor: str) -> QtyHistory:
    return QtyHistory(
        item_id=item.id,
        article=item.article,
        old_qty=old_qty,
        new_qty=new_qty,
        change_amount=new_qty - old_qty,
        change_type=change_type,
        notes=notes,
        updated_by=actor,
    )


def post_change(
    session: Session,
    identity: Identity,
    item: Item,
    request: QuantityRequest,
    default_type: ChangeTypeRule,
    default_notes: NotesRule,
) -> QtyHistory:
    """Apply ``request`` to ``item`` and add its history row. Does not commit.

    All checks run before anything is written, so a rejected request leaves
    the session untouched.
    """
    ensure_adjust(identity, item)

    old_qty = item.qty
    if isinstance(request, Adjustment):
        if request.delta == 0:
            raise ValidationError("adjustment must be nonzero", item_id=item.id)
        new_qty = old_qty + request.delta
    else:
        if request.target < 0:
            raise ValidationError("target quantity cannot be negative", item_id=item.id)
        new_qty = request.target
    if new_qty < 0:
        raise ValidationError(
            "quantity cannot be negative", item_id=item.id, old_qty=old_qty, new_qty=new_qty
        )

    change_amount = new_qty - old_qty
    if request.change_type:
        change_type = validate_change_type(request.change_type)
    else:
        change_type = default_type(request, change_amount).value
    notes = request.notes or default_notes(request, old_qty, new_qty)

    item.qty = new_qty
    item.updated_at = datetime.utcnow()
    session.add(item)
    entry = _history_entry(item, old_qty, new_qty, change_type, notes, identity.user_id)
    session.add(entry)
    session.flush()
    logger.debug("Posted %s %s -> %s on item=%s by %s", change_type, old_qty, new_qty, item.id, identity.user_id)
    return entry


def record_initial_stock(session: Session, item: Item, actor: str) -> Optional[QtyHistory]:
    """Add the ``inbound`` 0 -> qty entry for a newly created item with stock."""
    if item.qty <= 0:
        return None
    entry = _history_entry(item, 0, item.qty, ChangeType.INBOUND.value, "Initial stock creation", actor)
    session.add(entry)
    return entry


def record_removal(session: Session, item: Item, actor: str) -> QtyHistory:
    """Add the final qty -> 0 entry written just before an item is deleted."""
    entry = _history_entry(item, item.qty, 0, ChangeType.OUTBOUND.value, "Item deleted from system", actor)
    item.history.append(entry)
    session.flush()
    return entry


def apply_detail_update(session: Session, identity: Identity, item_id: int, request: QuantityRequest) -> LedgerResult:
    with atomic(session):
        item = load_item_for_update(session, item_id)
        entry = post_change(session, identity, item, request, detail_change_type, detail_notes)
    session.refresh(item)
    session.refresh(entry)
    logger.info(
        "Qty updated item=%s %s -> %s (%s) by %s",
        item.id, entry.old_qty, entry.new_qty, entry.change_type, identity.user_id,
    )
    return LedgerResult(item=item, history=entry)


def apply_qr_update(session: Session, identity: Identity, qr_data: str, request: QuantityRequest) -> LedgerResult:
    """Change the quantity of the item a scanned payload points at.

    The scan itself is logged as an ``update`` action in the same transaction.
    """
    lookup = parse_qr_payload(qr_data)
    with atomic(session):
        item = load_item_for_update(session, resolve_qr_item_id(session, identity, lookup))
        entry = post_change(session, identity, item, request, qr_change_type, qr_notes)
        record_scan(
            session,
            item,
            ScanType.QR,
            qr_data,
            ScanAction.UPDATE,
            f"qty {entry.old_qty} → {entry.new_qty}",
            identity.user_id,
        )
    session.refresh(item)
    session.refresh(entry)
    logger.info("QR update item=%s %s -> %s by %s", item.id, entry.old_qty, entry.new_qty, identity.user_id)
    return LedgerResult(item=item, history=entry)


def bulk_apply(
    session: Session,
    identity: Identity,
    lines: Sequence[BulkLine],
    change_type: Optional[str] = None,
    notes: Optional[str] = None,
) -> BulkResult:
    if not lines:
        raise ValidationError("items list is required")
    if change_type:
        change_type = validate_change_type(change_type)

    result = BulkResult(attempted=len(lines))
    for line in lines:
        try:
            request = quantity_request(line.new_qty, line.adjustment, change_type, notes)
            with atomic(session):
                item = load_item_for_update(session, line.item_id)
                entry = post_change(session, identity, item, request, bulk_change_type, bulk_notes)
                row = {
                    "id": item.id,
                    "article": entry.article,
                    "old_qty": entry.old_qty,
                    "new_qty": entry.new_qty,
                    "success": True,
                }
        except (ConflictError, NotFound, PermissionDenied, ValidationError) as exc:
            logger.info("Bulk update skipped item=%s: %s", line.item_id, exc)
            continue
        result.results.append(row)

    logger.info(
        "Bulk update by %s: %d of %d items updated",
        identity.user_id, result.updated_count, result.attempted,
    )
    return result


def _filter_history(statement, filters: HistoryFilters):
    if filters.start_date is not None:
        statement = statement.where(QtyHistory.created_at >= filters.start_date)
    if filters.end_date is not None:
        statement = statement.where(QtyHistory.created_at <= filters.end_date)
    if filters.change_type:
        statement = statement.where(QtyHistory.change_type == validate_change_type(filters.change_type))
    return (
        statement.options(selectinload(QtyHistory.item))
        .order_by(QtyHistory.created_at.desc(), QtyHistory.id.desc())
        .offset(filters.offset)
        .limit(filters.limit)
    )


def list_history(
    session: Session, identity: Identity, item_id: int, filters: Optional[HistoryFilters] = None
) -> List[QtyHistory]:
    """History of one item, newest first."""
    item = session.get(Item, item_id)
    if item is None or not can_read(identity, item):
        raise NotFound(f"Item {item_id} not found", item_id=item_id)
    if filters is None:
        filters = HistoryFilters(limit=50)
    statement = select(QtyHistory).where(QtyHistory.item_id == item_id)
    return list(session.exec(_filter_history(statement, filters)).all())


def list_all_history(session: Session, identity: Identity, filters: Optional[HistoryFilters] = None) -> List[QtyHistory]:
    """History across every item visible to ``identity``, newest first."""
    statement = select(QtyHistory).join(Item)
    scope = scope_filter(identity, Item.category_id)
    if scope is not None:
        statement = statement.where(scope)
    return list(session.exec(_filter_history(statement, filters or HistoryFilters())).all())
