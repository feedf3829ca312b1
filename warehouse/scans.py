"""Scan event log: lookups, QR-driven updates and inventory counts.

Scan rows are append-only. They disappear only together with their item.

Copyright (c) Bryn Gwalad 2025
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import or_
from sqlalchemy.orm import selectinload
from sqlmodel import Session, select

from .access import can_read, scope_filter
from .database import atomic
from .exceptions import NotFound, ValidationError
from .identity import Identity
from .models import Item, ScanAction, ScanLog, ScanType
from .qr import QrLookup, parse_qr_payload

logger = logging.getLogger("warehouse_api.scans")

LOOKUP_LIMIT = 10


@dataclass
class ScanFilters:
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    action: Optional[str] = None
    limit: int = 100
    offset: int = 0


@dataclass
class ScanLookupResult:
    qr_data: str
    items: List[Item]

    @property
    def count(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class CountLine:
    qr_data: str
    counted_qty: int


@dataclass
class CountResult:
    results: List[dict] = field(default_factory=list)
    discrepancies: List[dict] = field(default_factory=list)


def _enum_value(enum_cls, value) -> str:
    try:
        return enum_cls(value).value
    except ValueError:
        raise ValidationError(f"invalid {enum_cls.__name__} '{value}'") from None


def record_scan(
    session: Session,
    item: Item,
    scan_type,
    scan_data: Optional[str],
    action,
    result: Optional[str],
    actor: str,
) -> ScanLog:
    """Add one scan row for ``item``. The caller commits."""
    entry = ScanLog(
        item_id=item.id,
        article=item.article,
        scan_type=_enum_value(ScanType, scan_type),
        scan_data=scan_data,
        action=_enum_value(ScanAction, action),
        result=result,
        scanned_by=actor,
    )
    session.add(entry)
    return entry


def _scoped(statement, identity: Identity):
    scope = scope_filter(identity, Item.category_id)
    if scope is not None:
        statement = statement.where(scope)
    return statement


def find_items(session: Session, identity: Identity, lookup: QrLookup, limit: int = LOOKUP_LIMIT) -> List[Item]:
    """Items matching a parsed payload, most recently updated first."""
    if lookup.item_id is not None:
        item = session.get(Item, lookup.item_id)
        return [item] if item is not None and can_read(identity, item) else []
    if lookup.article is not None:
        condition = Item.article.icontains(lookup.article, autoescape=True)
    elif lookup.term is not None:
        condition = or_(
            Item.article.icontains(lookup.term, autoescape=True),
            Item.komponen.icontains(lookup.term, autoescape=True),
            Item.location_code.icontains(lookup.term, autoescape=True),
        )
    else:
        return []
    statement = _scoped(select(Item).where(condition), identity)
    statement = statement.order_by(Item.updated_at.desc(), Item.id.desc()).limit(limit)
    return list(session.exec(statement).all())


def resolve_qr_item_id(session: Session, identity: Identity, lookup: QrLookup) -> int:
    """Return the id of the single item a quick update targets.

    Ids are used directly; names match on the article only.
    """
    if lookup.item_id is not None:
        return lookup.item_id
    name = lookup.article if lookup.article is not None else lookup.term
    match = find_items(session, identity, QrLookup(article=name), limit=1) if name else []
    if not match:
        raise NotFound("Item not found", query=name)
    return match[0].id


def scan_lookup(
    session: Session,
    identity: Identity,
    qr_data: str,
    scan_type: str = ScanType.QR.value,
    mode: str = "auto",
) -> ScanLookupResult:
    """Find items for a scanned payload and log the lookup against the first hit.

    ``mode`` picks how the payload is read; see :func:`warehouse.qr.parse_qr_payload`.
    """
    lookup = parse_qr_payload(qr_data, mode)
    items = find_items(session, identity, lookup)
    if not items:
        raise NotFound("Item not found", qr_data=qr_data)

    with atomic(session):
        record_scan(
            session,
            items[0],
            scan_type,
            qr_data,
            ScanAction.SEARCH,
            f"Found {len(items)} items",
            identity.user_id,
        )
    logger.info("Scan lookup by %s matched %d items", identity.user_id, len(items))
    return ScanLookupResult(qr_data=qr_data, items=items)


def count_inventory(session: Session, identity: Identity, lines: Sequence[CountLine]) -> CountResult:
    """Reconcile physical counts against stored quantities.

    Quantities are not changed; every resolved line is logged as a
    ``check_in`` scan and mismatches are reported as discrepancies.
    """
    if not lines:
        raise ValidationError("scans list is required")

    outcome = CountResult()
    with atomic(session):
        for line in lines:
            try:
                lookup = parse_qr_payload(line.qr_data)
            except ValidationError:
                lookup = QrLookup()
            item = session.get(Item, lookup.item_id) if lookup.item_id is not None else None
            if item is None or not can_read(identity, item):
                outcome.results.append({"qr_data": line.qr_data, "success": False, "message": "Item not found"})
                continue
            if line.counted_qty < 0:
                outcome.results.append(
                    {"qr_data": line.qr_data, "success": False, "message": "Counted quantity cannot be negative"}
                )
                continue

            if item.qty != line.counted_qty:
                outcome.discrepancies.append(
                    {
                        "item_id": item.id,
                        "article": item.article,
                        "system_qty": item.qty,
                        "counted_qty": line.counted_qty,
                        "difference": line.counted_qty - item.qty,
                    }
                )
            record_scan(
                session,
                item,
                ScanType.QR,
                line.qr_data,
                ScanAction.CHECK_IN,
                f"Counted: {line.counted_qty}, System: {item.qty}",
                identity.user_id,
            )
            outcome.results.append(
                {
                    "item_id": item.id,
                    "article": item.article,
                    "system_qty": item.qty,
                    "counted_qty": line.counted_qty,
                    "success": True,
                }
            )
    logger.info(
        "Inventory count by %s: %d scans, %d discrepancies",
        identity.user_id, len(outcome.results), len(outcome.discrepancies),
    )
    return outcome


def list_scan_logs(session: Session, identity: Identity, filters: Optional[ScanFilters] = None) -> List[ScanLog]:
    filters = filters or ScanFilters()
    statement = _scoped(select(ScanLog).join(Item), identity)
    if filters.start_date is not None:
        statement = statement.where(ScanLog.created_at >= filters.start_date)
    if filters.end_date is not None:
        statement = statement.where(ScanLog.created_at <= filters.end_date)
    if filters.action:
        statement = statement.where(ScanLog.action == _enum_value(ScanAction, filters.action))
    statement = (
        statement.options(selectinload(ScanLog.item))
        .order_by(ScanLog.created_at.desc(), ScanLog.id.desc())
        .offset(filters.offset)
        .limit(filters.limit)
    )
    return list(session.exec(statement).all())
