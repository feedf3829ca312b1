"""Item repository: create, read, update, delete and list inventory items.

Quantity changes are delegated to :mod:`warehouse.ledger` so they always land
together with their history row.

Copyright (c) Bryn Gwalad 2025
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import func, or_
from sqlmodel import Session, select

from . import ledger
from .access import can_read, ensure_admin, ensure_write, scope_filter
from .database import atomic
from .exceptions import NotFound, PermissionDenied, ValidationError
from .identity import Identity
from .models import Category, Item, ItemCreate, ItemUpdate, Role

logger = logging.getLogger("warehouse_api.items")

REQUIRED_TEXT_FIELDS = ("article", "komponen")
NON_NEGATIVE_FIELDS = ("qty", "ordered_qty", "min_stock")
SORTABLE_FIELDS = (
    "id",
    "article",
    "komponen",
    "purchase_order_ref",
    "ordered_qty",
    "qty",
    "location_code",
    "min_stock",
    "category_id",
    "created_at",
    "updated_at",
)


@dataclass
class ItemFilters:
    search: Optional[str] = None
    location_code: Optional[str] = None
    komponen: Optional[str] = None
    low_stock: bool = False
    limit: int = 100
    offset: int = 0
    sort_by: Optional[str] = None
    sort_order: str = "asc"


@dataclass
class ItemPage:
    items: List[Item] = field(default_factory=list)
    total: int = 0
    limit: int = 100
    offset: int = 0

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.items) < self.total


def _required_text(value: Optional[str], name: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{name} is required", field=name)
    return text


def _check_fields(data: dict, fields: Iterable[str]) -> None:
    """Validate the text and numeric fields present in ``data`` in place."""
    for name in fields:
        if name not in data:
            continue
        if name in REQUIRED_TEXT_FIELDS:
            data[name] = _required_text(data[name], name)
        elif name in NON_NEGATIVE_FIELDS:
            value = data[name]
            if value is None or value < 0:
                raise ValidationError(f"{name} cannot be negative", field=name)


def _ensure_category(session: Session, category_id: Optional[int]) -> None:
    if category_id is not None and session.get(Category, category_id) is None:
        raise NotFound(f"Category {category_id} not found", category_id=category_id)


def create_item(session: Session, identity: Identity, draft: ItemCreate) -> Item:
    """Create an item, recording its opening stock as an ``inbound`` change.

    Staff bound to a category always create into that category, whatever the
    draft says. Bulk imports go through here too.
    """
    data = draft.model_dump()
    _check_fields(data, REQUIRED_TEXT_FIELDS + NON_NEGATIVE_FIELDS)

    if identity.role == Role.STAFF and identity.category_id is not None:
        if data["category_id"] != identity.category_id:
            logger.info(
                "Forcing category %s -> %s for item created by %s",
                data["category_id"], identity.category_id, identity.user_id,
            )
        data["category_id"] = identity.category_id
    ensure_write(identity, data["category_id"])

    with atomic(session):
        _ensure_category(session, data["category_id"])
        item = Item(**data)
        session.add(item)
        session.flush()
        ledger.record_initial_stock(session, item, identity.user_id)
    session.refresh(item)
    logger.info("Item %s '%s' created by %s (qty=%s)", item.id, item.article, identity.user_id, item.qty)
    return item


def update_item(session: Session, identity: Identity, item_id: int, patch: ItemUpdate) -> Item:
    """Apply the fields present in ``patch``.

    A changed ``qty`` is posted as an absolute set through the ledger in the
    same transaction as the other fields.
    """
    changes = patch.model_dump(exclude_unset=True)
    new_qty = changes.pop("qty", None)
    change_type = changes.pop("change_type", None)
    change_notes = changes.pop("change_notes", None)
    _check_fields(changes, REQUIRED_TEXT_FIELDS + NON_NEGATIVE_FIELDS)

    with atomic(session):
        item = ledger.load_item_for_update(session, item_id)
        ensure_write(identity, item.category_id)
        if "category_id" in changes and changes["category_id"] != item.category_id:
            if not identity.is_admin:
                raise PermissionDenied("only admins may move items between categories", item_id=item_id)
            _ensure_category(session, changes["category_id"])

        for name, value in changes.items():
            setattr(item, name, value)
        item.updated_at = datetime.utcnow()
        session.add(item)

        if new_qty is not None and new_qty != item.qty:
            request = ledger.SetQuantity(target=new_qty, change_type=change_type, notes=change_notes)
            ledger.post_change(
                session,
                identity,
                item,
                request,
                ledger.detail_change_type,
                lambda request, old, new: f"Qty updated from {old} to {new}",
            )
    session.refresh(item)
    logger.info("Item %s updated by %s: %s", item.id, identity.user_id, sorted(changes))
    return item


def delete_item(session: Session, identity: Identity, item_id: int) -> None:
    """Delete an item (admins only).

    A final qty -> 0 history entry is written first; the item's history and
    scan rows are then removed with it.
    """
    ensure_admin(identity, "delete items")
    with atomic(session):
        item = ledger.load_item_for_update(session, item_id)
        entry = ledger.record_removal(session, item, identity.user_id)
        logger.info(
            "Deleting item %s '%s' (qty %s -> 0) by %s",
            item.id, entry.article, entry.old_qty, identity.user_id,
        )
        session.delete(item)


def get_item(session: Session, identity: Identity, item_id: int) -> Item:
    """Return an item, or ``NotFound`` when it is missing or outside the caller's scope."""
    item = session.get(Item, item_id)
    if item is None or not can_read(identity, item):
        raise NotFound(f"Item {item_id} not found", item_id=item_id)
    return item


def _conditions(identity: Identity, filters: ItemFilters) -> list:
    conditions = []
    scope = scope_filter(identity, Item.category_id)
    if scope is not None:
        conditions.append(scope)
    if filters.search:
        term = filters.search.strip()
        conditions.append(
            or_(
                Item.article.icontains(term, autoescape=True),
                Item.komponen.icontains(term, autoescape=True),
                Item.purchase_order_ref.icontains(term, autoescape=True),
                Item.location_code.icontains(term, autoescape=True),
            )
        )
    if filters.location_code:
        conditions.append(Item.location_code == filters.location_code)
    if filters.komponen:
        conditions.append(Item.komponen == filters.komponen)
    if filters.low_stock:
        conditions.append(Item.qty <= Item.min_stock)
    return conditions


def _ordering(filters: ItemFilters) -> list:
    if filters.sort_by:
        if filters.sort_by not in SORTABLE_FIELDS:
            raise ValidationError(f"cannot sort by '{filters.sort_by}'", field="sort_by")
        column = getattr(Item, filters.sort_by)
        first = [column.desc() if filters.sort_order.lower() == "desc" else column.asc()]
    else:
        first = [Item.location_code.asc(), Item.article.asc()]
    return first + [Item.updated_at.desc(), Item.id.desc()]


def list_items(session: Session, identity: Identity, filters: Optional[ItemFilters] = None) -> ItemPage:
    """List items visible to ``identity``.

    Scoped identities silently see only their own category.
    """
    filters = filters or ItemFilters()
    if filters.limit < 1 or filters.offset < 0:
        raise ValidationError("limit must be positive and offset non-negative")
    conditions = _conditions(identity, filters)

    statement = select(Item)
    count_statement = select(func.count(Item.id))
    if conditions:
        statement = statement.where(*conditions)
        count_statement = count_statement.where(*conditions)
    statement = statement.order_by(*_ordering(filters)).offset(filters.offset).limit(filters.limit)

    items = list(session.exec(statement).all())
    total = session.exec(count_statement).one()
    return ItemPage(items=items, total=total, limit=filters.limit, offset=filters.offset)


def unique_values(session: Session, identity: Identity) -> dict:
    """Distinct component and location values in scope, for filter dropdowns."""
    scope = scope_filter(identity, Item.category_id)
    values = {}
    for name, column in (("komponen", Item.komponen), ("location_code", Item.location_code)):
        statement = select(column).where(column.is_not(None)).distinct().order_by(column)
        if scope is not None:
            statement = statement.where(scope)
        values[name] = list(session.exec(statement).all())
    return values
