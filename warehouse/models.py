"""Data models for the Warehouse API.

This module defines the SQLModel tables (Category, User, Location, Item,
QtyHistory and ScanLog) and the request bodies accepted by the HTTP layer.

QtyHistory and ScanLog rows are audit records: once flushed they can only be
removed by deleting their parent Item.

Item rows carry a version counter. An UPDATE or DELETE issued from a stale
copy of the row matches nothing and fails with ``StaleDataError``.

Copyright (c) Bryn Gwalad 2025
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import Column, Integer, event
from sqlmodel import Field, Relationship, SQLModel

from .exceptions import ImmutableRecordError


class Role(str, Enum):
    ADMIN = "admin"
    STAFF = "staff"
    OPERATOR = "operator"


class ChangeType(str, Enum):
    MANUAL = "manual"
    ADJUSTMENT = "adjustment"
    INBOUND = "inbound"
    OUTBOUND = "outbound"
    CORRECTION = "correction"
    QR_SCAN = "qr_scan"


class ScanType(str, Enum):
    QR = "qr"
    BARCODE = "barcode"
    MANUAL = "manual"


class ScanAction(str, Enum):
    SEARCH = "search"
    UPDATE = "update"
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"


class Category(SQLModel, table=True):
    """A category used to group items and to scope users.

    Attributes:
        id: primary key
        name: unique category name
        description: optional free-text description
        items: reverse relationship to Item
        users: reverse relationship to User
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True)
    description: Optional[str] = None
    items: List["Item"] = Relationship(back_populates="category")
    users: List["User"] = Relationship(back_populates="category")


class User(SQLModel, table=True):
    """An account allowed to call the API.

    A null ``category_id`` leaves the user unscoped; the role still decides
    what the user may change.
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, unique=True)
    password_hash: str
    role: str = Field(default=Role.OPERATOR.value)
    category_id: Optional[int] = Field(default=None, foreign_key="category.id")
    category: Optional[Category] = Relationship(back_populates="users")


class Location(SQLModel, table=True):
    """A rack or bin. Items point at it through ``Item.location_code == name``."""

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True)
    description: Optional[str] = None
    capacity: int = 100
    created_at: datetime = Field(default_factory=datetime.utcnow)


_item_version = Column("version_id", Integer, nullable=False)


class Item(SQLModel, table=True):
    """A stock-keeping unit tracked in the warehouse.

    Attributes:
        id: primary key
        article: item name
        komponen: component/type
        purchase_order_ref: optional purchase order number
        ordered_qty: quantity on order
        qty: current stock, only changed through the quantity ledger
        location_code: rack/column code
        min_stock: low-stock threshold
        category_id: foreign key to Category
        version_id: optimistic concurrency counter, bumped on every UPDATE
    """

    __mapper_args__ = {"version_id_col": _item_version}

    id: Optional[int] = Field(default=None, primary_key=True)
    article: str = Field(index=True)
    komponen: str = Field(index=True)
    purchase_order_ref: Optional[str] = None
    ordered_qty: int = 0
    qty: int = 0
    location_code: Optional[str] = Field(default=None, index=True)
    min_stock: int = 10
    category_id: Optional[int] = Field(default=None, foreign_key="category.id", index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    version_id: Optional[int] = Field(default=None, sa_column=_item_version)

    category: Optional[Category] = Relationship(back_populates="items")
    history: List["QtyHistory"] = Relationship(
        back_populates="item",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )
    scans: List["ScanLog"] = Relationship(
        back_populates="item",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )


class QtyHistory(SQLModel, table=True):
    """One quantity change of an item.

    ``article`` is copied from the item when the change is written so the
    trail keeps the name as it was at that moment.
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    item_id: int = Field(foreign_key="item.id", index=True)
    article: str
    old_qty: int
    new_qty: int
    change_amount: int
    change_type: str = Field(default=ChangeType.MANUAL.value)
    notes: Optional[str] = None
    updated_by: str = "System"
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)

    item: Optional[Item] = Relationship(back_populates="history")


class ScanLog(SQLModel, table=True):
    """A QR/barcode driven lookup, update or count."""

    id: Optional[int] = Field(default=None, primary_key=True)
    item_id: int = Field(foreign_key="item.id", index=True)
    article: Optional[str] = None
    scan_type: str = Field(default=ScanType.QR.value)
    scan_data: Optional[str] = None
    action: str
    result: Optional[str] = None
    scanned_by: str = "System"
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)

    item: Optional[Item] = Relationship(back_populates="scans")


@event.listens_for(QtyHistory, "before_update")
@event.listens_for(ScanLog, "before_update")
def _reject_audit_update(mapper, connection, target):
    raise ImmutableRecordError(
        f"{type(target).__name__} {target.id} is immutable", record_id=target.id
    )


# Request bodies


class ItemCreate(SQLModel):
    article: str
    komponen: str
    purchase_order_ref: Optional[str] = None
    ordered_qty: int = 0
    qty: int = 0
    location_code: Optional[str] = None
    min_stock: int = 10
    category_id: Optional[int] = None


class ItemUpdate(SQLModel):
    """Partial item update. Only fields present in the request are applied."""

    article: Optional[str] = None
    komponen: Optional[str] = None
    purchase_order_ref: Optional[str] = None
    ordered_qty: Optional[int] = None
    qty: Optional[int] = None
    location_code: Optional[str] = None
    min_stock: Optional[int] = None
    category_id: Optional[int] = None
    change_type: Optional[str] = None
    change_notes: Optional[str] = None


class QtyUpdateRequest(SQLModel):
    new_qty: Optional[int] = None
    adjustment: Optional[int] = None
    change_type: Optional[str] = None
    notes: Optional[str] = None


class BulkQtyLine(SQLModel):
    id: int
    adjustment: Optional[int] = None
    new_qty: Optional[int] = None


class BulkQtyRequest(SQLModel):
    items: List[BulkQtyLine]
    change_type: Optional[str] = None
    notes: Optional[str] = None


class QrScanRequest(SQLModel):
    qr_data: str
    scan_type: str = ScanType.QR.value
    # auto | full | id | article
    mode: str = "auto"


class QrQuickUpdateRequest(QtyUpdateRequest):
    qr_data: str


class CountScan(SQLModel):
    qr_data: str
    counted_qty: int


class InventoryCountRequest(SQLModel):
    scans: List[CountScan]


class LabelsRequest(SQLModel):
    item_ids: List[int]


class LocationCreate(SQLModel):
    name: str
    description: Optional[str] = None
    capacity: int = 100


class CategoryCreate(SQLModel):
    name: str
    description: Optional[str] = None


class UserCreate(SQLModel):
    username: str
    password: str
    role: str = Role.OPERATOR.value
    category_id: Optional[int] = None
