"""Category/role access rules.

Pure predicates, no database access. Read paths hide items outside the
caller's scope (callers report ``NotFound``), write paths raise
``PermissionDenied`` and list queries filter with :func:`scope_filter`.

Copyright (c) Bryn Gwalad 2025
"""

from typing import Optional

from .exceptions import PermissionDenied
from .identity import Identity
from .models import Item, Role


def in_scope(identity: Identity, category_id: Optional[int]) -> bool:
    """Return True when ``category_id`` falls inside the identity's category scope."""
    if identity.is_admin or identity.category_id is None:
        return True
    return category_id == identity.category_id


def can_read(identity: Identity, item: Item) -> bool:
    return in_scope(identity, item.category_id)


def can_write(identity: Identity, category_id: Optional[int]) -> bool:
    """Whether the identity may create or edit an item in ``category_id``.

    Operators never edit item fields; they only change quantities.
    """
    if identity.is_admin:
        return True
    if identity.role == Role.STAFF:
        return in_scope(identity, category_id)
    return False


def can_adjust(identity: Identity, item: Item) -> bool:
    """Whether the identity may change the stock quantity of ``item``."""
    if identity.is_admin:
        return True
    if identity.role in (Role.STAFF, Role.OPERATOR):
        return in_scope(identity, item.category_id)
    return False


def ensure_write(identity: Identity, category_id: Optional[int]) -> None:
    if not can_write(identity, category_id):
        raise PermissionDenied(
            f"{identity.role.value} '{identity.user_id}' may not modify items in this category",
            category_id=category_id,
        )


def ensure_adjust(identity: Identity, item: Item) -> None:
    if not can_adjust(identity, item):
        raise PermissionDenied(
            f"{identity.role.value} '{identity.user_id}' may not change the quantity of item {item.id}",
            item_id=item.id,
        )


def ensure_admin(identity: Identity, action: str) -> None:
    if not identity.is_admin:
        raise PermissionDenied(f"admin role required to {action}")


def scope_filter(identity: Identity, column):
    """Return the SQL condition restricting a list query to the caller's scope.

    ``None`` when no restriction applies (admins and unscoped users).
    """
    if identity.is_scoped:
        return column == identity.category_id
    return None
