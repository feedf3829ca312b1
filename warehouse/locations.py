"""Storage locations (racks/bins) and the items stored in each.

A location is matched to items by name: an item sits in a location when its
``location_code`` equals the location's ``name``. Codes without a registered
location stay valid on items.

Copyright (c) Bryn Gwalad 2025
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List

from sqlmodel import Session, select

from .access import ensure_admin, scope_filter
from .database import atomic
from .exceptions import ConflictError, ValidationError
from .identity import Identity
from .models import Item, Location, LocationCreate

logger = logging.getLogger("warehouse_api.locations")


@dataclass
class LocationStock:
    location: Location
    items: List[Item] = field(default_factory=list)

    @property
    def current_items(self) -> int:
        return len(self.items)


def create_location(session: Session, identity: Identity, data: LocationCreate) -> Location:
    ensure_admin(identity, "manage locations")
    name = (data.name or "").strip()
    if not name:
        raise ValidationError("location name is required", field="name")
    if data.capacity is None or data.capacity < 0:
        raise ValidationError("capacity cannot be negative", field="capacity")

    with atomic(session):
        if session.exec(select(Location).where(Location.name == name)).first() is not None:
            raise ConflictError(f"Location '{name}' already exists", name=name)
        location = Location(name=name, description=data.description, capacity=data.capacity)
        session.add(location)
    session.refresh(location)
    logger.info("Location %s '%s' created by %s", location.id, location.name, identity.user_id)
    return location


def list_locations(session: Session, identity: Identity) -> List[LocationStock]:
    """Every location by name, each with the items in it the caller can see."""
    locations = session.exec(select(Location).order_by(Location.name)).all()
    stock: Dict[str, LocationStock] = {loc.name: LocationStock(loc) for loc in locations}
    if not stock:
        return []

    statement = (
        select(Item)
        .where(Item.location_code.in_(list(stock)))
        .order_by(Item.article, Item.id)
    )
    scope = scope_filter(identity, Item.category_id)
    if scope is not None:
        statement = statement.where(scope)
    for item in session.exec(statement).all():
        stock[item.location_code].items.append(item)
    return list(stock.values())
