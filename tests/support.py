"""Shared fixtures for the service tests.

Each test gets its own in-memory SQLite database with two categories and a
set of identities covering every role.

Copyright (c) Bryn Gwalad 2025
"""

# Ensure the project root is on sys.path so tests can be executed directly from
# the `tests/` directory and still import the `warehouse` package.
import os
import sys
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, PROJECT_ROOT)

import unittest

from sqlalchemy import func
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, select

from warehouse import items
from warehouse.identity import Identity
from warehouse.models import Category, Item, ItemCreate, QtyHistory, Role, ScanLog


def memory_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    return engine


class ServiceTestCase(unittest.TestCase):
    def setUp(self):
        self.engine = memory_engine()
        self.session = Session(self.engine)
        self.addCleanup(self.engine.dispose)
        self.addCleanup(self.session.close)

        tools = Category(name="Tools")
        parts = Category(name="Parts")
        self.session.add(tools)
        self.session.add(parts)
        self.session.commit()
        self.c1 = tools.id
        self.c2 = parts.id

        self.admin = Identity("admin", Role.ADMIN)
        self.staff = Identity("staff1", Role.STAFF, self.c1)
        self.operator = Identity("op1", Role.OPERATOR, self.c1)
        self.unscoped_operator = Identity("op2", Role.OPERATOR)

    def make_item(self, article="Bolt", qty=0, category_id=None, **fields) -> Item:
        fields.setdefault("komponen", "Hardware")
        draft = ItemCreate(article=article, qty=qty, category_id=category_id, **fields)
        return items.create_item(self.session, self.admin, draft)

    def reload(self, item_id: int):
        self.session.expire_all()
        return self.session.get(Item, item_id)

    def history_count(self, item_id: int) -> int:
        return self.session.exec(
            select(func.count(QtyHistory.id)).where(QtyHistory.item_id == item_id)
        ).one()

    def scan_count(self, item_id: int) -> int:
        return self.session.exec(
            select(func.count(ScanLog.id)).where(ScanLog.item_id == item_id)
        ).one()
