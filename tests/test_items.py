"""Tests for the item repository: validation, category rules, listing and delete.

Copyright (c) Bryn Gwalad 2025
"""

import unittest

from sqlalchemy import event
from sqlmodel import select

from support import ServiceTestCase

from warehouse import items, ledger
from warehouse.exceptions import NotFound, PermissionDenied, ValidationError
from warehouse.items import ItemFilters
from warehouse.models import ItemCreate, ItemUpdate, QtyHistory


class CreateItemTest(ServiceTestCase):
    def test_initial_stock_is_recorded(self):
        item = self.make_item(qty=7)
        entries = self.session.exec(select(QtyHistory).where(QtyHistory.item_id == item.id)).all()
        self.assertEqual(len(entries), 1)
        entry = entries[0]
        self.assertEqual((entry.old_qty, entry.new_qty, entry.change_amount), (0, 7, 7))
        self.assertEqual(entry.change_type, "inbound")
        self.assertEqual(entry.notes, "Initial stock creation")
        self.assertEqual(entry.article, "Bolt")

    def test_no_history_without_stock(self):
        item = self.make_item(qty=0)
        self.assertEqual(self.history_count(item.id), 0)
        self.assertEqual(item.min_stock, 10)
        self.assertEqual(item.ordered_qty, 0)

    def test_text_fields_are_trimmed_and_required(self):
        item = self.make_item("  Bolt M8  ", komponen=" Screw ")
        self.assertEqual(item.article, "Bolt M8")
        self.assertEqual(item.komponen, "Screw")
        with self.assertRaises(ValidationError):
            self.make_item("   ")
        with self.assertRaises(ValidationError):
            self.make_item("Bolt", komponen="")

    def test_negative_numbers_rejected(self):
        with self.assertRaises(ValidationError):
            self.make_item(qty=-1)
        with self.assertRaises(ValidationError):
            self.make_item(min_stock=-5)

    def test_staff_category_is_forced(self):
        draft = ItemCreate(article="Drill", komponen="Power", category_id=self.c2)
        item = items.create_item(self.session, self.staff, draft)
        self.assertEqual(item.category_id, self.c1)

    def test_operator_cannot_create(self):
        draft = ItemCreate(article="Drill", komponen="Power", category_id=self.c1)
        with self.assertRaises(PermissionDenied):
            items.create_item(self.session, self.operator, draft)

    def test_unknown_category(self):
        with self.assertRaises(NotFound):
            self.make_item(category_id=999)


class UpdateItemTest(ServiceTestCase):
    def test_staff_cannot_touch_other_category(self):
        item = self.make_item(category_id=self.c2)
        with self.assertRaises(PermissionDenied):
            items.update_item(self.session, self.staff, item.id, ItemUpdate(location_code="A1"))

    def test_operator_cannot_edit_fields(self):
        item = self.make_item(category_id=self.c1)
        with self.assertRaises(PermissionDenied):
            items.update_item(self.session, self.operator, item.id, ItemUpdate(article="Renamed"))

    def test_only_admin_moves_categories(self):
        item = self.make_item(category_id=self.c1)
        with self.assertRaises(PermissionDenied):
            items.update_item(self.session, self.staff, item.id, ItemUpdate(category_id=self.c2))
        moved = items.update_item(self.session, self.admin, item.id, ItemUpdate(category_id=self.c2))
        self.assertEqual(moved.category_id, self.c2)

    def test_qty_change_goes_through_ledger(self):
        item = self.make_item(qty=5, category_id=self.c1)
        patch = ItemUpdate(qty=8, location_code="B2")
        updated = items.update_item(self.session, self.staff, item.id, patch)
        self.assertEqual(updated.qty, 8)
        self.assertEqual(updated.location_code, "B2")
        entry = ledger.list_history(self.session, self.admin, item.id)[0]
        self.assertEqual((entry.old_qty, entry.new_qty), (5, 8))
        self.assertEqual(entry.change_type, "manual")
        self.assertEqual(entry.notes, "Qty updated from 5 to 8")
        self.assertEqual(entry.updated_by, "staff1")

    def test_unchanged_qty_writes_no_history(self):
        item = self.make_item(qty=5)
        items.update_item(self.session, self.admin, item.id, ItemUpdate(qty=5, komponen="Nut"))
        self.assertEqual(self.history_count(item.id), 1)

    def test_invalid_qty_rolls_back_field_changes(self):
        item = self.make_item("Bolt", qty=5)
        with self.assertRaises(ValidationError):
            items.update_item(self.session, self.admin, item.id, ItemUpdate(article="Renamed", qty=-1))
        reloaded = self.reload(item.id)
        self.assertEqual(reloaded.article, "Bolt")
        self.assertEqual(reloaded.qty, 5)

    def test_missing_item(self):
        with self.assertRaises(NotFound):
            items.update_item(self.session, self.admin, 999, ItemUpdate(article="X"))


class DeleteItemTest(ServiceTestCase):
    def test_delete_records_final_entry_then_removes_everything(self):
        item = self.make_item(qty=6)
        ledger.apply_qr_update(self.session, self.admin, str(item.id), ledger.Adjustment(-1))
        item_id = item.id

        inserted = []

        def capture(mapper, connection, target):
            inserted.append((target.old_qty, target.new_qty, target.change_amount, target.change_type, target.notes))

        event.listen(QtyHistory, "after_insert", capture)
        self.addCleanup(event.remove, QtyHistory, "after_insert", capture)

        items.delete_item(self.session, self.admin, item_id)

        self.assertEqual(inserted, [(5, 0, -5, "outbound", "Item deleted from system")])
        with self.assertRaises(NotFound):
            items.get_item(self.session, self.admin, item_id)
        self.assertEqual(self.history_count(item_id), 0)
        self.assertEqual(self.scan_count(item_id), 0)
        self.assertEqual(items.list_items(self.session, self.admin).total, 0)

    def test_delete_is_admin_only(self):
        item = self.make_item(category_id=self.c1)
        with self.assertRaises(PermissionDenied):
            items.delete_item(self.session, self.staff, item.id)
        self.assertIsNotNone(self.reload(item.id))

    def test_delete_missing(self):
        with self.assertRaises(NotFound):
            items.delete_item(self.session, self.admin, 999)


class ReadItemTest(ServiceTestCase):
    def test_other_category_reads_as_missing(self):
        item = self.make_item(category_id=self.c2)
        with self.assertRaises(NotFound):
            items.get_item(self.session, self.staff, item.id)
        self.assertEqual(items.get_item(self.session, self.unscoped_operator, item.id).id, item.id)

    def test_list_is_scoped(self):
        self.make_item("Mine", category_id=self.c1)
        self.make_item("Theirs", category_id=self.c2)
        self.make_item("Loose")
        page = items.list_items(self.session, self.staff)
        self.assertEqual([i.article for i in page.items], ["Mine"])
        self.assertEqual(page.total, 1)
        self.assertEqual(items.list_items(self.session, self.admin).total, 3)
        self.assertEqual(items.list_items(self.session, self.unscoped_operator).total, 3)

    def test_search_and_filters(self):
        self.make_item("Hex Bolt", komponen="Screw", location_code="A1", qty=2, min_stock=5)
        self.make_item("Washer", komponen="Ring", location_code="A2", qty=50, purchase_order_ref="PO-77")
        self.make_item("Spring", komponen="Coil", location_code="B1", qty=5, min_stock=5)

        def articles(**kw):
            return [i.article for i in items.list_items(self.session, self.admin, ItemFilters(**kw)).items]

        self.assertEqual(articles(search="hex"), ["Hex Bolt"])
        self.assertEqual(articles(search="po-77"), ["Washer"])
        self.assertEqual(articles(search="a"), ["Hex Bolt", "Washer"])
        self.assertEqual(articles(location_code="B1"), ["Spring"])
        self.assertEqual(articles(komponen="Ring"), ["Washer"])
        self.assertEqual(articles(low_stock=True), ["Hex Bolt", "Spring"])
        self.assertEqual(articles(sort_by="qty", sort_order="desc"), ["Washer", "Spring", "Hex Bolt"])

    def test_pagination(self):
        for n in range(5):
            self.make_item(f"Item {n}", location_code="A1")
        page = items.list_items(self.session, self.admin, ItemFilters(limit=2, offset=2))
        self.assertEqual([i.article for i in page.items], ["Item 2", "Item 3"])
        self.assertEqual(page.total, 5)
        self.assertTrue(page.has_more)
        last = items.list_items(self.session, self.admin, ItemFilters(limit=2, offset=4))
        self.assertFalse(last.has_more)

    def test_unknown_sort_field(self):
        with self.assertRaises(ValidationError):
            items.list_items(self.session, self.admin, ItemFilters(sort_by="password_hash"))

    def test_unique_values(self):
        self.make_item("A", komponen="Screw", location_code="A1", category_id=self.c1)
        self.make_item("B", komponen="Ring", location_code="B1", category_id=self.c2)
        self.make_item("C", komponen="Screw")
        self.assertEqual(
            items.unique_values(self.session, self.admin),
            {"komponen": ["Ring", "Screw"], "location_code": ["A1", "B1"]},
        )
        self.assertEqual(
            items.unique_values(self.session, self.staff),
            {"komponen": ["Screw"], "location_code": ["A1"]},
        )


if __name__ == "__main__":
    unittest.main()
