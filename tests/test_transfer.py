"""Tests for CSV/XLSX import, exports, backups, labels and dashboard figures.

Copyright (c) Bryn Gwalad 2025
"""

import csv
import io
import json
import unittest

from openpyxl import Workbook

from support import ServiceTestCase

from warehouse import labels, stats, transfer
from warehouse.exceptions import NotFound, PermissionDenied, ValidationError


def xlsx_bytes(rows):
    workbook = Workbook()
    sheet = workbook.active
    for row in rows:
        sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


class ExportTest(ServiceTestCase):
    def test_items_csv_is_scoped(self):
        self.make_item("Mine", qty=3, category_id=self.c1, location_code="A1")
        self.make_item("Theirs", qty=4, category_id=self.c2)
        rows = list(csv.reader(io.StringIO(transfer.export_items_csv(self.session, self.staff))))
        self.assertEqual(rows[0], transfer.ITEM_COLUMNS)
        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[1][1:8], ["Mine", "Hardware", "", "0", "3", "10", "A1"])

    def test_history_csv(self):
        self.make_item("Bolt", qty=3, komponen="Screw", location_code="R2")
        rows = list(csv.reader(io.StringIO(transfer.export_history_csv(self.session, self.admin))))
        self.assertEqual(rows[0], transfer.HISTORY_COLUMNS)
        self.assertEqual(rows[1][2:9], ["Bolt", "Screw", "R2", "0", "3", "3", "inbound"])

    def test_backup_is_admin_only(self):
        self.make_item("Bolt", qty=3)
        snapshot = transfer.backup_snapshot(self.session, self.admin)
        self.assertEqual(snapshot["item_count"], 1)
        self.assertEqual(snapshot["items"][0]["article"], "Bolt")
        with self.assertRaises(PermissionDenied):
            transfer.backup_snapshot(self.session, self.staff)


class ImportTest(ServiceTestCase):
    def test_read_csv_with_bom(self):
        data = "\ufeffArticle,Komponen,Qty\nBolt,Screw,4\n".encode("utf-8")
        self.assertEqual(transfer.read_tabular("stock.CSV", data), [{"Article": "Bolt", "Komponen": "Screw", "Qty": "4"}])

    def test_read_xlsx(self):
        data = xlsx_bytes([["Article", "Komponen", "Qty"], ["Bolt", "Screw", 4], [None, None, None]])
        self.assertEqual(transfer.read_tabular("stock.xlsx", data), [{"Article": "Bolt", "Komponen": "Screw", "Qty": 4}])

    def test_unsupported_files(self):
        with self.assertRaises(ValidationError):
            transfer.read_tabular("stock.txt", b"Article\nBolt\n")
        with self.assertRaises(ValidationError):
            transfer.read_tabular("stock.csv", b"\xff\xfe\x00bad")

    def test_import_creates_items_and_reports_bad_rows(self):
        rows = [
            {"Article": "Bolt", "Komponen": "Screw", "Qty": "4", "Lokasi": "A1"},
            {"Article": "", "Komponen": "Screw", "Qty": "1"},
            {"Article": "Nut", "Komponen": "Screw", "Qty": "-2"},
            {"Article": "Washer", "Komponen": "Ring", "Qty": "many"},
            {"Article": "Spring", "Komponen": "Coil", "Order": "12.0"},
        ]
        result = transfer.import_items(self.session, self.staff, rows)

        self.assertEqual([i.article for i in result.created], ["Bolt", "Spring"])
        self.assertEqual([n for n, _ in result.errors], [3, 4, 5])
        self.assertTrue(all(item.category_id == self.c1 for item in result.created))
        self.assertEqual(result.created[1].ordered_qty, 12)
        self.assertEqual(self.history_count(result.created[0].id), 1)

    def test_operator_import_rejects_every_row(self):
        result = transfer.import_items(self.session, self.operator, [{"Article": "Bolt", "Komponen": "Screw"}])
        self.assertEqual(result.created, [])
        self.assertEqual(len(result.errors), 1)


class LabelTest(ServiceTestCase):
    def test_label_data(self):
        item = self.make_item("Bolt", qty=3, category_id=self.c1, location_code="A1")
        label = labels.label_data(self.session, self.admin, item.id)
        self.assertEqual(label["barcode"], f"ITEM{item.id:06d}")
        self.assertEqual(label["category"], "Tools")
        payload = json.loads(label["qr_data"])
        self.assertEqual(payload["id"], item.id)
        self.assertEqual(payload["location"], "A1")
        self.assertEqual(payload["action"], "scan_update")

    def test_label_outside_scope(self):
        item = self.make_item(category_id=self.c2)
        with self.assertRaises(NotFound):
            labels.label_data(self.session, self.staff, item.id)

    def test_bulk_labels_skip_unreadable(self):
        mine = self.make_item("Mine", qty=2, category_id=self.c1)
        theirs = self.make_item("Theirs", category_id=self.c2)
        result = labels.bulk_labels(self.session, self.operator, [mine.id, theirs.id, 999])
        self.assertEqual([label["id"] for label in result], [mine.id])
        self.assertEqual(result[0]["barcode"], f"WH{mine.id:06d}")
        self.assertEqual(json.loads(result[0]["qr_data"])["qty"], 2)
        with self.assertRaises(ValidationError):
            labels.bulk_labels(self.session, self.admin, [])


class DashboardTest(ServiceTestCase):
    def test_figures_are_scoped(self):
        self.make_item("A", qty=2, category_id=self.c1, location_code="A1", ordered_qty=5)
        self.make_item("B", qty=20, category_id=self.c1, location_code="A1")
        self.make_item("C", qty=1, category_id=self.c2, location_code="B1")

        figures = stats.dashboard_stats(self.session, self.staff)
        self.assertEqual(figures["total_items"], 2)
        self.assertEqual(figures["total_qty"], 22)
        self.assertEqual(figures["total_ordered"], 5)
        self.assertEqual(figures["low_stock_items"], 1)
        self.assertEqual(figures["items_by_location"], [{"location_code": "A1", "item_count": 2, "total_qty": 22}])
        self.assertEqual(len(figures["recent_activities"]), 2)
        self.assertEqual(
            figures["recent_activities"][0]["item"],
            {"article": "B", "komponen": "Hardware", "location_code": "A1"},
        )
        self.assertEqual(figures["recent_scans"], [])

        everything = stats.dashboard_stats(self.session, self.admin)
        self.assertEqual(everything["total_items"], 3)
        self.assertEqual(everything["low_stock_items"], 2)


if __name__ == "__main__":
    unittest.main()
