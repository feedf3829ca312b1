"""Tests for category and user management.

Copyright (c) Bryn Gwalad 2025
"""

import unittest

from support import ServiceTestCase

from warehouse import admin
from warehouse.exceptions import ConflictError, NotFound, PermissionDenied, ValidationError
from warehouse.models import CategoryCreate, UserCreate


class CategoryTest(ServiceTestCase):
    def test_create_and_list(self):
        created = admin.create_category(self.session, self.admin, CategoryCreate(name=" Fasteners ", description="Nuts"))
        self.assertEqual(created.name, "Fasteners")
        names = [c.name for c in admin.list_categories(self.session)]
        self.assertEqual(names, ["Fasteners", "Parts", "Tools"])

    def test_duplicate_name(self):
        with self.assertRaises(ConflictError):
            admin.create_category(self.session, self.admin, CategoryCreate(name="Tools"))
        with self.assertRaises(ConflictError):
            admin.update_category(self.session, self.admin, self.c2, CategoryCreate(name="Tools"))

    def test_rename_keeps_own_name(self):
        updated = admin.update_category(
            self.session, self.admin, self.c1, CategoryCreate(name="Tools", description="Hand tools")
        )
        self.assertEqual(updated.description, "Hand tools")

    def test_delete_refused_while_in_use(self):
        self.make_item(category_id=self.c1)
        with self.assertRaises(ConflictError) as ctx:
            admin.delete_category(self.session, self.admin, self.c1)
        self.assertEqual(ctx.exception.details["items"], 1)

        admin.create_user(self.session, self.admin, UserCreate(username="pat", password="pw", category_id=self.c2))
        with self.assertRaises(ConflictError):
            admin.delete_category(self.session, self.admin, self.c2)

    def test_delete_unused(self):
        spare = admin.create_category(self.session, self.admin, CategoryCreate(name="Spare"))
        admin.delete_category(self.session, self.admin, spare.id)
        with self.assertRaises(NotFound):
            admin.delete_category(self.session, self.admin, spare.id)

    def test_non_admin_denied(self):
        with self.assertRaises(PermissionDenied):
            admin.create_category(self.session, self.staff, CategoryCreate(name="Mine"))
        with self.assertRaises(PermissionDenied):
            admin.delete_category(self.session, self.operator, self.c1)


class UserTest(ServiceTestCase):
    def test_password_is_hashed(self):
        user = admin.create_user(
            self.session, self.admin, UserCreate(username="pat", password="s3cret", role="staff", category_id=self.c1)
        )
        self.assertNotEqual(user.password_hash, "s3cret")
        self.assertTrue(admin.verify_password(user, "s3cret"))
        self.assertFalse(admin.verify_password(user, "wrong"))
        self.assertEqual(user.role, "staff")

    def test_rejections(self):
        admin.create_user(self.session, self.admin, UserCreate(username="pat", password="pw"))
        with self.assertRaises(ConflictError):
            admin.create_user(self.session, self.admin, UserCreate(username="pat", password="pw"))
        with self.assertRaises(ValidationError):
            admin.create_user(self.session, self.admin, UserCreate(username="kim", password="pw", role="boss"))
        with self.assertRaises(ValidationError):
            admin.create_user(self.session, self.admin, UserCreate(username=" ", password="pw"))
        with self.assertRaises(NotFound):
            admin.create_user(self.session, self.admin, UserCreate(username="kim", password="pw", category_id=99))

    def test_list_and_delete(self):
        kim = admin.create_user(self.session, self.admin, UserCreate(username="kim", password="pw"))
        admin.create_user(self.session, self.admin, UserCreate(username="al", password="pw"))
        self.assertEqual([u.username for u in admin.list_users(self.session, self.admin)], ["al", "kim"])
        admin.delete_user(self.session, self.admin, kim.id)
        self.assertEqual([u.username for u in admin.list_users(self.session, self.admin)], ["al"])
        with self.assertRaises(NotFound):
            admin.delete_user(self.session, self.admin, kim.id)

    def test_non_admin_denied(self):
        with self.assertRaises(PermissionDenied):
            admin.list_users(self.session, self.staff)
        with self.assertRaises(PermissionDenied):
            admin.create_user(self.session, self.staff, UserCreate(username="x", password="pw"))


if __name__ == "__main__":
    unittest.main()
