from datetime import date
from decimal import Decimal

from django.contrib.auth import get_user_model
from rest_framework.test import APITestCase

from apps.audit.models import AuditLog
from apps.catalog.models import Category, Variety
from apps.lots.models import SowingLot
from apps.orders.models import Order
from apps.seed_inward.models import SeedInwardBatch

User = get_user_model()


class CatalogApiTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin_cat", password="admin123", role="admin")
        self.staff = User.objects.create_user(username="staff_cat", password="staff123", role="staff")
        self.vegetables = Category.objects.create(name="Vegetables", price_per_unit=Decimal("10.00"))
        self.tomato = Variety.objects.create(category=self.vegetables, name="Tomato")

    def auth_as(self, username, password):
        token = self.client.post(
            "/api/auth/token/",
            {"username": username, "password": password},
            format="json",
        ).data["access"]
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

    def test_create_category_normalizes_name_and_audits(self):
        self.auth_as("admin_cat", "admin123")
        response = self.client.post(
            "/api/categories/",
            {"name": "  Flowering   Plants ", "price_per_unit": "4.50"},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["name"], "Flowering Plants")
        self.assertTrue(AuditLog.objects.filter(action="catalog.category.create").exists())

        duplicate = self.client.post("/api/categories/", {"name": "flowering plants"}, format="json")
        self.assertEqual(duplicate.status_code, 400)
        self.assertIn("name", duplicate.data["fields"])

    def test_category_list_includes_variety_count(self):
        Variety.objects.create(category=self.vegetables, name="Brinjal")
        self.auth_as("staff_cat", "staff123")
        response = self.client.get("/api/categories/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data[0]["variety_count"], 2)

    def test_staff_cannot_manage_catalog(self):
        self.auth_as("staff_cat", "staff123")
        response = self.client.post("/api/categories/", {"name": "Herbs"}, format="json")
        self.assertEqual(response.status_code, 403)

    def test_varieties_filter_by_category_and_reject_duplicates(self):
        fruits = Category.objects.create(name="Fruits")
        Variety.objects.create(category=fruits, name="Mango")
        self.auth_as("admin_cat", "admin123")

        response = self.client.get("/api/varieties/", {"categoryId": self.vegetables.id})
        self.assertEqual([row["name"] for row in response.data], ["Tomato"])
        self.assertEqual(response.data[0]["category_name"], "Vegetables")

        duplicate = self.client.post(
            "/api/varieties/",
            {"category": self.vegetables.id, "name": "tomato"},
            format="json",
        )
        self.assertEqual(duplicate.status_code, 400)

        same_name_other_category = self.client.post(
            "/api/varieties/",
            {"category": fruits.id, "name": "Tomato"},
            format="json",
        )
        self.assertEqual(same_name_other_category.status_code, 201)

    def test_category_delete_blocked_by_varieties(self):
        self.auth_as("admin_cat", "admin123")
        response = self.client.delete(f"/api/categories/{self.vegetables.id}/")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "conflict")
        self.assertTrue(Category.objects.filter(pk=self.vegetables.pk).exists())

        empty = Category.objects.create(name="Herbs")
        response = self.client.delete(f"/api/categories/{empty.id}/")
        self.assertEqual(response.status_code, 204)

    def test_variety_delete_blocked_exactly_when_dependents_exist(self):
        self.auth_as("admin_cat", "admin123")
        unused = Variety.objects.create(category=self.vegetables, name="Okra")
        response = self.client.delete(f"/api/varieties/{unused.id}/")
        self.assertEqual(response.status_code, 204)

        SeedInwardBatch.objects.create(
            category=self.vegetables,
            variety=self.tomato,
            lot_number="S-1",
            expiry_date=date(2030, 1, 1),
            number_of_packets=1,
            total_quantity=10,
            available_quantity=10,
            package_type="Packet",
            received_from="Seed Corp",
        )
        response = self.client.delete(f"/api/varieties/{self.tomato.id}/")
        self.assertEqual(response.status_code, 400)
        self.assertIn("seed inward batches", response.data["detail"])

    def test_variety_with_lots_or_orders_cannot_move_category(self):
        lot = SowingLot.objects.create(
            lot_number="L-1",
            category=self.vegetables,
            variety=self.tomato,
            sowing_date=date(2025, 1, 1),
            seeds_sown=100,
        )
        Order.objects.create(
            lot=lot,
            category=self.vegetables,
            variety=self.tomato,
            customer_name="Ramesh",
            phone="9876543210",
            state="Karnataka",
            district="Kolar",
            taluk="Mulbagal",
            booked_qty=10,
            unit_price=Decimal("2.00"),
            delivery_date=date(2025, 2, 1),
        )
        fruits = Category.objects.create(name="Fruits")
        self.auth_as("admin_cat", "admin123")
        response = self.client.patch(f"/api/varieties/{self.tomato.id}/", {"category": fruits.id}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "conflict")

        rename = self.client.patch(f"/api/varieties/{self.tomato.id}/", {"name": "Tomato Hybrid"}, format="json")
        self.assertEqual(rename.status_code, 200)
