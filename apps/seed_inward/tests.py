from datetime import date

from django.contrib.auth import get_user_model
from django.test import override_settings
from rest_framework.test import APITestCase

from apps.catalog.models import Category, Variety
from apps.common.exceptions import CapacityExceededError
from apps.lots.models import SowingLot
from apps.seed_inward import services
from apps.seed_inward.models import SeedInwardBatch

User = get_user_model()


class SeedInwardApiTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin_seed", password="admin123", role="admin")
        self.staff = User.objects.create_user(username="staff_seed", password="staff123", role="staff")
        self.vegetables = Category.objects.create(name="Vegetables")
        self.tomato = Variety.objects.create(category=self.vegetables, name="Tomato")
        self.fruits = Category.objects.create(name="Fruits")
        self.mango = Variety.objects.create(category=self.fruits, name="Mango")

    def auth_as(self, username, password):
        token = self.client.post(
            "/api/auth/token/",
            {"username": username, "password": password},
            format="json",
        ).data["access"]
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

    def receive(self, **overrides):
        payload = {
            "category": self.vegetables.id,
            "variety": self.tomato.id,
            "lot_number": "SEED-01",
            "expiry_date": "2030-12-31",
            "number_of_packets": 10,
            "total_quantity": 1000,
            "package_type": "Packet",
            "received_from": "Seed Corp",
        }
        payload.update(overrides)
        return self.client.post("/api/seed-inward/", payload, format="json")

    def test_receive_sets_available_to_total(self):
        self.auth_as("staff_seed", "staff123")
        response = self.receive()
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["available_quantity"], 1000)
        self.assertEqual(response.data["consumed_quantity"], 0)
        self.assertEqual(response.data["created_by"], self.staff.id)

    def test_total_quantity_defaults_to_packet_count(self):
        self.auth_as("staff_seed", "staff123")
        response = self.client.post(
            "/api/seed-inward/",
            {
                "category": self.vegetables.id,
                "variety": self.tomato.id,
                "lot_number": "SEED-03",
                "expiry_date": "2030-12-31",
                "number_of_packets": 25,
                "package_type": "Packet",
                "received_from": "Seed Corp",
            },
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["total_quantity"], 25)
        self.assertEqual(response.data["available_quantity"], 25)

    def test_receive_validates_required_fields(self):
        self.auth_as("staff_seed", "staff123")
        self.assertEqual(self.receive(number_of_packets=0).status_code, 400)
        self.assertEqual(self.receive(lot_number="  ").status_code, 400)
        mismatched = self.receive(variety=self.mango.id)
        self.assertEqual(mismatched.status_code, 400)
        self.assertIn("variety", mismatched.data["fields"])

        self.assertEqual(self.receive().status_code, 201)
        duplicate = self.receive()
        self.assertEqual(duplicate.status_code, 400)
        self.assertIn("lot_number", duplicate.data["fields"])

    def test_update_total_shifts_available_and_cannot_drop_below_consumed(self):
        self.auth_as("staff_seed", "staff123")
        batch_id = self.receive().data["id"]
        services.consume(batch_id, 600)

        response = self.client.patch(f"/api/seed-inward/{batch_id}/", {"total_quantity": 1200}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["available_quantity"], 600)

        response = self.client.patch(f"/api/seed-inward/{batch_id}/", {"total_quantity": 500}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertIn("total_quantity", response.data["fields"])

    def test_delete_blocked_when_lot_uses_batch(self):
        self.auth_as("staff_seed", "staff123")
        batch_id = self.receive().data["id"]
        SowingLot.objects.create(
            lot_number="SEED-01",
            category=self.vegetables,
            variety=self.tomato,
            seed_inward_id=batch_id,
            sowing_date=date(2025, 1, 1),
            seeds_sown=10,
        )
        response = self.client.delete(f"/api/seed-inward/{batch_id}/")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "conflict")

        unused_id = self.receive(lot_number="SEED-09").data["id"]
        self.assertEqual(self.client.delete(f"/api/seed-inward/{unused_id}/").status_code, 204)

    def test_lot_picker_filters_by_variety_and_availability(self):
        self.auth_as("staff_seed", "staff123")
        first = self.receive().data["id"]
        self.receive(lot_number="SEED-02")
        self.receive(category=self.fruits.id, variety=self.mango.id, lot_number="MANGO-01")
        services.consume(first, 1000)

        response = self.client.get("/api/seed-inward/lots/", {"varietyId": self.tomato.id})
        self.assertEqual(response.status_code, 200)
        self.assertEqual({row["lot_number"] for row in response.data}, {"SEED-01", "SEED-02"})

        available = self.client.get("/api/seed-inward/lots/", {"varietyId": self.tomato.id, "available": "true"})
        self.assertEqual([row["lot_number"] for row in available.data], ["SEED-02"])


class SeedConsumptionTests(APITestCase):
    def setUp(self):
        category = Category.objects.create(name="Vegetables")
        variety = Variety.objects.create(category=category, name="Chilli")
        self.batch = SeedInwardBatch.objects.create(
            category=category,
            variety=variety,
            lot_number="C-1",
            expiry_date=date(2030, 1, 1),
            number_of_packets=1,
            total_quantity=100,
            available_quantity=100,
            package_type="Packet",
            received_from="Seed Corp",
        )

    def test_consume_and_release(self):
        services.consume(self.batch.id, 60)
        services.release(self.batch.id, 10)
        self.batch.refresh_from_db()
        self.assertEqual(self.batch.available_quantity, 50)

    def test_consume_beyond_available_is_rejected(self):
        services.consume(self.batch.id, 80)
        with self.assertRaises(CapacityExceededError):
            services.consume(self.batch.id, 30)
        self.batch.refresh_from_db()
        self.assertEqual(self.batch.available_quantity, 20)

    @override_settings(NURSERY_ENFORCE_STOCK_LIMITS=False)
    def test_consume_goes_negative_when_limits_are_off(self):
        services.consume(self.batch.id, 130)
        self.batch.refresh_from_db()
        self.assertEqual(self.batch.available_quantity, -30)
