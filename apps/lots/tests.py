from datetime import date
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import override_settings
from rest_framework.test import APITestCase

from apps.audit.models import AuditLog
from apps.catalog.models import Category, Variety
from apps.lots.models import LotDamageEntry, SowingLot, damage_percentage_for, damaged_from_percentage
from apps.lots.querysets import available_for_lot, compute_available, with_availability
from apps.orders.models import Order, OrderStatus
from apps.seed_inward.models import SeedInwardBatch

User = get_user_model()


class LotTestMixin:
    def setUp(self):
        self.admin = User.objects.create_user(username="admin_lot", password="admin123", role="admin")
        self.staff = User.objects.create_user(username="staff_lot", password="staff123", role="staff")
        self.vegetables = Category.objects.create(name="Vegetables", price_per_unit=Decimal("2.00"))
        self.tomato = Variety.objects.create(category=self.vegetables, name="Tomato")
        self.chilli = Variety.objects.create(category=self.vegetables, name="Chilli")
        self.fruits = Category.objects.create(name="Fruits")
        self.mango = Variety.objects.create(category=self.fruits, name="Mango")

    def auth_as(self, username, password):
        token = self.client.post(
            "/api/auth/token/",
            {"username": username, "password": password},
            format="json",
        ).data["access"]
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

    def make_lot(self, lot_number="L-100", seeds_sown=500, damaged=0, variety=None):
        variety = variety or self.tomato
        return SowingLot.objects.create(
            lot_number=lot_number,
            category=variety.category,
            variety=variety,
            sowing_date=date(2025, 1, 10),
            seeds_sown=seeds_sown,
            damaged=damaged,
        )

    def make_order(self, lot, qty, status=OrderStatus.BOOKED, variety=None):
        variety = variety or lot.variety
        return Order.objects.create(
            lot=lot,
            category=variety.category,
            variety=variety,
            customer_name="Suresh",
            phone="9876543210",
            state="Karnataka",
            district="Kolar",
            taluk="Mulbagal",
            booked_qty=qty,
            unit_price=Decimal("2.00"),
            delivery_date=date(2025, 2, 10),
            status=status,
        )

    def make_batch(self, lot_number="L-100", total=1000, variety=None):
        variety = variety or self.tomato
        return SeedInwardBatch.objects.create(
            category=variety.category,
            variety=variety,
            lot_number=lot_number,
            expiry_date=date(2030, 1, 1),
            number_of_packets=10,
            total_quantity=total,
            available_quantity=total,
            package_type="Packet",
            received_from="Seed Corp",
        )


class AvailabilityTests(LotTestMixin, APITestCase):
    def test_pure_and_annotated_availability_agree(self):
        first = self.make_lot("L-1", seeds_sown=500, damaged=20)
        second = self.make_lot("L-2", seeds_sown=300)
        self.make_order(first, 100)
        self.make_order(first, 50, status=OrderStatus.DELIVERED)
        self.make_order(first, 70, status=OrderStatus.CANCELLED)
        self.make_order(second, 40)

        orders = list(Order.objects.all())
        annotated = {lot.id: lot.available for lot in with_availability(SowingLot.objects.all())}
        for lot in (first, second):
            self.assertEqual(compute_available(lot, orders), annotated[lot.id])
            self.assertEqual(compute_available(lot, reversed(orders)), annotated[lot.id])
            self.assertEqual(available_for_lot(lot.id), annotated[lot.id])
        self.assertEqual(annotated[first.id], 500 - 20 - 150)
        self.assertEqual(annotated[second.id], 260)

    def test_lot_without_orders_is_fully_available(self):
        lot = self.make_lot(seeds_sown=120, damaged=20)
        self.assertEqual(compute_available(lot, []), 100)
        self.assertEqual(with_availability(SowingLot.objects.filter(pk=lot.pk)).get().booked_quantity, 0)

    def test_available_excluding_an_order(self):
        lot = self.make_lot(seeds_sown=100)
        order = self.make_order(lot, 60)
        self.make_order(lot, 30)
        self.assertEqual(available_for_lot(lot.id), 10)
        self.assertEqual(available_for_lot(lot.id, exclude_order_id=order.id), 70)

    def test_damage_helpers(self):
        self.assertEqual(damaged_from_percentage(500, Decimal("2.50")), 12)
        self.assertEqual(damage_percentage_for(10, 500), Decimal("2.00"))
        self.assertEqual(damage_percentage_for(0, 0), Decimal("0.00"))


class LotApiTests(LotTestMixin, APITestCase):
    def lot_payload(self, **overrides):
        payload = {
            "lot_number": "L-100",
            "category": self.vegetables.id,
            "variety": self.tomato.id,
            "sowing_date": "2025-01-10",
            "seeds_sown": 500,
            "packets_sown": 50,
        }
        payload.update(overrides)
        return payload

    def test_create_lot_consumes_matching_seed_batch(self):
        batch = self.make_batch("L-100", total=1000)
        self.auth_as("staff_lot", "staff123")
        response = self.client.post("/api/lots/", self.lot_payload(), format="json")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["seed_inward"], batch.id)
        self.assertEqual(response.data["available"], 500)
        self.assertEqual(response.data["category_name"], "Vegetables")
        batch.refresh_from_db()
        self.assertEqual(batch.available_quantity, 500)
        self.assertTrue(AuditLog.objects.filter(action="lots.create", entity_id=str(response.data["id"])).exists())

    def test_create_lot_without_batch_is_allowed(self):
        self.auth_as("staff_lot", "staff123")
        response = self.client.post("/api/lots/", self.lot_payload(), format="json")
        self.assertEqual(response.status_code, 201)
        self.assertIsNone(response.data["seed_inward"])

    def test_create_lot_beyond_seed_batch_is_rejected(self):
        batch = self.make_batch("L-100", total=100)
        self.auth_as("staff_lot", "staff123")
        response = self.client.post("/api/lots/", self.lot_payload(), format="json")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "capacity_exceeded")
        self.assertFalse(SowingLot.objects.exists())
        batch.refresh_from_db()
        self.assertEqual(batch.available_quantity, 100)

    def test_create_lot_derives_damage_from_percentage(self):
        self.auth_as("staff_lot", "staff123")
        response = self.client.post(
            "/api/lots/",
            self.lot_payload(seeds_sown=333, damage_percentage="10.00"),
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["damaged"], 33)
        self.assertEqual(response.data["available"], 300)

    def test_create_lot_validation(self):
        self.auth_as("staff_lot", "staff123")
        self.assertEqual(self.client.post("/api/lots/", self.lot_payload(seeds_sown=0), format="json").status_code, 400)
        mismatched = self.client.post("/api/lots/", self.lot_payload(variety=self.mango.id), format="json")
        self.assertEqual(mismatched.status_code, 400)
        self.assertIn("variety", mismatched.data["fields"])
        too_damaged = self.client.post("/api/lots/", self.lot_payload(damaged=501), format="json")
        self.assertEqual(too_damaged.status_code, 400)

        self.assertEqual(self.client.post("/api/lots/", self.lot_payload(), format="json").status_code, 201)
        duplicate = self.client.post("/api/lots/", self.lot_payload(variety=self.chilli.id), format="json")
        self.assertEqual(duplicate.status_code, 400)
        self.assertIn("lot_number", duplicate.data["fields"])

    def test_list_lots_with_availability_and_filters(self):
        first = self.make_lot("L-1", seeds_sown=500)
        self.make_lot("L-2", seeds_sown=100, variety=self.chilli)
        self.make_order(first, 200)
        self.auth_as("staff_lot", "staff123")

        response = self.client.get("/api/lots/", {"varietyId": self.tomato.id})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]["available"], 300)
        self.assertEqual(response.data[0]["booked_quantity"], 200)

        searched = self.client.get("/api/lots/", {"q": "chil"})
        self.assertEqual([row["lot_number"] for row in searched.data], ["L-2"])

    def test_record_damage_is_additive_and_bounded(self):
        lot = self.make_lot(seeds_sown=500)
        self.auth_as("staff_lot", "staff123")

        first = self.client.post(f"/api/lots/{lot.id}/damage/", {"additional_damaged": 50}, format="json")
        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.data["damaged"], 50)
        self.assertEqual(first.data["damage_percentage"], "10.00")
        self.assertEqual(first.data["available"], 450)

        again = self.client.post(f"/api/lots/{lot.id}/damage/", {"additional_damaged": 50}, format="json")
        self.assertEqual(again.data["damaged"], 100)

        too_much = self.client.post(f"/api/lots/{lot.id}/damage/", {"additional_damaged": 500}, format="json")
        self.assertEqual(too_much.status_code, 400)
        self.assertIn("additional_damaged", too_much.data["fields"])

        zero = self.client.post(f"/api/lots/{lot.id}/damage/", {"additional_damaged": 0}, format="json")
        self.assertEqual(zero.status_code, 400)

        lot.refresh_from_db()
        self.assertEqual(lot.damaged, 100)
        self.assertEqual(LotDamageEntry.objects.filter(lot=lot).count(), 2)

    def test_damage_then_oversized_damage_fails(self):
        lot = self.make_lot(seeds_sown=500)
        self.auth_as("staff_lot", "staff123")
        self.client.post(f"/api/lots/{lot.id}/damage/", {"additional_damaged": 50}, format="json")
        response = self.client.post(f"/api/lots/{lot.id}/damage/", {"additional_damaged": 500}, format="json")
        self.assertEqual(response.status_code, 400)
        lot.refresh_from_db()
        self.assertEqual(lot.damaged, 50)

    def test_retrieve_lists_damage_history(self):
        lot = self.make_lot(seeds_sown=200)
        self.auth_as("staff_lot", "staff123")
        self.client.post(f"/api/lots/{lot.id}/damage/", {"additional_damaged": 5, "reason": "wilt"}, format="json")
        response = self.client.get(f"/api/lots/{lot.id}/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["damage_entries"][0]["reason"], "wilt")
        self.assertEqual(response.data["damage_entries"][0]["damaged_after"], 5)

    def test_update_seeds_sown_adjusts_seed_batch(self):
        batch = self.make_batch("L-100", total=1000)
        self.auth_as("staff_lot", "staff123")
        lot_id = self.client.post("/api/lots/", self.lot_payload(), format="json").data["id"]

        response = self.client.patch(f"/api/lots/{lot_id}/", {"seeds_sown": 700}, format="json")
        self.assertEqual(response.status_code, 200)
        batch.refresh_from_db()
        self.assertEqual(batch.available_quantity, 300)

        self.client.patch(f"/api/lots/{lot_id}/", {"seeds_sown": 400}, format="json")
        batch.refresh_from_db()
        self.assertEqual(batch.available_quantity, 600)

    def test_update_damage_percentage_derives_damaged(self):
        lot = self.make_lot(seeds_sown=500, damaged=50)
        self.auth_as("staff_lot", "staff123")
        response = self.client.patch(f"/api/lots/{lot.id}/", {"damage_percentage": "50"}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["damaged"], 250)
        self.assertEqual(response.data["damage_percentage"], "50.00")
        self.assertEqual(response.data["available"], 250)

    def test_update_damaged_recomputes_percentage(self):
        lot = self.make_lot(seeds_sown=500, damaged=50)
        self.auth_as("staff_lot", "staff123")
        response = self.client.patch(
            f"/api/lots/{lot.id}/",
            {"damaged": 100, "damage_percentage": "10.00"},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["damaged"], 100)
        self.assertEqual(response.data["damage_percentage"], "20.00")
        lot.refresh_from_db()
        self.assertEqual(lot.damage_percentage, Decimal("20.00"))

        shrunk = self.client.patch(f"/api/lots/{lot.id}/", {"seeds_sown": 400}, format="json")
        self.assertEqual(shrunk.status_code, 200)
        self.assertEqual(shrunk.data["damage_percentage"], "25.00")

    def test_shrinking_lot_below_bookings_is_rejected(self):
        lot = self.make_lot(seeds_sown=500)
        self.make_order(lot, 400)
        self.auth_as("staff_lot", "staff123")
        response = self.client.patch(f"/api/lots/{lot.id}/", {"seeds_sown": 300}, format="json")
        self.assertEqual(response.status_code, 409)
        lot.refresh_from_db()
        self.assertEqual(lot.seeds_sown, 500)

        allowed = self.client.patch(f"/api/lots/{lot.id}/", {"seeds_sown": 450}, format="json")
        self.assertEqual(allowed.status_code, 200)
        self.assertEqual(allowed.data["available"], 50)

    @override_settings(NURSERY_ENFORCE_STOCK_LIMITS=False)
    def test_shrinking_lot_below_bookings_allowed_when_limits_off(self):
        lot = self.make_lot(seeds_sown=500)
        self.make_order(lot, 400)
        self.auth_as("staff_lot", "staff123")
        response = self.client.patch(f"/api/lots/{lot.id}/", {"seeds_sown": 300}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["available"], -100)

    def test_delete_lot_blocked_by_orders_and_releases_batch(self):
        batch = self.make_batch("L-100", total=1000)
        self.auth_as("admin_lot", "admin123")
        lot_id = self.client.post("/api/lots/", self.lot_payload(), format="json").data["id"]
        order = self.make_order(SowingLot.objects.get(pk=lot_id), 10)

        blocked = self.client.delete(f"/api/lots/{lot_id}/")
        self.assertEqual(blocked.status_code, 400)
        self.assertEqual(blocked.data["code"], "conflict")

        order.delete()
        response = self.client.delete(f"/api/lots/{lot_id}/")
        self.assertEqual(response.status_code, 204)
        batch.refresh_from_db()
        self.assertEqual(batch.available_quantity, 1000)

    def test_staff_cannot_delete_lots(self):
        lot = self.make_lot()
        self.auth_as("staff_lot", "staff123")
        self.assertEqual(self.client.delete(f"/api/lots/{lot.id}/").status_code, 403)

    def test_missing_lot_is_404(self):
        self.auth_as("staff_lot", "staff123")
        self.assertEqual(self.client.get("/api/lots/9999/").status_code, 404)
        response = self.client.post("/api/lots/9999/damage/", {"additional_damaged": 1}, format="json")
        self.assertEqual(response.status_code, 404)


class AllocatePendingOrdersTests(LotTestMixin, APITestCase):
    def make_pending(self, qty, variety=None):
        variety = variety or self.tomato
        return Order.objects.create(
            category=variety.category,
            variety=variety,
            customer_name="Lakshmi",
            phone="9123456780",
            state="Karnataka",
            district="Kolar",
            taluk="Malur",
            booked_qty=qty,
            unit_price=Decimal("2.00"),
            delivery_date=date(2025, 3, 1),
        )

    def test_allocate_assigns_lot(self):
        lot = self.make_lot(seeds_sown=300)
        first = self.make_pending(100)
        second = self.make_pending(150)
        self.auth_as("staff_lot", "staff123")

        response = self.client.post(
            f"/api/lots/{lot.id}/allocate-orders/",
            {"order_ids": [first.id, second.id]},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["lot"]["available"], 50)
        self.assertEqual({row["lot_status"] for row in response.data["orders"]}, {"ALLOCATED"})
        first.refresh_from_db()
        self.assertEqual(first.lot_id, lot.id)
        self.assertTrue(AuditLog.objects.filter(action="lots.allocate_orders").exists())

    def test_allocate_rejects_other_variety_and_over_capacity(self):
        lot = self.make_lot(seeds_sown=100)
        chilli_order = self.make_pending(10, variety=self.chilli)
        big_order = self.make_pending(150)
        self.auth_as("staff_lot", "staff123")

        wrong = self.client.post(
            f"/api/lots/{lot.id}/allocate-orders/",
            {"order_ids": [chilli_order.id]},
            format="json",
        )
        self.assertEqual(wrong.status_code, 400)

        too_big = self.client.post(
            f"/api/lots/{lot.id}/allocate-orders/",
            {"order_ids": [big_order.id]},
            format="json",
        )
        self.assertEqual(too_big.status_code, 409)
        big_order.refresh_from_db()
        self.assertIsNone(big_order.lot_id)

    def test_allocate_rejects_orders_already_on_a_lot(self):
        lot = self.make_lot(seeds_sown=100)
        other = self.make_lot("L-200", seeds_sown=100)
        placed = self.make_order(other, 10)
        self.auth_as("staff_lot", "staff123")
        response = self.client.post(
            f"/api/lots/{lot.id}/allocate-orders/",
            {"order_ids": [placed.id]},
            format="json",
        )
        self.assertEqual(response.status_code, 400)
