from datetime import date, timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, override_settings
from django.utils import timezone
from rest_framework.test import APITestCase

from apps.audit.models import AuditLog
from apps.catalog.models import Category, Variety
from apps.lots.models import SowingLot
from apps.lots.querysets import available_for_lot
from apps.orders.models import Order, OrderStatus, PaymentStatus, normalize_phone, order_total, payment_status_for

User = get_user_model()


class PaymentRulesTests(SimpleTestCase):
    def test_payment_status_for(self):
        self.assertEqual(payment_status_for(Decimal("0"), Decimal("100")), PaymentStatus.PENDING)
        self.assertEqual(payment_status_for(Decimal("40"), Decimal("100")), PaymentStatus.PARTIALLY_PAID)
        self.assertEqual(payment_status_for(Decimal("100"), Decimal("100")), PaymentStatus.PAID)

    def test_order_total_and_phone_normalization(self):
        self.assertEqual(order_total(200, Decimal("2.50"), Decimal("25.00")), Decimal("475.00"))
        self.assertEqual(normalize_phone(" +91 98765-43210 "), "919876543210")


class OrderTestMixin:
    def setUp(self):
        self.admin = User.objects.create_user(username="admin_ord", password="admin123", role="admin")
        self.staff = User.objects.create_user(username="staff_ord", password="staff123", role="staff")
        self.vegetables = Category.objects.create(name="Vegetables", price_per_unit=Decimal("2.00"))
        self.tomato = Variety.objects.create(category=self.vegetables, name="Tomato")
        self.chilli = Variety.objects.create(category=self.vegetables, name="Chilli")
        self.fruits = Category.objects.create(name="Fruits")
        self.mango = Variety.objects.create(category=self.fruits, name="Mango")
        self.lot = SowingLot.objects.create(
            lot_number="L-500",
            category=self.vegetables,
            variety=self.tomato,
            sowing_date=date(2025, 1, 10),
            seeds_sown=500,
        )

    def auth_as(self, username, password):
        token = self.client.post(
            "/api/auth/token/",
            {"username": username, "password": password},
            format="json",
        ).data["access"]
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

    def order_payload(self, **overrides):
        payload = {
            "lot": self.lot.id,
            "customer_name": "Ramesh Gowda",
            "phone": "98765 43210",
            "village": "Kurudumale",
            "state": "Karnataka",
            "district": "Kolar",
            "taluk": "Mulbagal",
            "booked_qty": 100,
            "unit_price": "2.00",
            "discount": "0.00",
            "advance_amount": "0.00",
            "payment_mode": "Cash",
            "delivery_date": "2025-03-01",
        }
        payload.update(overrides)
        return payload

    def book(self, **overrides):
        return self.client.post("/api/orders/", self.order_payload(**overrides), format="json")

    def deliver(self, order_id, **overrides):
        payload = {
            "actual_delivery_date": "2025-03-02",
            "actual_delivery_time": "10:30:00",
            "delivered_qty": 100,
        }
        payload.update(overrides)
        return self.client.post(f"/api/orders/{order_id}/deliver/", payload, format="json")


class OrderBookingTests(OrderTestMixin, APITestCase):
    def test_book_order_derives_amounts_and_copies_lot_taxonomy(self):
        self.auth_as("staff_ord", "staff123")
        response = self.book(booked_qty=200, unit_price="2.50", discount="25.00", advance_amount="100.00")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["status"], OrderStatus.BOOKED)
        self.assertEqual(response.data["total_amount"], "475.00")
        self.assertEqual(response.data["remaining_balance"], "375.00")
        self.assertEqual(response.data["payment_status"], PaymentStatus.PARTIALLY_PAID)
        self.assertEqual(response.data["lot_status"], "ALLOCATED")
        self.assertEqual(response.data["category"], self.vegetables.id)
        self.assertEqual(response.data["variety"], self.tomato.id)
        self.assertEqual(response.data["invoice_number"], f"K{response.data['id']}")
        self.assertTrue(AuditLog.objects.filter(action="orders.create").exists())

    def test_client_total_is_ignored(self):
        self.auth_as("staff_ord", "staff123")
        response = self.book(total_amount="1.00")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["total_amount"], "200.00")

    def test_advance_above_total_is_rejected(self):
        self.auth_as("staff_ord", "staff123")
        response = self.book(booked_qty=10, unit_price="2.00", advance_amount="25.00")
        self.assertEqual(response.status_code, 400)
        self.assertIn("advance_amount", response.data["fields"])
        self.assertFalse(Order.objects.exists())

    def test_full_advance_is_paid(self):
        self.auth_as("staff_ord", "staff123")
        response = self.book(booked_qty=10, unit_price="2.00", advance_amount="20.00")
        self.assertEqual(response.data["payment_status"], PaymentStatus.PAID)
        self.assertEqual(response.data["remaining_balance"], "0.00")

    def test_booking_validation(self):
        self.auth_as("staff_ord", "staff123")
        self.assertEqual(self.book(phone="12345").status_code, 400)
        self.assertEqual(self.book(booked_qty=0).status_code, 400)
        self.assertEqual(self.book(unit_price="-1.00").status_code, 400)
        self.assertEqual(self.book(taluk="  ").status_code, 400)
        self.assertEqual(self.book(discount="500.00").status_code, 400)
        self.assertEqual(self.book(status=OrderStatus.DELIVERED).status_code, 400)

    def test_book_without_lot_needs_category_and_variety(self):
        self.auth_as("staff_ord", "staff123")
        missing = self.book(lot=None)
        self.assertEqual(missing.status_code, 400)
        self.assertIn("lot", missing.data["fields"])

        mismatched = self.book(lot=None, category=self.vegetables.id, variety=self.mango.id)
        self.assertEqual(mismatched.status_code, 400)

        response = self.book(lot=None, category=self.vegetables.id, variety=self.chilli.id, booked_qty=5000)
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["lot_status"], "PENDING_LOT")

    def test_overbooking_scenario_with_limits_enforced(self):
        self.auth_as("staff_ord", "staff123")
        self.assertEqual(self.book(booked_qty=200).status_code, 201)
        self.assertEqual(available_for_lot(self.lot.id), 300)
        self.assertEqual(self.book(booked_qty=250).status_code, 201)
        self.assertEqual(available_for_lot(self.lot.id), 50)

        response = self.book(booked_qty=100)
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "capacity_exceeded")
        self.assertEqual(Order.objects.count(), 2)
        self.assertEqual(available_for_lot(self.lot.id), 50)

    @override_settings(NURSERY_ENFORCE_STOCK_LIMITS=False)
    def test_overbooking_scenario_with_limits_off(self):
        self.auth_as("staff_ord", "staff123")
        self.book(booked_qty=200)
        self.book(booked_qty=250)
        response = self.book(booked_qty=100)
        self.assertEqual(response.status_code, 201)
        self.assertEqual(available_for_lot(self.lot.id), -50)

    def test_cancelling_restores_availability(self):
        self.auth_as("admin_ord", "admin123")
        first_id = self.book(booked_qty=200).data["id"]
        self.book(booked_qty=250)
        self.assertEqual(available_for_lot(self.lot.id), 50)

        response = self.client.post(f"/api/orders/{first_id}/cancel/", {"reason": "customer request"}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], OrderStatus.CANCELLED)
        self.assertEqual(available_for_lot(self.lot.id), 250)

        lot = self.client.get(f"/api/lots/{self.lot.id}/").data
        self.assertEqual(lot["available"], 250)


class OrderUpdateTests(OrderTestMixin, APITestCase):
    def test_update_rederives_amounts(self):
        self.auth_as("staff_ord", "staff123")
        order_id = self.book(booked_qty=100, advance_amount="50.00").data["id"]
        response = self.client.patch(f"/api/orders/{order_id}/", {"unit_price": "3.00"}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["total_amount"], "300.00")
        self.assertEqual(response.data["remaining_balance"], "250.00")

        paid = self.client.patch(f"/api/orders/{order_id}/", {"advance_amount": "300.00"}, format="json")
        self.assertEqual(paid.data["payment_status"], PaymentStatus.PAID)

    def test_growing_quantity_rechecks_capacity_excluding_itself(self):
        self.auth_as("staff_ord", "staff123")
        order_id = self.book(booked_qty=400).data["id"]
        self.assertEqual(
            self.client.patch(f"/api/orders/{order_id}/", {"booked_qty": 500}, format="json").status_code,
            200,
        )
        response = self.client.patch(f"/api/orders/{order_id}/", {"booked_qty": 501}, format="json")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(Order.objects.get(pk=order_id).booked_qty, 500)

    def test_moving_to_another_lot_copies_its_variety(self):
        other = SowingLot.objects.create(
            lot_number="L-CH",
            category=self.vegetables,
            variety=self.chilli,
            sowing_date=date(2025, 1, 10),
            seeds_sown=50,
        )
        self.auth_as("staff_ord", "staff123")
        order_id = self.book(booked_qty=40).data["id"]
        response = self.client.patch(f"/api/orders/{order_id}/", {"lot": other.id}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["variety"], self.chilli.id)

        too_big = self.book(booked_qty=20)
        self.assertEqual(too_big.status_code, 201)
        response = self.client.patch(f"/api/orders/{too_big.data['id']}/", {"lot": other.id}, format="json")
        self.assertEqual(response.status_code, 409)

    def test_generic_update_only_allows_cancellation(self):
        self.auth_as("staff_ord", "staff123")
        order_id = self.book().data["id"]
        delivered = self.client.patch(f"/api/orders/{order_id}/", {"status": OrderStatus.DELIVERED}, format="json")
        self.assertEqual(delivered.status_code, 400)
        self.assertEqual(delivered.data["code"], "invalid_state")

        cancelled = self.client.patch(f"/api/orders/{order_id}/", {"status": OrderStatus.CANCELLED}, format="json")
        self.assertEqual(cancelled.status_code, 200)
        self.assertEqual(cancelled.data["status"], OrderStatus.CANCELLED)

        revived = self.client.patch(f"/api/orders/{order_id}/", {"status": OrderStatus.BOOKED}, format="json")
        self.assertEqual(revived.status_code, 400)

    def test_cancelled_order_cannot_be_edited(self):
        other = SowingLot.objects.create(
            lot_number="L-CH",
            category=self.vegetables,
            variety=self.chilli,
            sowing_date=date(2025, 1, 10),
            seeds_sown=50,
        )
        self.auth_as("admin_ord", "admin123")
        order_id = self.book(booked_qty=40).data["id"]
        self.client.post(f"/api/orders/{order_id}/cancel/", {}, format="json")

        for change in ({"booked_qty": 900}, {"lot": other.id}, {"customer_name": "Someone Else"}):
            response = self.client.patch(f"/api/orders/{order_id}/", change, format="json")
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.data["code"], "invalid_state")

        order = Order.objects.get(pk=order_id)
        self.assertEqual(order.booked_qty, 40)
        self.assertEqual(order.lot_id, self.lot.id)
        self.assertEqual(order.customer_name, "Ramesh Gowda")
        self.assertFalse(AuditLog.objects.filter(action="orders.update", entity_id=str(order_id)).exists())


class OrderLifecycleTests(OrderTestMixin, APITestCase):
    def test_deliver_sets_delivery_fields(self):
        self.auth_as("staff_ord", "staff123")
        order_id = self.book(booked_qty=100).data["id"]
        response = self.client.post(
            f"/api/orders/{order_id}/deliver/",
            {
                "actual_delivery_date": "2025-03-02",
                "actual_delivery_time": "10:30:00",
                "delivered_qty": 95,
                "vehicle_details": "KA-07 1234",
                "driver_name": "Manju",
                "driver_phone": "9000000001",
            },
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], OrderStatus.DELIVERED)
        self.assertEqual(response.data["actual_delivery_date"], "2025-03-02")
        self.assertEqual(response.data["actual_delivery_time"], "10:30:00")
        self.assertEqual(response.data["delivered_qty"], 95)
        self.assertEqual(response.data["driver_name"], "Manju")

        again = self.deliver(order_id, delivered_qty=95)
        self.assertEqual(again.status_code, 400)
        self.assertEqual(again.data["code"], "invalid_state")

    def test_deliver_requires_date_time_and_quantity(self):
        self.auth_as("staff_ord", "staff123")
        order_id = self.book(booked_qty=100).data["id"]
        response = self.client.post(f"/api/orders/{order_id}/deliver/", {}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            set(response.data["fields"]),
            {"actual_delivery_date", "actual_delivery_time", "delivered_qty"},
        )
        self.assertEqual(Order.objects.get(pk=order_id).status, OrderStatus.BOOKED)

        no_time = self.deliver(order_id, actual_delivery_time=None)
        self.assertEqual(no_time.status_code, 400)
        self.assertIn("actual_delivery_time", no_time.data["fields"])

        over = self.deliver(order_id, delivered_qty=101)
        self.assertEqual(over.status_code, 400)
        self.assertEqual(Order.objects.get(pk=order_id).status, OrderStatus.BOOKED)

        partial = self.deliver(order_id, delivered_qty=60)
        self.assertEqual(partial.status_code, 200)
        self.assertEqual(partial.data["delivered_qty"], 60)

    def test_undo_delivery_keeps_delivery_fields(self):
        self.auth_as("staff_ord", "staff123")
        order_id = self.book(booked_qty=100).data["id"]
        self.deliver(order_id, driver_name="Manju")
        missing_reason = self.client.post(f"/api/orders/{order_id}/undo-delivery/", {}, format="json")
        self.assertEqual(missing_reason.status_code, 400)

        response = self.client.post(
            f"/api/orders/{order_id}/undo-delivery/",
            {"reason": "marked delivered by mistake"},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], OrderStatus.BOOKED)
        self.assertEqual(response.data["actual_delivery_date"], "2025-03-02")
        self.assertEqual(response.data["driver_name"], "Manju")
        audit = AuditLog.objects.get(action="orders.undo_delivery")
        self.assertEqual(audit.payload["reason"], "marked delivered by mistake")

        not_delivered = self.client.post(
            f"/api/orders/{order_id}/undo-delivery/",
            {"reason": "again"},
            format="json",
        )
        self.assertEqual(not_delivered.status_code, 400)

    def test_cancel_only_from_booked(self):
        self.auth_as("admin_ord", "admin123")
        order_id = self.book().data["id"]
        self.assertEqual(self.deliver(order_id).status_code, 200)
        response = self.client.post(f"/api/orders/{order_id}/cancel/", {}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "invalid_state")

    def test_staff_cannot_cancel_or_delete(self):
        self.auth_as("staff_ord", "staff123")
        order_id = self.book().data["id"]
        self.assertEqual(self.client.post(f"/api/orders/{order_id}/cancel/", {}, format="json").status_code, 403)
        self.assertEqual(self.client.delete(f"/api/orders/{order_id}/").status_code, 403)

    def test_admin_deletes_order(self):
        self.auth_as("admin_ord", "admin123")
        order_id = self.book().data["id"]
        self.assertEqual(self.client.delete(f"/api/orders/{order_id}/").status_code, 204)
        self.assertTrue(AuditLog.objects.filter(action="orders.delete", entity_id=str(order_id)).exists())
        self.assertEqual(self.client.get(f"/api/orders/{order_id}/").status_code, 404)


class OrderListTests(OrderTestMixin, APITestCase):
    def setUp(self):
        super().setUp()
        self.auth_as("staff_ord", "staff123")
        self.first = self.book(customer_name="Anand", booked_qty=10, delivery_date="2025-03-05").data
        self.second = self.book(customer_name="Bhavya", booked_qty=30, delivery_date="2025-03-01").data
        self.pending = self.book(
            lot=None,
            category=self.vegetables.id,
            variety=self.chilli.id,
            customer_name="Chandra",
            phone="9988776655",
            booked_qty=20,
            delivery_date="2025-03-03",
        ).data

    def test_paginated_default_sort_is_newest_first(self):
        response = self.client.get("/api/orders/", {"page": 1, "limit": 2})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["count"], 3)
        self.assertEqual([row["id"] for row in response.data["results"]], [self.pending["id"], self.second["id"]])

    def test_sort_field_and_order(self):
        response = self.client.get("/api/orders/", {"sortField": "deliveryDate", "sortOrder": "asc"})
        self.assertEqual(
            [row["customer_name"] for row in response.data["results"]],
            ["Bhavya", "Chandra", "Anand"],
        )
        by_qty = self.client.get("/api/orders/", {"sortField": "bookedQty", "sortOrder": "desc"})
        self.assertEqual([row["booked_qty"] for row in by_qty.data["results"]], [30, 20, 10])

        invalid = self.client.get("/api/orders/", {"sortField": "password"})
        self.assertEqual(invalid.status_code, 400)

    def test_filters(self):
        pending = self.client.get("/api/orders/", {"pendingLot": "true"})
        self.assertEqual([row["id"] for row in pending.data["results"]], [self.pending["id"]])

        by_lot = self.client.get("/api/orders/", {"lotId": self.lot.id})
        self.assertEqual(by_lot.data["count"], 2)

        by_phone = self.client.get("/api/orders/", {"q": "99887"})
        self.assertEqual([row["customer_name"] for row in by_phone.data["results"]], ["Chandra"])

        by_variety = self.client.get("/api/orders/", {"q": "chilli"})
        self.assertEqual(by_variety.data["count"], 1)

        in_range = self.client.get("/api/orders/", {"deliveryFrom": "2025-03-02", "deliveryTo": "2025-03-04"})
        self.assertEqual([row["customer_name"] for row in in_range.data["results"]], ["Chandra"])

        self.assertEqual(self.deliver(self.first["id"], delivered_qty=10).status_code, 200)
        delivered = self.client.get("/api/orders/", {"status": OrderStatus.DELIVERED})
        self.assertEqual([row["id"] for row in delivered.data["results"]], [self.first["id"]])

    def test_unallocated_count_and_today_deliveries(self):
        response = self.client.get("/api/orders/unallocated-count/")
        self.assertEqual(response.data, {"count": 1})

        today = timezone.localdate()
        due = self.book(customer_name="Devi", delivery_date=today.isoformat()).data
        self.book(customer_name="Later", delivery_date=(today + timedelta(days=1)).isoformat())
        response = self.client.get("/api/orders/today-deliveries/")
        self.assertEqual([row["id"] for row in response.data], [due["id"]])


class CustomerLookupTests(OrderTestMixin, APITestCase):
    def test_lookup_returns_latest_customer_details(self):
        self.auth_as("staff_ord", "staff123")
        self.book(phone="98765 43210", village="Old Village")
        self.book(phone="+91-98765-43210".replace("+91-", ""), village="New Village", customer_name="Ramesh G")

        response = self.client.get("/api/customers/lookup/", {"phone": "9876543210"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["village"], "New Village")
        self.assertEqual(response.data["customer_name"], "Ramesh G")
        self.assertEqual(response.data["taluk"], "Mulbagal")

    def test_lookup_unknown_phone_is_404(self):
        self.auth_as("staff_ord", "staff123")
        response = self.client.get("/api/customers/lookup/", {"phone": "9000000000"})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data["code"], "not_found")

    def test_customer_directory_aggregates_orders(self):
        self.auth_as("staff_ord", "staff123")
        self.book(booked_qty=100, delivery_date="2025-03-01")
        self.book(booked_qty=50, delivery_date="2025-04-01")
        self.book(customer_name="Other", phone="9111111111", booked_qty=5)

        response = self.client.get("/api/customers/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["count"], 2)
        ramesh = next(row for row in response.data["results"] if row["phone"] == "98765 43210")
        self.assertEqual(ramesh["order_count"], 2)
        self.assertEqual(ramesh["total_quantity"], 150)
        self.assertEqual(ramesh["last_delivery_date"], "2025-04-01")
