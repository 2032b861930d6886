from datetime import date, timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import override_settings
from django.utils import timezone
from rest_framework.test import APITestCase

from apps.catalog.models import Category, Variety
from apps.lots.models import SowingLot
from apps.orders.models import Order, OrderStatus

User = get_user_model()


class ReportsApiTests(APITestCase):
    def setUp(self):
        self.staff = User.objects.create_user(username="staff_rep", password="staff123", role="staff")
        self.today = timezone.localdate()
        vegetables = Category.objects.create(name="Vegetables")
        self.tomato = Variety.objects.create(category=vegetables, name="Tomato")
        self.chilli = Variety.objects.create(category=vegetables, name="Chilli")
        self.sown_today = SowingLot.objects.create(
            lot_number="T-1",
            category=vegetables,
            variety=self.tomato,
            sowing_date=self.today,
            seeds_sown=300,
        )
        self.full_lot = SowingLot.objects.create(
            lot_number="C-1",
            category=vegetables,
            variety=self.chilli,
            sowing_date=self.today - timedelta(days=20),
            seeds_sown=100,
            damaged=20,
        )
        self.make_order(self.sown_today, 100, self.today + timedelta(days=2))
        self.make_order(self.full_lot, 80, self.today + timedelta(days=30))
        self.make_order(None, 10, self.today + timedelta(days=1), variety=self.chilli)
        self.make_order(self.sown_today, 50, self.today, status=OrderStatus.CANCELLED)
        self.delivered = self.make_order(
            self.sown_today,
            40,
            date(2025, 3, 1),
            status=OrderStatus.DELIVERED,
            actual_delivery_date=date(2025, 3, 2),
            delivered_qty=35,
            advance_amount=Decimal("20.00"),
        )

    def make_order(self, lot, qty, delivery_date, status=OrderStatus.BOOKED, variety=None, **extra):
        variety = variety or lot.variety
        fields = {
            "customer_name": "Farmer",
            "phone": "9876543210",
            "state": "Karnataka",
            "district": "Kolar",
            "taluk": "Mulbagal",
            "unit_price": Decimal("2.00"),
        }
        fields.update(extra)
        return Order.objects.create(
            lot=lot,
            category=variety.category,
            variety=variety,
            booked_qty=qty,
            delivery_date=delivery_date,
            status=status,
            **fields,
        )

    def auth_as(self, username, password):
        token = self.client.post(
            "/api/auth/token/",
            {"username": username, "password": password},
            format="json",
        ).data["access"]
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

    def test_dashboard_summary(self):
        self.auth_as("staff_rep", "staff123")
        response = self.client.get("/api/reports/dashboard/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["sowing_today"], {"lots": 1, "seeds_sown": 300})
        self.assertEqual(response.data["active_lots"], 1)
        self.assertEqual(response.data["pending_orders"], 3)
        self.assertEqual(response.data["unallocated_orders"], 1)
        self.assertEqual(response.data["upcoming_deliveries"]["count"], 2)
        self.assertEqual(response.data["upcoming_deliveries"]["quantity"], 110)

        by_variety = {row["variety_name"]: row for row in response.data["sales_by_variety"]}
        self.assertEqual(by_variety["Tomato"]["quantity"], 140)
        self.assertEqual(by_variety["Tomato"]["amount"], "280.00")
        self.assertEqual(by_variety["Chilli"]["orders"], 2)

    @override_settings(NURSERY_UPCOMING_DELIVERY_DAYS=60)
    def test_upcoming_window_is_configurable(self):
        self.auth_as("staff_rep", "staff123")
        response = self.client.get("/api/reports/dashboard/")
        self.assertEqual(response.data["upcoming_deliveries"]["days"], 60)
        self.assertEqual(response.data["upcoming_deliveries"]["count"], 3)

    def test_delivery_report_totals(self):
        self.auth_as("staff_rep", "staff123")
        response = self.client.get("/api/reports/deliveries/", {"date_from": "2025-03-01", "date_to": "2025-03-31"})
        self.assertEqual(response.status_code, 200)
        totals = response.data["totals"]
        self.assertEqual(totals["orders"], 1)
        self.assertEqual(totals["delivered_quantity"], 35)
        self.assertEqual(totals["amount"], "80.00")
        self.assertEqual(totals["advance"], "20.00")
        self.assertEqual(totals["short_deliveries"], 1)
        self.assertEqual([row["id"] for row in response.data["orders"]], [self.delivered.id])

        outside = self.client.get("/api/reports/deliveries/", {"date_from": "2025-04-01"})
        self.assertEqual(outside.data["totals"]["orders"], 0)

    def test_delivery_report_pending_and_breakdowns(self):
        self.make_order(
            self.full_lot,
            30,
            date(2025, 3, 5),
            status=OrderStatus.DELIVERED,
            actual_delivery_date=date(2025, 3, 6),
            delivered_qty=30,
            advance_amount=Decimal("60.00"),
            village="Kurudumale",
        )
        self.make_order(
            self.sown_today,
            10,
            date(2025, 3, 10),
            status=OrderStatus.DELIVERED,
            actual_delivery_date=date(2025, 3, 10),
            delivered_qty=10,
            village="Hosur",
            district="Krishnagiri",
            taluk="Hosur",
        )
        waiting = self.make_order(
            self.sown_today,
            25,
            date(2025, 3, 15),
            advance_amount=Decimal("10.00"),
            village="Kurudumale",
        )

        self.auth_as("staff_rep", "staff123")
        response = self.client.get("/api/reports/deliveries/", {"date_from": "2025-03-01", "date_to": "2025-03-31"})
        self.assertEqual(response.status_code, 200)
        totals = response.data["totals"]
        self.assertEqual(totals["orders"], 3)
        self.assertEqual(totals["delivered_quantity"], 75)
        self.assertEqual(totals["amount"], "160.00")
        self.assertEqual(totals["advance"], "80.00")

        pending = response.data["pending"]
        self.assertEqual([row["id"] for row in pending["orders"]], [waiting.id])
        self.assertEqual(pending["totals"], {"orders": 1, "quantity": 25, "amount": "50.00", "balance": "40.00"})

        self.assertEqual(
            response.data["by_variety"],
            [
                {
                    "variety_id": self.chilli.id,
                    "variety_name": "Chilli",
                    "orders": 1,
                    "quantity": 30,
                    "amount": "60.00",
                },
                {
                    "variety_id": self.tomato.id,
                    "variety_name": "Tomato",
                    "orders": 2,
                    "quantity": 45,
                    "amount": "100.00",
                },
            ],
        )
        self.assertEqual(
            response.data["by_village"],
            [
                {
                    "village": "Unknown",
                    "orders": 1,
                    "quantity": 35,
                    "payment_collected": "20.00",
                    "pending_balance": "60.00",
                },
                {
                    "village": "Hosur",
                    "orders": 1,
                    "quantity": 10,
                    "payment_collected": "0.00",
                    "pending_balance": "20.00",
                },
                {
                    "village": "Kurudumale",
                    "orders": 1,
                    "quantity": 30,
                    "payment_collected": "60.00",
                    "pending_balance": "0.00",
                },
            ],
        )

    def test_delivery_report_filters_by_district_and_taluk(self):
        self.make_order(
            self.sown_today,
            10,
            date(2025, 3, 10),
            status=OrderStatus.DELIVERED,
            actual_delivery_date=date(2025, 3, 10),
            delivered_qty=10,
            village="Hosur",
            district="Krishnagiri",
            taluk="Hosur",
        )
        self.auth_as("staff_rep", "staff123")

        kolar = self.client.get("/api/reports/deliveries/", {"date_from": "2025-03-01", "district": "Kolar"})
        self.assertEqual(kolar.data["totals"]["orders"], 1)
        self.assertEqual([row["village"] for row in kolar.data["by_village"]], ["Unknown"])

        hosur = self.client.get("/api/reports/deliveries/", {"date_from": "2025-03-01", "taluk": "hosur"})
        self.assertEqual(hosur.data["totals"]["orders"], 1)
        self.assertEqual(hosur.data["totals"]["delivered_quantity"], 10)
        self.assertEqual(hosur.data["pending"]["totals"]["orders"], 0)

        by_village = self.client.get("/api/reports/deliveries/", {"date_to": "2025-12-31", "q": "hosur"})
        self.assertEqual(by_village.data["totals"]["orders"], 1)

    def test_delivery_report_rejects_inverted_range(self):
        self.auth_as("staff_rep", "staff123")
        response = self.client.get("/api/reports/deliveries/", {"date_from": "2025-04-01", "date_to": "2025-03-01"})
        self.assertEqual(response.status_code, 400)

    def test_reports_require_authentication(self):
        self.assertEqual(self.client.get("/api/reports/dashboard/").status_code, 401)
