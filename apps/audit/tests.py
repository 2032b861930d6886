from django.contrib.auth import get_user_model
from rest_framework.test import APITestCase

from apps.audit.models import AuditLog
from apps.audit.services import record_audit

User = get_user_model()


class AuditLogApiTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin_audit", password="admin123", role="admin")
        self.staff = User.objects.create_user(username="staff_audit", password="staff123", role="staff")

    def auth_as(self, username, password):
        token = self.client.post(
            "/api/auth/token/",
            {"username": username, "password": password},
            format="json",
        ).data["access"]
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

    def test_record_audit_stores_anonymous_actor_as_null(self):
        entry = record_audit(actor=None, action="system.job", entity_type="job", entity_id=1)
        self.assertIsNone(entry.actor)
        self.assertEqual(entry.entity_id, "1")
        self.assertEqual(entry.payload, {})

    def test_admin_filters_audit_logs(self):
        record_audit(actor=self.admin, action="lots.create", entity_type="lot", entity_id=7, summary="Sowed lot L7")
        record_audit(actor=self.admin, action="orders.create", entity_type="order", entity_id=3)

        self.auth_as("admin_audit", "admin123")
        response = self.client.get("/api/audit-logs/", {"entity_type": "lot"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["count"], 1)
        row = response.data["results"][0]
        self.assertEqual(row["action"], "lots.create")
        self.assertEqual(row["actor_username"], "admin_audit")
        self.assertEqual(row["summary"], "Sowed lot L7")

        by_prefix = self.client.get("/api/audit-logs/", {"action": "orders."})
        self.assertEqual(by_prefix.data["count"], 1)

    def test_staff_cannot_read_audit_logs(self):
        AuditLog.objects.create(action="x", entity_type="lot", entity_id="1")
        self.auth_as("staff_audit", "staff123")
        response = self.client.get("/api/audit-logs/")
        self.assertEqual(response.status_code, 403)
