from django.contrib.auth import get_user_model
from rest_framework.test import APITestCase

from apps.accounts.models import DEFAULT_STAFF_PAGES, Page, RolePagePermission
from apps.audit.models import AuditLog

User = get_user_model()


class AccountsApiTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin_acc", password="admin123", role="admin")
        self.staff = User.objects.create_user(username="staff_acc", password="staff123", role="staff")

    def auth_as(self, username, password):
        token = self.client.post(
            "/api/auth/token/",
            {"username": username, "password": password},
            format="json",
        ).data["access"]
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

    def test_session_login_returns_user_and_audits(self):
        response = self.client.post("/api/login/", {"username": "staff_acc", "password": "staff123"}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["username"], "staff_acc")
        self.assertNotIn("password", response.data)
        self.assertTrue(AuditLog.objects.filter(action="auth.login", entity_id=str(self.staff.id)).exists())

        current = self.client.get("/api/user/")
        self.assertEqual(current.status_code, 200)
        self.assertEqual(current.data["role"], "staff")

    def test_login_with_wrong_password_is_rejected(self):
        response = self.client.post("/api/login/", {"username": "staff_acc", "password": "nope"}, format="json")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.data["code"], "invalid_credentials")

    def test_endpoints_require_authentication(self):
        response = self.client.get("/api/lots/")
        self.assertEqual(response.status_code, 401)

    def test_admin_manages_users(self):
        self.auth_as("admin_acc", "admin123")
        response = self.client.post(
            "/api/users/",
            {"username": "new_staff", "password": "secret123", "role": "staff", "first_name": "Ravi"},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        created = User.objects.get(username="new_staff")
        self.assertTrue(created.check_password("secret123"))

        missing_password = self.client.post("/api/users/", {"username": "nopass", "role": "staff"}, format="json")
        self.assertEqual(missing_password.status_code, 400)
        self.assertIn("password", missing_password.data["fields"])

        listed = self.client.get("/api/users/")
        self.assertEqual(listed.status_code, 200)
        self.assertEqual({row["username"] for row in listed.data}, {"admin_acc", "staff_acc", "new_staff"})

    def test_admin_cannot_delete_self(self):
        self.auth_as("admin_acc", "admin123")
        response = self.client.delete(f"/api/users/{self.admin.id}/")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "conflict")

    def test_staff_cannot_manage_users(self):
        self.auth_as("staff_acc", "staff123")
        response = self.client.get("/api/users/")
        self.assertEqual(response.status_code, 403)

    def test_role_page_permissions_roundtrip(self):
        self.auth_as("admin_acc", "admin123")
        default = self.client.get("/api/roles/staff/permissions/")
        self.assertEqual(default.status_code, 200)
        self.assertEqual(set(default.data["pages"]), set(DEFAULT_STAFF_PAGES))

        response = self.client.put(
            "/api/roles/staff/permissions/",
            {"pages": [Page.ORDERS, Page.LOTS]},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["pages"], sorted([Page.LOTS, Page.ORDERS]))
        self.assertEqual(RolePagePermission.objects.filter(role="staff", allowed=True).count(), 2)

        self.auth_as("staff_acc", "staff123")
        mine = self.client.get("/api/my-permissions/")
        self.assertEqual(mine.data["pages"], sorted([Page.LOTS, Page.ORDERS]))

    def test_admin_pages_cannot_be_restricted_and_unknown_role_is_404(self):
        self.auth_as("admin_acc", "admin123")
        response = self.client.put("/api/roles/admin/permissions/", {"pages": []}, format="json")
        self.assertEqual(response.status_code, 400)
        unknown = self.client.get("/api/roles/driver/permissions/")
        self.assertEqual(unknown.status_code, 404)

        mine = self.client.get("/api/my-permissions/")
        self.assertEqual(mine.data["pages"], sorted(Page.values))
