from django.test import TestCase
from rest_framework.test import APIClient

from account.models import User


class UserModelTests(TestCase):
    def test_create_user_hashes_password(self):
        user = User.objects.create_user(email="user@example.com", password="Pass123!")

        self.assertNotEqual(user.password, "Pass123!")
        self.assertTrue(user.check_password("Pass123!"))
        self.assertEqual(user.role, User.Role.CUSTOMER)
        self.assertFalse(user.is_store_staff)

    def test_create_user_requires_email(self):
        with self.assertRaisesMessage(ValueError, "Users must have an email"):
            User.objects.create_user(email="", password="Pass123!")

    def test_superuser_defaults_to_admin_role(self):
        admin = User.objects.create_superuser(email="root@example.com", password="Pass123!")
        self.assertEqual(admin.role, User.Role.ADMIN)
        self.assertTrue(admin.is_store_staff)


class AccountApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.admin = User.objects.create_user(email="admin@store.com", password="Pass123!", role="ADMIN")
        self.cashier = User.objects.create_user(email="cashier@store.com", password="Pass123!", role="CASHIER")

    def test_register_always_creates_customer(self):
        resp = self.client.post(
            "/auth/register/",
            {"email": "new@example.com", "password": "Pass123!", "role": "ADMIN"},
            format="json",
        )
        self.assertEqual(resp.status_code, 201, resp.data)
        self.assertEqual(User.objects.get(email="new@example.com").role, User.Role.CUSTOMER)

    def test_login_returns_token_pair(self):
        resp = self.client.post(
            "/auth/login/",
            {"email": "cashier@store.com", "password": "Pass123!"},
            format="json",
        )
        self.assertEqual(resp.status_code, 200, resp.data)
        self.assertIn("access", resp.data)
        self.assertIn("refresh", resp.data)

    def test_only_admin_can_create_staff(self):
        self.client.force_authenticate(self.cashier)
        resp = self.client.post(
            "/auth/staff/",
            {"email": "c2@store.com", "password": "Pass123!", "role": "CASHIER"},
            format="json",
        )
        self.assertEqual(resp.status_code, 403)

        self.client.force_authenticate(self.admin)
        resp = self.client.post(
            "/auth/staff/",
            {"email": "c2@store.com", "password": "Pass123!", "role": "CASHIER"},
            format="json",
        )
        self.assertEqual(resp.status_code, 201, resp.data)
        self.assertEqual(User.objects.get(email="c2@store.com").role, User.Role.CASHIER)

    def test_me_returns_current_user(self):
        self.client.force_authenticate(self.cashier)
        resp = self.client.get("/auth/me/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["email"], "cashier@store.com")
        self.assertEqual(resp.data["role"], "CASHIER")
