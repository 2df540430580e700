from decimal import Decimal
from unittest import mock

from django.test import TestCase
from rest_framework.test import APIClient

from account.models import User
from catalog.models import Category, Product, ProductVariant
from reservation.models import Reservation, ReservationUpdate
from .models import DeviceToken, Notification
from .realtime import announce, change_announced
from .services import NotificationService, NotificationTemplates


class NotificationsApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user = User.objects.create_user(email="user@store.com", password="Pass123!")
        self.other = User.objects.create_user(email="other@store.com", password="Pass123!")
        self.client.force_authenticate(self.user)

    def test_device_token_upsert_and_reassign(self):
        resp1 = self.client.post(
            "/notifications/device-token/",
            {"token": "token-123", "device_type": "web"},
            format="json",
        )
        self.assertEqual(resp1.status_code, 200, resp1.data)
        token_row = DeviceToken.objects.get(token="token-123")
        self.assertEqual(token_row.user_id, self.user.id)
        self.assertTrue(token_row.is_active)

        self.client.force_authenticate(self.other)
        resp2 = self.client.post(
            "/notifications/device-token/",
            {"token": "token-123", "device_type": "android"},
            format="json",
        )
        self.assertEqual(resp2.status_code, 200, resp2.data)
        token_row.refresh_from_db()
        self.assertEqual(token_row.user_id, self.other.id)
        self.assertEqual(token_row.device_type, "android")

    def test_device_token_deactivate(self):
        DeviceToken.objects.create(user=self.user, token="token-a", device_type="web", is_active=True)
        resp = self.client.delete(
            "/notifications/device-token/",
            {"token": "token-a"},
            format="json",
        )
        self.assertEqual(resp.status_code, 200, resp.data)
        self.assertEqual(resp.data["deactivated"], 1)
        self.assertFalse(DeviceToken.objects.get(token="token-a").is_active)

    def test_notification_read_endpoints(self):
        note1 = Notification.objects.create(
            user=self.user,
            type=Notification.Type.STATUS_CHANGED,
            title="Reservation Update",
            message="Your reservation has been confirmed!",
            payload={"type": "status_changed", "entity_type": "reservation"},
        )
        note2 = Notification.objects.create(
            user=self.user,
            type=Notification.Type.CANCELLED,
            title="Reservation Update",
            message="Your reservation has been cancelled.",
            payload={"type": "cancelled", "entity_type": "reservation"},
        )
        Notification.objects.create(user=self.other, type=Notification.Type.LOW_STOCK, title="Low Stock", message="x")

        list_resp = self.client.get("/notifications/")
        self.assertEqual(list_resp.status_code, 200, list_resp.data)
        self.assertEqual(list_resp.data["count"], 2)
        self.assertEqual(list_resp.data["unread_count"], 2)

        read_one = self.client.patch(f"/notifications/{note1.id}/read/", {}, format="json")
        self.assertEqual(read_one.status_code, 200, read_one.data)
        note1.refresh_from_db()
        self.assertTrue(note1.is_read)
        self.assertIsNotNone(note1.read_at)
        self.assertTrue(read_one.data["notification"]["is_read"])
        self.assertEqual(self.client.get("/notifications/", {"read": "false"}).data["count"], 1)
        self.assertEqual(self.client.get("/notifications/unread-count/").data["unread_count"], 1)

        read_all = self.client.post("/notifications/mark-all-read/", {}, format="json")
        self.assertEqual(read_all.status_code, 200, read_all.data)
        self.assertEqual(read_all.data["count"], 1)
        note2.refresh_from_db()
        self.assertTrue(note2.is_read)

    def test_reading_someone_elses_notification_is_not_found(self):
        note = Notification.objects.create(user=self.other, type=Notification.Type.LOW_STOCK, title="t", message="m")
        resp = self.client.patch(f"/notifications/{note.id}/read/", {}, format="json")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.data["code"], "not_found")


class NotificationServiceTests(TestCase):
    def setUp(self):
        self.admin = User.objects.create_user(email="admin@store.com", password="Pass123!", role="ADMIN")
        self.cashier = User.objects.create_user(email="cashier@store.com", password="Pass123!", role="CASHIER")
        self.customer = User.objects.create_user(email="buyer@example.com", password="Pass123!")
        self.reservation = Reservation.objects.create(user=self.customer, total_price=Decimal("20.00"))

    def test_one_notification_per_reservation_update(self):
        update = ReservationUpdate.objects.create(
            reservation=self.reservation,
            update_type=ReservationUpdate.UpdateType.STATUS_CHANGED,
            description="Status changed from pending to confirmed",
        )
        first = NotificationService.notify(
            user=self.customer,
            notification_type=Notification.Type.STATUS_CHANGED,
            title="Reservation Update",
            message="confirmed",
            reservation=self.reservation,
            reservation_update=update,
        )
        second = NotificationService.notify(
            user=self.customer,
            notification_type=Notification.Type.STATUS_CHANGED,
            title="Reservation Update",
            message="confirmed",
            reservation=self.reservation,
            reservation_update=update,
        )
        self.assertEqual(first.pk, second.pk)
        self.assertEqual(Notification.objects.filter(user=self.customer).count(), 1)

    def test_push_is_sent_after_commit(self):
        with mock.patch.object(NotificationService, "_send_push_to_user") as send:
            with self.captureOnCommitCallbacks(execute=True):
                NotificationService.notify(
                    user=self.customer,
                    notification_type=Notification.Type.STATUS_CHANGED,
                    title="Reservation Update",
                    message="confirmed",
                )
                send.assert_not_called()
        send.assert_called_once()
        self.assertEqual(send.call_args.kwargs["user"], self.customer)

    def test_push_failure_does_not_propagate(self):
        with mock.patch.object(NotificationService, "_send_push_to_user", side_effect=RuntimeError("fcm down")):
            with self.captureOnCommitCallbacks(execute=True):
                note = NotificationService.notify(
                    user=self.customer,
                    notification_type=Notification.Type.STATUS_CHANGED,
                    title="Reservation Update",
                    message="confirmed",
                )
        self.assertTrue(Notification.objects.filter(pk=note.pk).exists())

    def test_notify_admins_skips_cashiers_and_customers(self):
        notes = NotificationService.notify_admins(
            notification_type=Notification.Type.LOW_STOCK, title="Low Stock", message="low"
        )
        self.assertEqual([note.user_id for note in notes], [self.admin.id])

    def test_status_templates(self):
        self.reservation.status = Reservation.Status.CANCELLED
        notification_type, title, message, payload = NotificationTemplates.reservation_status_changed(
            self.reservation, "cancelled"
        )
        self.assertEqual(notification_type, Notification.Type.CANCELLED)
        self.assertEqual(message, "Your reservation has been cancelled.")
        self.assertEqual(payload["entity_id"], str(self.reservation.id))
        self.assertEqual(payload["status"], "cancelled")

        notification_type, _, message, _ = NotificationTemplates.reservation_status_changed(
            self.reservation, "confirmed"
        )
        self.assertEqual(notification_type, Notification.Type.STATUS_CHANGED)
        self.assertEqual(message, "Your reservation has been confirmed!")

    def test_low_stock_template(self):
        product = Product.objects.create(name="Wood Screw", category=Category.objects.create(name="Fasteners"))
        variant = ProductVariant.objects.create(
            product=product, unit="pcs", size="2", price=Decimal("1.00"), quantity=3, low_stock_threshold=5
        )
        notification_type, title, message, payload = NotificationTemplates.low_stock(variant)
        self.assertEqual(notification_type, Notification.Type.LOW_STOCK)
        self.assertIn("Wood Screw", message)
        self.assertEqual(payload["quantity"], 3)
        self.assertEqual(payload["low_stock_threshold"], 5)


class AnnounceTests(TestCase):
    def setUp(self):
        self.received = []
        change_announced.connect(self._receiver)
        self.addCleanup(change_announced.disconnect, self._receiver)

    def _receiver(self, sender, topics, **kwargs):
        self.received.append(topics)

    def test_announcement_waits_for_commit(self):
        with self.captureOnCommitCallbacks(execute=True):
            announce("inventory", "sales", "inventory")
            self.assertEqual(self.received, [])
        self.assertEqual(self.received, [("inventory", "sales")])

    def test_nothing_is_announced_without_commit(self):
        with self.captureOnCommitCallbacks(execute=False) as callbacks:
            announce("reservations")
        self.assertEqual(len(callbacks), 1)
        self.assertEqual(self.received, [])

    def test_unknown_topic_is_rejected(self):
        with self.assertRaises(ValueError):
            announce("orders")

    def test_failing_receiver_is_isolated(self):
        def broken(sender, **kwargs):
            raise RuntimeError("socket closed")

        change_announced.connect(broken)
        self.addCleanup(change_announced.disconnect, broken)
        with self.captureOnCommitCallbacks(execute=True):
            announce("notifications")
        self.assertEqual(self.received, [("notifications",)])
