from datetime import timedelta
from decimal import Decimal
from io import StringIO

from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from account.models import User
from catalog.models import Category, Product, ProductVariant
from core.exceptions import AmountInsufficient, EntityNotFound, InsufficientStock, ValidationFailed
from notifications.models import Notification
from sales.models import Sale
from .models import Reservation, ReservationUpdate
from .services import ReservationService


class ReservationFixtureMixin:
    def setUp(self):
        self.staff = User.objects.create_user(email="cashier@store.com", password="Pass123!", role="CASHIER")
        self.customer = User.objects.create_user(email="buyer@example.com", password="Pass123!", name="Abebe")
        category = Category.objects.create(name="Plumbing")
        self.product = Product.objects.create(name="PVC Pipe", category=category)
        self.variant = ProductVariant.objects.create(
            product=self.product, size="1/2", unit="m", price=Decimal("10.00"), quantity=20, low_stock_threshold=0
        )

    def reserve(self, quantity=2, **kwargs):
        return ReservationService.create_reservation(
            self.customer, [{"variant_id": self.variant.id, "quantity": quantity}], **kwargs
        )


class CreateReservationTests(ReservationFixtureMixin, TestCase):
    def test_prices_are_locked_and_stock_is_untouched(self):
        reservation = self.reserve(quantity=3)

        self.assertEqual(reservation.status, Reservation.Status.PENDING)
        self.assertEqual(reservation.total_price, Decimal("30.00"))
        detail = reservation.details.get()
        self.assertEqual(detail.price, Decimal("10.00"))
        self.assertEqual(detail.product_name, "PVC Pipe")
        self.variant.refresh_from_db()
        self.assertEqual(self.variant.quantity, 20)

        update = reservation.updates.get()
        self.assertEqual(update.update_type, ReservationUpdate.UpdateType.CREATED)
        self.assertEqual(update.updated_by_name, "Abebe")

    def test_missing_variant_aborts_the_reservation(self):
        with self.assertRaises(EntityNotFound):
            ReservationService.create_reservation(
                self.customer, [{"variant_id": "00000000-0000-0000-0000-000000000000", "quantity": 1}]
            )
        self.assertFalse(Reservation.objects.exists())

    def test_updates_are_append_only(self):
        update = self.reserve().updates.get()
        update.description = "rewritten"
        with self.assertRaises(RuntimeError):
            update.save()


class CompleteReservationTests(ReservationFixtureMixin, TestCase):
    def test_completion_bills_the_reserved_price(self):
        reservation = self.reserve(quantity=2)
        ProductVariant.objects.filter(pk=self.variant.pk).update(price=Decimal("15.00"))

        reservation, sale = ReservationService.complete_reservation(reservation.id, cashier=self.staff)

        self.assertEqual(reservation.status, Reservation.Status.COMPLETED)
        self.assertEqual(sale.type, Sale.Type.RESERVATION)
        self.assertEqual(sale.reservation_id, reservation.id)
        self.assertEqual(sale.total_price, Decimal("20.00"))
        self.assertEqual(sale.change, Decimal("0.00"))
        self.assertEqual(sale.items.get().price, Decimal("10.00"))
        self.variant.refresh_from_db()
        self.assertEqual(self.variant.quantity, 18)

        update = reservation.updates.get(update_type=ReservationUpdate.UpdateType.COMPLETED)
        self.assertEqual(update.metadata["sale_id"], str(sale.id))
        note = Notification.objects.get(user=self.customer)
        self.assertEqual(note.type, Notification.Type.COMPLETED)
        self.assertEqual(note.reservation_update, update)

    def test_change_is_returned_on_overpayment(self):
        reservation = self.reserve(quantity=2)
        _, sale = ReservationService.complete_reservation(reservation.id, amount_paid="50")
        self.assertEqual(sale.change, Decimal("30.00"))

    def test_completed_reservation_cannot_complete_again(self):
        reservation = self.reserve()
        ReservationService.complete_reservation(reservation.id)

        with self.assertRaises(ValidationFailed):
            ReservationService.complete_reservation(reservation.id)
        self.assertEqual(Sale.objects.count(), 1)

    def test_cancelled_reservation_cannot_complete(self):
        reservation = self.reserve()
        ReservationService.update_status(reservation.id, Reservation.Status.CANCELLED, updated_by=self.staff)
        with self.assertRaises(ValidationFailed):
            ReservationService.complete_reservation(reservation.id)

    def test_underpayment_changes_nothing(self):
        reservation = self.reserve(quantity=2)
        with self.assertRaises(AmountInsufficient):
            ReservationService.complete_reservation(reservation.id, amount_paid="5")

        reservation.refresh_from_db()
        self.variant.refresh_from_db()
        self.assertEqual(reservation.status, Reservation.Status.PENDING)
        self.assertEqual(self.variant.quantity, 20)
        self.assertFalse(Sale.objects.exists())

    def test_deleted_variant_blocks_completion(self):
        reservation = self.reserve()
        self.variant.delete()

        with self.assertRaises(EntityNotFound) as ctx:
            ReservationService.complete_reservation(reservation.id)
        self.assertEqual(ctx.exception.details["product_name"], "PVC Pipe")
        reservation.refresh_from_db()
        self.assertEqual(reservation.status, Reservation.Status.PENDING)

    def test_shortage_blocks_completion(self):
        reservation = self.reserve(quantity=25)
        with self.assertRaises(InsufficientStock):
            ReservationService.complete_reservation(reservation.id)
        reservation.refresh_from_db()
        self.assertEqual(reservation.status, Reservation.Status.PENDING)
        self.assertFalse(reservation.updates.filter(update_type=ReservationUpdate.UpdateType.COMPLETED).exists())

    def test_unknown_reservation(self):
        with self.assertRaises(EntityNotFound):
            ReservationService.complete_reservation("00000000-0000-0000-0000-000000000000")


class ReservationStatusTests(ReservationFixtureMixin, TestCase):
    def test_status_change_is_logged_and_owner_notified(self):
        reservation = self.reserve()
        ReservationService.update_status(
            reservation.id, Reservation.Status.CONFIRMED, updated_by=self.staff, remarks="Ready for pickup"
        )

        reservation.refresh_from_db()
        self.assertEqual(reservation.status, Reservation.Status.CONFIRMED)
        self.assertEqual(reservation.remarks, "Ready for pickup")
        update = reservation.updates.get(update_type=ReservationUpdate.UpdateType.STATUS_CHANGED)
        self.assertEqual((update.old_value, update.new_value), ("pending", "confirmed"))
        self.assertEqual(update.updated_by_email, "cashier@store.com")

        note = Notification.objects.get(user=self.customer)
        self.assertEqual(note.message, "Your reservation has been confirmed!")
        self.assertEqual(note.payload["status"], "confirmed")

    def test_owner_is_not_notified_of_own_change(self):
        reservation = self.reserve()
        ReservationService.update_status(reservation.id, Reservation.Status.CANCELLED, updated_by=self.customer)
        self.assertFalse(Notification.objects.exists())

    def test_terminal_statuses_are_final(self):
        reservation = self.reserve()
        ReservationService.update_status(reservation.id, Reservation.Status.CANCELLED, updated_by=self.staff)
        with self.assertRaises(ValidationFailed):
            ReservationService.update_status(reservation.id, Reservation.Status.PENDING, updated_by=self.staff)

    def test_completed_is_not_settable(self):
        reservation = self.reserve()
        with self.assertRaises(ValidationFailed) as ctx:
            ReservationService.update_status(reservation.id, Reservation.Status.COMPLETED)
        self.assertNotIn("completed", ctx.exception.details["allowed"])


class StaleReservationTests(ReservationFixtureMixin, TestCase):
    def test_old_confirmed_reservations_are_cancelled(self):
        now = timezone.now()
        stale = self.reserve(reservation_date=now - timedelta(days=5))
        fresh = self.reserve(reservation_date=now - timedelta(days=1))
        pending = self.reserve(reservation_date=now - timedelta(days=10))
        for reservation in (stale, fresh):
            ReservationService.update_status(reservation.id, Reservation.Status.CONFIRMED, updated_by=self.staff)

        self.assertEqual(ReservationService.cancel_stale_reservations(now=now), 1)

        stale.refresh_from_db()
        fresh.refresh_from_db()
        pending.refresh_from_db()
        self.assertEqual(stale.status, Reservation.Status.CANCELLED)
        self.assertEqual(stale.remarks, "Auto-cancelled after 3 days")
        self.assertEqual(fresh.status, Reservation.Status.CONFIRMED)
        self.assertEqual(pending.status, Reservation.Status.PENDING)
        update = stale.updates.get(update_type=ReservationUpdate.UpdateType.CANCELLED)
        self.assertEqual(update.updated_by_name, "System")
        self.assertTrue(Notification.objects.filter(reservation=stale, type=Notification.Type.CANCELLED).exists())

    def test_management_command(self):
        reservation = self.reserve(reservation_date=timezone.now() - timedelta(days=7))
        ReservationService.update_status(reservation.id, Reservation.Status.CONFIRMED, updated_by=self.staff)

        out = StringIO()
        call_command("cancel_stale_reservations", stdout=out)
        self.assertIn("Auto-cancelled 1 reservation(s)", out.getvalue())

        out = StringIO()
        call_command("cancel_stale_reservations", stdout=out)
        self.assertIn("No stale confirmed reservations found", out.getvalue())


class ReservationApiTests(ReservationFixtureMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.other = User.objects.create_user(email="other@example.com", password="Pass123!")

    def test_customer_cannot_lock_a_custom_price(self):
        self.client.force_authenticate(self.customer)
        resp = self.client.post(
            "/reservations/",
            {"details": [{"variant_id": str(self.variant.id), "quantity": 2, "locked_price": "1.00"}]},
            format="json",
        )
        self.assertEqual(resp.status_code, 201, resp.data)
        self.assertEqual(resp.data["total_price"], "20.00")
        self.assertEqual(resp.data["details"][0]["price"], "10.00")

    def test_staff_may_lock_a_negotiated_price(self):
        self.client.force_authenticate(self.staff)
        resp = self.client.post(
            "/reservations/",
            {"details": [{"variant_id": str(self.variant.id), "quantity": 2, "locked_price": "8.00"}]},
            format="json",
        )
        self.assertEqual(resp.status_code, 201, resp.data)
        self.assertEqual(resp.data["total_price"], "16.00")

    def test_customers_only_see_their_own(self):
        reservation = self.reserve()
        self.client.force_authenticate(self.other)
        self.assertEqual(self.client.get("/reservations/").data["count"], 0)
        self.assertEqual(self.client.get(f"/reservations/{reservation.id}/").status_code, 404)

        self.client.force_authenticate(self.staff)
        self.assertEqual(self.client.get("/reservations/").data["count"], 1)

    def test_status_and_completion_are_staff_only(self):
        reservation = self.reserve()
        self.client.force_authenticate(self.customer)
        resp = self.client.patch(f"/reservations/{reservation.id}/status/", {"status": "confirmed"}, format="json")
        self.assertEqual(resp.status_code, 403)
        resp = self.client.post(f"/reservations/{reservation.id}/complete/", {}, format="json")
        self.assertEqual(resp.status_code, 403)

    def test_staff_confirm_then_complete(self):
        reservation = self.reserve(quantity=4)
        self.client.force_authenticate(self.staff)

        resp = self.client.patch(f"/reservations/{reservation.id}/status/", {"status": "confirmed"}, format="json")
        self.assertEqual(resp.status_code, 200, resp.data)
        self.assertEqual(resp.data["status"], "confirmed")

        resp = self.client.post(f"/reservations/{reservation.id}/complete/", {"amount_paid": "50.00"}, format="json")
        self.assertEqual(resp.status_code, 200, resp.data)
        self.assertEqual(resp.data["reservation"]["status"], "completed")
        self.assertEqual(resp.data["sale"]["change"], "10.00")

        resp = self.client.post(f"/reservations/{reservation.id}/complete/", {}, format="json")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data["code"], "validation_error")
