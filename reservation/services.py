import logging
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.db import DatabaseError, transaction
from django.utils import timezone

from catalog.models import ProductVariant
from core.exceptions import AmountInsufficient, EntityNotFound, ValidationFailed
from core.transactions import stock_transaction
from inventory.services import quantize_money
from notifications.services import NotificationService, NotificationTemplates
from sales.models import Sale
from sales.services import FulfillmentService, normalize_lines
from .models import Reservation, ReservationDetail, ReservationUpdate

logger = logging.getLogger(__name__)


def _lock_reservation(reservation_id):
    reservation = Reservation.objects.select_for_update().filter(pk=reservation_id).first()
    if reservation is None:
        raise EntityNotFound("Reservation not found", reservation_id=reservation_id)
    return reservation


class ReservationService:
    # completed is reached through complete_reservation only
    SETTABLE_STATUSES = {
        Reservation.Status.PENDING,
        Reservation.Status.CONFIRMED,
        Reservation.Status.CANCELLED,
        Reservation.Status.FAILED,
    }
    TERMINAL_STATUSES = {Reservation.Status.COMPLETED, Reservation.Status.CANCELLED}

    @staticmethod
    def log_update(reservation, update_type, description, updated_by=None, old_value="", new_value="", metadata=None):
        return ReservationUpdate.objects.create(
            reservation=reservation,
            update_type=update_type,
            updated_by=updated_by,
            updated_by_name=(updated_by.name or updated_by.email) if updated_by else "System",
            updated_by_email=updated_by.email if updated_by else "",
            old_value=old_value or "",
            new_value=new_value or "",
            description=description,
            metadata=metadata or {},
        )

    @staticmethod
    def _notify_owner(reservation, update, template):
        if update.updated_by_id and update.updated_by_id == reservation.user_id:
            return None
        notification_type, title, message, payload = template
        try:
            with transaction.atomic():
                return NotificationService.notify(
                    user=reservation.user,
                    notification_type=notification_type,
                    title=title,
                    message=message,
                    payload=payload,
                    reservation=reservation,
                    reservation_update=update,
                )
        except DatabaseError:
            logger.exception("Reservation notification failed for reservation=%s", reservation.pk)
            return None

    @staticmethod
    @stock_transaction
    def create_reservation(user, details, reservation_date=None, notes="") -> Reservation:
        """Record what the customer wants at today's prices. Stock is not held back."""
        lines = normalize_lines(details)
        reservation = Reservation.objects.create(
            user=user,
            reservation_date=reservation_date or timezone.now(),
            notes=notes or "",
        )

        total = Decimal("0")
        for line in lines:
            variant = ProductVariant.objects.select_related("product").filter(pk=line["variant_id"]).first()
            if variant is None:
                raise EntityNotFound("Product variant not found", variant_id=line["variant_id"])
            price = variant.price if line["locked_price"] is None else line["locked_price"]
            subtotal = quantize_money(price * line["quantity"])
            ReservationDetail.objects.create(
                reservation=reservation,
                variant=variant,
                product_name=variant.product.name,
                size=variant.size,
                unit=variant.unit,
                color=variant.color,
                quantity=line["quantity"],
                price=quantize_money(price),
                subtotal=subtotal,
            )
            total += subtotal

        reservation.total_price = total
        reservation.save(update_fields=["total_price", "updated_at"])
        ReservationService.log_update(
            reservation,
            ReservationUpdate.UpdateType.CREATED,
            "Reservation created",
            updated_by=user,
            new_value=reservation.status,
            metadata={"total_price": str(total), "items": len(lines)},
        )
        return reservation

    @staticmethod
    @stock_transaction
    def update_status(reservation_id, status, updated_by=None, remarks="") -> Reservation:
        if status not in ReservationService.SETTABLE_STATUSES:
            raise ValidationFailed(
                "Invalid status value",
                status=status,
                allowed=sorted(ReservationService.SETTABLE_STATUSES),
            )
        reservation = _lock_reservation(reservation_id)
        if reservation.status in ReservationService.TERMINAL_STATUSES:
            raise ValidationFailed(
                f"Reservation is already {reservation.status}",
                reservation_id=reservation.pk,
                status=reservation.status,
            )

        old_status = reservation.status
        if old_status == status and not remarks:
            return reservation

        reservation.status = status
        if remarks:
            reservation.remarks = remarks
        reservation.save(update_fields=["status", "remarks", "updated_at"])

        update_type = (
            ReservationUpdate.UpdateType.CANCELLED
            if status == Reservation.Status.CANCELLED
            else ReservationUpdate.UpdateType.STATUS_CHANGED
        )
        update = ReservationService.log_update(
            reservation,
            update_type,
            f"Status changed from {old_status} to {status}",
            updated_by=updated_by,
            old_value=old_status,
            new_value=status,
            metadata={"remarks": remarks} if remarks else None,
        )
        ReservationService._notify_owner(
            reservation, update, NotificationTemplates.reservation_status_changed(reservation, status)
        )
        return reservation

    @staticmethod
    @stock_transaction
    def complete_reservation(reservation_id, amount_paid=None, cashier=None):
        """Turn a reservation into a sale at the reserved prices. Returns ``(reservation, sale)``."""
        reservation = _lock_reservation(reservation_id)
        if reservation.is_closed:
            raise ValidationFailed(
                f"Reservation is already {reservation.status}",
                reservation_id=reservation.pk,
                status=reservation.status,
            )

        details = list(reservation.details.all())
        if not details:
            raise ValidationFailed("No reservation details found", reservation_id=reservation.pk)

        lines = []
        total = Decimal("0")
        for detail in details:
            if detail.variant_id is None:
                raise EntityNotFound(
                    f"Product variant not found for reservation detail {detail.pk}",
                    reservation_detail_id=detail.pk,
                    product_name=detail.product_name,
                )
            lines.append({"variant_id": detail.variant_id, "quantity": detail.quantity, "locked_price": detail.price})
            total += quantize_money(detail.price * detail.quantity)

        if amount_paid is None:
            amount_paid = total
        amount_paid = Decimal(str(amount_paid))
        if amount_paid < 0:
            raise ValidationFailed("Amount paid cannot be negative", amount_paid=amount_paid)
        if amount_paid < total:
            raise AmountInsufficient(total_price=total, amount_paid=amount_paid)

        snapshots = FulfillmentService.fulfill(lines)
        sale = FulfillmentService.record_sale(
            snapshots, amount_paid, Sale.Type.RESERVATION, cashier=cashier, reservation=reservation
        )

        old_status = reservation.status
        reservation.status = Reservation.Status.COMPLETED
        reservation.save(update_fields=["status", "updated_at"])
        update = ReservationService.log_update(
            reservation,
            ReservationUpdate.UpdateType.COMPLETED,
            "Reservation completed and sale recorded",
            updated_by=cashier,
            old_value=old_status,
            new_value=reservation.status,
            metadata={"sale_id": str(sale.pk), "amount_paid": str(sale.amount_paid)},
        )
        ReservationService._notify_owner(
            reservation, update, NotificationTemplates.reservation_completed(reservation, sale)
        )
        FulfillmentService.notify_low_stock(snapshots)
        logger.info("Completed reservation=%s as sale=%s", reservation.pk, sale.pk)
        return reservation, sale

    @staticmethod
    @stock_transaction
    def cancel_stale_reservations(now=None) -> int:
        """Cancel confirmed reservations nobody picked up within the grace period."""
        days = int(getattr(settings, "RESERVATION_AUTO_CANCEL_DAYS", 3))
        cutoff = (now or timezone.now()) - timedelta(days=days)
        remark = f"Auto-cancelled after {days} days"

        stale = list(
            Reservation.objects.select_for_update()
            .filter(status=Reservation.Status.CONFIRMED, reservation_date__lte=cutoff)
        )
        for reservation in stale:
            reservation.status = Reservation.Status.CANCELLED
            reservation.remarks = remark
            reservation.save(update_fields=["status", "remarks", "updated_at"])
            update = ReservationService.log_update(
                reservation,
                ReservationUpdate.UpdateType.CANCELLED,
                remark,
                old_value=Reservation.Status.CONFIRMED,
                new_value=Reservation.Status.CANCELLED,
            )
            ReservationService._notify_owner(
                reservation, update, NotificationTemplates.reservation_status_changed(reservation, reservation.status)
            )

        if stale:
            logger.info("Auto-cancelled %s confirmed reservation(s) older than %s days", len(stale), days)
        return len(stale)
