import uuid

from django.conf import settings
from django.db import models
from django.utils import timezone

from catalog.models import ProductVariant


class Reservation(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        CONFIRMED = "confirmed", "Confirmed"
        COMPLETED = "completed", "Completed"
        CANCELLED = "cancelled", "Cancelled"
        FAILED = "failed", "Failed"

    CLOSED_STATUSES = {Status.COMPLETED, Status.CANCELLED, Status.FAILED}

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="reservations")
    reservation_date = models.DateTimeField(default=timezone.now)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    total_price = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    notes = models.TextField(blank=True)
    remarks = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "reservations"
        ordering = ["-reservation_date"]
        indexes = [
            models.Index(fields=["status", "reservation_date"], name="reservation_status_date_idx"),
        ]

    @property
    def is_closed(self):
        return self.status in self.CLOSED_STATUSES

    def __str__(self):
        return f"Reservation {self.id} | {self.status}"


class ReservationDetail(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    reservation = models.ForeignKey(Reservation, related_name="details", on_delete=models.CASCADE)
    variant = models.ForeignKey(
        ProductVariant, null=True, blank=True, on_delete=models.SET_NULL, related_name="reservation_details"
    )

    # Snapshot fields
    product_name = models.CharField(max_length=255, blank=True)
    size = models.CharField(max_length=100, blank=True)
    unit = models.CharField(max_length=20, blank=True)
    color = models.CharField(max_length=100, blank=True)

    quantity = models.PositiveIntegerField()
    # locked when the reservation is made; completion bills this, not the live price
    price = models.DecimalField(max_digits=12, decimal_places=2)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        db_table = "reservation_details"

    def __str__(self):
        return f"{self.product_name} x{self.quantity} @ {self.price}"


class ReservationUpdate(models.Model):
    class UpdateType(models.TextChoices):
        CREATED = "created", "Created"
        STATUS_CHANGED = "status_changed", "Status Changed"
        CANCELLED = "cancelled", "Cancelled"
        COMPLETED = "completed", "Completed"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    reservation = models.ForeignKey(Reservation, related_name="updates", on_delete=models.CASCADE)
    update_type = models.CharField(max_length=30, choices=UpdateType.choices)
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name="reservation_updates"
    )
    # kept for the audit trail after the account is gone
    updated_by_name = models.CharField(max_length=120, blank=True, default="System")
    updated_by_email = models.CharField(max_length=254, blank=True)
    old_value = models.CharField(max_length=50, blank=True)
    new_value = models.CharField(max_length=50, blank=True)
    description = models.TextField()
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "reservation_updates"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["reservation", "created_at"], name="reservation_update_idx"),
        ]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise RuntimeError("Reservation updates are append-only")
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.update_type} | {self.reservation_id}"
