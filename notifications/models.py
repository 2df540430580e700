import uuid
from django.conf import settings
from django.db import models


class DeviceToken(models.Model):
    class DeviceType(models.TextChoices):
        WEB = "web", "Web"
        ANDROID = "android", "Android"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="device_tokens")
    token = models.TextField(unique=True)
    device_type = models.CharField(max_length=20, choices=DeviceType.choices)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["user", "is_active"], name="device_token_user_idx"),
            models.Index(fields=["device_type"], name="device_token_type_idx"),
        ]


class Notification(models.Model):
    class Type(models.TextChoices):
        STATUS_CHANGED = "status_changed", "Reservation Status Changed"
        CANCELLED = "cancelled", "Reservation Cancelled"
        COMPLETED = "completed", "Reservation Completed"
        LOW_STOCK = "low_stock", "Low Stock"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="notifications")
    type = models.CharField(max_length=50, choices=Type.choices)
    title = models.CharField(max_length=255)
    message = models.TextField()
    reservation = models.ForeignKey(
        "reservation.Reservation", null=True, blank=True, on_delete=models.CASCADE, related_name="notifications"
    )
    reservation_update = models.ForeignKey(
        "reservation.ReservationUpdate", null=True, blank=True, on_delete=models.SET_NULL, related_name="notifications"
    )
    # snapshot of the reservation (status, total, line items) when the notification was raised
    payload = models.JSONField(default=dict)
    is_read = models.BooleanField(default=False)
    read_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user", "is_read"], name="notification_user_read_idx"),
            models.Index(fields=["type"], name="notification_type_idx"),
            models.Index(fields=["created_at"], name="notification_created_idx"),
        ]
