import uuid

from django.conf import settings
from django.db import models
from django.utils import timezone

from catalog.models import ProductVariant
from .snapshots import LineItemSnapshot


class Sale(models.Model):
    class Type(models.TextChoices):
        POS = "pos", "Point of Sale"
        RESERVATION = "reservation", "Reservation"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    type = models.CharField(max_length=20, choices=Type.choices)
    total_price = models.DecimalField(max_digits=12, decimal_places=2)
    amount_paid = models.DecimalField(max_digits=12, decimal_places=2)
    change = models.DecimalField(max_digits=12, decimal_places=2)
    sale_date = models.DateTimeField(default=timezone.now)
    cashier = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name="sales"
    )
    reservation = models.ForeignKey(
        "reservation.Reservation", null=True, blank=True, on_delete=models.SET_NULL, related_name="sales"
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "sales"
        ordering = ["-sale_date"]
        indexes = [
            models.Index(fields=["sale_date"], name="sale_date_idx"),
            models.Index(fields=["type"], name="sale_type_idx"),
        ]

    def save(self, *args, **kwargs):
        # a sale is only ever created or deleted as a whole
        if not self._state.adding:
            raise RuntimeError("Sales cannot be modified once recorded")
        super().save(*args, **kwargs)

    def __str__(self):
        return f"Sale {self.id} | {self.type} | {self.total_price}"


class SaleItem(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    sale = models.ForeignKey(Sale, related_name="items", on_delete=models.CASCADE)
    # null once the variant is deleted; the snapshot fields below still describe it
    variant = models.ForeignKey(
        ProductVariant, null=True, blank=True, on_delete=models.SET_NULL, related_name="sale_items"
    )

    # Snapshot fields
    product_name = models.CharField(max_length=255)
    category_name = models.CharField(max_length=255, blank=True)
    size = models.CharField(max_length=100, blank=True)
    unit = models.CharField(max_length=20, blank=True)
    color = models.CharField(max_length=100, blank=True)

    quantity = models.PositiveIntegerField()
    price = models.DecimalField(max_digits=12, decimal_places=2)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        db_table = "sale_items"

    @property
    def snapshot(self) -> LineItemSnapshot:
        return LineItemSnapshot(
            variant_id=self.variant_id,
            product_name=self.product_name,
            category_name=self.category_name,
            size=self.size,
            unit=self.unit,
            color=self.color,
            quantity=self.quantity,
            price=self.price,
        )

    def __str__(self):
        return f"{self.product_name} x{self.quantity}"
