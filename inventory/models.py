import uuid

from django.db import models
from django.utils import timezone

from catalog.models import ProductVariant


class SupplyBatch(models.Model):
    """One receipt of stock for a variant. Only pull-out/undo actions touch it afterwards."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    variant = models.ForeignKey(ProductVariant, related_name="supply_batches", on_delete=models.CASCADE)

    # Snapshot fields
    product_name = models.CharField(max_length=255, blank=True)
    variant_size = models.CharField(max_length=100, blank=True)
    variant_unit = models.CharField(max_length=20, blank=True)
    variant_color = models.CharField(max_length=100, blank=True)

    quantity = models.PositiveIntegerField()
    supplier_price = models.DecimalField(max_digits=12, decimal_places=2)
    total_cost = models.DecimalField(max_digits=14, decimal_places=2)
    supplied_at = models.DateTimeField(default=timezone.now)
    pulled_out_quantity = models.PositiveIntegerField(default=0)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "supply_batches"
        ordering = ["-supplied_at"]
        indexes = [
            models.Index(fields=["variant", "supplied_at"], name="supply_variant_date_idx"),
        ]

    @property
    def available_quantity(self):
        return self.quantity - self.pulled_out_quantity

    def __str__(self):
        return f"{self.product_name} x{self.quantity} @ {self.supplier_price}"


class InventoryLoss(models.Model):
    class Reason(models.TextChoices):
        MANUAL_ADJUSTMENT = "manual_adjustment", "Manual Adjustment"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    # plain id, the variant row is deleted right after the loss is written
    variant_id = models.UUIDField(db_index=True)

    # Snapshot fields
    product_name = models.CharField(max_length=255, blank=True)
    size = models.CharField(max_length=100, blank=True)
    unit = models.CharField(max_length=20, blank=True)
    color = models.CharField(max_length=100, blank=True)

    quantity = models.PositiveIntegerField()
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    reason = models.CharField(max_length=30, choices=Reason.choices, default=Reason.MANUAL_ADJUSTMENT)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "inventory_loss"
        ordering = ["-created_at"]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise RuntimeError("InventoryLoss records are immutable")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise RuntimeError("InventoryLoss records cannot be deleted")

    def __str__(self):
        return f"Loss | {self.product_name} | qty={self.quantity} | {self.amount}"
