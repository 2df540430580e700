import logging
from decimal import Decimal, ROUND_HALF_UP

from django.utils import timezone

from catalog.models import ProductVariant
from core.exceptions import EntityNotFound, InsufficientStock, ValidationFailed
from core.transactions import stock_transaction
from .models import InventoryLoss, SupplyBatch

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def quantize_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


class CostBasisService:

    @staticmethod
    def weighted_average_cost(variant: ProductVariant) -> Decimal:
        """Average unit cost of the stock still available in the supply ledger.

        Batches are weighted by ``quantity - pulled_out_quantity``. Sales do not
        reduce batch availability, so after many sales this can overstate what
        is really on hand. Falls back to the variant's supplier price.
        """
        total_units = 0
        total_value = Decimal("0")
        batches = SupplyBatch.objects.filter(variant=variant).values_list(
            "quantity", "pulled_out_quantity", "supplier_price"
        )
        for quantity, pulled_out, price in batches:
            available = quantity - pulled_out
            if available <= 0:
                continue
            total_units += available
            total_value += Decimal(available) * Decimal(price)

        if total_units == 0:
            return Decimal(variant.supplier_price or 0)
        return total_value / Decimal(total_units)

    @staticmethod
    def loss_amount(variant: ProductVariant, quantity: int) -> Decimal:
        return quantize_money(Decimal(quantity) * CostBasisService.weighted_average_cost(variant))

    @staticmethod
    def point_in_time_cost(variant_id, as_of) -> Decimal:
        """Unit cost of the latest supply at or before ``as_of``; read-only reporting helper."""
        batch = (
            SupplyBatch.objects.filter(variant_id=variant_id, supplied_at__lte=as_of)
            .order_by("-supplied_at")
            .only("supplier_price")
            .first()
        )
        if batch:
            return Decimal(batch.supplier_price)
        supplier_price = ProductVariant.objects.filter(pk=variant_id).values_list("supplier_price", flat=True).first()
        if supplier_price is not None:
            return Decimal(supplier_price)
        return Decimal("0")


class SupplyLedgerService:

    @staticmethod
    def record_supply(variant: ProductVariant, quantity: int, supplier_price=None, notes: str = "", supplied_at=None) -> SupplyBatch:
        """Write a ledger entry for stock that was just added to ``variant``. The caller owns the transaction."""
        price = quantize_money(variant.supplier_price if supplier_price is None else supplier_price)
        return SupplyBatch.objects.create(
            variant=variant,
            product_name=variant.product.name,
            variant_size=variant.size,
            variant_unit=variant.unit,
            variant_color=variant.color,
            quantity=quantity,
            supplier_price=price,
            total_cost=quantize_money(price * quantity),
            supplied_at=supplied_at or timezone.now(),
            notes=notes,
        )

    @staticmethod
    def record_loss(variant: ProductVariant, quantity: int, notes: str = "") -> InventoryLoss:
        amount = CostBasisService.loss_amount(variant, quantity)
        loss = InventoryLoss.objects.create(
            variant_id=variant.pk,
            product_name=variant.product.name,
            size=variant.size,
            unit=variant.unit,
            color=variant.color,
            quantity=quantity,
            amount=amount,
            reason=InventoryLoss.Reason.MANUAL_ADJUSTMENT,
            notes=notes,
        )
        logger.info("Recorded inventory loss variant=%s quantity=%s amount=%s", variant.pk, quantity, amount)
        return loss

    @staticmethod
    @stock_transaction
    def pull_out(batch: SupplyBatch, quantity: int, notes: str = "") -> SupplyBatch:
        """Take ``quantity`` units of a batch back out of stock (returned to supplier, entered by mistake...)."""
        batch = SupplyBatch.objects.select_for_update().filter(pk=batch.pk).first()
        if batch is None:
            raise EntityNotFound("Supply batch not found")
        quantity = int(quantity)
        if quantity <= 0:
            raise ValidationFailed("Quantity must be greater than zero", quantity=quantity)
        if quantity > batch.available_quantity:
            raise ValidationFailed(
                "Cannot pull out more than the batch still holds",
                supply_batch_id=batch.pk,
                requested=quantity,
                available=batch.available_quantity,
            )

        variant = ProductVariant.objects.select_for_update().select_related("product").get(pk=batch.variant_id)
        if variant.quantity < quantity:
            raise InsufficientStock(
                f"Not enough stock for {variant.product.name} ({variant.label}) to pull out",
                variant_id=variant.pk,
                product_id=variant.product_id,
                product_name=variant.product.name,
                requested=quantity,
                available=variant.quantity,
            )

        variant.quantity -= quantity
        variant.save(update_fields=["quantity", "updated_at"])

        batch.pulled_out_quantity += quantity
        if notes:
            batch.notes = f"{batch.notes}\n{notes}".strip()
        batch.save(update_fields=["pulled_out_quantity", "notes", "updated_at"])
        logger.info("Pulled out %s unit(s) from supply batch=%s", quantity, batch.pk)
        return batch

    @staticmethod
    def undo_supply(batch: SupplyBatch, notes: str = "Supply entry undone") -> SupplyBatch:
        available = SupplyBatch.objects.filter(pk=batch.pk).values_list("quantity", "pulled_out_quantity").first()
        if available is None:
            raise EntityNotFound("Supply batch not found", supply_batch_id=batch.pk)
        remaining = available[0] - available[1]
        if remaining <= 0:
            raise ValidationFailed("Supply batch has nothing left to undo", supply_batch_id=batch.pk)
        return SupplyLedgerService.pull_out(batch, remaining, notes=notes)
