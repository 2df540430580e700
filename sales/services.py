import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List

from django.conf import settings
from django.db import DatabaseError, transaction

from catalog.models import Category, Product, ProductVariant
from core.exceptions import (
    AmountInsufficient,
    EntityNotFound,
    InsufficientStock,
    ReturnFailed,
    StockEngineError,
    ValidationFailed,
)
from core.transactions import stock_transaction
from inventory.conversion import ensure_stock
from inventory.models import SupplyBatch
from inventory.services import quantize_money
from notifications.services import NotificationService, NotificationTemplates
from .models import Sale, SaleItem
from .snapshots import LineItemSnapshot

logger = logging.getLogger(__name__)


def _to_decimal(value, name):
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationFailed(f"{name} must be a number", **{name: value})


def normalize_lines(items) -> List[Dict[str, Any]]:
    """Validate a cart: ``[{"variant_id", "quantity", "locked_price"?}, ...]``."""
    if not items:
        raise ValidationFailed("Sale must include items")
    lines = []
    for index, item in enumerate(items):
        variant_id = item.get("variant_id")
        if not variant_id:
            raise ValidationFailed("Each item needs a variant_id", item_index=index)
        try:
            quantity = int(item.get("quantity"))
        except (TypeError, ValueError):
            raise ValidationFailed("Quantity must be a whole number", item_index=index, quantity=item.get("quantity"))
        if quantity <= 0:
            raise ValidationFailed("Quantity must be greater than zero", item_index=index, quantity=quantity)
        locked_price = item.get("locked_price")
        if locked_price is not None:
            locked_price = _to_decimal(locked_price, "locked_price")
            if locked_price < 0:
                raise ValidationFailed("Price cannot be negative", item_index=index, locked_price=locked_price)
            locked_price = quantize_money(locked_price)
        lines.append({"variant_id": variant_id, "quantity": quantity, "locked_price": locked_price})
    return lines


class FulfillmentService:

    @staticmethod
    def fulfill(lines) -> List[LineItemSnapshot]:
        """Deduct every line from stock, converting from source variants where allowed.

        Runs inside the caller's transaction; the first shortage raises and the
        caller's rollback undoes every deduction made so far.
        """
        if not transaction.get_connection().in_atomic_block:
            raise RuntimeError("fulfill() must run inside a transaction")

        snapshots = []
        for line in lines:
            quantity = line["quantity"]
            variant = (
                ProductVariant.objects.select_for_update()
                .filter(pk=line["variant_id"])
                .first()
            )
            if variant is None:
                raise EntityNotFound("Product variant not found", variant_id=line["variant_id"])

            ensure_stock(variant, quantity)

            if variant.quantity < quantity:
                logger.warning(
                    "Fulfillment aborted: variant=%s requested=%s available=%s",
                    variant.pk,
                    quantity,
                    variant.quantity,
                )
                raise InsufficientStock(
                    f"Not enough stock for {variant.product.name} ({variant.label or 'no size'})",
                    variant_id=variant.pk,
                    product_id=variant.product_id,
                    product_name=variant.product.name,
                    requested=quantity,
                    available=variant.quantity,
                )

            variant.quantity -= quantity
            variant.save(update_fields=["quantity", "updated_at"])

            price = line.get("locked_price")
            snapshots.append(LineItemSnapshot.capture(variant, quantity, variant.price if price is None else price))
        return snapshots

    @staticmethod
    def record_sale(snapshots, amount_paid, sale_type, cashier=None, reservation=None) -> Sale:
        total = sum((snapshot.subtotal for snapshot in snapshots), Decimal("0"))
        if amount_paid < total:
            raise AmountInsufficient(total_price=total, amount_paid=amount_paid)
        sale = Sale.objects.create(
            type=sale_type,
            total_price=total,
            amount_paid=quantize_money(amount_paid),
            change=quantize_money(amount_paid - total),
            cashier=cashier,
            reservation=reservation,
        )
        SaleItem.objects.bulk_create([SaleItem(sale=sale, **snapshot.as_fields()) for snapshot in snapshots])
        return sale

    @staticmethod
    def notify_low_stock(snapshots):
        variant_ids = {snapshot.variant_id for snapshot in snapshots}
        variants = ProductVariant.objects.select_related("product").filter(pk__in=variant_ids)
        for variant in variants:
            if not variant.is_low_stock:
                continue
            notification_type, title, message, payload = NotificationTemplates.low_stock(variant)
            try:
                with transaction.atomic():
                    NotificationService.notify_admins(
                        notification_type=notification_type, title=title, message=message, payload=payload
                    )
            except DatabaseError:
                # the sale itself must still go through
                logger.exception("Low stock notification failed for variant=%s", variant.pk)


class SaleService:

    @staticmethod
    def quote(lines) -> Decimal:
        """Fill in missing prices from the catalog and return the cart total. Mutates ``lines``."""
        total = Decimal("0")
        for line in lines:
            if line["locked_price"] is None:
                price = ProductVariant.objects.filter(pk=line["variant_id"]).values_list("price", flat=True).first()
                if price is None:
                    raise EntityNotFound("Product variant not found", variant_id=line["variant_id"])
                line["locked_price"] = price
            total += quantize_money(line["locked_price"] * line["quantity"])
        return total

    @staticmethod
    @stock_transaction
    def create_sale(items, amount_paid, cashier=None) -> Sale:
        lines = normalize_lines(items)
        amount_paid = _to_decimal(amount_paid, "amount_paid")
        if amount_paid < 0:
            raise ValidationFailed("Amount paid cannot be negative", amount_paid=amount_paid)

        total = SaleService.quote(lines)
        if amount_paid < total:
            raise AmountInsufficient(total_price=total, amount_paid=amount_paid)

        snapshots = FulfillmentService.fulfill(lines)
        sale = FulfillmentService.record_sale(snapshots, amount_paid, Sale.Type.POS, cashier=cashier)
        FulfillmentService.notify_low_stock(snapshots)
        logger.info("Recorded sale=%s items=%s total=%s", sale.pk, len(snapshots), sale.total_price)
        return sale


@dataclass(frozen=True)
class ReturnResult:
    sale_id: Any
    restored: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[Dict[str, Any]] = field(default_factory=list)


class SaleReturnService:

    @staticmethod
    @stock_transaction
    def return_sale(sale_id) -> ReturnResult:
        """Put a sale's items back on the shelf and delete the sale.

        Items whose variant has been deleted are rebuilt from the line item
        snapshot. Each item runs in its own savepoint: failures become warnings
        as long as one item made it back. When none do, ReturnFailed is raised
        and nothing changes.
        """
        sale = Sale.objects.select_for_update().filter(pk=sale_id).first()
        if sale is None:
            raise EntityNotFound("Sale not found", sale_id=sale_id)

        restored, warnings = [], []
        for item in sale.items.all():
            try:
                with transaction.atomic():
                    restored.append(SaleReturnService._restore_item(item))
            except (StockEngineError, DatabaseError) as exc:
                logger.warning("Could not return sale item=%s of sale=%s: %s", item.pk, sale.pk, exc)
                warnings.append(
                    {
                        "item_id": str(item.pk),
                        "product_name": item.product_name,
                        "quantity": item.quantity,
                        "message": str(exc),
                    }
                )

        if not restored:
            raise ReturnFailed(sale_id=sale.pk, warnings=warnings)

        sale_pk = sale.pk
        sale.delete()
        logger.info("Returned sale=%s restored=%s failed=%s", sale_pk, len(restored), len(warnings))
        return ReturnResult(sale_id=sale_pk, restored=restored, warnings=warnings)

    @staticmethod
    def _restore_item(item: SaleItem) -> Dict[str, Any]:
        snapshot = item.snapshot
        if item.variant_id:
            variant = ProductVariant.objects.select_for_update().filter(pk=item.variant_id).first()
            if variant is not None:
                variant.quantity += snapshot.quantity
                variant.save(update_fields=["quantity", "updated_at"])
                return {
                    "item_id": str(item.pk),
                    "variant_id": str(variant.pk),
                    "quantity": snapshot.quantity,
                    "reconstructed": False,
                }
        variant = SaleReturnService.reconstruct(snapshot)
        return {
            "item_id": str(item.pk),
            "variant_id": str(variant.pk),
            "quantity": snapshot.quantity,
            "reconstructed": True,
        }

    @staticmethod
    def reconstruct(snapshot: LineItemSnapshot) -> ProductVariant:
        """Rebuild (or find) category, product and variant from a snapshot and put the units back."""
        product_name = (snapshot.product_name or "").strip()
        if not product_name:
            raise ValidationFailed("Sale item has no product name to rebuild from")

        product = (
            Product.objects.filter(name=product_name).first()
            or Product.objects.filter(name__iexact=product_name).first()
        )
        if product is None:
            product = Product.objects.create(
                name=product_name,
                category=SaleReturnService._resolve_category(snapshot),
                description="Recreated from a returned sale",
            )
            logger.info("Recreated product=%s (%s) from a sale snapshot", product.pk, product_name)

        variant = (
            ProductVariant.objects.select_for_update()
            .filter(product=product, size=snapshot.size, unit=snapshot.unit, color=snapshot.color)
            .first()
        )
        if variant is not None:
            variant.quantity += snapshot.quantity
            variant.save(update_fields=["quantity", "updated_at"])
            return variant

        ratio = Decimal(str(getattr(settings, "RETURN_ESTIMATED_COST_RATIO", "0.8")))
        return ProductVariant.objects.create(
            product=product,
            size=snapshot.size,
            unit=snapshot.unit,
            color=snapshot.color,
            quantity=snapshot.quantity,
            price=snapshot.price,
            supplier_price=quantize_money(snapshot.price * ratio),
        )

    @staticmethod
    def _resolve_category(snapshot: LineItemSnapshot) -> Category:
        category_name = (snapshot.category_name or "").strip()
        if category_name:
            category, _ = Category.objects.get_or_create(name=category_name)
            return category

        # older sales carry no category name
        batch = (
            SupplyBatch.objects.filter(product_name__iexact=snapshot.product_name)
            .select_related("variant__product__category")
            .first()
        )
        if batch:
            return batch.variant.product.category

        fallback = getattr(settings, "RECREATED_CATEGORY_NAME", "Recreated Products")
        category, _ = Category.objects.get_or_create(name=fallback)
        return category
