import logging

from core.exceptions import EntityNotFound, ValidationFailed
from core.transactions import stock_transaction
from inventory.conversion import validate_conversion_assignment
from inventory.services import SupplyLedgerService
from .models import Category, Product, ProductVariant

logger = logging.getLogger(__name__)

VARIANT_FIELDS = {
    "unit",
    "size",
    "color",
    "dimension",
    "dimension_type",
    "include_per_text",
    "price",
    "supplier_price",
    "low_stock_threshold",
    "conversion_quantity",
    "auto_convert",
    "conversion_notes",
}


def _lock_variant(variant):
    locked = ProductVariant.objects.select_for_update().select_related("product").filter(pk=variant.pk).first()
    if locked is None:
        raise EntityNotFound("Product variant not found", variant_id=variant.pk)
    return locked


class VariantService:

    @staticmethod
    def _clean_fields(fields):
        unknown = set(fields) - VARIANT_FIELDS - {"quantity", "conversion_source_id"}
        if unknown:
            raise ValidationFailed("Unknown variant fields", fields=sorted(unknown))
        quantity = fields.get("quantity")
        if quantity is not None and int(quantity) < 0:
            raise ValidationFailed("Quantity cannot be negative", quantity=quantity)
        conversion_quantity = fields.get("conversion_quantity")
        if conversion_quantity is not None and int(conversion_quantity) < 1:
            raise ValidationFailed("Conversion quantity must be at least 1", conversion_quantity=conversion_quantity)
        return fields

    @staticmethod
    @stock_transaction
    def create_variant(product: Product, **fields) -> ProductVariant:
        fields = VariantService._clean_fields(dict(fields))
        source_id = fields.pop("conversion_source_id", None)
        quantity = int(fields.pop("quantity", 0) or 0)

        source = validate_conversion_assignment(product.pk, source_id)

        variant = ProductVariant.objects.create(
            product=product,
            conversion_source=source,
            quantity=quantity,
            **fields,
        )
        if quantity > 0:
            SupplyLedgerService.record_supply(variant, quantity, notes="Initial stock")
        logger.info("Created variant=%s for product=%s with quantity=%s", variant.pk, product.pk, quantity)
        return variant

    @staticmethod
    @stock_transaction
    def update_variant(variant: ProductVariant, **fields) -> ProductVariant:
        fields = VariantService._clean_fields(dict(fields))
        variant = _lock_variant(variant)

        if "conversion_source_id" in fields:
            source_id = fields.pop("conversion_source_id")
            validate_conversion_assignment(variant.product_id, source_id, variant_id=variant.pk)
            variant.conversion_source_id = source_id or None

        for name, value in fields.items():
            if name != "quantity":
                setattr(variant, name, value)

        if fields.get("quantity") is not None:
            new_quantity = int(fields["quantity"])
            delta = new_quantity - variant.quantity
            variant.quantity = new_quantity
            if delta > 0:
                SupplyLedgerService.record_supply(variant, delta, notes="Quantity adjustment")
            elif delta < 0:
                logger.info("Variant=%s quantity lowered by %s without a ledger entry", variant.pk, -delta)

        variant.save()
        return variant

    @staticmethod
    @stock_transaction
    def restock(variant: ProductVariant, quantity: int, supplier_price=None, notes: str = "") -> ProductVariant:
        quantity = int(quantity)
        if quantity <= 0:
            raise ValidationFailed("Restock quantity must be greater than zero", quantity=quantity)
        variant = _lock_variant(variant)

        variant.quantity += quantity
        update_fields = ["quantity", "updated_at"]
        if supplier_price is not None:
            variant.supplier_price = supplier_price
            update_fields.append("supplier_price")
        variant.save(update_fields=update_fields)

        SupplyLedgerService.record_supply(variant, quantity, supplier_price=supplier_price, notes=notes)
        return variant

    @staticmethod
    @stock_transaction
    def delete_variant(variant: ProductVariant, notes: str = ""):
        """Hard-delete a variant. Stock still on hand is written off as an inventory loss first."""
        variant = _lock_variant(variant)
        loss = None
        if variant.quantity > 0:
            loss = SupplyLedgerService.record_loss(variant, variant.quantity, notes=notes)
        variant_id = variant.pk
        variant.delete()
        logger.info("Deleted variant=%s", variant_id)
        return loss


class ProductService:

    @staticmethod
    def _category_by_name(name):
        name = (name or "").strip()
        if not name:
            raise ValidationFailed("Category is required")
        category, _ = Category.objects.get_or_create(name=name)
        return category

    @staticmethod
    def _assert_unique_name(name, exclude_pk=None):
        qs = Product.objects.filter(name__iexact=name)
        if exclude_pk:
            qs = qs.exclude(pk=exclude_pk)
        if qs.exists():
            raise ValidationFailed("A product with this name already exists", name=name)

    @staticmethod
    @stock_transaction
    def create_product(name, category_name, description="", image="", variants=None) -> Product:
        name = (name or "").strip()
        if not name:
            raise ValidationFailed("Name and category are required")
        ProductService._assert_unique_name(name)
        product = Product.objects.create(
            name=name,
            description=description or "",
            category=ProductService._category_by_name(category_name),
            image=image or "",
        )
        for variant_data in variants or []:
            VariantService.create_variant(product, **variant_data)
        return product

    @staticmethod
    @stock_transaction
    def update_product(product: Product, name=None, category_name=None, description=None, image=None) -> Product:
        if name:
            name = name.strip()
            ProductService._assert_unique_name(name, exclude_pk=product.pk)
            product.name = name
        if category_name:
            product.category = ProductService._category_by_name(category_name)
        if description is not None:
            product.description = description
        if image:
            product.image = image
        product.save()
        return product

    @staticmethod
    @stock_transaction
    def delete_product(product: Product, notes: str = ""):
        losses = []
        for variant in product.variants.all():
            loss = VariantService.delete_variant(variant, notes=notes)
            if loss:
                losses.append(loss)
        product.delete()
        return losses
