from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
import uuid


def _default_low_stock_threshold():
    return getattr(settings, "DEFAULT_LOW_STOCK_THRESHOLD", 15)


class Category(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255, unique=True)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "categories"
        verbose_name_plural = "Categories"

    def __str__(self):
        return self.name


class Product(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    category = models.ForeignKey(Category, on_delete=models.PROTECT, related_name="products")
    image = models.TextField(blank=True)  # URL or base64 string
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "products"

    def __str__(self):
        return self.name


class ProductVariant(models.Model):
    class Unit(models.TextChoices):
        PCS = "pcs"
        KG = "kg"
        G = "g"
        LB = "lb"
        M = "m"
        CM = "cm"
        FT = "ft"
        SET = "set"
        WATT = "W"
        VOLT = "V"
        AMPHERE = "amphere"
        GANG = "gang"
        BOX = "box"
        PACK = "pack"
        ROLL = "roll"
        WEY = "Wey"

    class DimensionType(models.TextChoices):
        DIAMETER = "diameter"
        THICKNESS = "thickness"
        LENGTH = "length"
        WIDTH = "width"
        HEIGHT = "height"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    product = models.ForeignKey(Product, related_name="variants", on_delete=models.CASCADE)
    unit = models.CharField(max_length=20, choices=Unit.choices)
    size = models.CharField(max_length=100, blank=True, default="")
    color = models.CharField(max_length=100, blank=True, default="")
    dimension = models.CharField(max_length=100, blank=True, default="")
    dimension_type = models.CharField(max_length=20, choices=DimensionType.choices, blank=True, default="")
    include_per_text = models.BooleanField(default=False)
    price = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(0)])
    supplier_price = models.DecimalField(max_digits=12, decimal_places=2, default=0, validators=[MinValueValidator(0)])
    quantity = models.PositiveIntegerField(default=0)
    low_stock_threshold = models.PositiveIntegerField(default=_default_low_stock_threshold)

    # units of this variant produced per one unit of conversion_source consumed
    conversion_source = models.ForeignKey(
        "self", on_delete=models.SET_NULL, null=True, blank=True, related_name="converted_variants"
    )
    conversion_quantity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    auto_convert = models.BooleanField(default=False)
    conversion_notes = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "variants"
        indexes = [
            models.Index(fields=["product", "size", "unit", "color"], name="variant_shape_idx"),
        ]

    @property
    def label(self):
        if self.size and self.unit:
            return f"{self.size} per {self.unit}" if self.include_per_text else f"{self.size} {self.unit}"
        if self.dimension and self.unit:
            dimension = f"{self.dimension} {self.dimension_type}".strip()
            return f"{self.unit.capitalize()} ({dimension})"
        if self.dimension:
            return f"{self.dimension} {self.dimension_type}".strip()
        return self.size or self.unit or ""

    @property
    def is_low_stock(self):
        return self.quantity <= self.low_stock_threshold

    def __str__(self):
        return f"{self.product.name} - {self.label}"
