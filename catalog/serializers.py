from rest_framework import serializers

from .models import Category, Product, ProductVariant


class CategorySerializer(serializers.ModelSerializer):
    class Meta:
        model = Category
        fields = ["id", "name", "description", "created_at", "updated_at"]
        read_only_fields = ["id", "created_at", "updated_at"]


class ProductVariantSerializer(serializers.ModelSerializer):
    conversion_source_id = serializers.UUIDField(read_only=True)
    label = serializers.CharField(read_only=True)
    is_low_stock = serializers.BooleanField(read_only=True)

    class Meta:
        model = ProductVariant
        fields = [
            "id",
            "product",
            "label",
            "unit",
            "size",
            "color",
            "dimension",
            "dimension_type",
            "include_per_text",
            "price",
            "supplier_price",
            "quantity",
            "low_stock_threshold",
            "is_low_stock",
            "conversion_source_id",
            "conversion_quantity",
            "auto_convert",
            "conversion_notes",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class VariantWriteSerializer(serializers.Serializer):
    unit = serializers.ChoiceField(choices=ProductVariant.Unit.choices)
    size = serializers.CharField(required=False, allow_blank=True, max_length=100)
    color = serializers.CharField(required=False, allow_blank=True, max_length=100)
    dimension = serializers.CharField(required=False, allow_blank=True, max_length=100)
    dimension_type = serializers.ChoiceField(
        choices=ProductVariant.DimensionType.choices, required=False, allow_blank=True
    )
    include_per_text = serializers.BooleanField(required=False)
    price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    supplier_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    quantity = serializers.IntegerField(min_value=0, required=False)
    low_stock_threshold = serializers.IntegerField(min_value=0, required=False)
    conversion_source_id = serializers.UUIDField(required=False, allow_null=True)
    conversion_quantity = serializers.IntegerField(min_value=1, required=False)
    auto_convert = serializers.BooleanField(required=False)
    conversion_notes = serializers.CharField(required=False, allow_blank=True)


class ProductSerializer(serializers.ModelSerializer):
    category = CategorySerializer(read_only=True)
    variants = ProductVariantSerializer(many=True, read_only=True)

    class Meta:
        model = Product
        fields = ["id", "name", "description", "category", "image", "variants", "created_at", "updated_at"]
        read_only_fields = fields


class ProductWriteSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    category_name = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True)
    image = serializers.CharField(required=False, allow_blank=True)
    variants = VariantWriteSerializer(many=True, required=False)


class RestockSerializer(serializers.Serializer):
    quantity = serializers.IntegerField(min_value=1)
    supplier_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class RemovalSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True, default="")
