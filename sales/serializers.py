from rest_framework import serializers

from .models import Sale, SaleItem


class SaleItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = SaleItem
        fields = ["id", "variant", "product_name", "category_name", "size", "unit", "color", "quantity", "price", "subtotal"]
        read_only_fields = fields


class SaleSerializer(serializers.ModelSerializer):
    items = SaleItemSerializer(many=True, read_only=True)
    cashier_email = serializers.SerializerMethodField()

    class Meta:
        model = Sale
        fields = [
            "id",
            "type",
            "items",
            "total_price",
            "amount_paid",
            "change",
            "sale_date",
            "cashier",
            "cashier_email",
            "reservation",
        ]
        read_only_fields = fields

    def get_cashier_email(self, obj):
        return obj.cashier.email if obj.cashier else None


class SaleLineSerializer(serializers.Serializer):
    variant_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)
    locked_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False, allow_null=True)


class SaleCreateSerializer(serializers.Serializer):
    items = SaleLineSerializer(many=True, allow_empty=False)
    amount_paid = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
