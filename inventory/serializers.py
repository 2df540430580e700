from rest_framework import serializers

from .models import InventoryLoss, SupplyBatch


class SupplyBatchSerializer(serializers.ModelSerializer):
    available_quantity = serializers.IntegerField(read_only=True)

    class Meta:
        model = SupplyBatch
        fields = [
            "id",
            "variant",
            "product_name",
            "variant_size",
            "variant_unit",
            "variant_color",
            "quantity",
            "pulled_out_quantity",
            "available_quantity",
            "supplier_price",
            "total_cost",
            "supplied_at",
            "notes",
            "created_at",
        ]
        read_only_fields = fields


class InventoryLossSerializer(serializers.ModelSerializer):
    class Meta:
        model = InventoryLoss
        fields = ["id", "variant_id", "product_name", "size", "unit", "color", "quantity", "amount", "reason", "notes", "created_at"]
        read_only_fields = fields


class PullOutSerializer(serializers.Serializer):
    quantity = serializers.IntegerField(min_value=1)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class UndoSupplySerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True, default="Supply entry undone")
