from django.contrib import admin

from .models import InventoryLoss, SupplyBatch


@admin.register(SupplyBatch)
class SupplyBatchAdmin(admin.ModelAdmin):
    list_display = ("id", "product_name", "variant_size", "variant_unit", "quantity", "pulled_out_quantity", "supplier_price", "supplied_at")
    search_fields = ("product_name", "notes")
    list_filter = ("variant_unit",)


@admin.register(InventoryLoss)
class InventoryLossAdmin(admin.ModelAdmin):
    list_display = ("id", "product_name", "quantity", "amount", "reason", "created_at")
    search_fields = ("product_name", "notes")
    list_filter = ("reason",)

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
