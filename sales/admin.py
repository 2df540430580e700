from django.contrib import admin

from .models import Sale, SaleItem


class SaleItemInline(admin.TabularInline):
    model = SaleItem
    extra = 0
    can_delete = False
    readonly_fields = ("variant", "product_name", "category_name", "size", "unit", "color", "quantity", "price", "subtotal")


@admin.register(Sale)
class SaleAdmin(admin.ModelAdmin):
    list_display = ("id", "type", "total_price", "amount_paid", "change", "cashier", "sale_date")
    list_filter = ("type",)
    search_fields = ("id", "cashier__email", "items__product_name")
    inlines = [SaleItemInline]

    def has_change_permission(self, request, obj=None):
        return False
