"""Read-only gross margin figures, costed at the supplier price in force on the sale date."""
from decimal import Decimal

from inventory.services import CostBasisService, quantize_money
from .models import Sale


def sale_margin(sale: Sale) -> dict:
    revenue = Decimal("0")
    cost = Decimal("0")
    uncosted_items = 0
    for item in sale.items.all():
        revenue += item.subtotal
        if item.variant_id is None:
            # variant deleted since; its supply ledger went with it
            uncosted_items += 1
            continue
        cost += CostBasisService.point_in_time_cost(item.variant_id, sale.sale_date) * item.quantity

    cost = quantize_money(cost)
    return {
        "sale_id": str(sale.id),
        "sale_date": sale.sale_date,
        "revenue": quantize_money(revenue),
        "cost": cost,
        "gross_margin": quantize_money(revenue - cost),
        "uncosted_items": uncosted_items,
    }


def margin_summary(start=None, end=None) -> dict:
    sales = Sale.objects.prefetch_related("items").order_by("sale_date")
    if start:
        sales = sales.filter(sale_date__gte=start)
    if end:
        sales = sales.filter(sale_date__lte=end)

    revenue = Decimal("0")
    cost = Decimal("0")
    count = 0
    uncosted_items = 0
    for sale in sales:
        margin = sale_margin(sale)
        revenue += margin["revenue"]
        cost += margin["cost"]
        uncosted_items += margin["uncosted_items"]
        count += 1

    gross_margin = revenue - cost
    margin_pct = quantize_money(gross_margin * 100 / revenue) if revenue else Decimal("0.00")
    return {
        "start": start,
        "end": end,
        "sales_count": count,
        "revenue": quantize_money(revenue),
        "cost": quantize_money(cost),
        "gross_margin": quantize_money(gross_margin),
        "margin_pct": margin_pct,
        "uncosted_items": uncosted_items,
    }
