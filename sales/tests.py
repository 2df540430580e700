from datetime import timedelta
from decimal import Decimal
from unittest import mock

from django.db import DatabaseError
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from account.models import User
from catalog.models import Category, Product, ProductVariant
from core.exceptions import (
    AmountInsufficient,
    EntityNotFound,
    InsufficientStock,
    ReturnFailed,
    TransactionAborted,
    ValidationFailed,
)
from inventory.models import SupplyBatch
from notifications.models import Notification
from .models import Sale, SaleItem
from .reports import margin_summary, sale_margin
from .services import SaleReturnService, SaleService, normalize_lines


class SalesFixtureMixin:
    def setUp(self):
        self.category = Category.objects.create(name="Electrical")
        self.product = Product.objects.create(name="Electrical Wire", category=self.category)

    def variant(self, **fields):
        fields.setdefault("unit", "pcs")
        fields.setdefault("price", Decimal("10.00"))
        fields.setdefault("low_stock_threshold", 0)
        return ProductVariant.objects.create(product=self.product, **fields)


class NormalizeLinesTests(TestCase):
    def test_rejects_empty_cart(self):
        with self.assertRaises(ValidationFailed):
            normalize_lines([])

    def test_rejects_non_positive_quantity(self):
        with self.assertRaises(ValidationFailed) as ctx:
            normalize_lines([{"variant_id": "abc", "quantity": 0}])
        self.assertEqual(ctx.exception.details["item_index"], 0)

    def test_rejects_negative_locked_price(self):
        with self.assertRaises(ValidationFailed):
            normalize_lines([{"variant_id": "abc", "quantity": 1, "locked_price": "-1"}])


class CreateSaleTests(SalesFixtureMixin, TestCase):
    def test_sale_records_snapshot_and_change(self):
        variant = self.variant(size="2.0", unit="m", color="red", quantity=30)

        sale = SaleService.create_sale([{"variant_id": variant.id, "quantity": 3}], amount_paid="50")

        variant.refresh_from_db()
        self.assertEqual(variant.quantity, 27)
        self.assertEqual(sale.type, Sale.Type.POS)
        self.assertEqual(sale.total_price, Decimal("30.00"))
        self.assertEqual(sale.change, Decimal("20.00"))
        item = sale.items.get()
        self.assertEqual(item.product_name, "Electrical Wire")
        self.assertEqual(item.category_name, "Electrical")
        self.assertEqual((item.size, item.unit, item.color), ("2.0", "m", "red"))
        self.assertEqual(item.subtotal, Decimal("30.00"))

    def test_underpayment_is_rejected_before_any_deduction(self):
        variant = self.variant(quantity=10)
        with self.assertRaises(AmountInsufficient) as ctx:
            SaleService.create_sale([{"variant_id": variant.id, "quantity": 2}], amount_paid="5")

        self.assertEqual(ctx.exception.details["total_price"], Decimal("20.00"))
        variant.refresh_from_db()
        self.assertEqual(variant.quantity, 10)
        self.assertFalse(Sale.objects.exists())

    def test_shortage_rolls_back_the_whole_cart(self):
        plenty = self.variant(unit="box", quantity=10)
        scarce = self.variant(quantity=1)

        with self.assertRaises(InsufficientStock) as ctx:
            SaleService.create_sale(
                [
                    {"variant_id": plenty.id, "quantity": 2},
                    {"variant_id": scarce.id, "quantity": 5},
                ],
                amount_paid="100",
            )

        self.assertEqual(ctx.exception.details["requested"], 5)
        self.assertEqual(ctx.exception.details["available"], 1)
        plenty.refresh_from_db()
        self.assertEqual(plenty.quantity, 10)
        self.assertFalse(Sale.objects.exists())
        self.assertFalse(SaleItem.objects.exists())

    def test_shortage_after_conversion_rolls_back_the_conversion(self):
        roll = self.variant(unit="roll", quantity=5, price=Decimal("100.00"))
        piece = self.variant(quantity=0, conversion_source=roll, conversion_quantity=12, auto_convert=True)
        scarce = self.variant(unit="box", quantity=1)

        with self.assertRaises(InsufficientStock):
            SaleService.create_sale(
                [
                    {"variant_id": piece.id, "quantity": 20},
                    {"variant_id": scarce.id, "quantity": 5},
                ],
                amount_paid="250",
            )

        roll.refresh_from_db()
        piece.refresh_from_db()
        scarce.refresh_from_db()
        self.assertEqual((roll.quantity, piece.quantity, scarce.quantity), (5, 0, 1))
        self.assertFalse(Sale.objects.exists())

    def test_missing_variant(self):
        with self.assertRaises(EntityNotFound):
            SaleService.create_sale(
                [{"variant_id": "00000000-0000-0000-0000-000000000000", "quantity": 1}], amount_paid="10"
            )

    def test_sale_converts_from_source_variant(self):
        roll = self.variant(unit="roll", quantity=5, price=Decimal("100.00"))
        piece = self.variant(quantity=0, conversion_source=roll, conversion_quantity=12, auto_convert=True)

        sale = SaleService.create_sale([{"variant_id": piece.id, "quantity": 20}], amount_paid="200")

        roll.refresh_from_db()
        piece.refresh_from_db()
        self.assertEqual(roll.quantity, 3)
        self.assertEqual(piece.quantity, 4)
        self.assertEqual(sale.total_price, Decimal("200.00"))

    def test_locked_price_wins_over_catalog_price(self):
        variant = self.variant(quantity=5)
        sale = SaleService.create_sale(
            [{"variant_id": variant.id, "quantity": 2, "locked_price": "7.50"}], amount_paid="15"
        )
        self.assertEqual(sale.total_price, Decimal("15.00"))
        self.assertEqual(sale.items.get().price, Decimal("7.50"))
        self.assertEqual(sale.change, Decimal("0.00"))

    def test_locked_price_is_billed_at_cents(self):
        variant = self.variant(quantity=5)
        with mock.patch("sales.services.FulfillmentService.fulfill") as fulfill:
            with self.assertRaises(AmountInsufficient) as ctx:
                SaleService.create_sale(
                    [{"variant_id": variant.id, "quantity": 2, "locked_price": "7.555"}], amount_paid="15.11"
                )
        fulfill.assert_not_called()
        self.assertEqual(ctx.exception.details["total_price"], Decimal("15.12"))

        sale = SaleService.create_sale(
            [{"variant_id": variant.id, "quantity": 2, "locked_price": "7.555"}], amount_paid="15.12"
        )
        self.assertEqual(sale.total_price, Decimal("15.12"))
        self.assertEqual(sale.items.get().price, Decimal("7.56"))
        self.assertEqual(sale.change, Decimal("0.00"))

    def test_storage_failure_rolls_back_deductions(self):
        variant = self.variant(quantity=10)
        with mock.patch(
            "sales.services.FulfillmentService.notify_low_stock", side_effect=DatabaseError("deadlock detected")
        ):
            with self.assertRaises(TransactionAborted):
                SaleService.create_sale([{"variant_id": variant.id, "quantity": 4}], amount_paid="40")

        variant.refresh_from_db()
        self.assertEqual(variant.quantity, 10)
        self.assertFalse(Sale.objects.exists())

    def test_recorded_sale_cannot_be_edited(self):
        variant = self.variant(quantity=5)
        sale = SaleService.create_sale([{"variant_id": variant.id, "quantity": 1}], amount_paid="10")
        sale.amount_paid = Decimal("99")
        with self.assertRaises(RuntimeError):
            sale.save()

    def test_low_stock_alerts_admins(self):
        admin = User.objects.create_user(email="admin@store.com", password="Pass123!", role="ADMIN")
        variant = self.variant(quantity=17, low_stock_threshold=15)

        SaleService.create_sale([{"variant_id": variant.id, "quantity": 1}], amount_paid="10")
        self.assertFalse(Notification.objects.exists())

        SaleService.create_sale([{"variant_id": variant.id, "quantity": 1}], amount_paid="10")
        note = Notification.objects.get()
        self.assertEqual(note.user, admin)
        self.assertEqual(note.type, Notification.Type.LOW_STOCK)
        self.assertEqual(note.payload["quantity"], 15)


def _orphan_sale(*items):
    """A sale whose items no longer point at a variant."""
    total = sum((Decimal(item["price"]) * item["quantity"] for item in items), Decimal("0"))
    sale = Sale.objects.create(type=Sale.Type.POS, total_price=total, amount_paid=total, change=Decimal("0"))
    for item in items:
        SaleItem.objects.create(
            sale=sale,
            variant=None,
            product_name=item["product_name"],
            category_name=item.get("category_name", ""),
            size=item.get("size", ""),
            unit=item.get("unit", "pcs"),
            color=item.get("color", ""),
            quantity=item["quantity"],
            price=Decimal(item["price"]),
            subtotal=Decimal(item["price"]) * item["quantity"],
        )
    return sale


class SaleReturnTests(SalesFixtureMixin, TestCase):
    def test_return_restores_stock_and_deletes_sale(self):
        variant = self.variant(quantity=10)
        sale = SaleService.create_sale([{"variant_id": variant.id, "quantity": 3}], amount_paid="30")

        result = SaleReturnService.return_sale(sale.id)

        variant.refresh_from_db()
        self.assertEqual(variant.quantity, 10)
        self.assertEqual(result.warnings, [])
        self.assertFalse(result.restored[0]["reconstructed"])
        self.assertFalse(Sale.objects.filter(pk=sale.id).exists())
        self.assertFalse(SaleItem.objects.exists())

    def test_unknown_sale(self):
        with self.assertRaises(EntityNotFound):
            SaleReturnService.return_sale("00000000-0000-0000-0000-000000000000")

    def test_deleted_variant_is_rebuilt_on_its_product(self):
        variant = self.variant(size="1/2", unit="m", color="red", quantity=5)
        sale = SaleService.create_sale([{"variant_id": variant.id, "quantity": 2}], amount_paid="20")
        variant.delete()

        result = SaleReturnService.return_sale(sale.id)

        rebuilt = ProductVariant.objects.get(product=self.product, size="1/2", unit="m", color="red")
        self.assertEqual(rebuilt.quantity, 2)
        self.assertEqual(rebuilt.price, Decimal("10.00"))
        self.assertEqual(rebuilt.supplier_price, Decimal("8.00"))
        self.assertTrue(result.restored[0]["reconstructed"])
        self.assertEqual(result.restored[0]["variant_id"], str(rebuilt.id))
        # reconstruction does not invent a supply receipt
        self.assertFalse(SupplyBatch.objects.filter(variant=rebuilt).exists())

    def test_rebuilt_variant_merges_into_same_shape(self):
        variant = self.variant(size="1/2", unit="m", quantity=5)
        sale = SaleService.create_sale([{"variant_id": variant.id, "quantity": 2}], amount_paid="20")
        variant.delete()
        replacement = self.variant(size="1/2", unit="m", quantity=7)

        SaleReturnService.return_sale(sale.id)

        replacement.refresh_from_db()
        self.assertEqual(replacement.quantity, 9)
        self.assertEqual(ProductVariant.objects.filter(product=self.product).count(), 1)

    def test_deleted_product_is_rebuilt_in_its_category(self):
        variant = self.variant(size="10", unit="m", quantity=5)
        sale = SaleService.create_sale([{"variant_id": variant.id, "quantity": 1}], amount_paid="10")
        self.product.delete()

        SaleReturnService.return_sale(sale.id)

        product = Product.objects.get(name="Electrical Wire")
        self.assertEqual(product.category, self.category)
        self.assertEqual(product.variants.get().quantity, 1)

    def test_legacy_item_returns_to_existing_namesake_product(self):
        sale = _orphan_sale(
            {"product_name": "electrical wire", "size": "5", "unit": "m", "quantity": 3, "price": "10.00"}
        )

        SaleReturnService.return_sale(sale.id)

        self.assertEqual(Product.objects.count(), 1)
        self.assertEqual(self.product.variants.get(size="5", unit="m").quantity, 3)
        self.assertFalse(Category.objects.filter(name="Recreated Products").exists())

    def test_category_recovered_from_supply_ledger(self):
        tools = Category.objects.create(name="Tools")
        hammer = Product.objects.create(name="Claw Hammer", category=tools)
        hammer_variant = ProductVariant.objects.create(product=hammer, unit="pcs", price=Decimal("5.00"))
        SupplyBatch.objects.create(
            variant=hammer_variant,
            product_name="Old Hammer",
            quantity=1,
            supplier_price=Decimal("3.00"),
            total_cost=Decimal("3.00"),
        )
        sale = _orphan_sale({"product_name": "old hammer", "quantity": 1, "price": "5.00"})

        SaleReturnService.return_sale(sale.id)

        self.assertEqual(Product.objects.get(name="old hammer").category, tools)

    def test_unknown_category_falls_back_to_recreated_products(self):
        sale = _orphan_sale({"product_name": "Mystery Fitting", "quantity": 4, "price": "2.50"})

        SaleReturnService.return_sale(sale.id)

        product = Product.objects.get(name="Mystery Fitting")
        self.assertEqual(product.category.name, "Recreated Products")
        self.assertEqual(product.variants.get().quantity, 4)

    def test_partial_return_reports_warnings(self):
        variant = self.variant(quantity=10)
        sale = SaleService.create_sale([{"variant_id": variant.id, "quantity": 2}], amount_paid="20")
        SaleItem.objects.create(
            sale=sale, variant=None, product_name="", quantity=1, price=Decimal("1.00"), subtotal=Decimal("1.00")
        )

        result = SaleReturnService.return_sale(sale.id)

        self.assertEqual(len(result.restored), 1)
        self.assertEqual(len(result.warnings), 1)
        variant.refresh_from_db()
        self.assertEqual(variant.quantity, 10)
        self.assertFalse(Sale.objects.filter(pk=sale.id).exists())

    def test_nothing_restored_keeps_the_sale(self):
        sale = _orphan_sale({"product_name": "", "quantity": 1, "price": "1.00"})

        with self.assertRaises(ReturnFailed) as ctx:
            SaleReturnService.return_sale(sale.id)

        self.assertEqual(len(ctx.exception.details["warnings"]), 1)
        self.assertTrue(Sale.objects.filter(pk=sale.id).exists())


class MarginReportTests(SalesFixtureMixin, TestCase):
    def test_margin_costs_at_supply_price_in_force(self):
        variant = self.variant(quantity=10, supplier_price=Decimal("9.00"))
        SupplyBatch.objects.create(
            variant=variant,
            product_name=self.product.name,
            quantity=10,
            supplier_price=Decimal("6.00"),
            total_cost=Decimal("60.00"),
            supplied_at=timezone.now() - timedelta(days=1),
        )
        sale = SaleService.create_sale([{"variant_id": variant.id, "quantity": 2}], amount_paid="20")

        margin = sale_margin(sale)
        self.assertEqual(margin["revenue"], Decimal("20.00"))
        self.assertEqual(margin["cost"], Decimal("12.00"))
        self.assertEqual(margin["gross_margin"], Decimal("8.00"))

        summary = margin_summary()
        self.assertEqual(summary["sales_count"], 1)
        self.assertEqual(summary["margin_pct"], Decimal("40.00"))

    def test_deleted_variants_are_counted_as_uncosted(self):
        _orphan_sale({"product_name": "Gone", "quantity": 1, "price": "4.00"})
        summary = margin_summary()
        self.assertEqual(summary["uncosted_items"], 1)
        self.assertEqual(summary["cost"], Decimal("0.00"))
        self.assertEqual(summary["gross_margin"], Decimal("4.00"))

    def test_empty_range(self):
        summary = margin_summary(start=timezone.now() + timedelta(days=1))
        self.assertEqual(summary["sales_count"], 0)
        self.assertEqual(summary["margin_pct"], Decimal("0.00"))


class SalesApiTests(SalesFixtureMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.cashier = User.objects.create_user(email="cashier@store.com", password="Pass123!", role="CASHIER")
        self.customer = User.objects.create_user(email="buyer@example.com", password="Pass123!")
        self.client.force_authenticate(self.cashier)

    def test_create_sale(self):
        variant = self.variant(quantity=10)
        resp = self.client.post(
            "/sales/",
            {"items": [{"variant_id": str(variant.id), "quantity": 2}], "amount_paid": "25.00"},
            format="json",
        )
        self.assertEqual(resp.status_code, 201, resp.data)
        self.assertEqual(resp.data["sale"]["change"], "5.00")
        self.assertEqual(resp.data["sale"]["cashier_email"], "cashier@store.com")
        self.assertEqual(len(resp.data["sale"]["items"]), 1)

    def test_create_sale_errors_are_structured(self):
        variant = self.variant(quantity=1)
        resp = self.client.post(
            "/sales/",
            {"items": [{"variant_id": str(variant.id), "quantity": 3}], "amount_paid": "100"},
            format="json",
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data["code"], "insufficient_stock")
        self.assertEqual(resp.data["details"]["available"], 1)

        resp = self.client.post(
            "/sales/",
            {"items": [{"variant_id": str(variant.id), "quantity": 1}], "amount_paid": "1"},
            format="json",
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data["code"], "amount_insufficient")

    def test_storage_failure_is_reported_as_retryable(self):
        variant = self.variant(quantity=10)
        with mock.patch(
            "sales.services.FulfillmentService.notify_low_stock", side_effect=DatabaseError("could not serialize access")
        ):
            resp = self.client.post(
                "/sales/",
                {"items": [{"variant_id": str(variant.id), "quantity": 1}], "amount_paid": "10"},
                format="json",
            )
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.data["code"], "transaction_aborted")
        self.assertNotIn("serialize", resp.data["message"])

    def test_list_and_return(self):
        variant = self.variant(quantity=10)
        sale = SaleService.create_sale([{"variant_id": variant.id, "quantity": 4}], amount_paid="40")

        resp = self.client.get("/sales/", {"type": "pos"})
        self.assertEqual(resp.status_code, 200, resp.data)
        self.assertEqual(resp.data["count"], 1)

        resp = self.client.post(f"/sales/{sale.id}/return/", {}, format="json")
        self.assertEqual(resp.status_code, 200, resp.data)
        self.assertEqual(resp.data["warnings"], [])
        self.assertEqual(self.client.get(f"/sales/{sale.id}/").status_code, 404)

    def test_margin_endpoint_validates_dates(self):
        self.assertEqual(self.client.get("/sales/margin/").status_code, 200)
        resp = self.client.get("/sales/margin/", {"start": "yesterday"})
        self.assertEqual(resp.status_code, 400)
        resp = self.client.get("/sales/margin/", {"start": "2024-02-01", "end": "2024-01-01"})
        self.assertEqual(resp.status_code, 400)

    def test_customers_cannot_sell(self):
        self.client.force_authenticate(self.customer)
        self.assertEqual(self.client.get("/sales/").status_code, 403)
        self.assertEqual(self.client.post("/sales/", {}, format="json").status_code, 403)
