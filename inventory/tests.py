from datetime import timedelta
from decimal import Decimal

from django.db import transaction
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from account.models import User
from catalog.models import Category, Product, ProductVariant
from core.exceptions import CircularConversion, EntityNotFound, InsufficientStock, ValidationFailed
from inventory.conversion import ensure_stock, validate_conversion_assignment
from inventory.models import InventoryLoss, SupplyBatch
from inventory.services import CostBasisService, SupplyLedgerService, quantize_money


def make_batch(variant, quantity, price, pulled_out=0, supplied_at=None):
    return SupplyBatch.objects.create(
        variant=variant,
        product_name=variant.product.name,
        quantity=quantity,
        supplier_price=Decimal(price),
        total_cost=Decimal(price) * quantity,
        pulled_out_quantity=pulled_out,
        supplied_at=supplied_at or timezone.now(),
    )


class InventoryFixtureMixin:
    def setUp(self):
        self.category = Category.objects.create(name="Electrical")
        self.product = Product.objects.create(name="Electrical Wire", category=self.category)

    def variant(self, **fields):
        fields.setdefault("unit", "pcs")
        fields.setdefault("price", Decimal("10.00"))
        return ProductVariant.objects.create(product=self.product, **fields)


class CostBasisTests(InventoryFixtureMixin, TestCase):
    def test_weighted_average_over_available_stock(self):
        variant = self.variant(supplier_price=Decimal("9.00"))
        make_batch(variant, 10, "5.00")
        make_batch(variant, 10, "7.00", pulled_out=5)

        cost = CostBasisService.weighted_average_cost(variant)
        self.assertEqual(quantize_money(cost), Decimal("5.67"))

    def test_exhausted_batches_fall_back_to_supplier_price(self):
        variant = self.variant(supplier_price=Decimal("9.00"))
        make_batch(variant, 10, "5.00", pulled_out=10)
        self.assertEqual(CostBasisService.weighted_average_cost(variant), Decimal("9.00"))

    def test_loss_amount_rounds_half_up(self):
        variant = self.variant()
        make_batch(variant, 2, "0.01")
        make_batch(variant, 1, "0.02")
        # 3 x 0.013333... = 0.04
        self.assertEqual(CostBasisService.loss_amount(variant, 3), Decimal("0.04"))
        # 1 x 0.025 rounds up, not to even
        other = self.variant(unit="box")
        make_batch(other, 1, "0.01")
        make_batch(other, 1, "0.04")
        self.assertEqual(CostBasisService.loss_amount(other, 1), Decimal("0.03"))

    def test_point_in_time_cost_uses_latest_batch_before_date(self):
        now = timezone.now()
        variant = self.variant(supplier_price=Decimal("8.00"))
        make_batch(variant, 5, "4.00", supplied_at=now - timedelta(days=10))
        make_batch(variant, 5, "6.00", supplied_at=now - timedelta(days=2))

        self.assertEqual(CostBasisService.point_in_time_cost(variant.id, now - timedelta(days=5)), Decimal("4.00"))
        self.assertEqual(CostBasisService.point_in_time_cost(variant.id, now), Decimal("6.00"))
        self.assertEqual(CostBasisService.point_in_time_cost(variant.id, now - timedelta(days=30)), Decimal("8.00"))

    def test_point_in_time_cost_for_deleted_variant_is_zero(self):
        self.assertEqual(
            CostBasisService.point_in_time_cost("00000000-0000-0000-0000-000000000000", timezone.now()),
            Decimal("0"),
        )


class InventoryLossTests(InventoryFixtureMixin, TestCase):
    def test_loss_rows_are_append_only(self):
        variant = self.variant(supplier_price=Decimal("3.00"), quantity=4)
        loss = SupplyLedgerService.record_loss(variant, 4, notes="water damage")
        self.assertEqual(loss.amount, Decimal("12.00"))
        self.assertEqual(loss.reason, InventoryLoss.Reason.MANUAL_ADJUSTMENT)

        loss.notes = "edited"
        with self.assertRaises(RuntimeError):
            loss.save()
        with self.assertRaises(RuntimeError):
            loss.delete()
        self.assertEqual(InventoryLoss.objects.get().notes, "water damage")


class ConversionValidationTests(InventoryFixtureMixin, TestCase):
    def test_no_candidate_is_allowed(self):
        self.assertIsNone(validate_conversion_assignment(self.product.id, None))

    def test_returns_source_of_same_product(self):
        source = self.variant(unit="roll")
        self.assertEqual(validate_conversion_assignment(self.product.id, source.id), source)

    def test_existing_cycle_above_candidate_is_reported(self):
        a = self.variant(unit="roll")
        b = self.variant(unit="box", conversion_source=a)
        ProductVariant.objects.filter(pk=a.pk).update(conversion_source=b)
        target = self.variant()

        with self.assertRaises(CircularConversion):
            validate_conversion_assignment(self.product.id, a.id, variant_id=target.id)


class EnsureStockTests(InventoryFixtureMixin, TestCase):
    def test_converts_whole_source_units(self):
        roll = self.variant(unit="roll", quantity=5)
        piece = self.variant(quantity=0, conversion_source=roll, conversion_quantity=12, auto_convert=True)

        with transaction.atomic():
            ensure_stock(piece, 20)

        roll.refresh_from_db()
        piece.refresh_from_db()
        self.assertEqual(roll.quantity, 3)
        self.assertEqual(piece.quantity, 24)

    def test_conservation_of_converted_units(self):
        roll = self.variant(unit="roll", quantity=10)
        piece = self.variant(quantity=1, conversion_source=roll, conversion_quantity=4, auto_convert=True)
        before = roll.quantity * 4 + piece.quantity

        with transaction.atomic():
            ensure_stock(piece, 9)

        roll.refresh_from_db()
        piece.refresh_from_db()
        self.assertEqual(roll.quantity, 8)
        self.assertEqual(piece.quantity, 9)
        self.assertEqual(roll.quantity * 4 + piece.quantity, before)

    def test_sufficient_stock_is_a_no_op(self):
        roll = self.variant(unit="roll", quantity=5)
        piece = self.variant(quantity=30, conversion_source=roll, conversion_quantity=12, auto_convert=True)

        with self.assertNumQueries(0):
            ensure_stock(piece, 20)

    def test_disabled_auto_convert_is_a_no_op(self):
        roll = self.variant(unit="roll", quantity=5)
        piece = self.variant(quantity=0, conversion_source=roll, conversion_quantity=12, auto_convert=False)

        with self.assertNumQueries(0):
            ensure_stock(piece, 20)
        roll.refresh_from_db()
        self.assertEqual(roll.quantity, 5)

    def test_source_running_dry_leaves_a_shortfall(self):
        roll = self.variant(unit="roll", quantity=1)
        piece = self.variant(quantity=0, conversion_source=roll, conversion_quantity=12, auto_convert=True)

        with transaction.atomic():
            ensure_stock(piece, 20)

        roll.refresh_from_db()
        piece.refresh_from_db()
        self.assertEqual(roll.quantity, 0)
        self.assertEqual(piece.quantity, 12)

    def test_multi_level_chain_resolves_bottom_up(self):
        box = self.variant(unit="box", quantity=1)
        pack = self.variant(unit="pack", quantity=0, conversion_source=box, conversion_quantity=10, auto_convert=True)
        piece = self.variant(quantity=0, conversion_source=pack, conversion_quantity=5, auto_convert=True)

        with transaction.atomic():
            ensure_stock(piece, 12)

        box.refresh_from_db()
        pack.refresh_from_db()
        piece.refresh_from_db()
        self.assertEqual(box.quantity, 0)
        self.assertEqual(pack.quantity, 7)
        self.assertEqual(piece.quantity, 15)

    def test_cycle_in_stored_chain_raises(self):
        a = self.variant(unit="roll", quantity=0, auto_convert=True, conversion_quantity=2)
        b = self.variant(unit="box", quantity=0, auto_convert=True, conversion_quantity=2, conversion_source=a)
        ProductVariant.objects.filter(pk=a.pk).update(conversion_source=b)
        a.refresh_from_db()

        with self.assertRaises(CircularConversion):
            with transaction.atomic():
                ensure_stock(a, 3)


class SupplyLedgerTests(InventoryFixtureMixin, TestCase):
    def test_pull_out_lowers_stock_and_batch_availability(self):
        variant = self.variant(quantity=10)
        batch = make_batch(variant, 10, "5.00")

        SupplyLedgerService.pull_out(batch, 4, notes="returned to supplier")

        variant.refresh_from_db()
        batch.refresh_from_db()
        self.assertEqual(variant.quantity, 6)
        self.assertEqual(batch.pulled_out_quantity, 4)
        self.assertEqual(batch.available_quantity, 6)
        self.assertIn("returned to supplier", batch.notes)
        # only deleting a variant with stock on hand writes a loss
        self.assertFalse(InventoryLoss.objects.exists())

    def test_pull_out_cannot_exceed_batch(self):
        variant = self.variant(quantity=10)
        batch = make_batch(variant, 3, "5.00")
        with self.assertRaises(ValidationFailed):
            SupplyLedgerService.pull_out(batch, 4)

    def test_pull_out_cannot_drive_stock_negative(self):
        variant = self.variant(quantity=2)
        batch = make_batch(variant, 10, "5.00")
        with self.assertRaises(InsufficientStock):
            SupplyLedgerService.pull_out(batch, 5)
        batch.refresh_from_db()
        self.assertEqual(batch.pulled_out_quantity, 0)

    def test_undo_pulls_out_remaining_availability(self):
        variant = self.variant(quantity=10)
        batch = make_batch(variant, 8, "5.00", pulled_out=3)

        SupplyLedgerService.undo_supply(batch)

        variant.refresh_from_db()
        batch.refresh_from_db()
        self.assertEqual(variant.quantity, 5)
        self.assertEqual(batch.available_quantity, 0)
        with self.assertRaises(ValidationFailed):
            SupplyLedgerService.undo_supply(batch)

    def test_undo_of_deleted_batch(self):
        variant = self.variant(quantity=10)
        batch = make_batch(variant, 8, "5.00")
        SupplyBatch.objects.filter(pk=batch.pk).delete()
        with self.assertRaises(EntityNotFound):
            SupplyLedgerService.undo_supply(batch)


class InventoryApiTests(InventoryFixtureMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.admin = User.objects.create_user(email="admin@store.com", password="Pass123!", role="ADMIN")
        self.customer = User.objects.create_user(email="buyer@example.com", password="Pass123!")
        self.client.force_authenticate(self.admin)

    def test_cost_endpoint(self):
        variant = self.variant(quantity=15)
        make_batch(variant, 10, "5.00")
        make_batch(variant, 10, "7.00", pulled_out=5)

        resp = self.client.get(f"/inventory/variants/{variant.id}/cost/")
        self.assertEqual(resp.status_code, 200, resp.data)
        self.assertEqual(resp.data["weighted_average_cost"], "5.67")
        self.assertEqual(resp.data["stock_value"], "85.00")

    def test_supply_batches_filtered_by_month(self):
        variant = self.variant()
        make_batch(variant, 1, "1.00", supplied_at=timezone.now().replace(year=2023, month=3, day=10))
        make_batch(variant, 1, "1.00", supplied_at=timezone.now().replace(year=2023, month=4, day=10))

        resp = self.client.get("/inventory/supply-batches/", {"month": "2023-03"})
        self.assertEqual(resp.status_code, 200, resp.data)
        self.assertEqual(resp.data["count"], 1)

        resp = self.client.get("/inventory/supply-batches/", {"month": "March"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data["code"], "validation_error")

    def test_pull_out_endpoint_reports_over_pull(self):
        variant = self.variant(quantity=10)
        batch = make_batch(variant, 3, "5.00")

        resp = self.client.post(f"/inventory/supply-batches/{batch.id}/pull-out/", {"quantity": 2}, format="json")
        self.assertEqual(resp.status_code, 200, resp.data)
        self.assertEqual(resp.data["available_quantity"], 1)

        resp = self.client.post(f"/inventory/supply-batches/{batch.id}/pull-out/", {"quantity": 2}, format="json")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data["details"]["available"], 1)

    def test_ledgers_are_staff_only(self):
        self.client.force_authenticate(self.customer)
        self.assertEqual(self.client.get("/inventory/losses/").status_code, 403)
        self.assertEqual(self.client.get("/inventory/supply-batches/").status_code, 403)
