from decimal import Decimal

from django.test import TestCase
from rest_framework.test import APIClient

from account.models import User
from catalog.models import Category, Product, ProductVariant
from catalog.services import ProductService, VariantService
from core.exceptions import CircularConversion, EntityNotFound, InvalidConversion, ValidationFailed
from inventory.models import InventoryLoss, SupplyBatch


class CatalogModelTests(TestCase):
    def setUp(self):
        self.category = Category.objects.create(name="Electrical")
        self.product = Product.objects.create(name="Wire", category=self.category)

    def test_variant_label_and_defaults(self):
        variant = ProductVariant.objects.create(product=self.product, unit="m", size="2.0", price="12.00")
        self.assertEqual(variant.label, "2.0 m")
        self.assertEqual(variant.low_stock_threshold, 15)
        self.assertEqual(variant.conversion_quantity, 1)
        self.assertTrue(variant.is_low_stock)

    def test_variant_label_with_per_text(self):
        variant = ProductVariant.objects.create(
            product=self.product, unit="roll", size="100", include_per_text=True, price="900.00"
        )
        self.assertEqual(variant.label, "100 per roll")


class VariantServiceTests(TestCase):
    def setUp(self):
        self.category = Category.objects.create(name="Electrical")
        self.product = Product.objects.create(name="Wire", category=self.category)
        self.other_product = Product.objects.create(name="Pipe", category=self.category)

    def _variant(self, product=None, **fields):
        fields.setdefault("unit", "pcs")
        fields.setdefault("price", Decimal("10.00"))
        return VariantService.create_variant(product or self.product, **fields)

    def test_create_with_stock_writes_initial_supply_batch(self):
        variant = self._variant(quantity=12, supplier_price=Decimal("6.50"))

        batch = SupplyBatch.objects.get(variant=variant)
        self.assertEqual(batch.quantity, 12)
        self.assertEqual(batch.supplier_price, Decimal("6.50"))
        self.assertEqual(batch.total_cost, Decimal("78.00"))
        self.assertEqual(batch.product_name, "Wire")

    def test_create_without_stock_writes_no_batch(self):
        variant = self._variant()
        self.assertFalse(SupplyBatch.objects.filter(variant=variant).exists())

    def test_conversion_source_must_share_product(self):
        foreign = self._variant(product=self.other_product)
        with self.assertRaises(InvalidConversion):
            self._variant(conversion_source_id=foreign.id)

    def test_missing_conversion_source(self):
        with self.assertRaises(EntityNotFound):
            self._variant(conversion_source_id="00000000-0000-0000-0000-000000000000")

    def test_self_reference_is_a_cycle(self):
        variant = self._variant()
        with self.assertRaises(CircularConversion):
            VariantService.update_variant(variant, conversion_source_id=variant.id)

    def test_update_rejects_cycle_through_chain(self):
        roll = self._variant(unit="roll")
        box = self._variant(unit="box", conversion_source_id=roll.id)
        piece = self._variant(conversion_source_id=box.id)

        with self.assertRaises(CircularConversion):
            VariantService.update_variant(roll, conversion_source_id=piece.id)
        roll.refresh_from_db()
        self.assertIsNone(roll.conversion_source_id)

    def test_update_quantity_increase_writes_batch_decrease_does_not(self):
        variant = self._variant(quantity=5)
        VariantService.update_variant(variant, quantity=8)
        self.assertEqual(SupplyBatch.objects.filter(variant=variant).count(), 2)
        self.assertEqual(SupplyBatch.objects.get(variant=variant, notes="Quantity adjustment").quantity, 3)

        VariantService.update_variant(variant, quantity=2)
        variant.refresh_from_db()
        self.assertEqual(variant.quantity, 2)
        self.assertEqual(SupplyBatch.objects.filter(variant=variant).count(), 2)

    def test_update_rejects_negative_quantity(self):
        variant = self._variant(quantity=5)
        with self.assertRaises(ValidationFailed):
            VariantService.update_variant(variant, quantity=-1)

    def test_restock_updates_supplier_price_and_ledger(self):
        variant = self._variant(quantity=2, supplier_price=Decimal("4.00"))
        VariantService.restock(variant, 10, supplier_price=Decimal("5.00"), notes="PO-1")

        variant.refresh_from_db()
        self.assertEqual(variant.quantity, 12)
        self.assertEqual(variant.supplier_price, Decimal("5.00"))
        batch = SupplyBatch.objects.get(variant=variant, notes="PO-1")
        self.assertEqual(batch.quantity, 10)
        self.assertEqual(batch.total_cost, Decimal("50.00"))

    def test_restock_requires_positive_quantity(self):
        variant = self._variant()
        with self.assertRaises(ValidationFailed):
            VariantService.restock(variant, 0)

    def test_delete_with_stock_records_loss_at_weighted_average(self):
        variant = self._variant(quantity=10, supplier_price=Decimal("5.00"))
        VariantService.restock(variant, 10, supplier_price=Decimal("7.00"))

        loss = VariantService.delete_variant(variant, notes="damaged")

        self.assertFalse(ProductVariant.objects.filter(pk=variant.pk).exists())
        self.assertFalse(SupplyBatch.objects.filter(variant_id=variant.pk).exists())
        self.assertEqual(loss.variant_id, variant.pk)
        self.assertEqual(loss.quantity, 20)
        self.assertEqual(loss.amount, Decimal("120.00"))
        self.assertEqual(loss.reason, InventoryLoss.Reason.MANUAL_ADJUSTMENT)
        self.assertEqual(loss.product_name, "Wire")

    def test_delete_without_stock_records_nothing(self):
        variant = self._variant()
        self.assertIsNone(VariantService.delete_variant(variant))
        self.assertEqual(InventoryLoss.objects.count(), 0)

    def test_delete_source_detaches_dependants(self):
        roll = self._variant(unit="roll")
        piece = self._variant(conversion_source_id=roll.id, auto_convert=True, conversion_quantity=12)

        VariantService.delete_variant(roll)
        piece.refresh_from_db()
        self.assertIsNone(piece.conversion_source_id)


class ProductServiceTests(TestCase):
    def test_create_product_gets_or_creates_category(self):
        existing = Category.objects.create(name="Plumbing")
        product = ProductService.create_product(
            name="PVC Pipe",
            category_name="Plumbing",
            variants=[{"unit": "pcs", "size": "1/2", "price": Decimal("45.00"), "quantity": 30}],
        )
        self.assertEqual(product.category_id, existing.id)
        self.assertEqual(product.variants.get().quantity, 30)

        other = ProductService.create_product(name="Tape", category_name="Hardware")
        self.assertEqual(other.category.name, "Hardware")

    def test_product_names_are_unique_ignoring_case(self):
        ProductService.create_product(name="Hammer", category_name="Tools")
        with self.assertRaises(ValidationFailed):
            ProductService.create_product(name="hammer", category_name="Tools")

    def test_delete_product_writes_losses_for_variants_with_stock(self):
        product = ProductService.create_product(
            name="Nails",
            category_name="Hardware",
            variants=[
                {"unit": "kg", "price": Decimal("80.00"), "supplier_price": Decimal("60.00"), "quantity": 3},
                {"unit": "box", "price": Decimal("20.00")},
            ],
        )
        losses = ProductService.delete_product(product)

        self.assertEqual(len(losses), 1)
        self.assertEqual(losses[0].amount, Decimal("180.00"))
        self.assertFalse(Product.objects.filter(pk=product.pk).exists())


class CatalogApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.cashier = User.objects.create_user(email="cashier@store.com", password="Pass123!", role="CASHIER")
        self.customer = User.objects.create_user(email="buyer@example.com", password="Pass123!")

    def _create_product(self):
        return self.client.post(
            "/catalog/products/",
            {
                "name": "Electrical Wire",
                "category_name": "Electrical",
                "variants": [
                    {"unit": "roll", "size": "2.0", "price": "1500.00", "supplier_price": "1100.00", "quantity": 5},
                ],
            },
            format="json",
        )

    def test_staff_creates_product_with_variants(self):
        self.client.force_authenticate(self.cashier)
        resp = self._create_product()

        self.assertEqual(resp.status_code, 201, resp.data)
        self.assertEqual(resp.data["category"]["name"], "Electrical")
        self.assertEqual(len(resp.data["variants"]), 1)
        self.assertEqual(resp.data["variants"][0]["quantity"], 5)

    def test_customer_cannot_mutate_catalog(self):
        self.client.force_authenticate(self.customer)
        self.assertEqual(self._create_product().status_code, 403)
        self.assertEqual(self.client.get("/catalog/products/").status_code, 200)

    def test_variant_with_foreign_source_returns_typed_error(self):
        self.client.force_authenticate(self.cashier)
        product_id = self._create_product().data["id"]
        category = Category.objects.create(name="Plumbing")
        foreign = ProductVariant.objects.create(
            product=Product.objects.create(name="Pipe", category=category), unit="pcs", price="5.00"
        )

        resp = self.client.post(
            f"/catalog/products/{product_id}/variants/",
            {"unit": "m", "price": "20.00", "conversion_source_id": str(foreign.id)},
            format="json",
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data["code"], "invalid_conversion")

    def test_missing_variant_is_not_found(self):
        self.client.force_authenticate(self.cashier)
        resp = self.client.post(
            "/catalog/variants/00000000-0000-0000-0000-000000000000/restock/",
            {"quantity": 3},
            format="json",
        )
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.data["code"], "not_found")

    def test_restock_and_delete_variant(self):
        self.client.force_authenticate(self.cashier)
        variant_id = self._create_product().data["variants"][0]["id"]

        resp = self.client.post(f"/catalog/variants/{variant_id}/restock/", {"quantity": 5}, format="json")
        self.assertEqual(resp.status_code, 200, resp.data)
        self.assertEqual(resp.data["quantity"], 10)

        resp = self.client.delete(f"/catalog/variants/{variant_id}/", {"notes": "discontinued"}, format="json")
        self.assertEqual(resp.status_code, 200, resp.data)
        self.assertIsNotNone(resp.data["loss_id"])
        self.assertEqual(InventoryLoss.objects.get().notes, "discontinued")
