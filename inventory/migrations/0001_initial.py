from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone
import uuid


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("catalog", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="SupplyBatch",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("product_name", models.CharField(blank=True, max_length=255)),
                ("variant_size", models.CharField(blank=True, max_length=100)),
                ("variant_unit", models.CharField(blank=True, max_length=20)),
                ("variant_color", models.CharField(blank=True, max_length=100)),
                ("quantity", models.PositiveIntegerField()),
                ("supplier_price", models.DecimalField(decimal_places=2, max_digits=12)),
                ("total_cost", models.DecimalField(decimal_places=2, max_digits=14)),
                ("supplied_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("pulled_out_quantity", models.PositiveIntegerField(default=0)),
                ("notes", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("variant", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="supply_batches", to="catalog.productvariant")),
            ],
            options={"db_table": "supply_batches", "ordering": ["-supplied_at"]},
        ),
        migrations.CreateModel(
            name="InventoryLoss",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("variant_id", models.UUIDField(db_index=True)),
                ("product_name", models.CharField(blank=True, max_length=255)),
                ("size", models.CharField(blank=True, max_length=100)),
                ("unit", models.CharField(blank=True, max_length=20)),
                ("color", models.CharField(blank=True, max_length=100)),
                ("quantity", models.PositiveIntegerField()),
                ("amount", models.DecimalField(decimal_places=2, max_digits=14)),
                ("reason", models.CharField(choices=[("manual_adjustment", "Manual Adjustment")], default="manual_adjustment", max_length=30)),
                ("notes", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={"db_table": "inventory_loss", "ordering": ["-created_at"]},
        ),
        migrations.AddIndex(
            model_name="supplybatch",
            index=models.Index(fields=["variant", "supplied_at"], name="supply_variant_date_idx"),
        ),
    ]
