from django.db import migrations, models
import catalog.models
import django.core.validators
import django.db.models.deletion
import uuid


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Category",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255, unique=True)),
                ("description", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={"db_table": "categories", "verbose_name_plural": "Categories"},
        ),
        migrations.CreateModel(
            name="Product",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True)),
                ("image", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("category", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="products", to="catalog.category")),
            ],
            options={"db_table": "products"},
        ),
        migrations.CreateModel(
            name="ProductVariant",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("unit", models.CharField(choices=[("pcs", "Pcs"), ("kg", "Kg"), ("g", "G"), ("lb", "Lb"), ("m", "M"), ("cm", "Cm"), ("ft", "Ft"), ("set", "Set"), ("W", "Watt"), ("V", "Volt"), ("amphere", "Amphere"), ("gang", "Gang"), ("box", "Box"), ("pack", "Pack"), ("roll", "Roll"), ("Wey", "Wey")], max_length=20)),
                ("size", models.CharField(blank=True, default="", max_length=100)),
                ("color", models.CharField(blank=True, default="", max_length=100)),
                ("dimension", models.CharField(blank=True, default="", max_length=100)),
                ("dimension_type", models.CharField(blank=True, choices=[("diameter", "Diameter"), ("thickness", "Thickness"), ("length", "Length"), ("width", "Width"), ("height", "Height")], default="", max_length=20)),
                ("include_per_text", models.BooleanField(default=False)),
                ("price", models.DecimalField(decimal_places=2, max_digits=12, validators=[django.core.validators.MinValueValidator(0)])),
                ("supplier_price", models.DecimalField(decimal_places=2, default=0, max_digits=12, validators=[django.core.validators.MinValueValidator(0)])),
                ("quantity", models.PositiveIntegerField(default=0)),
                ("low_stock_threshold", models.PositiveIntegerField(default=catalog.models._default_low_stock_threshold)),
                ("conversion_quantity", models.PositiveIntegerField(default=1, validators=[django.core.validators.MinValueValidator(1)])),
                ("auto_convert", models.BooleanField(default=False)),
                ("conversion_notes", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("conversion_source", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="converted_variants", to="catalog.productvariant")),
                ("product", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="variants", to="catalog.product")),
            ],
            options={"db_table": "variants"},
        ),
        migrations.AddIndex(
            model_name="productvariant",
            index=models.Index(fields=["product", "size", "unit", "color"], name="variant_shape_idx"),
        ),
    ]
