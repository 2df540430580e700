from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone
import uuid


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("catalog", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Reservation",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("reservation_date", models.DateTimeField(default=django.utils.timezone.now)),
                ("status", models.CharField(choices=[("pending", "Pending"), ("confirmed", "Confirmed"), ("completed", "Completed"), ("cancelled", "Cancelled"), ("failed", "Failed")], default="pending", max_length=20)),
                ("total_price", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("notes", models.TextField(blank=True)),
                ("remarks", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="reservations", to=settings.AUTH_USER_MODEL)),
            ],
            options={"db_table": "reservations", "ordering": ["-reservation_date"]},
        ),
        migrations.CreateModel(
            name="ReservationDetail",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("product_name", models.CharField(blank=True, max_length=255)),
                ("size", models.CharField(blank=True, max_length=100)),
                ("unit", models.CharField(blank=True, max_length=20)),
                ("color", models.CharField(blank=True, max_length=100)),
                ("quantity", models.PositiveIntegerField()),
                ("price", models.DecimalField(decimal_places=2, max_digits=12)),
                ("subtotal", models.DecimalField(decimal_places=2, max_digits=12)),
                ("reservation", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="details", to="reservation.reservation")),
                ("variant", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="reservation_details", to="catalog.productvariant")),
            ],
            options={"db_table": "reservation_details"},
        ),
        migrations.CreateModel(
            name="ReservationUpdate",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("update_type", models.CharField(choices=[("created", "Created"), ("status_changed", "Status Changed"), ("cancelled", "Cancelled"), ("completed", "Completed")], max_length=30)),
                ("updated_by_name", models.CharField(blank=True, default="System", max_length=120)),
                ("updated_by_email", models.CharField(blank=True, max_length=254)),
                ("old_value", models.CharField(blank=True, max_length=50)),
                ("new_value", models.CharField(blank=True, max_length=50)),
                ("description", models.TextField()),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("reservation", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="updates", to="reservation.reservation")),
                ("updated_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="reservation_updates", to=settings.AUTH_USER_MODEL)),
            ],
            options={"db_table": "reservation_updates", "ordering": ["-created_at"]},
        ),
        migrations.AddIndex(
            model_name="reservation",
            index=models.Index(fields=["status", "reservation_date"], name="reservation_status_date_idx"),
        ),
        migrations.AddIndex(
            model_name="reservationupdate",
            index=models.Index(fields=["reservation", "created_at"], name="reservation_update_idx"),
        ),
    ]
