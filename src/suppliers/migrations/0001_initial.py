import uuid
from decimal import Decimal

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Supplier",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("product_name", models.CharField(max_length=255)),
                ("product_key", models.CharField(db_index=True, editable=False, max_length=255)),
                ("supplier_name", models.CharField(max_length=255)),
                ("created_by_name", models.CharField(max_length=120)),
                ("currency", models.CharField(max_length=3)),
                ("unit_price_foreign", models.DecimalField(decimal_places=4, max_digits=18)),
                ("fx_rate", models.DecimalField(decimal_places=4, max_digits=14)),
                ("tariff_rate", models.DecimalField(decimal_places=3, default=Decimal("0"), max_digits=7)),
                ("additional_cost_rate", models.DecimalField(decimal_places=3, default=Decimal("0"), max_digits=7)),
                ("unit_price_local", models.DecimalField(decimal_places=4, default=Decimal("0"), max_digits=20)),
                ("dmf_registered", models.BooleanField(default=False)),
                (
                    "linkage_status",
                    models.CharField(
                        choices=[
                            ("PREPARING", "Preparing"),
                            ("IN_PROGRESS", "In progress"),
                            ("COMPLETED", "Completed"),
                        ],
                        default="PREPARING",
                        max_length=20,
                    ),
                ),
                ("note", models.TextField(blank=True, default="")),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["product_key", "supplier_name"], name="suppliers_s_product_a41c9e_idx"),
                ],
            },
        ),
    ]
