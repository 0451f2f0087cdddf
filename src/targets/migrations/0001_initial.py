import uuid
from decimal import Decimal

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models

STAGE_CHOICES = [
    ("MARKET_RESEARCH", "Market research"),
    ("SOURCING_REQUEST", "Sourcing request"),
    ("SOURCING_COMPLETED", "Sourcing completed"),
    ("QUOTE_SENT", "Quote sent"),
    ("SAMPLE_SHIPPED", "Sample shipped"),
    ("QUALIFICATION", "Qualification"),
    ("DMF_RA_REVIEW", "DMF / RA review"),
    ("PRICE_AGREED", "Price agreed"),
    ("TRIAL_PO", "Trial PO"),
    ("REGISTRATION", "Registration"),
    ("COMMERCIAL_PO", "Commercial PO"),
    ("WON", "Won"),
    ("LOST", "Lost"),
    ("ON_HOLD", "On hold"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Target",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("year", models.PositiveSmallIntegerField(blank=True, null=True)),
                ("account_name", models.CharField(max_length=255)),
                ("product_name", models.CharField(max_length=255)),
                ("product_key", models.CharField(db_index=True, editable=False, max_length=255)),
                ("quantity_kg", models.DecimalField(decimal_places=3, max_digits=14)),
                ("owner_name", models.CharField(max_length=120)),
                ("prior_year_sales", models.DecimalField(blank=True, decimal_places=2, max_digits=20, null=True)),
                (
                    "segment",
                    models.CharField(
                        blank=True,
                        choices=[("S", "S"), ("P", "P"), ("일반", "General")],
                        default="",
                        max_length=10,
                    ),
                ),
                ("current_currency", models.CharField(blank=True, max_length=3, null=True)),
                ("current_unit_price_foreign", models.DecimalField(blank=True, decimal_places=4, max_digits=18, null=True)),
                ("current_fx_rate", models.DecimalField(blank=True, decimal_places=4, max_digits=14, null=True)),
                ("current_tariff_rate", models.DecimalField(blank=True, decimal_places=3, max_digits=7, null=True)),
                ("current_additional_cost_rate", models.DecimalField(blank=True, decimal_places=3, max_digits=7, null=True)),
                ("current_unit_price_local", models.DecimalField(blank=True, decimal_places=4, max_digits=20, null=True)),
                ("current_total_local", models.DecimalField(blank=True, decimal_places=2, max_digits=22, null=True)),
                ("estimate_currency", models.CharField(max_length=3)),
                ("estimate_unit_price_foreign", models.DecimalField(decimal_places=4, max_digits=18)),
                ("estimate_fx_rate", models.DecimalField(blank=True, decimal_places=4, max_digits=14, null=True)),
                ("estimate_tariff_rate", models.DecimalField(decimal_places=3, default=Decimal("0"), max_digits=7)),
                ("estimate_additional_cost_rate", models.DecimalField(decimal_places=3, default=Decimal("0"), max_digits=7)),
                ("estimate_unit_price_local", models.DecimalField(decimal_places=4, default=Decimal("0"), max_digits=20)),
                ("estimate_revenue_local", models.DecimalField(decimal_places=2, default=Decimal("0"), max_digits=22)),
                ("saving_per_unit", models.DecimalField(blank=True, decimal_places=4, max_digits=20, null=True)),
                ("total_saving", models.DecimalField(blank=True, decimal_places=2, max_digits=22, null=True)),
                ("saving_rate", models.DecimalField(blank=True, decimal_places=6, max_digits=12, null=True)),
                (
                    "current_stage",
                    models.CharField(choices=STAGE_CHOICES, db_index=True, default="MARKET_RESEARCH", max_length=30),
                ),
                ("stage_progress_rate", models.PositiveSmallIntegerField(default=0)),
                ("stage_updated_at", models.DateTimeField(blank=True, null=True)),
                ("note", models.TextField(blank=True, default="")),
                ("created_by", models.CharField(blank=True, default="", max_length=120)),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["product_key", "current_stage"], name="targets_tar_product_5c1e0a_idx"),
                    models.Index(fields=["owner_name", "current_stage"], name="targets_tar_owner_n_8b3f21_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("account_name", "product_name"),
                        name="uniq_target_account_product",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="StageHistory",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("from_stage", models.CharField(blank=True, choices=STAGE_CHOICES, default="", max_length=30)),
                ("stage", models.CharField(choices=STAGE_CHOICES, max_length=30)),
                ("changed_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("actor_name", models.CharField(max_length=120)),
                ("comment", models.TextField(blank=True, null=True)),
                (
                    "target",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="stage_history",
                        to="targets.target",
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "stage history",
                "ordering": ["-changed_at", "-created_at"],
                "indexes": [
                    models.Index(fields=["target", "changed_at"], name="targets_sta_target__4d2a77_idx"),
                ],
            },
        ),
    ]
