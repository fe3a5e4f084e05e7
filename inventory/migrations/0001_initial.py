import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

import inventory.models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("core", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Product",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("sku", models.CharField(max_length=64, unique=True)),
                ("name", models.CharField(max_length=255)),
                ("price", models.DecimalField(decimal_places=2, max_digits=12)),
                ("stock_quantity", models.PositiveIntegerField(default=0)),
                (
                    "stock_status",
                    models.CharField(
                        choices=[
                            ("in_stock", "In stock"),
                            ("low_stock", "Low stock"),
                            ("out_of_stock", "Out of stock"),
                            ("overstock", "Overstock"),
                        ],
                        default="out_of_stock",
                        max_length=32,
                    ),
                ),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["name"],
                "indexes": [models.Index(fields=["is_active", "name"], name="product_active_name_idx")],
            },
        ),
        migrations.CreateModel(
            name="ProductVariation",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("sku", models.CharField(max_length=64)),
                ("name", models.CharField(max_length=255)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT, related_name="variations", to="inventory.product"
                    ),
                ),
            ],
            options={
                "unique_together": {("product", "sku")},
            },
        ),
        migrations.CreateModel(
            name="TransactionCodeSequence",
            fields=[
                ("key", models.CharField(max_length=32, primary_key=True, serialize=False)),
                ("last_value", models.PositiveIntegerField(default=0)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
        ),
        migrations.CreateModel(
            name="StockLevel",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("quantity", models.PositiveIntegerField(default=0)),
                ("min_stock_level", models.PositiveIntegerField(default=inventory.models.default_min_stock_level)),
                ("max_stock_level", models.PositiveIntegerField(default=inventory.models.default_max_stock_level)),
                ("last_restocked", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "branch",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT, related_name="stock_levels", to="core.branch"
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT, related_name="stock_levels", to="inventory.product"
                    ),
                ),
                (
                    "variation",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="stock_levels",
                        to="inventory.productvariation",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["branch", "product"], name="stocklevel_branch_product_idx"),
                    models.Index(fields=["product", "variation"], name="stocklevel_product_var_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("variation__isnull", True)),
                        fields=("branch", "product"),
                        name="uniq_stock_level_branch_product",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("variation__isnull", False)),
                        fields=("branch", "product", "variation"),
                        name="uniq_stock_level_branch_product_variation",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("quantity__gte", 0)),
                        name="stock_level_quantity_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="InventoryTransaction",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("transaction_code", models.CharField(max_length=32, unique=True)),
                (
                    "transaction_type",
                    models.CharField(
                        choices=[
                            ("stock_in", "Stock in"),
                            ("stock_out", "Stock out"),
                            ("transfer", "Transfer"),
                            ("adjustment", "Adjustment"),
                        ],
                        max_length=16,
                    ),
                ),
                ("quantity", models.PositiveIntegerField()),
                (
                    "transfer_mode",
                    models.CharField(
                        blank=True,
                        choices=[("immediate", "Immediate"), ("deferred", "Deferred")],
                        max_length=16,
                        null=True,
                    ),
                ),
                ("reference_type", models.CharField(blank=True, default="", max_length=64)),
                ("reference_number", models.CharField(blank=True, max_length=128, null=True)),
                ("unit_cost", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("total_cost", models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True)),
                ("supplier", models.CharField(blank=True, max_length=255, null=True)),
                ("reason", models.CharField(blank=True, default="", max_length=255)),
                ("remarks", models.TextField(blank=True, default="")),
                ("previous_quantity", models.PositiveIntegerField(blank=True, null=True)),
                ("new_quantity", models.PositiveIntegerField(blank=True, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("in_transit", "In transit"),
                            ("completed", "Completed"),
                            ("cancelled", "Cancelled"),
                        ],
                        max_length=16,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                (
                    "branch",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transactions",
                        to="core.branch",
                    ),
                ),
                (
                    "source_branch",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="outgoing_transactions",
                        to="core.branch",
                    ),
                ),
                (
                    "destination_branch",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="incoming_transactions",
                        to="core.branch",
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT, related_name="transactions", to="inventory.product"
                    ),
                ),
                (
                    "variation",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transactions",
                        to="inventory.productvariation",
                    ),
                ),
                (
                    "performed_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="inventory_transactions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["transaction_type", "status"], name="invtx_type_status_idx"),
                    models.Index(fields=["branch", "created_at"], name="invtx_branch_created_idx"),
                    models.Index(fields=["source_branch", "created_at"], name="invtx_source_created_idx"),
                    models.Index(fields=["destination_branch", "created_at"], name="invtx_dest_created_idx"),
                    models.Index(fields=["product", "variation", "status"], name="invtx_product_var_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("quantity__gt", 0)),
                        name="inventory_transaction_quantity_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="StockAlert",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "alert_type",
                    models.CharField(
                        choices=[("out_of_stock", "Out of stock"), ("low_stock", "Low stock"), ("overstock", "Overstock")],
                        max_length=16,
                    ),
                ),
                ("current_quantity", models.PositiveIntegerField()),
                ("threshold_quantity", models.PositiveIntegerField()),
                ("is_resolved", models.BooleanField(default=False)),
                ("resolved_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "stock_level",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="alerts", to="inventory.stocklevel"
                    ),
                ),
                (
                    "branch",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT, related_name="stock_alerts", to="core.branch"
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT, related_name="stock_alerts", to="inventory.product"
                    ),
                ),
                (
                    "variation",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="stock_alerts",
                        to="inventory.productvariation",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["is_resolved", "created_at"], name="alert_resolved_created_idx"),
                    models.Index(fields=["branch", "is_resolved"], name="alert_branch_resolved_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("is_resolved", False)),
                        fields=("stock_level",),
                        name="uniq_open_alert_per_stock_level",
                    ),
                ],
            },
        ),
    ]
