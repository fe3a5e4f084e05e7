import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models

from core.models import Branch

# Largest value the integer quantity columns hold on PostgreSQL.
MAX_QUANTITY = 2147483647
# total_cost is DecimalField(max_digits=14, decimal_places=2).
MAX_TOTAL_COST = Decimal("999999999999.99")


def default_min_stock_level():
    return getattr(settings, "INVENTORY_DEFAULT_MIN_STOCK_LEVEL", 5)


def default_max_stock_level():
    return getattr(settings, "INVENTORY_DEFAULT_MAX_STOCK_LEVEL", 1000)


class StockStatus(models.TextChoices):
    IN_STOCK = "in_stock", "In stock"
    LOW_STOCK = "low_stock", "Low stock"
    OUT_OF_STOCK = "out_of_stock", "Out of stock"
    OVERSTOCK = "overstock", "Overstock"


def derive_stock_status(quantity, min_stock_level, max_stock_level):
    if quantity <= 0:
        return StockStatus.OUT_OF_STOCK
    if quantity <= min_stock_level:
        return StockStatus.LOW_STOCK
    if quantity > max_stock_level:
        return StockStatus.OVERSTOCK
    return StockStatus.IN_STOCK


class Product(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    sku = models.CharField(max_length=64, unique=True)
    name = models.CharField(max_length=255)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    stock_quantity = models.PositiveIntegerField(default=0)
    stock_status = models.CharField(max_length=32, choices=StockStatus.choices, default=StockStatus.OUT_OF_STOCK)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        indexes = [
            models.Index(fields=["is_active", "name"], name="product_active_name_idx"),
        ]

    def __str__(self):
        return f"{self.sku} - {self.name}"


class ProductVariation(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="variations")
    sku = models.CharField(max_length=64)
    name = models.CharField(max_length=255)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ("product", "sku")

    def __str__(self):
        return f"{self.product.sku}/{self.sku}"


class StockLevel(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    branch = models.ForeignKey(Branch, on_delete=models.PROTECT, related_name="stock_levels")
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="stock_levels")
    variation = models.ForeignKey(ProductVariation, on_delete=models.PROTECT, null=True, blank=True, related_name="stock_levels")
    quantity = models.PositiveIntegerField(default=0)
    min_stock_level = models.PositiveIntegerField(default=default_min_stock_level)
    max_stock_level = models.PositiveIntegerField(default=default_max_stock_level)
    last_restocked = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["branch", "product"], name="stocklevel_branch_product_idx"),
            models.Index(fields=["product", "variation"], name="stocklevel_product_var_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["branch", "product"],
                condition=models.Q(variation__isnull=True),
                name="uniq_stock_level_branch_product",
            ),
            models.UniqueConstraint(
                fields=["branch", "product", "variation"],
                condition=models.Q(variation__isnull=False),
                name="uniq_stock_level_branch_product_variation",
            ),
            models.CheckConstraint(condition=models.Q(quantity__gte=0), name="stock_level_quantity_non_negative"),
        ]

    @property
    def stock_status(self):
        return derive_stock_status(self.quantity, self.min_stock_level, self.max_stock_level)


class InventoryTransaction(models.Model):
    class Type(models.TextChoices):
        STOCK_IN = "stock_in", "Stock in"
        STOCK_OUT = "stock_out", "Stock out"
        TRANSFER = "transfer", "Transfer"
        ADJUSTMENT = "adjustment", "Adjustment"

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        IN_TRANSIT = "in_transit", "In transit"
        COMPLETED = "completed", "Completed"
        CANCELLED = "cancelled", "Cancelled"

    class TransferMode(models.TextChoices):
        IMMEDIATE = "immediate", "Immediate"
        DEFERRED = "deferred", "Deferred"

    CODE_PREFIXES = {
        Type.STOCK_IN: "SI",
        Type.STOCK_OUT: "SO",
        Type.TRANSFER: "TR",
        Type.ADJUSTMENT: "ADJ",
    }

    # Legal status transitions per transfer mode. Immediate transfers are
    # created completed; deferred ones are created in transit.
    TRANSFER_TRANSITIONS = {
        TransferMode.IMMEDIATE: {},
        TransferMode.DEFERRED: {
            Status.PENDING: {Status.IN_TRANSIT, Status.CANCELLED},
            Status.IN_TRANSIT: {Status.COMPLETED, Status.CANCELLED},
        },
    }

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    transaction_code = models.CharField(max_length=32, unique=True)
    transaction_type = models.CharField(max_length=16, choices=Type.choices)
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="transactions")
    variation = models.ForeignKey(ProductVariation, on_delete=models.PROTECT, null=True, blank=True, related_name="transactions")
    quantity = models.PositiveIntegerField()
    branch = models.ForeignKey(Branch, on_delete=models.PROTECT, null=True, blank=True, related_name="transactions")
    source_branch = models.ForeignKey(Branch, on_delete=models.PROTECT, null=True, blank=True, related_name="outgoing_transactions")
    destination_branch = models.ForeignKey(Branch, on_delete=models.PROTECT, null=True, blank=True, related_name="incoming_transactions")
    transfer_mode = models.CharField(max_length=16, choices=TransferMode.choices, null=True, blank=True)
    reference_type = models.CharField(max_length=64, blank=True, default="")
    reference_number = models.CharField(max_length=128, null=True, blank=True)
    unit_cost = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    total_cost = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    supplier = models.CharField(max_length=255, null=True, blank=True)
    reason = models.CharField(max_length=255, blank=True, default="")
    remarks = models.TextField(blank=True, default="")
    previous_quantity = models.PositiveIntegerField(null=True, blank=True)
    new_quantity = models.PositiveIntegerField(null=True, blank=True)
    status = models.CharField(max_length=16, choices=Status.choices)
    performed_by = models.ForeignKey(
        "core.User",
        on_delete=models.PROTECT,
        related_name="inventory_transactions",
        null=True,
        blank=True,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["transaction_type", "status"], name="invtx_type_status_idx"),
            models.Index(fields=["branch", "created_at"], name="invtx_branch_created_idx"),
            models.Index(fields=["source_branch", "created_at"], name="invtx_source_created_idx"),
            models.Index(fields=["destination_branch", "created_at"], name="invtx_dest_created_idx"),
            models.Index(fields=["product", "variation", "status"], name="invtx_product_var_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(condition=models.Q(quantity__gt=0), name="inventory_transaction_quantity_positive"),
        ]

    def __str__(self):
        return self.transaction_code

    @property
    def is_terminal(self):
        return self.status in (self.Status.COMPLETED, self.Status.CANCELLED)

    def can_transition_to(self, new_status):
        if self.transaction_type != self.Type.TRANSFER:
            return False
        transitions = self.TRANSFER_TRANSITIONS.get(self.transfer_mode, {})
        return new_status in transitions.get(self.status, set())


class TransactionCodeSequence(models.Model):
    key = models.CharField(max_length=32, primary_key=True)
    last_value = models.PositiveIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)


class StockAlert(models.Model):
    class AlertType(models.TextChoices):
        OUT_OF_STOCK = "out_of_stock", "Out of stock"
        LOW_STOCK = "low_stock", "Low stock"
        OVERSTOCK = "overstock", "Overstock"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    stock_level = models.ForeignKey(StockLevel, on_delete=models.CASCADE, related_name="alerts")
    branch = models.ForeignKey(Branch, on_delete=models.PROTECT, related_name="stock_alerts")
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="stock_alerts")
    variation = models.ForeignKey(ProductVariation, on_delete=models.PROTECT, null=True, blank=True, related_name="stock_alerts")
    alert_type = models.CharField(max_length=16, choices=AlertType.choices)
    current_quantity = models.PositiveIntegerField()
    threshold_quantity = models.PositiveIntegerField()
    is_resolved = models.BooleanField(default=False)
    resolved_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["is_resolved", "created_at"], name="alert_resolved_created_idx"),
            models.Index(fields=["branch", "is_resolved"], name="alert_branch_resolved_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["stock_level"],
                name="uniq_open_alert_per_stock_level",
                condition=models.Q(is_resolved=False),
            ),
        ]
