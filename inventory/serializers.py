from rest_framework import serializers

from core.models import Branch
from inventory.exceptions import NotFound
from inventory.models import MAX_QUANTITY, InventoryTransaction, Product, ProductVariation, StockAlert, StockLevel


def _resolve(model, pk, label):
    obj = model.objects.filter(pk=pk).first()
    if obj is None:
        raise NotFound(f"{label} {pk} not found.")
    return obj


class StockLevelSerializer(serializers.ModelSerializer):
    branch_name = serializers.CharField(source="branch.name", read_only=True)
    branch_code = serializers.CharField(source="branch.code", read_only=True)
    is_warehouse = serializers.BooleanField(source="branch.is_warehouse", read_only=True)
    product_name = serializers.CharField(source="product.name", read_only=True)
    product_sku = serializers.CharField(source="product.sku", read_only=True)
    product_price = serializers.DecimalField(source="product.price", max_digits=12, decimal_places=2, read_only=True)
    stock_status = serializers.CharField(read_only=True)

    class Meta:
        model = StockLevel
        fields = [
            "id",
            "branch",
            "branch_name",
            "branch_code",
            "is_warehouse",
            "product",
            "product_name",
            "product_sku",
            "product_price",
            "variation",
            "quantity",
            "min_stock_level",
            "max_stock_level",
            "last_restocked",
            "stock_status",
        ]
        read_only_fields = fields


class InventoryTransactionSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source="product.name", read_only=True)
    product_sku = serializers.CharField(source="product.sku", read_only=True)
    branch_name = serializers.CharField(source="branch.name", read_only=True, default=None)
    branch_code = serializers.CharField(source="branch.code", read_only=True, default=None)
    source_branch_name = serializers.CharField(source="source_branch.name", read_only=True, default=None)
    source_branch_code = serializers.CharField(source="source_branch.code", read_only=True, default=None)
    destination_branch_name = serializers.CharField(source="destination_branch.name", read_only=True, default=None)
    destination_branch_code = serializers.CharField(source="destination_branch.code", read_only=True, default=None)
    performed_by_username = serializers.CharField(source="performed_by.username", read_only=True, default=None)

    class Meta:
        model = InventoryTransaction
        fields = [
            "id",
            "transaction_code",
            "transaction_type",
            "transfer_mode",
            "product",
            "product_name",
            "product_sku",
            "variation",
            "quantity",
            "branch",
            "branch_name",
            "branch_code",
            "source_branch",
            "source_branch_name",
            "source_branch_code",
            "destination_branch",
            "destination_branch_name",
            "destination_branch_code",
            "reference_type",
            "reference_number",
            "unit_cost",
            "total_cost",
            "supplier",
            "reason",
            "remarks",
            "previous_quantity",
            "new_quantity",
            "status",
            "performed_by",
            "performed_by_username",
            "created_at",
            "completed_at",
            "cancelled_at",
        ]
        read_only_fields = fields


class StockAlertSerializer(serializers.ModelSerializer):
    branch_name = serializers.CharField(source="branch.name", read_only=True)
    branch_code = serializers.CharField(source="branch.code", read_only=True)
    product_name = serializers.CharField(source="product.name", read_only=True)
    product_sku = serializers.CharField(source="product.sku", read_only=True)

    class Meta:
        model = StockAlert
        fields = [
            "id",
            "branch",
            "branch_name",
            "branch_code",
            "product",
            "product_name",
            "product_sku",
            "variation",
            "alert_type",
            "current_quantity",
            "threshold_quantity",
            "is_resolved",
            "resolved_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class InventoryOverviewSerializer(serializers.ModelSerializer):
    total_stock = serializers.IntegerField(source="stock_quantity", read_only=True)
    branches_with_stock = serializers.IntegerField(read_only=True)

    class Meta:
        model = Product
        fields = ["id", "sku", "name", "price", "total_stock", "stock_status", "branches_with_stock"]
        read_only_fields = fields


class StockTargetSerializer(serializers.Serializer):
    """Resolves branch/product/variation ids into model instances."""

    branch_id = serializers.UUIDField()
    product_id = serializers.UUIDField()
    variation_id = serializers.UUIDField(required=False, allow_null=True)

    def validate(self, attrs):
        attrs["branch"] = _resolve(Branch, attrs.pop("branch_id"), "Branch")
        attrs["product"] = _resolve(Product, attrs.pop("product_id"), "Product")
        variation_id = attrs.pop("variation_id", None)
        attrs["variation"] = _resolve(ProductVariation, variation_id, "Variation") if variation_id else None
        return attrs


class StockInSerializer(StockTargetSerializer):
    quantity = serializers.IntegerField(min_value=1, max_value=MAX_QUANTITY)
    reference_type = serializers.CharField(max_length=64, required=False, allow_blank=True)
    reference_number = serializers.CharField(max_length=128, required=False, allow_blank=True, allow_null=True)
    unit_cost = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False, allow_null=True)
    supplier = serializers.CharField(max_length=255, required=False, allow_blank=True, allow_null=True)
    remarks = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, allow_null=True)


class StockOutSerializer(StockTargetSerializer):
    quantity = serializers.IntegerField(min_value=1, max_value=MAX_QUANTITY)
    reason = serializers.CharField(max_length=255)
    reference_type = serializers.CharField(max_length=64, required=False, allow_blank=True)
    reference_number = serializers.CharField(max_length=128, required=False, allow_blank=True, allow_null=True)
    remarks = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class AdjustmentSerializer(StockTargetSerializer):
    new_quantity = serializers.IntegerField(min_value=0, max_value=MAX_QUANTITY)
    reason = serializers.CharField(max_length=255)
    remarks = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    expected_quantity = serializers.IntegerField(min_value=0, max_value=MAX_QUANTITY, required=False, allow_null=True)


class TransferSerializer(serializers.Serializer):
    source_branch_id = serializers.UUIDField()
    destination_branch_id = serializers.UUIDField()
    product_id = serializers.UUIDField()
    variation_id = serializers.UUIDField(required=False, allow_null=True)
    quantity = serializers.IntegerField(min_value=1, max_value=MAX_QUANTITY)
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, allow_null=True)
    remarks = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    reference_number = serializers.CharField(max_length=128, required=False, allow_blank=True, allow_null=True)
    immediate = serializers.BooleanField(default=False)

    def validate(self, attrs):
        if attrs["source_branch_id"] == attrs["destination_branch_id"]:
            raise serializers.ValidationError({"destination_branch_id": "Source and destination branches must be different."})

        attrs["source_branch"] = _resolve(Branch, attrs.pop("source_branch_id"), "Source branch")
        attrs["destination_branch"] = _resolve(Branch, attrs.pop("destination_branch_id"), "Destination branch")
        attrs["product"] = _resolve(Product, attrs.pop("product_id"), "Product")
        variation_id = attrs.pop("variation_id", None)
        attrs["variation"] = _resolve(ProductVariation, variation_id, "Variation") if variation_id else None
        return attrs


class CompleteTransferSerializer(serializers.Serializer):
    transaction_code = serializers.CharField(max_length=32)
    received_remarks = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class CancelTransferSerializer(serializers.Serializer):
    transaction_code = serializers.CharField(max_length=32)
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, allow_null=True)
