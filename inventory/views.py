import uuid

from django.conf import settings
from django.db.models import Q
from rest_framework import status, viewsets
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from common.audit import audit_request
from common.permissions import RoleCapabilityPermission, ensure_branch_access
from inventory.alerts import open_alerts
from inventory.dashboard import dashboard_stats, inventory_overview, stock_totals
from inventory.exceptions import NotFound
from inventory.models import InventoryTransaction, StockLevel
from inventory.serializers import (
    AdjustmentSerializer,
    CancelTransferSerializer,
    CompleteTransferSerializer,
    InventoryOverviewSerializer,
    InventoryTransactionSerializer,
    StockAlertSerializer,
    StockInSerializer,
    StockLevelSerializer,
    StockOutSerializer,
    TransferSerializer,
)
from inventory.services import adjust_stock, cancel_transfer, complete_transfer, initiate_transfer, stock_in, stock_out


def _parse_uuid_param(value, name):
    if value in (None, ""):
        return None
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise ValidationError({name: "Must be a valid UUID."})


class InventoryCommandView(APIView):
    """Shared plumbing for the mutating stock commands."""

    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    serializer_class = None

    def get_validated_data(self, request):
        serializer = self.serializer_class(data=request.data)
        serializer.is_valid(raise_exception=True)
        return serializer.validated_data

    def audit(self, *, action, record, branch, before_snapshot=None):
        audit_request(
            self.request,
            action,
            record,
            branch=branch,
            before=before_snapshot,
            after=InventoryTransactionSerializer(record).data,
        )


class StockInView(InventoryCommandView):
    permission_action_map = {"post": "stock.receive"}
    serializer_class = StockInSerializer

    def post(self, request):
        data = self.get_validated_data(request)
        ensure_branch_access(request, data["branch"])

        record = stock_in(
            branch=data["branch"],
            product=data["product"],
            variation=data["variation"],
            quantity=data["quantity"],
            unit_cost=data.get("unit_cost"),
            supplier=data.get("supplier"),
            reference_type=data.get("reference_type"),
            reference_number=data.get("reference_number"),
            reason=data.get("reason"),
            remarks=data.get("remarks"),
            performed_by=request.user,
        )
        self.audit(action="stock.in", record=record, branch=record.branch)
        return Response(
            {
                "success": True,
                "message": "Stock received successfully",
                "transaction_code": record.transaction_code,
                "quantity_added": record.quantity,
            },
            status=status.HTTP_201_CREATED,
        )


class StockOutView(InventoryCommandView):
    permission_action_map = {"post": "stock.issue"}
    serializer_class = StockOutSerializer

    def post(self, request):
        data = self.get_validated_data(request)
        ensure_branch_access(request, data["branch"])

        record = stock_out(
            branch=data["branch"],
            product=data["product"],
            variation=data["variation"],
            quantity=data["quantity"],
            reason=data["reason"],
            reference_type=data.get("reference_type"),
            reference_number=data.get("reference_number"),
            remarks=data.get("remarks"),
            performed_by=request.user,
        )
        self.audit(action="stock.out", record=record, branch=record.branch)
        return Response(
            {
                "success": True,
                "message": "Stock removed successfully",
                "transaction_code": record.transaction_code,
                "quantity_removed": record.quantity,
            },
            status=status.HTTP_201_CREATED,
        )


class AdjustmentView(InventoryCommandView):
    permission_action_map = {"post": "stock.adjust"}
    serializer_class = AdjustmentSerializer

    def post(self, request):
        data = self.get_validated_data(request)
        ensure_branch_access(request, data["branch"])

        result = adjust_stock(
            branch=data["branch"],
            product=data["product"],
            variation=data["variation"],
            new_quantity=data["new_quantity"],
            reason=data["reason"],
            remarks=data.get("remarks"),
            expected_quantity=data.get("expected_quantity"),
            performed_by=request.user,
        )
        payload = {
            "success": True,
            "transaction_code": None,
            "previous_quantity": result.previous_quantity,
            "new_quantity": result.new_quantity,
            "difference": result.difference,
        }
        if result.transaction is None:
            payload["message"] = "No adjustment needed"
            return Response(payload)

        self.audit(
            action="stock.adjustment",
            record=result.transaction,
            branch=data["branch"],
            before_snapshot={"quantity": result.previous_quantity},
        )
        payload["message"] = "Stock adjusted successfully"
        payload["transaction_code"] = result.transaction.transaction_code
        return Response(payload, status=status.HTTP_201_CREATED)


class TransferView(InventoryCommandView):
    permission_action_map = {"post": "stock.transfer"}
    serializer_class = TransferSerializer

    def post(self, request):
        data = self.get_validated_data(request)
        ensure_branch_access(request, data["source_branch"])

        record = initiate_transfer(
            source_branch=data["source_branch"],
            destination_branch=data["destination_branch"],
            product=data["product"],
            variation=data["variation"],
            quantity=data["quantity"],
            reason=data.get("reason"),
            remarks=data.get("remarks"),
            reference_number=data.get("reference_number"),
            immediate=data["immediate"],
            performed_by=request.user,
        )
        self.audit(action="transfer.create", record=record, branch=record.source_branch)
        completed = record.status == InventoryTransaction.Status.COMPLETED
        return Response(
            {
                "success": True,
                "message": "Stock transferred successfully" if completed else "Transfer initiated - awaiting confirmation",
                "transaction_code": record.transaction_code,
                "status": record.status,
                "quantity_transferred": record.quantity,
            },
            status=status.HTTP_201_CREATED,
        )


class TransferTransitionView(InventoryCommandView):
    """Base for commands that move an existing transfer to a new state."""

    def get_transfer(self, transaction_code):
        record = (
            InventoryTransaction.objects.select_related("source_branch", "destination_branch")
            .filter(transaction_code=transaction_code, transaction_type=InventoryTransaction.Type.TRANSFER)
            .first()
        )
        if record is None:
            raise NotFound(f"Transfer {transaction_code} not found.")
        return record


class CompleteTransferView(TransferTransitionView):
    permission_action_map = {"put": "stock.transfer.complete"}
    serializer_class = CompleteTransferSerializer

    def put(self, request):
        data = self.get_validated_data(request)
        transfer = self.get_transfer(data["transaction_code"])
        ensure_branch_access(request, transfer.destination_branch)
        before_snapshot = {"status": transfer.status}

        record = complete_transfer(
            transaction_code=transfer.transaction_code,
            received_remarks=data.get("received_remarks"),
            performed_by=request.user,
        )
        self.audit(action="transfer.complete", record=record, branch=transfer.destination_branch, before_snapshot=before_snapshot)
        return Response({"success": True, "message": "Transfer completed successfully", "status": record.status})


class CancelTransferView(TransferTransitionView):
    permission_action_map = {"put": "stock.transfer.cancel"}
    serializer_class = CancelTransferSerializer

    def put(self, request):
        data = self.get_validated_data(request)
        transfer = self.get_transfer(data["transaction_code"])
        ensure_branch_access(request, transfer.source_branch)
        before_snapshot = {"status": transfer.status}

        record = cancel_transfer(
            transaction_code=transfer.transaction_code,
            reason=data.get("reason"),
            performed_by=request.user,
        )
        self.audit(action="transfer.cancel", record=record, branch=transfer.source_branch, before_snapshot=before_snapshot)
        return Response({"success": True, "message": "Transfer cancelled", "status": record.status})


class StockLevelViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = StockLevel.objects.select_related("branch", "product", "variation")
    serializer_class = StockLevelSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"list": "inventory.view", "retrieve": "inventory.view"}
    pagination_class = None

    def get_queryset(self):
        qs = super().get_queryset().filter(branch__is_active=True)
        branch_id = _parse_uuid_param(self.request.query_params.get("branch_id"), "branch_id")
        product_id = _parse_uuid_param(self.request.query_params.get("product_id"), "product_id")
        if branch_id:
            qs = qs.filter(branch_id=branch_id)
        if product_id:
            qs = qs.filter(product_id=product_id)
        return qs.order_by("branch__name", "product__name")


class InventoryTransactionViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = InventoryTransaction.objects.select_related(
        "product", "branch", "source_branch", "destination_branch", "performed_by"
    )
    serializer_class = InventoryTransactionSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"list": "inventory.view", "retrieve": "inventory.view"}
    pagination_class = None
    lookup_field = "transaction_code"

    def _limit(self):
        default = getattr(settings, "INVENTORY_TRANSACTION_LIST_LIMIT", 50)
        maximum = getattr(settings, "INVENTORY_TRANSACTION_LIST_MAX", 500)
        raw = self.request.query_params.get("limit")
        if raw in (None, ""):
            return default
        try:
            limit = int(raw)
        except (TypeError, ValueError):
            raise ValidationError({"limit": "Must be an integer."})
        if limit < 1:
            raise ValidationError({"limit": "Must be >= 1."})
        return min(limit, maximum)

    def get_queryset(self):
        qs = super().get_queryset().order_by("-created_at")
        if self.action != "list":
            return qs

        transaction_type = self.request.query_params.get("type")
        if transaction_type:
            if transaction_type not in InventoryTransaction.Type.values:
                raise ValidationError({"type": f"Must be one of: {', '.join(InventoryTransaction.Type.values)}."})
            qs = qs.filter(transaction_type=transaction_type)

        branch_id = _parse_uuid_param(self.request.query_params.get("branch_id"), "branch_id")
        if branch_id:
            qs = qs.filter(Q(branch_id=branch_id) | Q(source_branch_id=branch_id) | Q(destination_branch_id=branch_id))

        return qs[: self._limit()]


class StockAlertListView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"get": "inventory.view"}

    def get(self, request):
        branch_id = _parse_uuid_param(request.query_params.get("branch_id"), "branch_id")
        return Response(StockAlertSerializer(open_alerts(branch_id), many=True).data)


class DashboardStatsView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"get": "inventory.view"}

    def get(self, request):
        return Response(dashboard_stats())


class InventoryOverviewView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"get": "inventory.view"}

    def get(self, request):
        return Response(InventoryOverviewSerializer(inventory_overview(), many=True).data)


class StockTotalsView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"get": "inventory.view"}

    def get(self, request):
        product_id = _parse_uuid_param(request.query_params.get("product_id"), "product_id")
        if product_id is None:
            raise ValidationError({"product_id": "This query parameter is required."})
        variation_id = _parse_uuid_param(request.query_params.get("variation_id"), "variation_id")
        return Response({"product_id": str(product_id), "variation_id": str(variation_id) if variation_id else None, **stock_totals(product_id, variation_id)})
