import csv
import logging

from django.db import DatabaseError, connections
from django.http import HttpResponse
from django.utils.dateparse import parse_datetime
from rest_framework import status, viewsets
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework_simplejwt.views import TokenObtainPairView

from common.audit import audit_request
from common.pagination import AuditLogPagination
from common.permissions import RoleCapabilityPermission, user_has_capability
from core.models import AuditLog, Branch
from core.serializers import AuditLogSerializer, BranchSerializer, RoleTokenObtainPairSerializer

logger = logging.getLogger(__name__)


class RoleTokenObtainPairView(TokenObtainPairView):
    serializer_class = RoleTokenObtainPairSerializer
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "auth"


class BranchViewSet(viewsets.ModelViewSet):
    """Branches are deactivated, never deleted: stock and history point at them."""

    queryset = Branch.objects.all()
    serializer_class = BranchSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "inventory.view",
        "retrieve": "inventory.view",
        "create": "branch.manage",
        "update": "branch.manage",
        "partial_update": "branch.manage",
    }
    pagination_class = None
    http_method_names = ["get", "post", "put", "patch", "head", "options"]

    def get_queryset(self):
        queryset = super().get_queryset()
        include_inactive = self.request.query_params.get("include_inactive") in ("1", "true")
        if self.action == "list" and not (include_inactive and user_has_capability(self.request.user, "branch.manage")):
            queryset = queryset.filter(is_active=True)
        return queryset.order_by("-is_warehouse", "name")

    def perform_create(self, serializer):
        instance = serializer.save()
        audit_request(self.request, "branch.create", instance, branch=instance, after=self.get_serializer(instance).data)

    def perform_update(self, serializer):
        before = self.get_serializer(serializer.instance).data
        instance = serializer.save()
        audit_request(
            self.request,
            "branch.update",
            instance,
            branch=instance,
            before=before,
            after=self.get_serializer(instance).data,
        )


class AuditLogViewSet(viewsets.ReadOnlyModelViewSet):
    """Read-only audit trail with query filters and a CSV export of the filtered rows."""

    queryset = AuditLog.objects.select_related("actor", "branch")
    serializer_class = AuditLogSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = dict.fromkeys(("list", "retrieve", "export"), "admin.records.manage")
    pagination_class = AuditLogPagination

    exact_filters = {
        "actor_id": "actor_id",
        "branch_id": "branch_id",
        "action": "action",
        "entity": "entity",
        "entity_id": "entity_id",
    }
    range_filters = {"start_date": "created_at__gte", "end_date": "created_at__lte"}
    export_columns = ("id", "created_at", "actor", "branch", "action", "entity", "entity_id", "request_id")

    def get_queryset(self):
        params = self.request.query_params
        lookups = {}
        for param, lookup in self.exact_filters.items():
            if params.get(param):
                lookups[lookup] = params[param]
        for param, lookup in self.range_filters.items():
            moment = parse_datetime(params.get(param) or "")
            if moment is not None:
                lookups[lookup] = moment
        return self.queryset.filter(**lookups).order_by("-created_at")

    def _export_row(self, entry):
        return [
            entry.id,
            entry.created_at.isoformat(),
            entry.actor.username if entry.actor else "",
            entry.branch.code if entry.branch else "",
            entry.action,
            entry.entity,
            entry.entity_id or "",
            entry.request_id or "",
        ]

    @action(detail=False, methods=["get"], url_path="export")
    def export(self, request):
        response = HttpResponse(content_type="text/csv")
        response["Content-Disposition"] = 'attachment; filename="audit-trail.csv"'
        writer = csv.writer(response)
        writer.writerow(self.export_columns)
        writer.writerows(self._export_row(entry) for entry in self.get_queryset())
        return response


def _probe_payload(request, state, **extra):
    return {"status": state, "request_id": getattr(request, "request_id", None), **extra}


@api_view(["GET"])
@permission_classes([AllowAny])
def healthz(request):
    return Response(_probe_payload(request, "ok"))


@api_view(["GET"])
@permission_classes([AllowAny])
def readyz(request):
    """Ready once the default database answers a trivial query."""
    try:
        connections["default"].ensure_connection()
        with connections["default"].cursor() as cursor:
            cursor.execute("SELECT 1")
    except DatabaseError as exc:
        logger.exception("readiness_check_failed")
        return Response(_probe_payload(request, "error", detail=str(exc)), status=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(_probe_payload(request, "ready"))
