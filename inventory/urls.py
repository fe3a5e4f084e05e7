from django.urls import path
from rest_framework.routers import DefaultRouter

from inventory.views import (
    AdjustmentView,
    CancelTransferView,
    CompleteTransferView,
    DashboardStatsView,
    InventoryOverviewView,
    InventoryTransactionViewSet,
    StockAlertListView,
    StockInView,
    StockLevelViewSet,
    StockOutView,
    StockTotalsView,
    TransferView,
)

router = DefaultRouter()
router.register(r"stock-levels", StockLevelViewSet, basename="stock-level")
router.register(r"transactions", InventoryTransactionViewSet, basename="inventory-transaction")

urlpatterns = router.urls + [
    path("stock-in/", StockInView.as_view(), name="stock-in"),
    path("stock-out/", StockOutView.as_view(), name="stock-out"),
    path("adjustments/", AdjustmentView.as_view(), name="stock-adjustment"),
    path("transfers/", TransferView.as_view(), name="transfer-create"),
    path("transfers/complete/", CompleteTransferView.as_view(), name="transfer-complete"),
    path("transfers/cancel/", CancelTransferView.as_view(), name="transfer-cancel"),
    path("alerts/", StockAlertListView.as_view(), name="stock-alerts"),
    path("dashboard/", DashboardStatsView.as_view(), name="inventory-dashboard"),
    path("overview/", InventoryOverviewView.as_view(), name="inventory-overview"),
    path("stock-totals/", StockTotalsView.as_view(), name="stock-totals"),
]
