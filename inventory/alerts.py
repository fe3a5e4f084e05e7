import logging
from dataclasses import dataclass

from django.db import transaction
from django.utils import timezone

from inventory.models import StockAlert, StockLevel, StockStatus

logger = logging.getLogger("inventory.alerts")

STATUS_TO_ALERT_TYPE = {
    StockStatus.OUT_OF_STOCK: StockAlert.AlertType.OUT_OF_STOCK,
    StockStatus.LOW_STOCK: StockAlert.AlertType.LOW_STOCK,
    StockStatus.OVERSTOCK: StockAlert.AlertType.OVERSTOCK,
}


@dataclass(frozen=True)
class AlertCandidate:
    alert_type: str
    current_quantity: int
    threshold_quantity: int


def evaluate(stock_level):
    """Return the alert a stock level currently warrants, or None when it is in stock.

    Low and out-of-stock alerts report the row's minimum as the threshold,
    overstock alerts report the maximum.
    """
    alert_type = STATUS_TO_ALERT_TYPE.get(stock_level.stock_status)
    if alert_type is None:
        return None

    threshold = stock_level.max_stock_level if alert_type == StockAlert.AlertType.OVERSTOCK else stock_level.min_stock_level
    return AlertCandidate(
        alert_type=alert_type,
        current_quantity=stock_level.quantity,
        threshold_quantity=threshold,
    )


def _resolve(alerts, now):
    return alerts.update(is_resolved=True, resolved_at=now, updated_at=now)


def refresh_alert(stock_level):
    """Bring the cached alert for one stock level in line with its quantity."""
    candidate = evaluate(stock_level)
    open_alerts = StockAlert.objects.filter(stock_level=stock_level, is_resolved=False)
    now = timezone.now()

    if candidate is None:
        if _resolve(open_alerts, now):
            logger.info(
                "stock_alert_resolved",
                extra={"branch_id": str(stock_level.branch_id), "product_id": str(stock_level.product_id), "quantity": stock_level.quantity},
            )
        return None

    current = open_alerts.first()
    if current is not None and current.alert_type == candidate.alert_type:
        current.current_quantity = candidate.current_quantity
        current.threshold_quantity = candidate.threshold_quantity
        current.save(update_fields=["current_quantity", "threshold_quantity", "updated_at"])
        return current

    if current is not None:
        _resolve(open_alerts, now)

    alert = StockAlert.objects.create(
        stock_level=stock_level,
        branch_id=stock_level.branch_id,
        product_id=stock_level.product_id,
        variation_id=stock_level.variation_id,
        alert_type=candidate.alert_type,
        current_quantity=candidate.current_quantity,
        threshold_quantity=candidate.threshold_quantity,
    )
    logger.info(
        "stock_alert_raised",
        extra={
            "alert_type": alert.alert_type,
            "branch_id": str(stock_level.branch_id),
            "product_id": str(stock_level.product_id),
            "quantity": stock_level.quantity,
        },
    )
    return alert


def sweep_alerts(branch_id=None):
    """Re-evaluate every stock level (optionally for one branch). Returns the number of rows checked."""
    levels = StockLevel.objects.all()
    if branch_id:
        levels = levels.filter(branch_id=branch_id)

    checked = 0
    for level_id in levels.values_list("id", flat=True):
        with transaction.atomic():
            level = StockLevel.objects.select_for_update().get(id=level_id)
            refresh_alert(level)
        checked += 1
    return checked


def open_alerts(branch_id=None):
    qs = StockAlert.objects.filter(is_resolved=False).select_related("branch", "product", "variation")
    if branch_id:
        qs = qs.filter(branch_id=branch_id)
    return qs.order_by("-created_at")
