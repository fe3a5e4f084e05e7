from datetime import timedelta
from decimal import Decimal

from django.db.models import Count, DecimalField, ExpressionWrapper, F, Q, Sum
from django.utils import timezone

from core.models import Branch
from inventory.models import InventoryTransaction, Product, StockLevel, StockStatus

RECENT_TRANSACTION_WINDOW = timedelta(days=7)


def _status_counts():
    # Mirrors derive_stock_status; the order of the branches matters at the boundaries.
    out_of_stock = Q(quantity=0)
    low_stock = Q(quantity__gt=0, quantity__lte=F("min_stock_level"))
    overstock = Q(quantity__gt=F("max_stock_level")) & ~low_stock
    in_stock = Q(quantity__gt=F("min_stock_level"), quantity__lte=F("max_stock_level"))

    counts = StockLevel.objects.aggregate(
        out_of_stock=Count("id", filter=out_of_stock),
        low_stock=Count("id", filter=low_stock),
        in_stock=Count("id", filter=in_stock),
        overstock=Count("id", filter=overstock),
    )
    return {status.value: counts[status.value] for status in StockStatus}


def dashboard_stats(now=None):
    now = now or timezone.now()

    totals = StockLevel.objects.aggregate(
        total_value=Sum(
            ExpressionWrapper(F("quantity") * F("product__price"), output_field=DecimalField(max_digits=18, decimal_places=2))
        ),
        total_units=Sum("quantity"),
    )

    recent = (
        InventoryTransaction.objects.filter(created_at__gte=now - RECENT_TRANSACTION_WINDOW)
        .values("transaction_type")
        .annotate(count=Count("id"))
        .order_by("transaction_type")
    )

    return {
        "total_value": totals["total_value"] or Decimal("0.00"),
        "total_units": totals["total_units"] or 0,
        "stock_status": _status_counts(),
        "branch_count": Branch.objects.filter(is_active=True).count(),
        "recent_transactions": [{"transaction_type": row["transaction_type"], "count": row["count"]} for row in recent],
        "pending_transfers": InventoryTransaction.objects.filter(
            transaction_type=InventoryTransaction.Type.TRANSFER,
            status=InventoryTransaction.Status.IN_TRANSIT,
        ).count(),
    }


def stock_totals(product_id, variation_id=None):
    """On-hand plus in-transit units for one product/variation.

    ``total`` is the figure transfers never change; a reconciliation compares
    it against the net of receipts, issues and adjustments.
    """
    on_hand = (
        StockLevel.objects.filter(product_id=product_id, variation_id=variation_id).aggregate(total=Sum("quantity"))["total"] or 0
    )
    in_transit = (
        InventoryTransaction.objects.filter(
            product_id=product_id,
            variation_id=variation_id,
            transaction_type=InventoryTransaction.Type.TRANSFER,
            status__in=[InventoryTransaction.Status.PENDING, InventoryTransaction.Status.IN_TRANSIT],
        ).aggregate(total=Sum("quantity"))["total"]
        or 0
    )
    return {"on_hand": on_hand, "in_transit": in_transit, "total": on_hand + in_transit}


def reconciliation_rows(product_id=None):
    keys = StockLevel.objects.values_list("product_id", "variation_id").distinct()
    if product_id:
        keys = keys.filter(product_id=product_id)

    in_flight = InventoryTransaction.objects.filter(
        transaction_type=InventoryTransaction.Type.TRANSFER,
        status__in=[InventoryTransaction.Status.PENDING, InventoryTransaction.Status.IN_TRANSIT],
    ).values_list("product_id", "variation_id")
    if product_id:
        in_flight = in_flight.filter(product_id=product_id)

    rows = []
    for key_product_id, key_variation_id in sorted(set(keys) | set(in_flight), key=lambda key: (str(key[0]), str(key[1]))):
        rows.append({"product_id": key_product_id, "variation_id": key_variation_id, **stock_totals(key_product_id, key_variation_id)})
    return rows


def inventory_overview():
    return (
        Product.objects.filter(is_active=True)
        .annotate(branches_with_stock=Count("stock_levels__branch", filter=Q(stock_levels__quantity__gt=0), distinct=True))
        .order_by("name")
    )
