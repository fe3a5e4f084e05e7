"""Authoritative per-branch stock quantities.

Every quantity change goes through :func:`apply_delta` or :func:`set_quantity`.
Both lock the affected ``StockLevel`` row with ``SELECT ... FOR UPDATE`` and
must run inside the caller's ``transaction.atomic()`` block so the lock is held
until the command that issued them commits.
"""

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Sum
from django.utils import timezone

from inventory.alerts import refresh_alert
from inventory.exceptions import ConcurrentModification, InsufficientStock, InvalidArgument
from inventory.models import MAX_QUANTITY, Product, StockLevel, StockStatus


def _validate_integer(value, field):
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgument(f"{field} must be an integer.")
    return value


def _check_ceiling(quantity, field="quantity"):
    if quantity > MAX_QUANTITY:
        raise InvalidArgument(f"{field} must not exceed {MAX_QUANTITY}.")


def _row_filter(branch, product, variation):
    return {"branch": branch, "product": product, "variation": variation}


def get_stock_level(branch, product, variation=None):
    return StockLevel.objects.filter(**_row_filter(branch, product, variation)).first()


def get_quantity(branch, product, variation=None):
    level = get_stock_level(branch, product, variation)
    return level.quantity if level is not None else 0


def lock_stock_level(branch, product, variation=None, *, create=False):
    """Return the row locked for update, creating it at zero first when asked."""
    qs = StockLevel.objects.select_for_update().filter(**_row_filter(branch, product, variation))
    level = qs.first()
    if level is not None or not create:
        return level

    try:
        with transaction.atomic():
            return StockLevel.objects.create(quantity=0, **_row_filter(branch, product, variation))
    except IntegrityError:
        # Another writer created the row first; wait on its lock.
        return qs.get()


def _check_expected(expected_old_quantity, current):
    if expected_old_quantity is not None and expected_old_quantity != current:
        raise ConcurrentModification(expected=expected_old_quantity, actual=current)


def _after_mutation(level):
    refresh_alert(level)
    refresh_product_stock(level.product_id)


@transaction.atomic
def apply_delta(branch, product, variation, delta, expected_old_quantity=None):
    """Add ``delta`` to the row and return the new quantity."""
    _validate_integer(delta, "delta")
    if delta == 0:
        raise InvalidArgument("delta must be non-zero.")

    level = lock_stock_level(branch, product, variation, create=delta > 0)
    current = level.quantity if level is not None else 0
    _check_expected(expected_old_quantity, current)

    new_quantity = current + delta
    _check_ceiling(new_quantity)
    if new_quantity < 0:
        raise InsufficientStock(
            f"Insufficient stock: {current} available, {-delta} requested.",
            available=current,
            requested=-delta,
        )

    level.quantity = new_quantity
    update_fields = ["quantity", "updated_at"]
    if delta > 0:
        level.last_restocked = timezone.now()
        update_fields.append("last_restocked")
    level.save(update_fields=update_fields)

    _after_mutation(level)
    return new_quantity


@transaction.atomic
def set_quantity(branch, product, variation, new_quantity, expected_old_quantity=None):
    """Set the row to ``new_quantity`` and return the previous quantity."""
    _validate_integer(new_quantity, "new_quantity")
    if new_quantity < 0:
        raise InvalidArgument("new_quantity must be zero or greater.")
    _check_ceiling(new_quantity, "new_quantity")

    level = lock_stock_level(branch, product, variation, create=True)
    previous = level.quantity
    _check_expected(expected_old_quantity, previous)

    level.quantity = new_quantity
    update_fields = ["quantity", "updated_at"]
    if new_quantity > previous:
        level.last_restocked = timezone.now()
        update_fields.append("last_restocked")
    level.save(update_fields=update_fields)

    _after_mutation(level)
    return previous


def product_stock_status(total_quantity):
    threshold = getattr(settings, "INVENTORY_PRODUCT_LOW_STOCK_THRESHOLD", 5)
    if total_quantity <= 0:
        return StockStatus.OUT_OF_STOCK
    if total_quantity <= threshold:
        return StockStatus.LOW_STOCK
    return StockStatus.IN_STOCK


def refresh_product_stock(product_id):
    """Roll all branch quantities of a product up onto the catalog row."""
    total = StockLevel.objects.filter(product_id=product_id).aggregate(total=Sum("quantity"))["total"] or 0
    _check_ceiling(total, "product stock total")
    Product.objects.filter(id=product_id).update(
        stock_quantity=total,
        stock_status=product_stock_status(total),
        updated_at=timezone.now(),
    )
    return total
