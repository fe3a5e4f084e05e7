import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from django.db import transaction
from django.utils import timezone

from inventory import ledger
from inventory.exceptions import ConcurrentModification, InsufficientStock, InvalidArgument, InvalidState, NotFound
from inventory.models import MAX_QUANTITY, MAX_TOTAL_COST, InventoryTransaction, TransactionCodeSequence

logger = logging.getLogger("inventory")

MONEY_QUANT = Decimal("0.01")

Status = InventoryTransaction.Status
Type = InventoryTransaction.Type
TransferMode = InventoryTransaction.TransferMode


def _to_money(value):
    return Decimal(value).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def _append_remark(existing, note):
    return f"{existing} | {note}" if existing else note


def next_transaction_code(transaction_type, now=None):
    """Draw the next ``<PREFIX>-<YYYYMMDD>-<NNNN>`` code for a transaction type."""
    prefix = InventoryTransaction.CODE_PREFIXES[transaction_type]
    key = f"{prefix}-{timezone.localdate(now or timezone.now()):%Y%m%d}"
    with transaction.atomic():
        sequence, _ = TransactionCodeSequence.objects.select_for_update().get_or_create(key=key)
        sequence.last_value += 1
        sequence.save(update_fields=["last_value", "updated_at"])
    return f"{key}-{sequence.last_value:04d}"


def _validate_quantity(quantity, field="quantity"):
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidArgument(f"{field} must be a positive integer.")
    if quantity > MAX_QUANTITY:
        raise InvalidArgument(f"{field} must not exceed {MAX_QUANTITY}.")
    return quantity


def _validate_target(branch, product, variation, *, role="branch"):
    if not branch.is_active:
        raise InvalidArgument(f"The {role.replace('_', ' ')} {branch.code} is not active.")
    if not product.is_active:
        raise InvalidArgument(f"Product {product.sku} is not active.")
    if variation is not None and variation.product_id != product.id:
        raise InvalidArgument("Variation does not belong to the product.")


def _log_recorded(record, message, **extra):
    logger.info(
        message,
        extra={
            "transaction_code": record.transaction_code,
            "transaction_type": record.transaction_type,
            "status": record.status,
            "product_id": str(record.product_id),
            "variation_id": str(record.variation_id) if record.variation_id else None,
            "quantity": record.quantity,
            **extra,
        },
    )


@transaction.atomic
def stock_in(
    *,
    branch,
    product,
    variation=None,
    quantity,
    unit_cost=None,
    supplier=None,
    reference_type=None,
    reference_number=None,
    reason=None,
    remarks=None,
    performed_by=None,
):
    _validate_quantity(quantity)
    _validate_target(branch, product, variation)
    if unit_cost is not None and Decimal(unit_cost) < 0:
        raise InvalidArgument("unit_cost must be zero or greater.")
    total_cost = _to_money(Decimal(unit_cost) * quantity) if unit_cost is not None else None
    if total_cost is not None and total_cost > MAX_TOTAL_COST:
        raise InvalidArgument(f"unit_cost x quantity must not exceed {MAX_TOTAL_COST}.")

    ledger.lock_stock_level(branch, product, variation, create=True)
    now = timezone.now()
    record = InventoryTransaction.objects.create(
        transaction_code=next_transaction_code(Type.STOCK_IN, now),
        transaction_type=Type.STOCK_IN,
        product=product,
        variation=variation,
        quantity=quantity,
        branch=branch,
        destination_branch=branch,
        reference_type=reference_type or "purchase_order",
        reference_number=reference_number,
        unit_cost=_to_money(unit_cost) if unit_cost is not None else None,
        total_cost=total_cost,
        supplier=supplier or None,
        reason=reason or "Stock received",
        remarks=remarks or "",
        status=Status.COMPLETED,
        performed_by=performed_by,
        completed_at=now,
    )
    ledger.apply_delta(branch, product, variation, quantity)
    _log_recorded(record, "stock_in_recorded", branch_id=str(branch.id))
    return record


@transaction.atomic
def stock_out(
    *,
    branch,
    product,
    variation=None,
    quantity,
    reason,
    reference_type=None,
    reference_number=None,
    remarks=None,
    performed_by=None,
):
    _validate_quantity(quantity)
    _validate_target(branch, product, variation)
    if not reason or not str(reason).strip():
        raise InvalidArgument("reason is required for stock out.")

    level = ledger.lock_stock_level(branch, product, variation)
    available = level.quantity if level is not None else 0
    if available < quantity:
        raise InsufficientStock(
            f"Insufficient stock: {available} available, {quantity} requested.",
            available=available,
            requested=quantity,
        )

    now = timezone.now()
    record = InventoryTransaction.objects.create(
        transaction_code=next_transaction_code(Type.STOCK_OUT, now),
        transaction_type=Type.STOCK_OUT,
        product=product,
        variation=variation,
        quantity=quantity,
        branch=branch,
        source_branch=branch,
        reference_type=reference_type or "other",
        reference_number=reference_number,
        reason=reason,
        remarks=remarks or "",
        status=Status.COMPLETED,
        performed_by=performed_by,
        completed_at=now,
    )
    ledger.apply_delta(branch, product, variation, -quantity, expected_old_quantity=available)
    _log_recorded(record, "stock_out_recorded", branch_id=str(branch.id))
    return record


@dataclass
class AdjustmentResult:
    transaction: InventoryTransaction | None
    previous_quantity: int
    new_quantity: int

    @property
    def difference(self):
        return self.new_quantity - self.previous_quantity


@transaction.atomic
def adjust_stock(
    *,
    branch,
    product,
    variation=None,
    new_quantity,
    reason,
    remarks=None,
    expected_quantity=None,
    performed_by=None,
):
    if isinstance(new_quantity, bool) or not isinstance(new_quantity, int) or new_quantity < 0:
        raise InvalidArgument("new_quantity must be an integer of zero or greater.")
    if new_quantity > MAX_QUANTITY:
        raise InvalidArgument(f"new_quantity must not exceed {MAX_QUANTITY}.")
    _validate_target(branch, product, variation)
    if not reason or not str(reason).strip():
        raise InvalidArgument("reason is required for adjustments.")

    level = ledger.lock_stock_level(branch, product, variation)
    previous = level.quantity if level is not None else 0
    if expected_quantity is not None and expected_quantity != previous:
        raise ConcurrentModification(expected=expected_quantity, actual=previous)

    if new_quantity == previous:
        return AdjustmentResult(transaction=None, previous_quantity=previous, new_quantity=new_quantity)

    now = timezone.now()
    record = InventoryTransaction.objects.create(
        transaction_code=next_transaction_code(Type.ADJUSTMENT, now),
        transaction_type=Type.ADJUSTMENT,
        product=product,
        variation=variation,
        quantity=abs(new_quantity - previous),
        branch=branch,
        reference_type="adjustment",
        reason=reason,
        remarks=remarks or f"Adjusted from {previous} to {new_quantity}",
        previous_quantity=previous,
        new_quantity=new_quantity,
        status=Status.COMPLETED,
        performed_by=performed_by,
        completed_at=now,
    )
    ledger.set_quantity(branch, product, variation, new_quantity, expected_old_quantity=previous)
    _log_recorded(
        record,
        "stock_adjusted",
        branch_id=str(branch.id),
        previous_quantity=previous,
        new_quantity=new_quantity,
    )
    return AdjustmentResult(transaction=record, previous_quantity=previous, new_quantity=new_quantity)


@dataclass(frozen=True)
class ImmediateTransfer:
    """Source is debited and destination credited in the same command."""

    mode = TransferMode.IMMEDIATE
    initial_status = Status.COMPLETED

    def settle(self, record, now):
        ledger.apply_delta(record.destination_branch, record.product, record.variation, record.quantity)
        record.completed_at = now
        record.save(update_fields=["completed_at"])


@dataclass(frozen=True)
class DeferredTransfer:
    """Source is debited now; destination is credited by ``complete_transfer``."""

    mode = TransferMode.DEFERRED
    initial_status = Status.IN_TRANSIT

    def settle(self, record, now):
        return None


def transfer_plan(immediate):
    return ImmediateTransfer() if immediate else DeferredTransfer()


@transaction.atomic
def initiate_transfer(
    *,
    source_branch,
    destination_branch,
    product,
    variation=None,
    quantity,
    reason=None,
    remarks=None,
    reference_number=None,
    immediate=False,
    performed_by=None,
):
    _validate_quantity(quantity)
    if source_branch.pk == destination_branch.pk:
        raise InvalidArgument("Source and destination branches must be different.")
    _validate_target(source_branch, product, variation, role="source_branch")
    _validate_target(destination_branch, product, variation, role="destination_branch")

    plan = transfer_plan(immediate)

    # Lock both rows in a stable order so opposing transfers cannot deadlock.
    locked = {}
    for branch in sorted((source_branch, destination_branch), key=lambda item: str(item.pk)):
        create = branch.pk == destination_branch.pk and plan.mode == TransferMode.IMMEDIATE
        locked[branch.pk] = ledger.lock_stock_level(branch, product, variation, create=create)

    source_level = locked[source_branch.pk]
    available = source_level.quantity if source_level is not None else 0
    if available < quantity:
        raise InsufficientStock(
            f"Insufficient stock at source branch: {available} available, {quantity} requested.",
            available=available,
            requested=quantity,
        )

    now = timezone.now()
    code = next_transaction_code(Type.TRANSFER, now)
    record = InventoryTransaction.objects.create(
        transaction_code=code,
        transaction_type=Type.TRANSFER,
        transfer_mode=plan.mode,
        product=product,
        variation=variation,
        quantity=quantity,
        source_branch=source_branch,
        destination_branch=destination_branch,
        reference_type="transfer_order",
        reference_number=reference_number or code,
        reason=reason or "Stock transfer between branches",
        remarks=remarks or "",
        status=plan.initial_status,
        performed_by=performed_by,
    )
    ledger.apply_delta(source_branch, product, variation, -quantity, expected_old_quantity=available)
    plan.settle(record, now)

    _log_recorded(
        record,
        "transfer_initiated",
        source_branch_id=str(source_branch.id),
        destination_branch_id=str(destination_branch.id),
    )
    return record


def _lock_transfer(transaction_code):
    record = (
        InventoryTransaction.objects.select_for_update()
        .filter(transaction_code=transaction_code, transaction_type=Type.TRANSFER)
        .first()
    )
    if record is None:
        raise NotFound(f"Transfer {transaction_code} not found.")
    return record


def _ensure_transition(record, new_status):
    if not record.can_transition_to(new_status):
        raise InvalidState(
            f"Transfer {record.transaction_code} is {record.status} and cannot become {new_status}.",
            details={"status": record.status},
        )


@transaction.atomic
def complete_transfer(*, transaction_code, received_remarks=None, performed_by=None):
    record = _lock_transfer(transaction_code)
    _ensure_transition(record, Status.COMPLETED)

    ledger.apply_delta(record.destination_branch, record.product, record.variation, record.quantity)

    record.status = Status.COMPLETED
    record.completed_at = timezone.now()
    record.remarks = _append_remark(record.remarks, f"Received: {received_remarks or 'Confirmed'}")
    record.save(update_fields=["status", "completed_at", "remarks"])

    _log_recorded(
        record,
        "transfer_completed",
        destination_branch_id=str(record.destination_branch_id),
        user_id=str(performed_by.id) if performed_by is not None else None,
    )
    return record


@transaction.atomic
def cancel_transfer(*, transaction_code, reason=None, performed_by=None):
    record = _lock_transfer(transaction_code)
    _ensure_transition(record, Status.CANCELLED)

    ledger.apply_delta(record.source_branch, record.product, record.variation, record.quantity)

    record.status = Status.CANCELLED
    record.cancelled_at = timezone.now()
    record.remarks = _append_remark(record.remarks, f"Cancelled: {reason or 'No reason given'}")
    record.save(update_fields=["status", "cancelled_at", "remarks"])

    _log_recorded(
        record,
        "transfer_cancelled",
        source_branch_id=str(record.source_branch_id),
        user_id=str(performed_by.id) if performed_by is not None else None,
    )
    return record
