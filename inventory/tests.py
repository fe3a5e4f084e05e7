import re
from collections import Counter
from datetime import datetime, timezone as dt_timezone
from decimal import Decimal
from io import StringIO

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase
from rest_framework.test import APIClient

from core.models import AuditLog, Branch
from inventory import ledger
from inventory.alerts import evaluate, open_alerts, sweep_alerts
from inventory.dashboard import dashboard_stats, reconciliation_rows, stock_totals
from inventory.exceptions import ConcurrentModification, InsufficientStock, InvalidArgument, InvalidState, NotFound
from inventory.models import (
    MAX_QUANTITY,
    InventoryTransaction,
    Product,
    ProductVariation,
    StockAlert,
    StockLevel,
    StockStatus,
    derive_stock_status,
)
from inventory.services import (
    adjust_stock,
    cancel_transfer,
    complete_transfer,
    initiate_transfer,
    next_transaction_code,
    stock_in,
    stock_out,
)

CODE_PATTERN = re.compile(r"^(SI|SO|TR|ADJ)-\d{8}-\d{4}$")


class InventoryFixtureMixin:
    def setUp(self):
        self.user_model = get_user_model()

        self.warehouse = Branch.objects.create(code="WH", name="Central Warehouse", is_warehouse=True)
        self.store_a = Branch.objects.create(code="SA", name="Store A")
        self.store_b = Branch.objects.create(code="SB", name="Store B")

        self.product = Product.objects.create(sku="P-001", name="Paint Bucket", price=Decimal("10.00"))
        self.other_product = Product.objects.create(sku="P-002", name="Brush", price=Decimal("2.50"))
        self.variation = ProductVariation.objects.create(product=self.product, sku="RED", name="Red")

        self.admin = self.user_model.objects.create_user(username="inv-admin", password="pass1234", role="admin")
        self.supervisor_a = self.user_model.objects.create_user(
            username="inv-supervisor-a",
            password="pass1234",
            role="supervisor",
            branch=self.store_a,
        )
        self.clerk_a = self.user_model.objects.create_user(
            username="inv-clerk-a",
            password="pass1234",
            role="clerk",
            branch=self.store_a,
        )
        self.clerk_b = self.user_model.objects.create_user(
            username="inv-clerk-b",
            password="pass1234",
            role="clerk",
            branch=self.store_b,
        )

    def quantity(self, branch, product=None, variation=None):
        return ledger.get_quantity(branch, product or self.product, variation)

    def receive(self, branch, quantity, product=None, variation=None):
        return stock_in(branch=branch, product=product or self.product, variation=variation, quantity=quantity)


class StockStatusTests(TestCase):
    def test_boundaries(self):
        self.assertEqual(derive_stock_status(0, 5, 1000), StockStatus.OUT_OF_STOCK)
        self.assertEqual(derive_stock_status(1, 5, 1000), StockStatus.LOW_STOCK)
        self.assertEqual(derive_stock_status(5, 5, 1000), StockStatus.LOW_STOCK)
        self.assertEqual(derive_stock_status(6, 5, 1000), StockStatus.IN_STOCK)
        self.assertEqual(derive_stock_status(1000, 5, 1000), StockStatus.IN_STOCK)
        self.assertEqual(derive_stock_status(1001, 5, 1000), StockStatus.OVERSTOCK)

    def test_zero_minimum_still_reports_out_of_stock_at_zero(self):
        self.assertEqual(derive_stock_status(0, 0, 10), StockStatus.OUT_OF_STOCK)
        self.assertEqual(derive_stock_status(1, 0, 10), StockStatus.IN_STOCK)


class StockLedgerTests(InventoryFixtureMixin, TestCase):
    def test_missing_row_reads_as_zero(self):
        self.assertEqual(self.quantity(self.store_a), 0)
        self.assertIsNone(ledger.get_stock_level(self.store_a, self.product))

    def test_positive_delta_creates_row_with_default_thresholds(self):
        new_quantity = ledger.apply_delta(self.store_a, self.product, None, 12)

        level = ledger.get_stock_level(self.store_a, self.product)
        self.assertEqual(new_quantity, 12)
        self.assertEqual(level.quantity, 12)
        self.assertEqual(level.min_stock_level, 5)
        self.assertEqual(level.max_stock_level, 1000)
        self.assertIsNotNone(level.last_restocked)

    def test_negative_delta_beyond_available_is_rejected(self):
        ledger.apply_delta(self.store_a, self.product, None, 3)

        with self.assertRaises(InsufficientStock) as ctx:
            ledger.apply_delta(self.store_a, self.product, None, -4)

        self.assertEqual(ctx.exception.available, 3)
        self.assertEqual(self.quantity(self.store_a), 3)

    def test_negative_delta_without_row_does_not_create_one(self):
        with self.assertRaises(InsufficientStock):
            ledger.apply_delta(self.store_a, self.product, None, -1)

        self.assertFalse(StockLevel.objects.filter(branch=self.store_a).exists())

    def test_zero_and_non_integer_deltas_are_invalid(self):
        with self.assertRaises(InvalidArgument):
            ledger.apply_delta(self.store_a, self.product, None, 0)
        with self.assertRaises(InvalidArgument):
            ledger.apply_delta(self.store_a, self.product, None, 1.5)

    def test_expected_old_quantity_guard(self):
        ledger.apply_delta(self.store_a, self.product, None, 8)

        with self.assertRaises(ConcurrentModification) as ctx:
            ledger.apply_delta(self.store_a, self.product, None, -2, expected_old_quantity=7)

        self.assertEqual(ctx.exception.details, {"expected_quantity": 7, "current_quantity": 8})
        self.assertEqual(self.quantity(self.store_a), 8)

    def test_set_quantity_returns_previous(self):
        ledger.apply_delta(self.store_a, self.product, None, 8)

        previous = ledger.set_quantity(self.store_a, self.product, None, 2, expected_old_quantity=8)

        self.assertEqual(previous, 8)
        self.assertEqual(self.quantity(self.store_a), 2)

    def test_set_quantity_rejects_negative(self):
        with self.assertRaises(InvalidArgument):
            ledger.set_quantity(self.store_a, self.product, None, -1)

    def test_quantity_column_ceiling_is_enforced(self):
        ledger.apply_delta(self.store_a, self.product, None, MAX_QUANTITY)

        with self.assertRaises(InvalidArgument):
            ledger.apply_delta(self.store_a, self.product, None, 1)
        with self.assertRaises(InvalidArgument):
            ledger.set_quantity(self.store_b, self.product, None, MAX_QUANTITY + 1)

        self.assertEqual(self.quantity(self.store_a), MAX_QUANTITY)
        self.assertEqual(self.quantity(self.store_b), 0)

    def test_variations_are_tracked_separately(self):
        ledger.apply_delta(self.store_a, self.product, None, 4)
        ledger.apply_delta(self.store_a, self.product, self.variation, 6)

        self.assertEqual(self.quantity(self.store_a), 4)
        self.assertEqual(self.quantity(self.store_a, variation=self.variation), 6)
        self.assertEqual(StockLevel.objects.filter(branch=self.store_a, product=self.product).count(), 2)

    def test_product_rollup_follows_every_mutation(self):
        ledger.apply_delta(self.store_a, self.product, None, 3)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 3)
        self.assertEqual(self.product.stock_status, StockStatus.LOW_STOCK)

        ledger.apply_delta(self.store_b, self.product, self.variation, 10)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 13)
        self.assertEqual(self.product.stock_status, StockStatus.IN_STOCK)

        ledger.set_quantity(self.store_a, self.product, None, 0)
        ledger.set_quantity(self.store_b, self.product, self.variation, 0)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 0)
        self.assertEqual(self.product.stock_status, StockStatus.OUT_OF_STOCK)


class TransactionCodeTests(TestCase):
    def test_codes_are_sequential_per_type_and_day(self):
        day_one = datetime(2024, 1, 2, 12, 0, tzinfo=dt_timezone.utc)
        day_two = datetime(2024, 1, 3, 12, 0, tzinfo=dt_timezone.utc)

        self.assertEqual(next_transaction_code(InventoryTransaction.Type.STOCK_IN, day_one), "SI-20240102-0001")
        self.assertEqual(next_transaction_code(InventoryTransaction.Type.STOCK_IN, day_one), "SI-20240102-0002")
        self.assertEqual(next_transaction_code(InventoryTransaction.Type.TRANSFER, day_one), "TR-20240102-0001")
        self.assertEqual(next_transaction_code(InventoryTransaction.Type.ADJUSTMENT, day_two), "ADJ-20240103-0001")
        self.assertEqual(next_transaction_code(InventoryTransaction.Type.STOCK_IN, day_two), "SI-20240103-0001")


class StockInOutTests(InventoryFixtureMixin, TestCase):
    def test_stock_in_then_stock_out(self):
        received = self.receive(self.store_a, 10)
        self.assertEqual(self.quantity(self.store_a), 10)
        self.assertRegex(received.transaction_code, CODE_PATTERN)
        self.assertTrue(received.transaction_code.startswith("SI-"))

        issued = stock_out(branch=self.store_a, product=self.product, quantity=4, reason="Sold")

        self.assertEqual(self.quantity(self.store_a), 6)
        self.assertEqual(issued.status, InventoryTransaction.Status.COMPLETED)
        self.assertEqual(issued.source_branch, self.store_a)
        self.assertTrue(issued.transaction_code.startswith("SO-"))

    def test_insufficient_stock_leaves_quantity_untouched(self):
        self.receive(self.store_a, 3)

        with self.assertRaises(InsufficientStock) as ctx:
            stock_out(branch=self.store_a, product=self.product, quantity=5, reason="Sold")

        self.assertEqual(ctx.exception.details, {"available": 3, "requested": 5})
        self.assertEqual(self.quantity(self.store_a), 3)
        self.assertFalse(InventoryTransaction.objects.filter(transaction_type=InventoryTransaction.Type.STOCK_OUT).exists())

    def test_stock_in_defaults_and_cost(self):
        record = stock_in(
            branch=self.warehouse,
            product=self.product,
            quantity=4,
            unit_cost=Decimal("2.50"),
            supplier="Acme Paints",
        )

        self.assertEqual(record.reference_type, "purchase_order")
        self.assertEqual(record.reason, "Stock received")
        self.assertEqual(record.total_cost, Decimal("10.00"))
        self.assertEqual(record.destination_branch, self.warehouse)
        self.assertIsNotNone(record.completed_at)

    def test_stock_in_logs_committed_command(self):
        with self.assertLogs("inventory", level="INFO") as cm:
            self.receive(self.store_a, 2)

        self.assertTrue(any("stock_in_recorded" in message for message in cm.output))

    def test_non_positive_quantity_is_rejected(self):
        with self.assertRaises(InvalidArgument):
            stock_in(branch=self.store_a, product=self.product, quantity=0)
        with self.assertRaises(InvalidArgument):
            stock_out(branch=self.store_a, product=self.product, quantity=-1, reason="Sold")

    def test_oversized_quantity_and_cost_are_rejected(self):
        with self.assertRaises(InvalidArgument):
            stock_in(branch=self.store_a, product=self.product, quantity=MAX_QUANTITY + 1)
        with self.assertRaises(InvalidArgument):
            stock_in(branch=self.store_a, product=self.product, quantity=1_000_000, unit_cost=Decimal("9999999.99"))

        self.assertEqual(self.quantity(self.store_a), 0)
        self.assertFalse(InventoryTransaction.objects.exists())

    def test_receipt_past_row_ceiling_records_nothing(self):
        self.receive(self.store_a, MAX_QUANTITY)

        with self.assertRaises(InvalidArgument):
            self.receive(self.store_a, 1)

        self.assertEqual(self.quantity(self.store_a), MAX_QUANTITY)
        self.assertEqual(InventoryTransaction.objects.count(), 1)

    def test_stock_out_requires_reason(self):
        self.receive(self.store_a, 3)

        with self.assertRaises(InvalidArgument):
            stock_out(branch=self.store_a, product=self.product, quantity=1, reason="  ")

    def test_inactive_branch_and_product_are_rejected(self):
        self.store_b.is_active = False
        self.store_b.save()
        self.other_product.is_active = False
        self.other_product.save()

        with self.assertRaises(InvalidArgument):
            self.receive(self.store_b, 1)
        with self.assertRaises(InvalidArgument):
            self.receive(self.store_a, 1, product=self.other_product)

    def test_variation_must_belong_to_product(self):
        with self.assertRaises(InvalidArgument):
            self.receive(self.store_a, 1, product=self.other_product, variation=self.variation)


class AdjustmentTests(InventoryFixtureMixin, TestCase):
    def test_adjustment_records_previous_and_new(self):
        self.receive(self.store_a, 6)

        result = adjust_stock(
            branch=self.store_a,
            product=self.product,
            new_quantity=9,
            reason="Physical count correction",
        )

        self.assertEqual(self.quantity(self.store_a), 9)
        self.assertEqual(result.previous_quantity, 6)
        self.assertEqual(result.new_quantity, 9)
        self.assertEqual(result.difference, 3)
        record = result.transaction
        self.assertEqual(record.quantity, 3)
        self.assertEqual(record.previous_quantity, 6)
        self.assertEqual(record.new_quantity, 9)
        self.assertEqual(record.remarks, "Adjusted from 6 to 9")
        self.assertTrue(record.transaction_code.startswith("ADJ-"))

    def test_downward_adjustment_to_zero(self):
        self.receive(self.store_a, 6)

        result = adjust_stock(branch=self.store_a, product=self.product, new_quantity=0, reason="Damaged")

        self.assertEqual(result.difference, -6)
        self.assertEqual(result.transaction.quantity, 6)
        self.assertEqual(self.quantity(self.store_a), 0)

    def test_adjustment_on_missing_row_creates_it(self):
        result = adjust_stock(branch=self.store_b, product=self.product, new_quantity=4, reason="Found stock")

        self.assertEqual(result.previous_quantity, 0)
        self.assertEqual(self.quantity(self.store_b), 4)

    def test_no_change_records_nothing(self):
        self.receive(self.store_a, 6)

        result = adjust_stock(branch=self.store_a, product=self.product, new_quantity=6, reason="Count")

        self.assertIsNone(result.transaction)
        self.assertEqual(result.difference, 0)
        self.assertFalse(InventoryTransaction.objects.filter(transaction_type=InventoryTransaction.Type.ADJUSTMENT).exists())

    def test_expected_quantity_mismatch_is_a_conflict(self):
        self.receive(self.store_a, 6)

        with self.assertRaises(ConcurrentModification):
            adjust_stock(
                branch=self.store_a,
                product=self.product,
                new_quantity=2,
                reason="Count",
                expected_quantity=5,
            )

        self.assertEqual(self.quantity(self.store_a), 6)

    def test_new_quantity_above_ceiling_is_invalid(self):
        with self.assertRaises(InvalidArgument):
            adjust_stock(branch=self.store_a, product=self.product, new_quantity=MAX_QUANTITY + 1, reason="Count")

        self.assertEqual(self.quantity(self.store_a), 0)

    def test_reason_is_required(self):
        with self.assertRaises(InvalidArgument):
            adjust_stock(branch=self.store_a, product=self.product, new_quantity=2, reason="")


class TransferWorkflowTests(InventoryFixtureMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.receive(self.store_a, 10)

    def test_immediate_transfer(self):
        record = initiate_transfer(
            source_branch=self.store_a,
            destination_branch=self.store_b,
            product=self.product,
            quantity=4,
            immediate=True,
        )

        self.assertEqual(self.quantity(self.store_a), 6)
        self.assertEqual(self.quantity(self.store_b), 4)
        self.assertEqual(record.status, InventoryTransaction.Status.COMPLETED)
        self.assertEqual(record.transfer_mode, InventoryTransaction.TransferMode.IMMEDIATE)
        self.assertIsNotNone(record.completed_at)
        self.assertEqual(record.reference_number, record.transaction_code)

    def test_immediate_transfer_cannot_be_completed_or_cancelled(self):
        record = initiate_transfer(
            source_branch=self.store_a,
            destination_branch=self.store_b,
            product=self.product,
            quantity=4,
            immediate=True,
        )

        with self.assertRaises(InvalidState):
            complete_transfer(transaction_code=record.transaction_code)
        with self.assertRaises(InvalidState):
            cancel_transfer(transaction_code=record.transaction_code)
        self.assertEqual(self.quantity(self.store_b), 4)

    def test_deferred_transfer_then_complete(self):
        record = initiate_transfer(
            source_branch=self.store_a,
            destination_branch=self.store_b,
            product=self.product,
            quantity=4,
        )

        self.assertEqual(self.quantity(self.store_a), 6)
        self.assertEqual(self.quantity(self.store_b), 0)
        self.assertEqual(record.status, InventoryTransaction.Status.IN_TRANSIT)
        self.assertEqual(record.transfer_mode, InventoryTransaction.TransferMode.DEFERRED)

        completed = complete_transfer(transaction_code=record.transaction_code, received_remarks="All boxes intact")

        self.assertEqual(self.quantity(self.store_b), 4)
        self.assertEqual(completed.status, InventoryTransaction.Status.COMPLETED)
        self.assertIn("Received: All boxes intact", completed.remarks)

    def test_completion_happens_once(self):
        record = initiate_transfer(
            source_branch=self.store_a,
            destination_branch=self.store_b,
            product=self.product,
            quantity=4,
        )
        complete_transfer(transaction_code=record.transaction_code)

        with self.assertRaises(InvalidState) as ctx:
            complete_transfer(transaction_code=record.transaction_code)

        self.assertEqual(ctx.exception.details, {"status": "completed"})
        self.assertEqual(self.quantity(self.store_b), 4)

    def test_cancel_recredits_source(self):
        record = initiate_transfer(
            source_branch=self.store_a,
            destination_branch=self.store_b,
            product=self.product,
            quantity=4,
        )

        cancelled = cancel_transfer(transaction_code=record.transaction_code, reason="Truck unavailable")

        self.assertEqual(self.quantity(self.store_a), 10)
        self.assertEqual(self.quantity(self.store_b), 0)
        self.assertEqual(cancelled.status, InventoryTransaction.Status.CANCELLED)
        self.assertIsNotNone(cancelled.cancelled_at)
        self.assertIn("Cancelled: Truck unavailable", cancelled.remarks)

        with self.assertRaises(InvalidState):
            complete_transfer(transaction_code=record.transaction_code)
        with self.assertRaises(InvalidState):
            cancel_transfer(transaction_code=record.transaction_code)

    def test_transfer_more_than_available_is_rejected(self):
        with self.assertRaises(InsufficientStock):
            initiate_transfer(
                source_branch=self.store_a,
                destination_branch=self.store_b,
                product=self.product,
                quantity=11,
            )

        self.assertEqual(self.quantity(self.store_a), 10)
        self.assertFalse(InventoryTransaction.objects.filter(transaction_type=InventoryTransaction.Type.TRANSFER).exists())

    def test_same_branch_transfer_is_invalid(self):
        with self.assertRaises(InvalidArgument):
            initiate_transfer(
                source_branch=self.store_a,
                destination_branch=self.store_a,
                product=self.product,
                quantity=1,
            )

    def test_unknown_transfer_code(self):
        with self.assertRaises(NotFound):
            complete_transfer(transaction_code="TR-20240101-9999")

    def test_stock_in_code_is_not_a_transfer(self):
        stock_record = InventoryTransaction.objects.get(transaction_type=InventoryTransaction.Type.STOCK_IN)

        with self.assertRaises(NotFound):
            complete_transfer(transaction_code=stock_record.transaction_code)

    def test_transfers_never_change_the_conserved_total(self):
        before = stock_totals(self.product.id)
        self.assertEqual(before, {"on_hand": 10, "in_transit": 0, "total": 10})

        first = initiate_transfer(source_branch=self.store_a, destination_branch=self.store_b, product=self.product, quantity=3)
        second = initiate_transfer(source_branch=self.store_a, destination_branch=self.warehouse, product=self.product, quantity=2)
        initiate_transfer(
            source_branch=self.store_a,
            destination_branch=self.store_b,
            product=self.product,
            quantity=1,
            immediate=True,
        )
        self.assertEqual(stock_totals(self.product.id), {"on_hand": 5, "in_transit": 5, "total": 10})

        complete_transfer(transaction_code=first.transaction_code)
        cancel_transfer(transaction_code=second.transaction_code)
        self.assertEqual(stock_totals(self.product.id), {"on_hand": 10, "in_transit": 0, "total": 10})

        stock_out(branch=self.store_b, product=self.product, quantity=2, reason="Sold")
        self.receive(self.warehouse, 7)
        self.assertEqual(stock_totals(self.product.id)["total"], 15)


class StockAlertTests(InventoryFixtureMixin, TestCase):
    def test_alert_lifecycle(self):
        self.receive(self.store_a, 3)
        alert = StockAlert.objects.get(is_resolved=False)
        self.assertEqual(alert.alert_type, StockAlert.AlertType.LOW_STOCK)
        self.assertEqual(alert.current_quantity, 3)
        self.assertEqual(alert.threshold_quantity, 5)

        stock_out(branch=self.store_a, product=self.product, quantity=1, reason="Sold")
        alert.refresh_from_db()
        self.assertFalse(alert.is_resolved)
        self.assertEqual(alert.current_quantity, 2)

        adjust_stock(branch=self.store_a, product=self.product, new_quantity=0, reason="Lost")
        alert.refresh_from_db()
        self.assertTrue(alert.is_resolved)
        current = StockAlert.objects.get(is_resolved=False)
        self.assertEqual(current.alert_type, StockAlert.AlertType.OUT_OF_STOCK)

        self.receive(self.store_a, 50)
        self.assertFalse(StockAlert.objects.filter(is_resolved=False).exists())
        self.assertEqual(StockAlert.objects.count(), 2)

    def test_overstock_uses_max_as_threshold(self):
        adjust_stock(branch=self.store_a, product=self.product, new_quantity=1200, reason="Bulk delivery count")

        alert = StockAlert.objects.get(is_resolved=False)
        self.assertEqual(alert.alert_type, StockAlert.AlertType.OVERSTOCK)
        self.assertEqual(alert.threshold_quantity, 1000)

    def test_evaluate_returns_none_when_in_stock(self):
        level = StockLevel(branch=self.store_a, product=self.product, quantity=20, min_stock_level=5, max_stock_level=100)

        self.assertIsNone(evaluate(level))

    def test_sweep_raises_alerts_for_rows_written_elsewhere(self):
        StockLevel.objects.create(branch=self.store_a, product=self.product, quantity=0)
        StockLevel.objects.create(branch=self.store_b, product=self.product, quantity=40)

        checked = sweep_alerts()

        self.assertEqual(checked, 2)
        alerts = list(open_alerts())
        self.assertEqual(len(alerts), 1)
        self.assertEqual(alerts[0].branch, self.store_a)
        self.assertEqual(alerts[0].alert_type, StockAlert.AlertType.OUT_OF_STOCK)

    def test_sweep_command_reports_per_branch(self):
        StockLevel.objects.create(branch=self.store_a, product=self.product, quantity=1)
        out = StringIO()

        call_command("sweep_stock_alerts", branch_id=str(self.store_a.id), stdout=out)

        self.assertIn("Branch SA: checked 1 stock levels, 1 open alerts.", out.getvalue())
        self.assertIn("Alert sweep complete", out.getvalue())

    def test_sweep_command_rejects_malformed_branch_id(self):
        with self.assertRaises(CommandError):
            call_command("sweep_stock_alerts", branch_id="not-a-uuid", stdout=StringIO())


class DashboardTests(InventoryFixtureMixin, TestCase):
    def test_dashboard_stats(self):
        self.receive(self.store_a, 10)
        self.receive(self.store_b, 2, product=self.other_product)
        initiate_transfer(source_branch=self.store_a, destination_branch=self.store_b, product=self.product, quantity=4)

        stats = dashboard_stats()

        self.assertEqual(stats["total_units"], 8)
        self.assertEqual(stats["total_value"], Decimal("65.00"))
        self.assertEqual(stats["branch_count"], 3)
        self.assertEqual(stats["pending_transfers"], 1)
        self.assertEqual(stats["stock_status"]["in_stock"], 1)
        self.assertEqual(stats["stock_status"]["low_stock"], 1)
        recent = {row["transaction_type"]: row["count"] for row in stats["recent_transactions"]}
        self.assertEqual(recent, {"stock_in": 2, "transfer": 1})

    def test_status_counts_match_row_status_at_boundaries(self):
        rows = [
            (self.warehouse, self.product, None, 0, 5, 1000),
            (self.store_a, self.product, None, 5, 5, 1000),
            (self.store_b, self.product, None, 1000, 5, 1000),
            (self.warehouse, self.other_product, None, 1001, 5, 1000),
            (self.store_a, self.other_product, None, 8, 10, 6),
            (self.store_b, self.other_product, None, 12, 10, 6),
            (self.warehouse, self.product, self.variation, 0, 0, 10),
        ]
        for branch, product, variation, quantity, minimum, maximum in rows:
            StockLevel.objects.create(
                branch=branch,
                product=product,
                variation=variation,
                quantity=quantity,
                min_stock_level=minimum,
                max_stock_level=maximum,
            )
        expected = Counter(level.stock_status.value for level in StockLevel.objects.all())

        counts = dashboard_stats()["stock_status"]

        self.assertEqual(counts, {status.value: expected[status.value] for status in StockStatus})
        self.assertEqual(counts, {"out_of_stock": 2, "low_stock": 2, "in_stock": 1, "overstock": 2})

    def test_reconcile_command(self):
        self.receive(self.store_a, 10)
        initiate_transfer(source_branch=self.store_a, destination_branch=self.store_b, product=self.product, quantity=4)
        rows = reconciliation_rows(self.product.id)
        self.assertEqual(rows[0]["total"], 10)
        out = StringIO()

        call_command("reconcile_stock", product_id=str(self.product.id), stdout=out)

        self.assertIn(": 6 + 4 = 10", out.getvalue())
        self.assertIn("4 units in transit", out.getvalue())

    def test_reconcile_command_rejects_malformed_product_id(self):
        with self.assertRaises(CommandError):
            call_command("reconcile_stock", product_id="P-001", stdout=StringIO())


class InventoryApiTests(InventoryFixtureMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.client = APIClient()

    def post(self, user, path, payload, **extra):
        self.client.force_authenticate(user=user)
        return self.client.post(f"/api/v1/inventory/{path}", payload, format="json", **extra)

    def put(self, user, path, payload):
        self.client.force_authenticate(user=user)
        return self.client.put(f"/api/v1/inventory/{path}", payload, format="json")

    def get(self, user, path):
        self.client.force_authenticate(user=user)
        return self.client.get(f"/api/v1/inventory/{path}")

    def stock_in_payload(self, branch, quantity, **extra):
        return {"branch_id": str(branch.id), "product_id": str(self.product.id), "quantity": quantity, **extra}

    def test_stock_in_returns_code_and_writes_audit_log(self):
        response = self.post(
            self.clerk_a,
            "stock-in/",
            self.stock_in_payload(self.store_a, 10, unit_cost="1.25"),
            HTTP_X_REQUEST_ID="req-stock-1",
        )

        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertTrue(payload["success"])
        self.assertEqual(payload["quantity_added"], 10)
        self.assertRegex(payload["transaction_code"], CODE_PATTERN)
        self.assertEqual(self.quantity(self.store_a), 10)
        log = AuditLog.objects.get(action="stock.in", request_id="req-stock-1")
        self.assertEqual(log.after_snapshot["transaction_code"], payload["transaction_code"])

    def test_clerk_cannot_receive_at_another_branch(self):
        with self.assertLogs("security.authorization", level="WARNING") as cm:
            response = self.post(self.clerk_a, "stock-in/", self.stock_in_payload(self.store_b, 5))

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["code"], "permission_denied")
        self.assertTrue(any("branch_access_denied" in message for message in cm.output))
        self.assertEqual(self.quantity(self.store_b), 0)

    def test_unknown_product_is_not_found(self):
        payload = self.stock_in_payload(self.store_a, 5)
        payload["product_id"] = "00000000-0000-0000-0000-000000000000"

        response = self.post(self.clerk_a, "stock-in/", payload)

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "not_found")

    def test_validation_error_envelope(self):
        response = self.post(self.clerk_a, "stock-in/", self.stock_in_payload(self.store_a, 0))

        self.assertEqual(response.status_code, 400)
        payload = response.json()
        self.assertFalse(payload["success"])
        self.assertEqual(payload["code"], "validation_error")
        self.assertTrue(payload["error"].startswith("quantity:"))
        self.assertIn("quantity", payload["errors"])

    def test_oversized_quantity_is_a_validation_error(self):
        response = self.post(self.admin, "stock-in/", self.stock_in_payload(self.store_a, 2**63))

        self.assertEqual(response.status_code, 400)
        payload = response.json()
        self.assertEqual(payload["code"], "validation_error")
        self.assertIn("quantity", payload["errors"])
        self.assertEqual(self.quantity(self.store_a), 0)

    def test_receipt_past_row_ceiling_is_invalid_argument(self):
        self.receive(self.store_a, MAX_QUANTITY)

        response = self.post(self.admin, "stock-in/", self.stock_in_payload(self.store_a, 1))

        self.assertEqual(response.status_code, 400)
        payload = response.json()
        self.assertFalse(payload["success"])
        self.assertEqual(payload["code"], "invalid_argument")
        self.assertEqual(self.quantity(self.store_a), MAX_QUANTITY)

    def test_stock_out_insufficient_envelope(self):
        self.receive(self.store_a, 3)

        response = self.post(self.clerk_a, "stock-out/", {**self.stock_in_payload(self.store_a, 5), "reason": "Sold"})

        self.assertEqual(response.status_code, 400)
        payload = response.json()
        self.assertFalse(payload["success"])
        self.assertEqual(payload["code"], "insufficient_stock")
        self.assertEqual(payload["errors"]["available"], 3)
        self.assertIn("3 available", payload["error"])
        self.assertEqual(self.quantity(self.store_a), 3)

    def test_stock_out_success(self):
        self.receive(self.store_a, 10)

        response = self.post(self.clerk_a, "stock-out/", {**self.stock_in_payload(self.store_a, 4), "reason": "Sold"})

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["quantity_removed"], 4)
        self.assertEqual(self.quantity(self.store_a), 6)

    def test_clerk_cannot_adjust(self):
        response = self.post(
            self.clerk_a,
            "adjustments/",
            {"branch_id": str(self.store_a.id), "product_id": str(self.product.id), "new_quantity": 4, "reason": "Count"},
        )

        self.assertEqual(response.status_code, 403)

    def test_adjustment_payloads(self):
        self.receive(self.store_a, 6)
        body = {"branch_id": str(self.store_a.id), "product_id": str(self.product.id), "new_quantity": 9, "reason": "Count"}

        response = self.post(self.supervisor_a, "adjustments/", body)

        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertEqual(
            {key: payload[key] for key in ("previous_quantity", "new_quantity", "difference")},
            {"previous_quantity": 6, "new_quantity": 9, "difference": 3},
        )
        self.assertTrue(payload["transaction_code"].startswith("ADJ-"))

        unchanged = self.post(self.supervisor_a, "adjustments/", body)
        self.assertEqual(unchanged.status_code, 200)
        self.assertEqual(unchanged.json()["message"], "No adjustment needed")
        self.assertIsNone(unchanged.json()["transaction_code"])

        stale = self.post(self.supervisor_a, "adjustments/", {**body, "new_quantity": 1, "expected_quantity": 6})
        self.assertEqual(stale.status_code, 409)
        self.assertEqual(stale.json()["code"], "concurrent_modification")
        self.assertEqual(stale.json()["errors"], {"expected_quantity": 6, "current_quantity": 9})

    def test_transfer_round_trip_over_http(self):
        self.receive(self.store_a, 10)
        body = {
            "source_branch_id": str(self.store_a.id),
            "destination_branch_id": str(self.store_b.id),
            "product_id": str(self.product.id),
            "quantity": 4,
        }

        self.assertEqual(self.post(self.clerk_a, "transfers/", body).status_code, 403)

        created = self.post(self.supervisor_a, "transfers/", body)
        self.assertEqual(created.status_code, 201)
        code = created.json()["transaction_code"]
        self.assertEqual(created.json()["status"], "in_transit")
        self.assertEqual(created.json()["quantity_transferred"], 4)

        wrong_branch = self.put(self.clerk_a, "transfers/complete/", {"transaction_code": code})
        self.assertEqual(wrong_branch.status_code, 403)

        completed = self.put(self.clerk_b, "transfers/complete/", {"transaction_code": code})
        self.assertEqual(completed.status_code, 200)
        self.assertEqual(completed.json()["status"], "completed")
        self.assertTrue(completed.json()["success"])
        self.assertEqual(self.quantity(self.store_b), 4)

        again = self.put(self.clerk_b, "transfers/complete/", {"transaction_code": code})
        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.json()["code"], "invalid_state")
        self.assertEqual(self.quantity(self.store_b), 4)
        self.assertTrue(AuditLog.objects.filter(action="transfer.complete").exists())

    def test_cancel_transfer_over_http(self):
        self.receive(self.store_a, 10)
        record = initiate_transfer(source_branch=self.store_a, destination_branch=self.store_b, product=self.product, quantity=4)

        response = self.put(self.supervisor_a, "transfers/cancel/", {"transaction_code": record.transaction_code, "reason": "Wrong item"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "cancelled")
        self.assertEqual(self.quantity(self.store_a), 10)

    def test_immediate_transfer_over_http(self):
        self.receive(self.warehouse, 10)
        body = {
            "source_branch_id": str(self.warehouse.id),
            "destination_branch_id": str(self.store_a.id),
            "product_id": str(self.product.id),
            "quantity": 4,
            "immediate": True,
        }

        response = self.post(self.admin, "transfers/", body)

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["status"], "completed")
        self.assertEqual(self.quantity(self.store_a), 4)

    def test_same_branch_transfer_is_a_validation_error(self):
        body = {
            "source_branch_id": str(self.store_a.id),
            "destination_branch_id": str(self.store_a.id),
            "product_id": str(self.product.id),
            "quantity": 1,
        }

        response = self.post(self.supervisor_a, "transfers/", body)

        self.assertEqual(response.status_code, 400)
        self.assertIn("destination_branch_id", response.json()["errors"])

    def test_complete_unknown_transfer_is_not_found(self):
        response = self.put(self.clerk_b, "transfers/complete/", {"transaction_code": "TR-20240101-0042"})

        self.assertEqual(response.status_code, 404)

    def test_transaction_list_filters_and_limit(self):
        self.receive(self.store_a, 10)
        self.receive(self.store_b, 5)
        stock_out(branch=self.store_a, product=self.product, quantity=1, reason="Sold")

        everything = self.get(self.clerk_a, "transactions/")
        self.assertEqual(everything.status_code, 200)
        self.assertEqual(len(everything.json()), 3)

        limited = self.get(self.clerk_a, "transactions/?limit=1")
        self.assertEqual(len(limited.json()), 1)

        by_type = self.get(self.clerk_a, "transactions/?type=stock_out")
        self.assertEqual([row["transaction_type"] for row in by_type.json()], ["stock_out"])

        by_branch = self.get(self.clerk_a, f"transactions/?branch_id={self.store_b.id}")
        self.assertEqual(len(by_branch.json()), 1)

        bad_type = self.get(self.clerk_a, "transactions/?type=gift")
        self.assertEqual(bad_type.status_code, 400)

    def test_transaction_detail_by_code(self):
        record = self.receive(self.store_a, 10)

        response = self.get(self.clerk_a, f"transactions/{record.transaction_code}/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["branch_code"], "SA")
        self.assertEqual(response.json()["quantity"], 10)

    def test_stock_levels_and_alerts(self):
        self.receive(self.store_a, 10)
        self.receive(self.store_b, 2)

        levels = self.get(self.clerk_a, f"stock-levels/?branch_id={self.store_b.id}")
        self.assertEqual(levels.status_code, 200)
        self.assertEqual(len(levels.json()), 1)
        self.assertEqual(levels.json()[0]["stock_status"], "low_stock")
        self.assertEqual(levels.json()[0]["branch_code"], "SB")

        alerts = self.get(self.clerk_a, "alerts/")
        self.assertEqual([row["branch_code"] for row in alerts.json()], ["SB"])

        bad_id = self.get(self.clerk_a, "stock-levels/?branch_id=not-a-uuid")
        self.assertEqual(bad_id.status_code, 400)

    def test_dashboard_overview_and_totals(self):
        self.receive(self.store_a, 10)
        initiate_transfer(source_branch=self.store_a, destination_branch=self.store_b, product=self.product, quantity=4)

        dashboard = self.get(self.clerk_a, "dashboard/")
        self.assertEqual(dashboard.status_code, 200)
        self.assertEqual(dashboard.json()["pending_transfers"], 1)
        self.assertEqual(dashboard.json()["total_units"], 6)

        overview = self.get(self.clerk_a, "overview/")
        rows = {row["sku"]: row for row in overview.json()}
        self.assertEqual(rows["P-001"]["total_stock"], 6)
        self.assertEqual(rows["P-001"]["branches_with_stock"], 1)
        self.assertEqual(rows["P-002"]["total_stock"], 0)

        totals = self.get(self.clerk_a, f"stock-totals/?product_id={self.product.id}")
        self.assertEqual(totals.json()["total"], 10)
        self.assertEqual(totals.json()["in_transit"], 4)

        missing = self.get(self.clerk_a, "stock-totals/")
        self.assertEqual(missing.status_code, 400)

    def test_reads_require_authentication(self):
        response = APIClient().get("/api/v1/inventory/stock-levels/")

        self.assertEqual(response.status_code, 401)
