"""
Tests for ShiftLifecycleController.

Verifies:
- Edits land in the snapshot at once and reach the local tier debounced
- Compensation and carried-expense clamps
- Close preconditions, variance confirmation and the grace window
- Finalization: archive first, successor row, carried expenses
- Archive failure leaves the row active
- Privileged deletes
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import patch
from uuid import uuid4

import pytest

from cashbox_config.schema import CashboxConfig
from cashbox_ingestion.domain.types import (
    MULTIPLE_EMPLOYEES,
    ParseResult,
    PaymentMethod,
)
from cashbox_kernel.domain.rows import Branch, CarryOver, ExpenseItem, RowStatus
from cashbox_kernel.exceptions import (
    ArchiveWriteError,
    CarriedItemIndexError,
    CarriedItemLockedError,
    CloseNotAllowedError,
    ClosePendingError,
    ExpenseDescriptionRequiredError,
    InvalidRowFieldError,
    NoPendingCloseError,
    PrivilegedActionDeniedError,
    RowNotFoundError,
    ShiftCloseFailedError,
    StatementImportError,
    SuccessorRowError,
)
from cashbox_kernel.logging_config import LogContext
from cashbox_services._lifecycle_types import ShiftState
from cashbox_services.shift_lifecycle import (
    NET_CARRY_DESCRIPTION,
    ShiftLifecycleController,
)

START_TIME = datetime(2024, 3, 1, 9, 0, 0, tzinfo=timezone.utc)
TEST_ADMIN_CODE = "4321"


def _balance(controller, row_id):
    """Enter figures that reconcile exactly."""
    controller.update_field(row_id, "cash", "1000")
    controller.update_field(row_id, "program_balance_cash", "1000")
    controller.update_field(row_id, "mada", "200")
    controller.update_field(row_id, "program_balance_bank", "200")


def _close(controller, clock, row_id):
    controller.request_close(row_id)
    clock.advance(10)
    return controller.tick().closed


@pytest.fixture
def row_id(controller):
    return controller.rows[0].id


class TestLoad:
    def test_empty_branch_gets_a_row(self, controller, row_store):
        assert len(controller.rows) == 1
        row = controller.rows[0]
        assert row.employee_name == "سارة"
        assert row.created_at == START_TIME
        assert row_store.get_active(Branch.CORNICHE, row.id) is not None

    def test_existing_rows_reused(self, controller, make_controller):
        again = make_controller()
        assert [r.id for r in again.rows] == [r.id for r in controller.rows]

    def test_state_of(self, controller, row_id):
        assert controller.state_of(row_id) == ShiftState.ACTIVE

    def test_stored_variance_is_recomputed(
        self, controller, row_id, row_store, make_controller
    ):
        row_store.local.patch(
            Branch.CORNICHE, row_id, cash=Decimal("500"), variance=Decimal("123")
        )
        reloaded = make_controller()
        assert reloaded.get_row(row_id).variance == Decimal("500")


class TestFieldEdits:
    def test_edit_is_visible_immediately_and_persisted_after_debounce(
        self, controller, row_id, row_store, clock
    ):
        result = controller.update_field(row_id, "cash", "500")
        assert result.row.cash == Decimal("500")
        assert controller.get_row(row_id).cash == Decimal("500")
        assert controller.is_pending_write(row_id)
        assert row_store.get_active(Branch.CORNICHE, row_id).cash == Decimal("0")

        clock.advance(0.4)
        tick = controller.tick()
        assert tick.flushed == (row_id,)
        assert row_store.get_active(Branch.CORNICHE, row_id).cash == Decimal("500")

    def test_burst_of_edits_writes_once(self, controller, row_id, clock, row_store):
        with patch.object(row_store, "save_active", wraps=row_store.save_active) as save:
            for value in ("1", "12", "123"):
                controller.update_field(row_id, "cash", value)
                clock.advance(0.1)
            clock.advance(0.4)
            controller.tick()
        assert save.call_count == 1
        assert row_store.get_active(Branch.CORNICHE, row_id).cash == Decimal("123")

    def test_locale_amounts_and_garbage(self, controller, row_id):
        assert controller.update_field(row_id, "visa", "1.500").row.visa == Decimal("1500")
        assert controller.update_field(row_id, "visa", "abc").row.visa == Decimal("0")

    def test_oversized_amount_degrades_to_zero(self, controller, row_id):
        controller.update_field(row_id, "cash", "500")
        row = controller.update_field(row_id, "cash", "9" * 30).row
        assert row.cash == Decimal("0")
        assert row.variance == Decimal("0")

    def test_text_fields(self, controller, row_id):
        row = controller.update_field(row_id, "notes", "درج ناقص").row
        assert row.notes == "درج ناقص"

    @pytest.mark.parametrize("field", ["variance", "id", "status", "closed_at"])
    def test_non_editable_fields_rejected(self, controller, row_id, field):
        with pytest.raises(InvalidRowFieldError):
            controller.update_field(row_id, field, "1")

    def test_unknown_row(self, controller):
        with pytest.raises(RowNotFoundError):
            controller.update_field(uuid4(), "cash", "1")

    def test_variance_recomputed(self, controller, row_id):
        controller.update_field(row_id, "cash", "1100")
        row = controller.update_field(row_id, "program_balance_cash", "1000").row
        assert row.variance == Decimal("100")


class TestCompensationClamp:
    def test_compensation_capped_at_expenses(self, controller, row_id):
        controller.update_field(row_id, "expenses", "100")
        result = controller.update_field(row_id, "expense_compensation", "150")
        assert result.clamped is True
        assert result.max_allowed == Decimal("100")
        assert result.row.expense_compensation == Decimal("100")

    def test_negative_compensation_floored(self, controller, row_id):
        result = controller.update_field(row_id, "expense_compensation", "-5")
        assert result.row.expense_compensation == Decimal("0")
        assert result.clamped is True

    def test_lowering_expenses_lowers_compensation(self, controller, row_id):
        controller.update_field(row_id, "expenses", "100")
        controller.update_field(row_id, "expense_compensation", "80")
        row = controller.update_field(row_id, "expenses", "50").row
        assert row.expense_compensation == Decimal("50")

    def test_within_bounds_not_clamped(self, controller, row_id):
        controller.update_field(row_id, "expenses", "100")
        result = controller.update_field(row_id, "expense_compensation", "40")
        assert result.clamped is False
        assert result.row.expense_compensation == Decimal("40")


@pytest.fixture
def carried_controller(row_store, make_controller):
    """Controller whose only row starts with two carried expense lines."""
    carry = CarryOver(
        expenses=Decimal("50"),
        items=(
            ExpenseItem(Decimal("30"), "ماء"),
            ExpenseItem(Decimal("20"), "قهوة"),
        ),
    )
    row_store.add(Branch.CORNICHE, "سارة", START_TIME, carry)
    return make_controller()


class TestExpenseItems:
    def test_expenses_floored_at_carried_total(self, carried_controller):
        row_id = carried_controller.rows[0].id
        result = carried_controller.update_field(row_id, "expenses", "10")
        assert result.clamped is True
        assert result.min_allowed == Decimal("50")
        assert result.row.expenses == Decimal("50")

    def test_set_items_totals_and_saves_immediately(self, carried_controller, row_store):
        row = carried_controller.rows[0]
        items = row.carried_items + (
            ExpenseItem(Decimal("15"), "مناديل"),
            ExpenseItem(Decimal("0"), ""),
        )
        updated = carried_controller.set_expense_items(row.id, items)
        assert updated.expenses == Decimal("65")
        assert len(updated.expense_items) == 3
        assert not carried_controller.is_pending_write(row.id)
        assert row_store.get_active(Branch.CORNICHE, row.id).expenses == Decimal("65")

    def test_oversized_item_amount_degrades_to_zero(self, carried_controller):
        row = carried_controller.rows[0]
        items = row.carried_items + (ExpenseItem("9" * 30, "خطأ إدخال"),)
        updated = carried_controller.set_expense_items(row.id, items)
        assert updated.expense_items[-1].amount == Decimal("0")
        assert updated.expenses == Decimal("50")

    def test_description_required(self, carried_controller):
        row = carried_controller.rows[0]
        with pytest.raises(ExpenseDescriptionRequiredError) as exc_info:
            carried_controller.set_expense_items(
                row.id, row.carried_items + (ExpenseItem(Decimal("5"), "  "),)
            )
        assert exc_info.value.item_index == 2

    def test_carried_items_locked(self, carried_controller):
        row = carried_controller.rows[0]
        with pytest.raises(CarriedItemLockedError):
            carried_controller.set_expense_items(
                row.id, (ExpenseItem(Decimal("30"), "ماء"),)
            )
        with pytest.raises(CarriedItemLockedError):
            carried_controller.set_expense_items(
                row.id,
                (ExpenseItem(Decimal("31"), "ماء"), ExpenseItem(Decimal("20"), "قهوة")),
            )

    def test_set_items_reclamps_compensation(self, controller, row_id):
        controller.set_expense_items(row_id, (ExpenseItem(Decimal("100"), "صيانة"),))
        controller.update_field(row_id, "expense_compensation", "100")
        row = controller.set_expense_items(row_id, (ExpenseItem(Decimal("40"), "صيانة"),))
        assert row.expense_compensation == Decimal("40")

    def test_clear_expenses_keeps_carried(self, carried_controller):
        row = carried_controller.rows[0]
        carried_controller.set_expense_items(
            row.id, row.carried_items + (ExpenseItem(Decimal("15"), "مناديل"),)
        )
        cleared = carried_controller.clear_expenses(row.id)
        assert cleared.expense_items == row.carried_items
        assert cleared.expenses == Decimal("50")

    def test_remove_carried_item_requires_code(self, carried_controller):
        row_id = carried_controller.rows[0].id
        with pytest.raises(PrivilegedActionDeniedError):
            carried_controller.remove_carried_item(row_id, 0, "wrong")

    def test_remove_carried_item(self, carried_controller, captured_logs):
        row = carried_controller.rows[0]
        carried_controller.set_expense_items(
            row.id, row.carried_items + (ExpenseItem(Decimal("5"), "مناديل"),)
        )
        updated = carried_controller.remove_carried_item(row.id, 0, TEST_ADMIN_CODE)
        assert updated.carried_expense_count == 1
        assert updated.expense_items == (
            ExpenseItem(Decimal("20"), "قهوة"),
            ExpenseItem(Decimal("5"), "مناديل"),
        )
        assert updated.expenses == Decimal("25")
        assert any(r["message"] == "carried_item_removed" for r in captured_logs())

    def test_remove_carried_item_index_out_of_range(self, carried_controller):
        row_id = carried_controller.rows[0].id
        with pytest.raises(CarriedItemIndexError) as exc_info:
            carried_controller.remove_carried_item(row_id, 2, TEST_ADMIN_CODE)
        assert exc_info.value.code == "CARRIED_ITEM_INDEX_INVALID"
        assert exc_info.value.carried_count == 2
        assert len(carried_controller.get_row(row_id).expense_items) == 2

    def test_clear_row(self, carried_controller):
        row_id = carried_controller.rows[0].id
        carried_controller.update_field(row_id, "cash", "900")
        carried_controller.update_field(row_id, "visa", "40")
        row = carried_controller.clear_row(row_id)
        assert row.cash == Decimal("0")
        assert row.visa == Decimal("0")
        assert row.expenses == Decimal("50")
        assert row.carried_expense_count == 2


class TestApplyStatement:
    def _result(self, employee_name="خالد", error=None):
        sums = {method: Decimal("0") for method in PaymentMethod}
        sums[PaymentMethod.MADA] = Decimal("700")
        sums[PaymentMethod.VISA] = Decimal("150.25")
        sums[PaymentMethod.CASH] = Decimal("999")
        return ParseResult(sums=sums, employee_name=employee_name, error=error)

    def test_fills_card_fields_but_not_cash(self, controller, row_id, row_store):
        controller.update_field(row_id, "cash", "300")
        row = controller.apply_statement(self._result(), row_id)
        assert row.mada == Decimal("700")
        assert row.visa == Decimal("150.25")
        assert row.mastercard == Decimal("0")
        assert row.cash == Decimal("300")
        assert row.employee_name == "خالد"
        assert row_store.get_active(Branch.CORNICHE, row_id).mada == Decimal("700")

    def test_multiple_employees_keep_name(self, controller, row_id):
        row = controller.apply_statement(self._result(MULTIPLE_EMPLOYEES), row_id)
        assert row.employee_name == "سارة"

    def test_defaults_to_newest_row(self, controller, row_id):
        row = controller.apply_statement(self._result())
        assert row.id == row_id

    def test_failed_parse_rejected(self, controller, row_id):
        with pytest.raises(StatementImportError):
            controller.apply_statement(ParseResult.empty("header not found"), row_id)


class TestCloseRequest:
    def test_required_values(self, controller, row_id):
        controller.update_field(row_id, "cash", "100")
        with pytest.raises(CloseNotAllowedError) as exc_info:
            controller.request_close(row_id)
        assert set(exc_info.value.missing) == {
            "program_balance_cash",
            "program_balance_bank",
        }

    def test_variance_needs_confirmation(self, controller, row_id):
        _balance(controller, row_id)
        controller.update_field(row_id, "cash", "990")
        request = controller.request_close(row_id)
        assert request.needs_confirmation is True
        assert request.cash_variance == Decimal("-10")
        assert request.state == ShiftState.ACTIVE
        assert controller.countdown() is None

        confirmed = controller.request_close(row_id, confirm_variance=True)
        assert confirmed.needs_confirmation is False
        assert confirmed.state == ShiftState.PENDING_CLOSE

    def test_balanced_row_enters_grace_window(self, controller, row_id, captured_logs):
        _balance(controller, row_id)
        request = controller.request_close(row_id)
        assert request.countdown.seconds_left == 10
        assert request.countdown.deadline == START_TIME + timedelta(seconds=10)
        assert controller.state_of(row_id) == ShiftState.PENDING_CLOSE
        logs = [r for r in captured_logs() if r["message"] == "shift_close_requested"]
        assert logs and logs[0]["row_id"] == str(row_id)
        assert logs[0]["branch"] == "corniche"

    def test_countdown_rounds_up(self, controller, row_id, clock):
        _balance(controller, row_id)
        controller.request_close(row_id)
        clock.advance(3.5)
        assert controller.tick().countdown.seconds_left == 7

    def test_repeat_request_keeps_deadline(self, controller, row_id, clock):
        _balance(controller, row_id)
        first = controller.request_close(row_id)
        clock.advance(4)
        second = controller.request_close(row_id)
        assert second.countdown.deadline == first.countdown.deadline

    def test_second_row_rejected_while_pending(self, controller, row_id, row_store, clock):
        clock.advance(1)
        other = row_store.add(Branch.CORNICHE, "سارة", clock.now())
        controller.load()
        _balance(controller, row_id)
        _balance(controller, other.id)
        controller.request_close(row_id)
        with pytest.raises(ClosePendingError):
            controller.request_close(other.id)


class TestUndo:
    def test_undo_within_window(self, controller, row_id, clock, archive_store, captured_logs):
        _balance(controller, row_id)
        controller.request_close(row_id)
        clock.advance(5)
        assert controller.undo_close() == row_id
        clock.advance(10)
        result = controller.tick()
        assert result.closed is None
        assert controller.state_of(row_id) == ShiftState.ACTIVE
        assert archive_store.get(Branch.CORNICHE, row_id) is None
        assert any(r["message"] == "shift_close_undone" for r in captured_logs())

    def test_undo_without_pending(self, controller):
        with pytest.raises(NoPendingCloseError):
            controller.undo_close()


class TestFinalize:
    def test_close_archives_and_opens_successor(
        self, controller, row_id, clock, row_store, captured_logs
    ):
        _balance(controller, row_id)
        controller.request_close(row_id)
        clock.advance(9)
        assert controller.tick().closed is None

        clock.advance(1)
        result = controller.tick()
        closed = result.closed
        assert closed is not None
        assert closed.closed.status == RowStatus.CLOSED
        assert closed.closed.closed_at == START_TIME + timedelta(seconds=10)
        assert result.countdown is None

        archived = row_store.get_closed(Branch.CORNICHE, row_id)
        assert archived.cash == Decimal("1000")
        assert archived.variance == Decimal("0")
        assert row_store.get_active(Branch.CORNICHE, row_id) is None

        assert [r.id for r in controller.rows] == [closed.successor.id]
        assert closed.successor.employee_name == "سارة"
        assert closed.successor.carried_expense_count == 0
        assert any(r["message"] == "shift_closed" for r in captured_logs())

    def test_unflushed_edit_is_archived(self, controller, row_id, clock, row_store):
        _balance(controller, row_id)
        clock.advance(0.4)
        controller.tick()
        controller.request_close(row_id)
        clock.advance(9.9)
        controller.update_field(row_id, "notes", "ملاحظة أخيرة")
        clock.advance(0.1)
        result = controller.tick()
        assert result.closed is not None
        assert row_store.get_closed(Branch.CORNICHE, row_id).notes == "ملاحظة أخيرة"

    def test_expenses_carry_over_without_compensation(self, controller, row_id, clock):
        _balance(controller, row_id)
        controller.set_expense_items(
            row_id,
            (ExpenseItem(Decimal("30"), "ماء"), ExpenseItem(Decimal("20"), "قهوة")),
        )
        controller.update_field(row_id, "program_balance_cash", "1050")
        successor = _close(controller, clock, row_id).successor
        assert successor.carried_expense_count == 2
        assert successor.expenses == Decimal("50")
        assert successor.expense_items[0] == ExpenseItem(Decimal("30"), "ماء")

    def test_partial_compensation_carries_net_line(self, controller, row_id, clock):
        _balance(controller, row_id)
        controller.set_expense_items(row_id, (ExpenseItem(Decimal("50"), "صيانة"),))
        controller.update_field(row_id, "expense_compensation", "20")
        controller.update_field(row_id, "program_balance_cash", "1030")
        successor = _close(controller, clock, row_id).successor
        assert successor.expense_items == (
            ExpenseItem(Decimal("30.00"), NET_CARRY_DESCRIPTION),
        )
        assert successor.carried_expense_count == 1
        assert successor.expenses == Decimal("30")

    def test_full_compensation_carries_nothing(self, controller, row_id, clock):
        _balance(controller, row_id)
        controller.set_expense_items(row_id, (ExpenseItem(Decimal("50"), "صيانة"),))
        controller.update_field(row_id, "expense_compensation", "50")
        successor = _close(controller, clock, row_id).successor
        assert successor.expense_items == ()
        assert successor.expenses == Decimal("0")

    def test_successor_takes_statement_employee(self, controller, row_id, clock):
        _balance(controller, row_id)
        controller.update_field(row_id, "employee_name", "خالد")
        successor = _close(controller, clock, row_id).successor
        assert successor.employee_name == "خالد"

    def test_archive_failure_keeps_row_active(
        self, controller, row_id, clock, row_store, captured_logs
    ):
        _balance(controller, row_id)
        controller.request_close(row_id)
        clock.advance(10)
        with patch.object(
            row_store.archive,
            "put",
            side_effect=ArchiveWriteError("corniche", str(row_id), "offline"),
        ):
            with pytest.raises(ShiftCloseFailedError) as exc_info:
                controller.tick()
        assert exc_info.value.reason == "offline"
        assert controller.state_of(row_id) == ShiftState.ACTIVE
        assert controller.countdown() is None
        assert row_store.get_active(Branch.CORNICHE, row_id) is not None
        assert any(r["message"] == "shift_close_failed" for r in captured_logs())

        # A retry goes through once the archive is reachable again.
        controller.request_close(row_id)
        clock.advance(10)
        assert controller.tick().closed is not None

    def test_successor_failure_keeps_carry_for_next_load(
        self, controller, row_id, clock, row_store, captured_logs
    ):
        _balance(controller, row_id)
        controller.set_expense_items(row_id, (ExpenseItem(Decimal("30"), "ماء"),))
        controller.update_field(row_id, "program_balance_cash", "1030")
        controller.request_close(row_id)
        clock.advance(10)
        with patch.object(row_store.local, "add", side_effect=RuntimeError("disk full")):
            with pytest.raises(SuccessorRowError) as exc_info:
                controller.tick()

        assert exc_info.value.carry.expenses == Decimal("30")
        assert exc_info.value.reason == "disk full"
        assert row_store.get_closed(Branch.CORNICHE, row_id) is not None
        assert row_store.get_active(Branch.CORNICHE, row_id) is None
        assert controller.countdown() is None
        assert controller.rows == []
        assert any(r["message"] == "successor_row_failed" for r in captured_logs())

        # The close itself completed; nothing is left to finalize.
        assert controller.tick().closed is None

        (successor,) = controller.load()
        assert successor.carried_expense_count == 1
        assert successor.expenses == Decimal("30")
        assert successor.employee_name == "سارة"
        assert [r.id for r in controller.load()] == [successor.id]

    def test_close_events_share_a_correlation_id(
        self, controller, row_id, clock, captured_logs
    ):
        _balance(controller, row_id)
        _close(controller, clock, row_id)
        logs = captured_logs()
        requested = next(r for r in logs if r["message"] == "shift_close_requested")
        closed = next(r for r in logs if r["message"] == "shift_closed")
        assert requested["correlation_id"] == closed["correlation_id"]
        assert closed["row_id"] == str(row_id)
        assert "correlation_id" not in LogContext.get_all()


class TestSwitchBranch:
    def test_switch_drops_pending_state(self, controller, row_id, row_store, clock):
        _balance(controller, row_id)
        controller.request_close(row_id)
        rows = controller.switch_branch(Branch.ANDALUSIA)
        assert controller.branch == Branch.ANDALUSIA
        assert len(rows) == 1
        assert controller.countdown() is None
        assert row_store.get_active(Branch.CORNICHE, row_id).cash == Decimal("0")

        clock.advance(15)
        assert controller.tick().closed is None
        assert row_store.get_closed(Branch.CORNICHE, row_id) is None


class TestPrivilegedActions:
    def test_delete_requires_code(self, controller, row_id):
        with pytest.raises(PrivilegedActionDeniedError):
            controller.delete_row(row_id, is_closed=False, admin_code=None)

    def test_delete_active_row_cancels_pending_close(self, controller, row_id, row_store):
        _balance(controller, row_id)
        controller.request_close(row_id)
        assert controller.delete_row(row_id, False, TEST_ADMIN_CODE) is True
        assert controller.countdown() is None
        assert controller.rows == []
        assert row_store.get_active(Branch.CORNICHE, row_id) is None

    def test_delete_closed_rows(self, controller, row_id, clock, row_store):
        _balance(controller, row_id)
        _close(controller, clock, row_id)
        assert controller.delete_row(row_id, True, TEST_ADMIN_CODE) is True
        assert row_store.get_closed(Branch.CORNICHE, row_id) is None

    def test_delete_all_closed(self, controller, clock):
        for _ in range(2):
            current = controller.rows[0].id
            _balance(controller, current)
            _close(controller, clock, current)
        assert controller.delete_all_closed(TEST_ADMIN_CODE) == 2

    def test_default_verifier_refuses_everything(self, row_store, clock):
        ctrl = ShiftLifecycleController(row_store, clock, Branch.CORNICHE, "سارة")
        ctrl.load()
        with pytest.raises(PrivilegedActionDeniedError):
            ctrl.delete_all_closed("anything")

    def test_from_config(self, row_store, clock):
        config = CashboxConfig(admin_code="9999", grace_period_seconds=5)
        ctrl = ShiftLifecycleController.from_config(
            row_store, clock, Branch.CORNICHE, "سارة", config
        )
        ctrl.load()
        row_id = ctrl.rows[0].id
        _balance(ctrl, row_id)
        assert ctrl.request_close(row_id).countdown.seconds_left == 5
        assert ctrl.delete_all_closed("9999") == 0


class TestVarianceReport:
    def test_swap_hint(self, controller, row_id):
        controller.update_field(row_id, "cash", "620")
        controller.update_field(row_id, "program_balance_cash", "500")
        controller.update_field(row_id, "program_balance_bank", "121")
        report = controller.variance_report(row_id)
        assert report.cash_variance == Decimal("120")
        assert report.bank_variance == Decimal("-121")
        assert report.swap_hint is not None
        assert not report.reconciled

    def test_reconciled(self, controller, row_id):
        _balance(controller, row_id)
        report = controller.variance_report(row_id)
        assert report.reconciled
        assert report.swap_hint is None
