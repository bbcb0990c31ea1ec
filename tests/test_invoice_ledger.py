"""Invoice Ledger: criação, patch de status/campos e ajustes."""

from datetime import timedelta
from decimal import Decimal

import structlog
from django.utils import timezone

from billing_ledger.core.application.commands.invoice_commands import (
    AdjustInvoiceCommand,
    CreateInvoiceCommand,
    InvoiceItemInput,
    InvoicePatch,
    UpdateInvoiceCommand,
)
from billing_ledger.core.domain.entities.enums import InvoiceStatus
from plugins.django_interface.models import Invoice, InvoiceItem
from tests.helpers.factories import BillingTestCase, make_account

logger = structlog.get_logger(__name__)


class CreateInvoiceTests(BillingTestCase):
    def test_totals_are_computed_from_items(self) -> None:
        invoice = self.create_invoice(items=(
            InvoiceItemInput(description="Limpeza", unit_price="80.00", quantity=2, discount="10.00"),
            InvoiceItemInput(description="Raio-X", unit_price="45.50"),
        ))

        self.assertEqual(invoice.subtotal, Decimal("195.50"))
        self.assertEqual(invoice.balance, Decimal("195.50"))
        self.assertEqual(invoice.paid_amount, Decimal("0.00"))
        self.assertEqual(invoice.status, InvoiceStatus.PENDING)
        self.assertEqual(InvoiceItem.objects.filter(invoice_id=invoice.id).count(), 2)

        account = self.refresh_account()
        self.assertEqual(account.outstanding_balance, Decimal("195.50"))
        self.assertEqual(account.balance, Decimal("195.50"))

    def test_invoice_numbers_are_sequential_per_clinic(self) -> None:
        year = timezone.localdate().year
        first = self.create_invoice()
        second = self.create_invoice()
        other_clinic = self.create_invoice(account=make_account())

        self.assertEqual(first.invoice_number, f"INV-{year}-00001")
        self.assertEqual(second.invoice_number, f"INV-{year}-00002")
        self.assertEqual(other_clinic.invoice_number, f"INV-{year}-00001")

    def test_zero_total_invoice_is_created_paid(self) -> None:
        invoice = self.create_invoice("0.00")
        self.assertEqual(invoice.status, InvoiceStatus.PAID)
        self.assertIsNotNone(invoice.paid_at)

    def test_draft_stays_out_of_account_balance(self) -> None:
        self.create_invoice("300.00", status=InvoiceStatus.DRAFT)
        self.assertEqual(self.refresh_account().outstanding_balance, Decimal("0.00"))

    def test_validation_errors_write_nothing(self) -> None:
        today = timezone.localdate()
        cases = {
            "sem itens": CreateInvoiceCommand(account_id=self.account.id, items=(), due_date=today),
            "desconto maior que o item": CreateInvoiceCommand(
                account_id=self.account.id,
                items=(InvoiceItemInput(description="X", unit_price="10.00", discount="11.00"),),
                due_date=today,
            ),
            "vencimento antes da emissão": CreateInvoiceCommand(
                account_id=self.account.id,
                items=(InvoiceItemInput(description="X", unit_price="10.00"),),
                invoice_date=today,
                due_date=today - timedelta(days=1),
            ),
            "quantidade zero": CreateInvoiceCommand(
                account_id=self.account.id,
                items=(InvoiceItemInput(description="X", unit_price="10.00", quantity=0),),
                due_date=today,
            ),
            "subtotal acima da capacidade": CreateInvoiceCommand(
                account_id=self.account.id,
                items=(InvoiceItemInput(description="X", unit_price="9999999999.99", quantity=2),),
                due_date=today,
            ),
        }
        for label, cmd in cases.items():
            with self.subTest(label):
                self.assertFailure(self.facade.create_invoice(cmd), "VALIDATION_ERROR")
        self.assertFalse(Invoice.objects.exists())

    def test_inactive_account_is_not_found(self) -> None:
        closed = make_account(self.clinic_id, is_active=False)
        cmd = CreateInvoiceCommand(
            account_id=closed.id,
            items=(InvoiceItemInput(description="X", unit_price="10.00"),),
            due_date=timezone.localdate(),
        )
        self.assertFailure(self.facade.create_invoice(cmd), "ACCOUNT_NOT_FOUND")

    def test_account_from_other_clinic_is_not_found(self) -> None:
        foreign = make_account()
        cmd = CreateInvoiceCommand(
            account_id=foreign.id,
            items=(InvoiceItemInput(description="X", unit_price="10.00"),),
            due_date=timezone.localdate(),
            clinic_id=self.clinic_id,
        )
        self.assertFailure(self.facade.create_invoice(cmd), "ACCOUNT_NOT_FOUND")


class UpdateInvoiceTests(BillingTestCase):
    def _patch(self, invoice, **fields):
        return self.facade.update_invoice(
            UpdateInvoiceCommand(invoice_id=invoice.id, patch=InvoicePatch(**fields)),
            self.clinic_id,
        )

    def test_only_present_fields_change(self) -> None:
        invoice = self.create_invoice()
        new_due = invoice.due_date + timedelta(days=10)

        updated = self.ok(self._patch(invoice, due_date=new_due))

        self.assertEqual(updated.due_date, new_due)
        self.assertEqual(updated.status, InvoiceStatus.PENDING)
        self.assertEqual(updated.notes, None)

    def test_allowed_and_forbidden_transitions(self) -> None:
        invoice = self.create_invoice(status=InvoiceStatus.DRAFT)
        self.assertEqual(self.ok(self._patch(invoice, status=InvoiceStatus.SENT)).status, InvoiceStatus.SENT)
        self.assertFailure(self._patch(invoice, status=InvoiceStatus.PAID), "INVALID_INVOICE_STATE")
        self.assertFailure(self._patch(invoice, status=InvoiceStatus.DRAFT), "INVALID_INVOICE_STATE")

    def test_cancel_with_payments_is_rejected(self) -> None:
        invoice = self.create_invoice("100.00")
        self.ok(self.pay("40.00", [(invoice.id, "40.00")]))

        self.assertFailure(self._patch(invoice, status=InvoiceStatus.CANCELLED), "INVALID_INVOICE_STATE")

    def test_cancelled_invoice_leaves_account_balance(self) -> None:
        invoice = self.create_invoice("100.00")
        self.ok(self._patch(invoice, status=InvoiceStatus.CANCELLED))

        self.assertEqual(self.refresh_account().outstanding_balance, Decimal("0.00"))
        self.assertFailure(self._patch(invoice, notes="reabrir"), "INVALID_INVOICE_STATE")

    def test_empty_patch_is_rejected(self) -> None:
        invoice = self.create_invoice()
        self.assertFailure(self._patch(invoice), "VALIDATION_ERROR")

    def test_other_clinic_cannot_patch(self) -> None:
        invoice = self.create_invoice()
        result = self.facade.update_invoice(
            UpdateInvoiceCommand(invoice_id=invoice.id, patch=InvoicePatch(notes="x")),
            make_account().clinic_id,
        )
        self.assertFailure(result, "INVOICE_NOT_FOUND")


class AdjustInvoiceTests(BillingTestCase):
    def test_adjustment_reduces_balance_and_can_settle(self) -> None:
        invoice = self.create_invoice("100.00")

        partial = self.ok(self.facade.adjust_invoice(
            AdjustInvoiceCommand(invoice_id=invoice.id, amount="30.00", reason="Desconto convênio")
        ))
        self.assertEqual(partial.balance, Decimal("70.00"))
        self.assertEqual(partial.adjustments, Decimal("30.00"))
        self.assertEqual(partial.status, InvoiceStatus.PENDING)

        settled = self.ok(self.facade.adjust_invoice(
            AdjustInvoiceCommand(invoice_id=invoice.id, amount="70.00", reason="Cortesia")
        ))
        self.assertEqual(settled.balance, Decimal("0.00"))
        self.assertEqual(settled.status, InvoiceStatus.PAID)
        logger.debug("test.adjust_settled", invoice=settled.invoice_number)

    def test_adjustment_errors(self) -> None:
        invoice = self.create_invoice("50.00")
        self.assertFailure(
            self.facade.adjust_invoice(AdjustInvoiceCommand(invoice_id=invoice.id, amount="60.00", reason="x")),
            "AMOUNT_EXCEEDS_BALANCE",
        )
        self.assertFailure(
            self.facade.adjust_invoice(AdjustInvoiceCommand(invoice_id=invoice.id, amount="10.00", reason=" ")),
            "REASON_REQUIRED",
        )
        Invoice.objects.filter(id=invoice.id).update(status=InvoiceStatus.CANCELLED)
        self.assertFailure(
            self.facade.adjust_invoice(AdjustInvoiceCommand(invoice_id=invoice.id, amount="10.00", reason="x")),
            "INVALID_INVOICE_STATE",
        )
