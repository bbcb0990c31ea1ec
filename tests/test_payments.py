"""Payment Processor: alocação, roteamento por forma de pagamento e confirmação."""

import uuid
from decimal import Decimal
from unittest import mock

import structlog

from billing_ledger.adapters.config import composition_root
from billing_ledger.core.application.commands.payment_commands import ConfirmPaymentCommand
from billing_ledger.core.application.commands.refund_commands import RequestRefundCommand
from billing_ledger.core.domain.entities.enums import InvoiceStatus, PaymentMethodType, PaymentStatus, RefundStatus
from clinic_billing_api.tasks import confirm_gateway_event_task
from plugins.django_interface.models import Invoice, Payment, PaymentAllocation
from tests.helpers.factories import BillingTestCase, make_account

logger = structlog.get_logger(__name__)


class AllocationTests(BillingTestCase):
    def test_partial_then_full_allocation(self) -> None:
        invoice = self.create_invoice("200.00")

        self.ok(self.pay("120.00", [(invoice.id, "120.00")]))
        row = Invoice.objects.get(id=invoice.id)
        self.assertEqual(row.balance, Decimal("80.00"))
        self.assertEqual(row.status, InvoiceStatus.PARTIAL)

        self.ok(self.pay("80.00", [(invoice.id, "80.00")]))
        row.refresh_from_db()
        self.assertEqual(row.balance, Decimal("0.00"))
        self.assertEqual(row.paid_amount, Decimal("200.00"))
        self.assertEqual(row.status, InvoiceStatus.PAID)
        self.assertIsNotNone(row.paid_at)

        self.assertEqual(self.refresh_account().balance, Decimal("0.00"))

    def test_one_payment_across_several_invoices(self) -> None:
        first = self.create_invoice("100.00")
        second = self.create_invoice("50.00")

        payment = self.ok(self.pay("130.00", [(first.id, "100.00"), (second.id, "30.00")]))

        self.assertEqual(payment.status, PaymentStatus.COMPLETED)
        self.assertEqual(payment.allocated_total, Decimal("130.00"))
        self.assertEqual(PaymentAllocation.objects.filter(payment_id=payment.id).count(), 2)
        self.assertEqual(self.refresh_account().outstanding_balance, Decimal("20.00"))

    def test_allocation_sum_must_match_payment(self) -> None:
        invoice = self.create_invoice("100.00")

        self.assertFailure(self.pay("50.00", [(invoice.id, "60.00")]), "ALLOCATION_EXCEEDS_PAYMENT")
        self.assertFailure(self.pay("50.00", [(invoice.id, "40.00")]), "UNALLOCATED_AMOUNT")
        self.assertFalse(Payment.objects.exists())

    def test_allocation_above_invoice_balance(self) -> None:
        invoice = self.create_invoice("100.00")
        self.assertFailure(self.pay("150.00", [(invoice.id, "150.00")]), "AMOUNT_EXCEEDS_BALANCE")

    def test_invoice_of_another_account_is_not_found(self) -> None:
        other = make_account(self.clinic_id)
        invoice = self.create_invoice("100.00", account=other)
        self.assertFailure(self.pay("100.00", [(invoice.id, "100.00")]), "INVOICE_NOT_FOUND")

    def test_draft_and_paid_invoices_reject_allocation(self) -> None:
        draft = self.create_invoice("100.00", status=InvoiceStatus.DRAFT)
        self.assertFailure(self.pay("10.00", [(draft.id, "10.00")]), "INVALID_INVOICE_STATE")

        paid = self.create_invoice("10.00")
        self.ok(self.pay("10.00", [(paid.id, "10.00")]))
        self.assertFailure(self.pay("1.00", [(paid.id, "1.00")]), "INVALID_INVOICE_STATE")

    def test_unallocated_payment_is_recorded(self) -> None:
        payment = self.ok(self.pay("25.00"))
        self.assertEqual(payment.status, PaymentStatus.COMPLETED)
        self.assertEqual(payment.allocations, [])


class MethodRoutingTests(BillingTestCase):
    def test_card_payment_goes_through_gateway(self) -> None:
        invoice = self.create_invoice("100.00")

        payment = self.ok(self.pay("100.00", [(invoice.id, "100.00")], method=PaymentMethodType.CREDIT_CARD))

        self.assertEqual(payment.status, PaymentStatus.COMPLETED)
        self.assertEqual(len(self.gateway.charges), 1)
        charge = self.gateway.charges[0]
        self.assertEqual(charge["amount"], 10000)
        self.assertEqual(charge["currency"], "brl")
        self.assertEqual(charge["idempotency_key"], payment.idempotency_key)
        self.assertEqual(payment.gateway_reference_id, charge["reference_id"])

    def test_gateway_failure_records_nothing(self) -> None:
        invoice = self.create_invoice("100.00")
        self.gateway.fail_with = "timeout"

        result = self.pay("100.00", [(invoice.id, "100.00")], method=PaymentMethodType.DEBIT_CARD)

        self.assertFailure(result, "PAYMENT_FAILED")
        self.assertFalse(Payment.objects.exists())
        self.assertEqual(Invoice.objects.get(id=invoice.id).balance, Decimal("100.00"))

    def test_gateway_decline_is_payment_failed(self) -> None:
        self.gateway.charge_status = "failed"
        self.assertFailure(self.pay("10.00", method=PaymentMethodType.CREDIT_CARD), "PAYMENT_FAILED")
        self.assertFalse(Payment.objects.exists())

    def test_cash_completes_without_gateway(self) -> None:
        payment = self.ok(self.pay("10.00", method=PaymentMethodType.CASH))
        self.assertEqual(payment.status, PaymentStatus.COMPLETED)
        self.assertIsNone(payment.gateway_reference_id)
        self.assertEqual(self.gateway.calls, 0)

    def test_ach_waits_for_confirmation(self) -> None:
        invoice = self.create_invoice("100.00")

        payment = self.ok(self.pay("100.00", [(invoice.id, "100.00")], method=PaymentMethodType.ACH))

        self.assertEqual(payment.status, PaymentStatus.PENDING)
        self.assertEqual(Invoice.objects.get(id=invoice.id).balance, Decimal("100.00"))
        self.assertEqual(self.gateway.calls, 0)

        confirmed = self.ok(self.facade.confirm_payment(
            ConfirmPaymentCommand(payment_id=payment.id, gateway_status="succeeded"), self.clinic_id
        ))
        self.assertEqual(confirmed.status, PaymentStatus.COMPLETED)
        self.assertEqual(confirmed.pending_allocations, [])
        row = Invoice.objects.get(id=invoice.id)
        self.assertEqual(row.status, InvoiceStatus.PAID)
        self.assertEqual(self.refresh_account().balance, Decimal("0.00"))

        self.assertFailure(
            self.facade.confirm_payment(ConfirmPaymentCommand(payment_id=payment.id, gateway_status="succeeded")),
            "INVALID_PAYMENT_STATE",
        )

    def test_processing_then_failed_confirmation(self) -> None:
        payment = self.ok(self.pay("10.00", method=PaymentMethodType.WIRE))

        processing = self.ok(self.facade.confirm_payment(
            ConfirmPaymentCommand(payment_id=payment.id, gateway_status="processing")
        ))
        self.assertEqual(processing.status, PaymentStatus.PROCESSING)

        failed = self.ok(self.facade.confirm_payment(
            ConfirmPaymentCommand(payment_id=payment.id, gateway_status="failed")
        ))
        self.assertEqual(failed.status, PaymentStatus.FAILED)

    def test_invalid_method_and_amount(self) -> None:
        self.assertFailure(self.pay("10.00", method="BITCOIN"), "VALIDATION_ERROR")
        self.assertFailure(self.pay("0.00"), "VALIDATION_ERROR")
        self.assertFailure(self.pay("1.001"), "VALIDATION_ERROR")

    def test_amount_above_column_capacity_never_reaches_gateway(self) -> None:
        result = self.pay("100000000000.00", method=PaymentMethodType.CREDIT_CARD)

        self.assertFailure(result, "VALIDATION_ERROR")
        self.assertEqual(self.gateway.calls, 0)
        self.assertFalse(Payment.objects.exists())


class IdempotentRequestTests(BillingTestCase):
    def test_same_request_id_returns_existing_payment(self) -> None:
        invoice = self.create_invoice("100.00")

        first = self.ok(self.pay("50.00", [(invoice.id, "50.00")], method="CREDIT_CARD", request_id="req-1"))
        again = self.ok(self.pay("50.00", [(invoice.id, "50.00")], method="CREDIT_CARD", request_id="req-1"))

        self.assertEqual(first.id, again.id)
        self.assertEqual(Payment.objects.count(), 1)
        self.assertEqual(len(self.gateway.charges), 1)
        self.assertEqual(Invoice.objects.get(id=invoice.id).balance, Decimal("50.00"))
        logger.debug("test.request_deduplicated", payment=first.payment_number)


class GatewayEventTaskTests(BillingTestCase):
    def setUp(self) -> None:
        super().setUp()
        patcher = mock.patch.object(composition_root, "container", self.container)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_webhook_confirms_pending_payment(self) -> None:
        invoice = self.create_invoice("40.00")
        payment = self.ok(self.pay("40.00", [(invoice.id, "40.00")], method=PaymentMethodType.E_TRANSFER))

        outcome = confirm_gateway_event_task("payment", str(payment.id), "succeeded")

        self.assertEqual(outcome, {"success": True, "status": PaymentStatus.COMPLETED})
        self.assertEqual(Invoice.objects.get(id=invoice.id).status, InvoiceStatus.PAID)

    def test_unknown_object_is_reported(self) -> None:
        outcome = confirm_gateway_event_task("refund", str(uuid.uuid4()), "succeeded")
        self.assertFalse(outcome["success"])
        self.assertEqual(outcome["error"]["code"], "REFUND_NOT_FOUND")

    def test_unknown_kind_raises(self) -> None:
        with self.assertRaises(ValueError):
            confirm_gateway_event_task.run("chargeback", str(uuid.uuid4()), "failed")


class StaleAllocationConfirmationTests(BillingTestCase):
    """Pagamento capturado no gateway cuja fatura foi quitada antes da confirmação."""

    def setUp(self) -> None:
        super().setUp()
        self.gateway.charge_status = "processing"

    def test_captured_payment_completes_unallocated(self) -> None:
        invoice = self.create_invoice("100.00")
        card = self.ok(self.pay("100.00", [(invoice.id, "100.00")], method=PaymentMethodType.CREDIT_CARD))
        self.assertEqual(card.status, PaymentStatus.PROCESSING)
        self.assertEqual(self.gateway.charges[0]["amount"], 10000)

        self.ok(self.pay("100.00", [(invoice.id, "100.00")]))

        confirmed = self.ok(self.facade.confirm_payment(
            ConfirmPaymentCommand(payment_id=card.id, gateway_status="succeeded")
        ))

        self.assertEqual(confirmed.status, PaymentStatus.COMPLETED)
        self.assertEqual(confirmed.allocations, [])
        self.assertEqual(confirmed.pending_allocations, [])
        row = Invoice.objects.get(id=invoice.id)
        self.assertEqual(row.paid_amount, Decimal("100.00"))
        self.assertEqual(row.status, InvoiceStatus.PAID)
        self.assertFalse(PaymentAllocation.objects.filter(payment_id=card.id).exists())

        refund = self.ok(self.facade.request_refund(
            RequestRefundCommand(payment_id=card.id, reason="DUPLICATE_PAYMENT")
        ))
        self.assertEqual(refund.status, RefundStatus.COMPLETED)
        self.assertEqual(Payment.objects.get(id=card.id).status, PaymentStatus.REFUNDED)
        self.assertEqual(Invoice.objects.get(id=invoice.id).balance, Decimal("0.00"))

    def test_only_stale_allocations_are_dropped(self) -> None:
        settled = self.create_invoice("50.00")
        open_invoice = self.create_invoice("70.00")
        card = self.ok(self.pay(
            "80.00",
            [(settled.id, "30.00"), (open_invoice.id, "50.00")],
            method=PaymentMethodType.DEBIT_CARD,
        ))
        self.ok(self.pay("50.00", [(settled.id, "50.00")]))

        confirmed = self.ok(self.facade.confirm_payment(
            ConfirmPaymentCommand(payment_id=card.id, gateway_status="succeeded")
        ))

        self.assertEqual(confirmed.status, PaymentStatus.COMPLETED)
        self.assertEqual([a.invoice_id for a in confirmed.allocations], [open_invoice.id])
        self.assertEqual(confirmed.allocated_total, Decimal("50.00"))
        self.assertEqual(Invoice.objects.get(id=open_invoice.id).balance, Decimal("20.00"))
        self.assertEqual(self.refresh_account().outstanding_balance, Decimal("20.00"))
