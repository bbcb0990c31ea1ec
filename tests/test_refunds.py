"""Refund Engine: aprovação por limite, gateway, estorno proporcional das alocações."""

import uuid
from decimal import Decimal

import structlog
from django.utils import timezone

from billing_ledger.core.application.commands.refund_commands import (
    ApproveRefundCommand,
    ConfirmRefundCommand,
    DeclineRefundCommand,
    ProcessRefundCommand,
    RequestRefundCommand,
)
from billing_ledger.core.domain.entities.enums import (
    InvoiceStatus,
    PaymentMethodType,
    PaymentStatus,
    RefundStatus,
    RefundType,
)
from plugins.django_interface.models import Invoice, Payment, PaymentAllocation, Refund
from tests.helpers.factories import BillingTestCase

logger = structlog.get_logger(__name__)

D = Decimal


class RefundTestMixin:
    def request(self, payment, amount=None, reason="PATIENT_REQUEST"):
        return self.facade.request_refund(
            RequestRefundCommand(payment_id=payment.id, amount=amount, reason=reason, actor_id="tester"),
            self.clinic_id,
        )

    def invoice_row(self, invoice) -> Invoice:
        return Invoice.objects.get(id=invoice.id)

    def payment_row(self, payment) -> Payment:
        return Payment.objects.get(id=payment.id)


# ╭──────────────────────────────────────────────╮
# │ Auto-aprovação (abaixo do limite)           │
# ╰──────────────────────────────────────────────╯
class AutoApprovedRefundTests(RefundTestMixin, BillingTestCase):
    def test_full_payment_then_full_refund(self) -> None:
        invoice = self.create_invoice("100.00")
        payment = self.ok(self.pay("100.00", [(invoice.id, "100.00")]))
        self.assertEqual(self.invoice_row(invoice).status, InvoiceStatus.PAID)

        refund = self.ok(self.request(payment, "100.00"))

        self.assertEqual(refund.status, RefundStatus.COMPLETED)
        self.assertEqual(refund.refund_type, RefundType.FULL)
        self.assertEqual(refund.refund_number, f"REF-{timezone.localdate().year}-00001")
        row = self.invoice_row(invoice)
        self.assertEqual(row.status, InvoiceStatus.PARTIAL)
        self.assertEqual(row.balance, D("100.00"))
        self.assertIsNone(row.paid_at)
        self.assertEqual(self.payment_row(payment).status, PaymentStatus.REFUNDED)
        self.assertEqual(self.refresh_account().balance, D("100.00"))

        # pagamento totalmente reembolsado não aceita novo pedido
        self.assertFailure(self.request(payment, "1.00"), "INVALID_PAYMENT_STATE")

    def test_amount_defaults_to_full_payment(self) -> None:
        payment = self.ok(self.pay("40.00"))
        refund = self.ok(self.request(payment))
        self.assertEqual(refund.amount, D("40.00"))
        self.assertEqual(refund.refund_type, RefundType.FULL)

    def test_card_refund_uses_gateway_with_idempotency_key(self) -> None:
        invoice = self.create_invoice("100.00")
        payment = self.ok(self.pay("100.00", [(invoice.id, "100.00")], method=PaymentMethodType.CREDIT_CARD))

        refund = self.ok(self.request(payment, "25.00"))

        self.assertEqual(len(self.gateway.refunds), 1)
        call = self.gateway.refunds[0]
        self.assertEqual(call["charge"], payment.gateway_reference_id)
        self.assertEqual(call["amount"], 2500)
        self.assertEqual(call["idempotency_key"], f"refund:{payment.id}:{refund.refund_number}")
        self.assertEqual(refund.gateway_refund_id, call["reference_id"])
        self.assertEqual(refund.status, RefundStatus.COMPLETED)
        self.assertEqual(refund.refund_type, RefundType.PARTIAL)
        self.assertEqual(self.payment_row(payment).status, PaymentStatus.PARTIALLY_REFUNDED)

    def test_gateway_failure_records_nothing(self) -> None:
        invoice = self.create_invoice("100.00")
        payment = self.ok(self.pay("100.00", [(invoice.id, "100.00")], method=PaymentMethodType.CREDIT_CARD))
        self.gateway.fail_with = "connection reset"

        self.assertFailure(self.request(payment, "10.00"), "REFUND_FAILED")

        self.assertFalse(Refund.objects.exists())
        self.assertEqual(self.invoice_row(invoice).status, InvoiceStatus.PAID)
        self.assertEqual(self.payment_row(payment).status, PaymentStatus.COMPLETED)

    def test_refund_exceeding_available(self) -> None:
        payment = self.ok(self.pay("100.00"))
        self.ok(self.request(payment, "60.00"))

        self.assertFailure(self.request(payment, "50.00"), "REFUND_EXCEEDS_AVAILABLE")

        availability = self.ok(self.facade.get_available_for_refund(payment.id, self.clinic_id))
        self.assertEqual(availability.committed, D("60.00"))
        self.assertEqual(availability.available, D("40.00"))

    def test_request_validation(self) -> None:
        payment = self.ok(self.pay("100.00"))
        self.assertFailure(self.request(payment, "10.00", reason="BECAUSE"), "VALIDATION_ERROR")
        self.assertFailure(self.request(payment, "0.00"), "VALIDATION_ERROR")

        pending = self.ok(self.pay("10.00", method=PaymentMethodType.ACH))
        self.assertFailure(self.request(pending, "5.00"), "INVALID_PAYMENT_STATE")


# ╭──────────────────────────────────────────────╮
# │ Fluxo com aprovação manual                  │
# ╰──────────────────────────────────────────────╯
class ApprovalFlowTests(RefundTestMixin, BillingTestCase):
    approval_threshold = D("100.00")

    def setUp(self) -> None:
        super().setUp()
        self.invoice = self.create_invoice("150.00")
        self.payment = self.ok(
            self.pay("150.00", [(self.invoice.id, "150.00")], method=PaymentMethodType.CREDIT_CARD)
        )

    def test_refund_above_threshold_waits_for_approval(self) -> None:
        refund = self.ok(self.request(self.payment, "150.00"))

        self.assertEqual(refund.status, RefundStatus.PENDING)
        self.assertEqual(self.gateway.refunds, [])
        row = self.invoice_row(self.invoice)
        self.assertEqual(row.status, InvoiceStatus.PAID)
        self.assertEqual(row.balance, D("0.00"))
        self.assertEqual(self.payment_row(self.payment).status, PaymentStatus.COMPLETED)

        # pendente já compromete o valor disponível
        self.assertFailure(self.request(self.payment, "10.00"), "REFUND_EXCEEDS_AVAILABLE")

    def test_threshold_is_inclusive(self) -> None:
        refund = self.ok(self.request(self.payment, "100.00"))
        self.assertEqual(refund.status, RefundStatus.PENDING)

        below = self.ok(self.request(self.payment, "49.99"))
        self.assertEqual(below.status, RefundStatus.COMPLETED)

    def test_approve_then_process(self) -> None:
        refund = self.ok(self.request(self.payment, "150.00"))

        approved = self.ok(self.facade.approve_refund(
            ApproveRefundCommand(refund_id=refund.id, actor_id="gerente", notes="ok"), self.clinic_id
        ))
        self.assertEqual(approved.status, RefundStatus.APPROVED)
        self.assertEqual(approved.approved_by, "gerente")
        self.assertIsNotNone(approved.approved_at)
        self.assertEqual(self.gateway.refunds, [])

        processed = self.ok(self.facade.process_refund(ProcessRefundCommand(refund_id=refund.id), self.clinic_id))
        self.assertEqual(processed.status, RefundStatus.COMPLETED)
        self.assertEqual(len(self.gateway.refunds), 1)
        self.assertEqual(self.payment_row(self.payment).status, PaymentStatus.REFUNDED)
        self.assertEqual(self.invoice_row(self.invoice).balance, D("150.00"))

        self.assertFailure(
            self.facade.approve_refund(ApproveRefundCommand(refund_id=refund.id)), "INVALID_REFUND_STATE"
        )

    def test_process_requires_approval(self) -> None:
        refund = self.ok(self.request(self.payment, "150.00"))
        self.assertFailure(
            self.facade.process_refund(ProcessRefundCommand(refund_id=refund.id)), "INVALID_REFUND_STATE"
        )

    def test_process_gateway_failure_keeps_approved(self) -> None:
        refund = self.ok(self.request(self.payment, "150.00"))
        self.ok(self.facade.approve_refund(ApproveRefundCommand(refund_id=refund.id)))
        self.gateway.fail_with = "503"

        self.assertFailure(self.facade.process_refund(ProcessRefundCommand(refund_id=refund.id)), "REFUND_FAILED")
        self.assertEqual(Refund.objects.get(id=refund.id).status, RefundStatus.APPROVED)

    def test_decline_releases_available_amount(self) -> None:
        refund = self.ok(self.request(self.payment, "150.00"))

        self.assertFailure(
            self.facade.decline_refund(DeclineRefundCommand(refund_id=refund.id, reason="  ")),
            "REASON_REQUIRED",
        )
        declined = self.ok(self.facade.decline_refund(
            DeclineRefundCommand(refund_id=refund.id, reason="Tratamento realizado"), self.clinic_id
        ))
        self.assertEqual(declined.status, RefundStatus.DECLINED)
        self.assertEqual(declined.declined_reason, "Tratamento realizado")

        availability = self.ok(self.facade.get_available_for_refund(self.payment.id))
        self.assertEqual(availability.available, D("150.00"))
        self.assertFailure(
            self.facade.approve_refund(ApproveRefundCommand(refund_id=refund.id)), "INVALID_REFUND_STATE"
        )

    def test_other_clinic_cannot_touch_refund(self) -> None:
        refund = self.ok(self.request(self.payment, "150.00"))
        self.assertFailure(
            self.facade.approve_refund(ApproveRefundCommand(refund_id=refund.id), uuid.uuid4()),
            "REFUND_NOT_FOUND",
        )


# ╭──────────────────────────────────────────────╮
# │ Reembolso assíncrono (PROCESSING)           │
# ╰──────────────────────────────────────────────╯
class ProcessingRefundTests(RefundTestMixin, BillingTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.invoice = self.create_invoice("100.00")
        self.payment = self.ok(
            self.pay("100.00", [(self.invoice.id, "100.00")], method=PaymentMethodType.CREDIT_CARD)
        )
        self.gateway.refund_status = "processing"

    def test_processing_then_succeeded(self) -> None:
        refund = self.ok(self.request(self.payment, "30.00"))
        self.assertEqual(refund.status, RefundStatus.PROCESSING)
        self.assertEqual(self.invoice_row(self.invoice).balance, D("0.00"))

        done = self.ok(self.facade.confirm_refund(
            ConfirmRefundCommand(refund_id=refund.id, gateway_status="succeeded"), self.clinic_id
        ))
        self.assertEqual(done.status, RefundStatus.COMPLETED)
        self.assertEqual(self.invoice_row(self.invoice).balance, D("30.00"))
        self.assertEqual(self.payment_row(self.payment).status, PaymentStatus.PARTIALLY_REFUNDED)

    def test_processing_then_failed(self) -> None:
        refund = self.ok(self.request(self.payment, "30.00"))

        failed = self.ok(self.facade.confirm_refund(
            ConfirmRefundCommand(refund_id=refund.id, gateway_status="failed")
        ))
        self.assertEqual(failed.status, RefundStatus.DECLINED)
        self.assertEqual(self.invoice_row(self.invoice).balance, D("0.00"))
        self.assertEqual(self.ok(self.facade.get_available_for_refund(self.payment.id)).available, D("100.00"))

    def test_processing_status_is_noop(self) -> None:
        refund = self.ok(self.request(self.payment, "30.00"))
        same = self.ok(self.facade.confirm_refund(
            ConfirmRefundCommand(refund_id=refund.id, gateway_status="processing")
        ))
        self.assertEqual(same.status, RefundStatus.PROCESSING)

    def test_confirm_requires_processing(self) -> None:
        self.gateway.refund_status = "succeeded"
        refund = self.ok(self.request(self.payment, "30.00"))
        self.assertFailure(
            self.facade.confirm_refund(ConfirmRefundCommand(refund_id=refund.id, gateway_status="succeeded")),
            "INVALID_REFUND_STATE",
        )


# ╭──────────────────────────────────────────────╮
# │ Estorno proporcional                        │
# ╰──────────────────────────────────────────────╯
class ProportionalReversalTests(RefundTestMixin, BillingTestCase):
    def test_partial_refund_splits_by_allocation(self) -> None:
        first = self.create_invoice("70.00")
        second = self.create_invoice("30.00")
        payment = self.ok(self.pay("100.00", [(first.id, "70.00"), (second.id, "30.00")]))

        self.ok(self.request(payment, "50.00"))

        self.assertEqual(self.invoice_row(first).balance, D("35.00"))
        self.assertEqual(self.invoice_row(second).balance, D("15.00"))
        self.assertEqual(self.invoice_row(first).status, InvoiceStatus.PARTIAL)
        self.assertEqual(self.payment_row(payment).status, PaymentStatus.PARTIALLY_REFUNDED)

    def test_rounding_remainder_and_final_refund_close_exactly(self) -> None:
        invoices = [self.create_invoice(v) for v in ("33.33", "33.33", "33.34")]
        payment = self.ok(self.pay("100.00", [(i.id, i.subtotal) for i in invoices]))

        self.ok(self.request(payment, "10.00"))
        reversed_ = [a.reversed_amount for a in PaymentAllocation.objects.filter(payment_id=payment.id)]
        self.assertEqual(sum(reversed_), D("10.00"))

        self.ok(self.request(payment, "90.00"))
        for allocation in PaymentAllocation.objects.filter(payment_id=payment.id):
            self.assertEqual(allocation.reversed_amount, allocation.amount)
        for invoice in invoices:
            self.assertEqual(self.invoice_row(invoice).balance, invoice.subtotal)
            self.assertEqual(self.invoice_row(invoice).paid_amount, D("0.00"))
        self.assertEqual(self.payment_row(payment).status, PaymentStatus.REFUNDED)
        logger.debug("test.reversal_closed", payment=payment.payment_number)

    def test_unallocated_payment_refund_touches_no_invoice(self) -> None:
        invoice = self.create_invoice("10.00")
        payment = self.ok(self.pay("25.00"))

        refund = self.ok(self.request(payment, "25.00"))

        self.assertEqual(refund.status, RefundStatus.COMPLETED)
        self.assertEqual(self.invoice_row(invoice).balance, D("10.00"))
