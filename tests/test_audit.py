"""Auditoria pós-commit e isolamento de falhas dos listeners."""

from decimal import Decimal

import structlog

from billing_ledger.core.application.commands.refund_commands import RequestRefundCommand
from billing_ledger.core.domain.events.events import InvoiceCreatedEvent
from billing_ledger.core.domain.services.event_dispatcher import EventDispatcher
from plugins.django_interface.models import AuditLog
from tests.helpers.factories import BillingTestCase

logger = structlog.get_logger(__name__)


class AuditLogTests(BillingTestCase):
    def test_mutations_are_audited_after_commit(self) -> None:
        with self.captureOnCommitCallbacks(execute=True):
            invoice = self.create_invoice("100.00")
        with self.captureOnCommitCallbacks(execute=True):
            payment = self.ok(self.pay("100.00", [(invoice.id, "100.00")]))
        with self.captureOnCommitCallbacks(execute=True):
            self.ok(self.facade.request_refund(RequestRefundCommand(
                payment_id=payment.id, amount="40.00", reason="OVERPAYMENT", actor_id="recepcao",
            )))

        actions = AuditLog.objects.values_list("action", flat=True)
        self.assertCountEqual(actions, ["invoice.created", "payment.created", "refund.requested", "refund.completed"])

        created = AuditLog.objects.get(action="invoice.created")
        self.assertEqual(created.entity, "invoice")
        self.assertEqual(created.entity_id, str(invoice.id))
        self.assertEqual(created.actor_id, "tester")
        self.assertEqual(created.clinic_id, self.clinic_id)
        self.assertEqual(created.details["subtotal"], "100.00")

        completed = AuditLog.objects.get(action="refund.completed")
        self.assertEqual(completed.actor_id, "recepcao")
        self.assertEqual(completed.details["reversals"], [{"invoice_id": str(invoice.id), "amount": "40.00"}])

    def test_rejected_operation_is_not_audited(self) -> None:
        with self.captureOnCommitCallbacks(execute=True):
            self.assertFailure(self.pay("10.00", method="BITCOIN"), "VALIDATION_ERROR")
        self.assertFalse(AuditLog.objects.exists())


class EventDispatcherTests(BillingTestCase):
    def test_failing_listener_does_not_propagate(self) -> None:
        dispatcher = EventDispatcher()
        received = []

        def broken(event):
            raise RuntimeError("sink fora do ar")

        dispatcher.subscribe(InvoiceCreatedEvent, broken)
        dispatcher.subscribe(InvoiceCreatedEvent, received.append)

        event = InvoiceCreatedEvent(
            clinic_id=self.clinic_id,
            invoice_id=self.account.id,
            account_id=self.account.id,
            invoice_number="INV-2025-00001",
            subtotal=Decimal("1.00"),
            status="PENDING",
        )
        dispatcher.dispatch(event)

        self.assertEqual(received, [event])
        logger.debug("test.listener_isolated")
