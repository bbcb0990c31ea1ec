"""Fábricas e base de testes do ledger: conta ORM + container isolado por teste."""
from __future__ import annotations

import itertools
import uuid
from datetime import date, timedelta
from decimal import Decimal

from django.conf import settings
from django.test import TestCase
from django.utils import timezone

from billing_ledger.adapters.config.composition_root import build_container
from billing_ledger.core.application.commands.credit_commands import CreateCreditCommand
from billing_ledger.core.application.commands.invoice_commands import CreateInvoiceCommand, InvoiceItemInput
from billing_ledger.core.application.commands.payment_commands import AllocationInput, CreatePaymentCommand
from billing_ledger.core.domain.entities.enums import InvoiceStatus, PaymentMethodType
from plugins.django_interface.models import PatientAccount
from tests.helpers.fake_gateway import FakePaymentGateway

_account_seq = itertools.count(1)


def make_account(clinic_id: uuid.UUID | None = None, **overrides) -> PatientAccount:
    data = {
        "clinic_id": clinic_id or uuid.uuid4(),
        "patient_id": uuid.uuid4(),
        "account_number": f"ACC-{next(_account_seq):05d}",
    }
    data.update(overrides)
    return PatientAccount.objects.create(**data)


class BillingTestCase(TestCase):
    """
    Cada teste recebe um container novo com gateway fake, de modo que
    contagem de chamadas e limite de aprovação não vazam entre testes.
    """
    approval_threshold = Decimal("500.00")

    def setUp(self) -> None:
        super().setUp()
        self.gateway = self.make_gateway()
        self.container = build_container(
            settings,
            payment_gateway=self.gateway,
            refund_approval_threshold=self.approval_threshold,
        )
        self.facade = self.container.billing_facade_service()
        self.clinic_id = uuid.uuid4()
        self.account = make_account(self.clinic_id)

    def make_gateway(self):
        return FakePaymentGateway()

    # ─────────────────────────── asserts ───────────────────────────
    def ok(self, result):
        self.assertTrue(result.success, f"operação falhou: {result.error}")
        return result.data

    def assertFailure(self, result, code: str) -> None:  # noqa: N802
        self.assertFalse(result.success, "operação deveria ter falhado")
        self.assertEqual(result.code, code, result.error)

    # ─────────────────────────── builders ──────────────────────────
    def create_invoice(
        self,
        subtotal: str | Decimal = "100.00",
        *,
        account=None,
        status: str = InvoiceStatus.PENDING,
        invoice_date: date | None = None,
        due_date: date | None = None,
        items: tuple[InvoiceItemInput, ...] | None = None,
    ):
        today = timezone.localdate()
        invoice_date = invoice_date or today
        return self.ok(self.facade.create_invoice(CreateInvoiceCommand(
            account_id=(account or self.account).id,
            items=items or (InvoiceItemInput(description="Consulta", unit_price=subtotal),),
            invoice_date=invoice_date,
            due_date=due_date or invoice_date + timedelta(days=30),
            status=status,
            actor_id="tester",
        )))

    def pay(
        self,
        amount: str | Decimal,
        allocations: list[tuple] = (),
        *,
        account=None,
        method: str = PaymentMethodType.CASH,
        request_id: str | None = None,
    ):
        return self.facade.create_payment(CreatePaymentCommand(
            account_id=(account or self.account).id,
            amount=amount,
            method_type=method,
            allocations=tuple(AllocationInput(invoice_id=i, amount=a) for i, a in allocations),
            request_id=request_id,
            actor_id="tester",
        ))

    def create_credit(self, amount: str | Decimal, *, account=None, **kwargs):
        return self.ok(self.facade.create_credit(CreateCreditCommand(
            account_id=(account or self.account).id,
            amount=amount,
            actor_id="tester",
            **kwargs,
        )))

    def refresh_account(self) -> PatientAccount:
        self.account.refresh_from_db()
        return self.account
