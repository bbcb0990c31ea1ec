"""Account Balance Aggregator: saldo, crédito, aging e rotinas de recálculo."""

import uuid
from datetime import timedelta
from decimal import Decimal
from io import StringIO
from unittest import mock

import structlog
from django.core.management import call_command
from django.utils import timezone

from billing_ledger.adapters.config import composition_root
from clinic_billing_api.tasks import rebalance_account_task, schedule_rebalance
from plugins.django_interface.models import Invoice, PatientAccount
from tests.helpers.factories import BillingTestCase, make_account

logger = structlog.get_logger(__name__)

D = Decimal


class AccountBalanceTests(BillingTestCase):
    def _aged_invoice(self, amount: str, days_past_due: int):
        today = timezone.localdate()
        return self.create_invoice(
            amount,
            invoice_date=today - timedelta(days=400),
            due_date=today - timedelta(days=days_past_due),
        )

    def test_aging_buckets_and_credit(self) -> None:
        self._aged_invoice("100.00", -10)  # ainda não venceu
        self._aged_invoice("200.00", 45)
        self._aged_invoice("300.00", 75)
        self._aged_invoice("400.00", 100)
        self._aged_invoice("500.00", 150)
        self.create_credit("50.00")

        account = self.ok(self.facade.recompute_account_balance(self.account.id, self.clinic_id))

        self.assertEqual(account.outstanding_balance, D("1500.00"))
        self.assertEqual(account.credit_balance, D("50.00"))
        self.assertEqual(account.balance, D("1450.00"))
        self.assertEqual(account.aging_current, D("100.00"))
        self.assertEqual(account.aging_30, D("200.00"))
        self.assertEqual(account.aging_60, D("300.00"))
        self.assertEqual(account.aging_90, D("400.00"))
        self.assertEqual(account.aging_120_plus, D("500.00"))
        self.assertIsNotNone(account.calculated_at)

    def test_bucket_edges(self) -> None:
        self._aged_invoice("1.00", 30)
        self._aged_invoice("2.00", 31)
        self._aged_invoice("4.00", 120)
        self._aged_invoice("8.00", 121)

        account = self.ok(self.facade.recompute_account_balance(self.account.id))

        self.assertEqual(account.aging_current, D("1.00"))
        self.assertEqual(account.aging_30, D("2.00"))
        self.assertEqual(account.aging_90, D("4.00"))
        self.assertEqual(account.aging_120_plus, D("8.00"))

    def test_recompute_is_idempotent(self) -> None:
        invoice = self.create_invoice("100.00")
        self.ok(self.pay("30.00", [(invoice.id, "30.00")]))

        first = self.ok(self.facade.recompute_account_balance(self.account.id))
        second = self.ok(self.facade.recompute_account_balance(self.account.id))

        self.assertEqual(first.balance, second.balance)
        self.assertEqual(second.outstanding_balance, D("70.00"))
        self.assertEqual(self.ok(self.facade.get_account_balance(self.account.id)).balance, D("70.00"))

    def test_credit_only_account_has_negative_balance(self) -> None:
        self.create_credit("80.00")
        account = self.ok(self.facade.get_account_balance(self.account.id, self.clinic_id))
        self.assertEqual(account.balance, D("-80.00"))

    def test_invariant_violation_aborts_recompute(self) -> None:
        invoice = self.create_invoice("100.00")
        Invoice.objects.filter(id=invoice.id).update(balance=D("90.00"))

        self.assertFailure(
            self.facade.recompute_account_balance(self.account.id), "LEDGER_INVARIANT_VIOLATION"
        )
        self.assertEqual(self.refresh_account().outstanding_balance, D("100.00"))

    def test_account_scoped_by_clinic(self) -> None:
        other_clinic = make_account().clinic_id
        self.assertFailure(self.facade.get_account_balance(self.account.id, other_clinic), "ACCOUNT_NOT_FOUND")
        self.assertFailure(
            self.facade.recompute_account_balance(self.account.id, other_clinic), "ACCOUNT_NOT_FOUND"
        )

    def test_available_credits_are_listed_soonest_expiry_first(self) -> None:
        late = self.create_credit("10.00", expires_at=timezone.now() + timedelta(days=30))
        soon = self.create_credit("20.00", expires_at=timezone.now() + timedelta(days=1))
        forever = self.create_credit("5.00")

        credits = self.ok(self.facade.list_available_credits(self.account.id, self.clinic_id))

        self.assertEqual([c.id for c in credits], [soon.id, late.id, forever.id])


class RebalanceRoutinesTests(BillingTestCase):
    def setUp(self) -> None:
        super().setUp()
        patcher = mock.patch.object(composition_root, "container", self.container)
        patcher.start()
        self.addCleanup(patcher.stop)

        self.create_invoice("100.00")
        # saldo denormalizado desatualizado de propósito
        PatientAccount.objects.filter(id=self.account.id).update(balance=D("0.00"), outstanding_balance=D("0.00"))

    def test_management_command_inline(self) -> None:
        out = StringIO()
        call_command("rebalance_accounts", "--clinic-id", str(self.clinic_id), stdout=out)

        self.assertEqual(self.refresh_account().balance, D("100.00"))
        self.assertIn("1 ok, 0 com erro", out.getvalue())

    def test_management_command_async_enqueues(self) -> None:
        with mock.patch.object(rebalance_account_task, "delay") as delay:
            call_command("rebalance_accounts", "--account-id", str(self.account.id), "--async", stdout=StringIO())

        delay.assert_called_once_with(str(self.account.id))
        self.assertEqual(self.refresh_account().balance, D("0.00"))

    def test_rebalance_task_runs_inline(self) -> None:
        self.assertIsNone(rebalance_account_task(str(self.account.id)))
        self.assertEqual(self.refresh_account().outstanding_balance, D("100.00"))

    def test_rebalance_task_reports_business_error(self) -> None:
        error = rebalance_account_task(str(uuid.uuid4()))

        self.assertEqual(error["code"], "ACCOUNT_NOT_FOUND")

    def test_schedule_fans_out_per_active_account(self) -> None:
        make_account(self.clinic_id)
        make_account()
        with mock.patch.object(rebalance_account_task, "delay") as delay:
            count = schedule_rebalance(str(self.clinic_id))

        self.assertEqual(count, 2)
        self.assertEqual(delay.call_count, 2)
        logger.debug("test.rebalance_scheduled", accounts=count)
