from __future__ import annotations

from datetime import date
from decimal import Decimal

import structlog
from django.db import transaction
from django.utils import timezone

from billing_ledger.core.domain.entities.invoice_entity import InvoiceEntity
from billing_ledger.core.domain.entities.patient_account_entity import PatientAccountEntity
from billing_ledger.core.domain.events.exceptions import AccountNotFoundError, fmt_amount
from billing_ledger.core.domain.repositories.credit_repository import CreditRepository
from billing_ledger.core.domain.repositories.invoice_repository import InvoiceRepository
from billing_ledger.core.domain.repositories.patient_account_repository import PatientAccountRepository
from billing_ledger.core.domain.services.money import ZERO

logger = structlog.get_logger(__name__)

# (limite superior de dias em atraso, campo); o último balde é aberto
AGING_BUCKETS: tuple[tuple[int | None, str], ...] = (
    (30, "aging_current"),
    (60, "aging_30"),
    (90, "aging_60"),
    (120, "aging_90"),
    (None, "aging_120_plus"),
)


def aging_bucket(invoice: InvoiceEntity, today: date) -> str:
    days = invoice.days_past_due(today)
    for limit, name in AGING_BUCKETS:
        if limit is None or days <= limit:
            return name
    return AGING_BUCKETS[-1][1]


class AccountBalanceService:
    """
    Agregador do saldo da conta.

    `balance = Σ saldo das faturas faturáveis − Σ créditos disponíveis`.
    Idempotente; chamado como último passo de toda operação que move dinheiro.
    """

    def __init__(
        self,
        account_repo: PatientAccountRepository,
        invoice_repo: InvoiceRepository,
        credit_repo: CreditRepository,
    ) -> None:
        self.account_repo = account_repo
        self.invoice_repo = invoice_repo
        self.credit_repo = credit_repo

    @transaction.atomic
    def recompute(self, account_id) -> PatientAccountEntity:
        account = self.account_repo.lock(account_id)
        if account is None:
            raise AccountNotFoundError(f"Conta {account_id} não encontrada")

        now = timezone.now()
        today = timezone.localdate(now)
        buckets: dict[str, Decimal] = {name: ZERO for _, name in AGING_BUCKETS}
        outstanding = ZERO
        for invoice in self.invoice_repo.list_for_account(account_id):
            # violação aborta a transação inteira do chamador
            invoice.check_invariant()
            if not invoice.is_billable or invoice.balance == ZERO:
                continue
            outstanding += invoice.balance
            buckets[aging_bucket(invoice, today)] += invoice.balance

        credit = sum((c.remaining_amount for c in self.credit_repo.list_available(account_id, now)), ZERO)

        account.outstanding_balance = outstanding
        account.credit_balance = credit
        account.balance = outstanding - credit
        for name, value in buckets.items():
            setattr(account, name, value)
        account.calculated_at = now
        self.account_repo.save_balances(account)

        logger.info(
            "account.balance_recomputed",
            account_id=str(account_id),
            outstanding=fmt_amount(outstanding),
            credit=fmt_amount(credit),
            balance=fmt_amount(account.balance),
        )
        return account
