from __future__ import annotations

import structlog
from django.utils import timezone

from billing_ledger.core.application.commands.account_commands import RecomputeAccountBalanceCommand
from billing_ledger.core.application.cqrs import CommandHandler, QueryHandler
from billing_ledger.core.application.dtos.billing_results import RefundAvailability
from billing_ledger.core.application.queries.billing_queries import (
    GetAccountBalanceQuery,
    GetAvailableForRefundQuery,
    GetCreditQuery,
    GetInvoiceQuery,
    GetPaymentQuery,
    GetRefundQuery,
    ListAvailableCreditsQuery,
)
from billing_ledger.core.application.services.account_balance_service import AccountBalanceService
from billing_ledger.core.domain.entities.credit_balance_entity import CreditBalanceEntity
from billing_ledger.core.domain.entities.enums import COMMITTED_REFUND_STATUSES
from billing_ledger.core.domain.entities.invoice_entity import InvoiceEntity
from billing_ledger.core.domain.entities.patient_account_entity import PatientAccountEntity
from billing_ledger.core.domain.entities.payment_entity import PaymentEntity
from billing_ledger.core.domain.entities.refund_entity import RefundEntity
from billing_ledger.core.domain.events.exceptions import (
    AccountNotFoundError,
    CreditNotFoundError,
    InvoiceNotFoundError,
    NotFoundError,
    PaymentNotFoundError,
    RefundNotFoundError,
)
from billing_ledger.core.domain.repositories.credit_repository import CreditRepository
from billing_ledger.core.domain.repositories.invoice_repository import InvoiceRepository
from billing_ledger.core.domain.repositories.patient_account_repository import PatientAccountRepository
from billing_ledger.core.domain.repositories.payment_repository import PaymentRepository
from billing_ledger.core.domain.repositories.refund_repository import RefundRepository

logger = structlog.get_logger(__name__)


def _scoped(entity, clinic_id, error_cls: type[NotFoundError], label: str, key):
    """Registro de outra clínica é indistinguível de inexistente."""
    if entity is None or (clinic_id and str(entity.clinic_id) != str(clinic_id)):
        raise error_cls(f"{label} {key} não encontrado(a)")
    return entity


# ╭──────────────────────────────────────────────╮
# │ Comando: recálculo de saldo                 │
# ╰──────────────────────────────────────────────╯
class RecomputeAccountBalanceHandler(CommandHandler[RecomputeAccountBalanceCommand]):
    def __init__(self, balance_service: AccountBalanceService) -> None:
        self.balance_service = balance_service

    def handle(self, cmd: RecomputeAccountBalanceCommand) -> PatientAccountEntity:
        return self.balance_service.recompute(cmd.account_id)


# ╭──────────────────────────────────────────────╮
# │ Consultas                                   │
# ╰──────────────────────────────────────────────╯
class GetAccountBalanceHandler(QueryHandler[GetAccountBalanceQuery, PatientAccountEntity]):
    """Lê os valores persistidos pelo último recálculo (não recalcula)."""

    def __init__(self, account_repo: PatientAccountRepository) -> None:
        self.account_repo = account_repo

    def handle(self, query: GetAccountBalanceQuery) -> PatientAccountEntity:
        account = self.account_repo.find_by_id(query.account_id)
        return _scoped(account, query.clinic_id, AccountNotFoundError, "Conta", query.account_id)


class ListAvailableCreditsHandler(QueryHandler[ListAvailableCreditsQuery, list[CreditBalanceEntity]]):
    def __init__(self, account_repo: PatientAccountRepository, credit_repo: CreditRepository) -> None:
        self.account_repo = account_repo
        self.credit_repo = credit_repo

    def handle(self, query: ListAvailableCreditsQuery) -> list[CreditBalanceEntity]:
        account = self.account_repo.find_by_id(query.account_id)
        _scoped(account, query.clinic_id, AccountNotFoundError, "Conta", query.account_id)
        return self.credit_repo.list_available(account.id, timezone.now())


class GetAvailableForRefundHandler(QueryHandler[GetAvailableForRefundQuery, RefundAvailability]):
    def __init__(self, payment_repo: PaymentRepository, refund_repo: RefundRepository) -> None:
        self.payment_repo = payment_repo
        self.refund_repo = refund_repo

    def handle(self, query: GetAvailableForRefundQuery) -> RefundAvailability:
        payment = self.payment_repo.find_by_id(query.payment_id)
        _scoped(payment, query.clinic_id, PaymentNotFoundError, "Pagamento", query.payment_id)
        committed = self.refund_repo.sum_for_payment(payment.id, COMMITTED_REFUND_STATUSES)
        return RefundAvailability(payment=payment, committed=committed, available=payment.amount - committed)


class GetInvoiceHandler(QueryHandler[GetInvoiceQuery, InvoiceEntity]):
    def __init__(self, invoice_repo: InvoiceRepository) -> None:
        self.invoice_repo = invoice_repo

    def handle(self, query: GetInvoiceQuery) -> InvoiceEntity:
        invoice = self.invoice_repo.find_by_id(query.invoice_id)
        return _scoped(invoice, query.clinic_id, InvoiceNotFoundError, "Fatura", query.invoice_id)


class GetPaymentHandler(QueryHandler[GetPaymentQuery, PaymentEntity]):
    def __init__(self, payment_repo: PaymentRepository) -> None:
        self.payment_repo = payment_repo

    def handle(self, query: GetPaymentQuery) -> PaymentEntity:
        payment = self.payment_repo.find_by_id(query.payment_id)
        return _scoped(payment, query.clinic_id, PaymentNotFoundError, "Pagamento", query.payment_id)


class GetRefundHandler(QueryHandler[GetRefundQuery, RefundEntity]):
    def __init__(self, refund_repo: RefundRepository) -> None:
        self.refund_repo = refund_repo

    def handle(self, query: GetRefundQuery) -> RefundEntity:
        refund = self.refund_repo.find_by_id(query.refund_id)
        return _scoped(refund, query.clinic_id, RefundNotFoundError, "Reembolso", query.refund_id)


class GetCreditHandler(QueryHandler[GetCreditQuery, CreditBalanceEntity]):
    def __init__(self, credit_repo: CreditRepository) -> None:
        self.credit_repo = credit_repo

    def handle(self, query: GetCreditQuery) -> CreditBalanceEntity:
        credit = self.credit_repo.find_by_id(query.credit_id)
        return _scoped(credit, query.clinic_id, CreditNotFoundError, "Crédito", query.credit_id)
