from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal

import structlog
from django.db import transaction
from django.utils import timezone

from billing_ledger.core.domain.entities.invoice_entity import InvoiceEntity
from billing_ledger.core.domain.events.exceptions import (
    AmountExceedsBalanceError,
    InvoiceNotFoundError,
    fmt_amount,
)
from billing_ledger.core.domain.repositories.invoice_repository import InvoiceRepository

logger = structlog.get_logger(__name__)


class InvoiceLedgerService:
    """
    Dono das transições de saldo/status das faturas.

    `apply_payment` e `reverse_allocation` são internos: só Payment Processor,
    Credit Pool e Refund Engine chamam, sempre dentro da transação deles.
    """

    def __init__(self, invoice_repo: InvoiceRepository) -> None:
        self.invoice_repo = invoice_repo

    def check_allocations(
        self,
        account_id,
        requested: Iterable[tuple],
        *,
        lock: bool = False,
    ) -> dict:
        """
        Valida que cada fatura existe, pertence à conta, aceita alocação e
        comporta o valor pedido. Com `lock=True` bloqueia as linhas antes.
        """
        requested = list(requested)
        ids = [invoice_id for invoice_id, _ in requested]
        if lock:
            found = self.invoice_repo.lock_many(ids)
        else:
            found = {i: inv for i in ids if (inv := self.invoice_repo.find_by_id(i)) is not None}
        invoices = {str(k): v for k, v in found.items()}
        for invoice_id, amount in requested:
            invoice = invoices.get(str(invoice_id))
            if invoice is None or str(invoice.account_id) != str(account_id):
                raise InvoiceNotFoundError(f"Fatura {invoice_id} não encontrada para a conta {account_id}")
            invoice.ensure_allocatable()
            if amount > invoice.balance:
                raise AmountExceedsBalanceError(
                    f"Valor {fmt_amount(amount)} excede o saldo {fmt_amount(invoice.balance)} "
                    f"da fatura {invoice.invoice_number}"
                )
        return invoices

    def partition_allocations(self, account_id, requested: Iterable[tuple]) -> tuple[list[tuple], list[tuple]]:
        """
        Bloqueia as faturas e separa as alocações que ainda cabem das que
        ficaram obsoletas (fatura quitada, cancelada ou com saldo menor).
        Usado na confirmação de pagamentos já capturados, que não podem falhar.
        """
        requested = list(requested)
        invoices = {str(k): v for k, v in self.invoice_repo.lock_many([i for i, _ in requested]).items()}
        applicable, stale = [], []
        for invoice_id, amount in requested:
            invoice = invoices.get(str(invoice_id))
            fits = (
                invoice is not None
                and str(invoice.account_id) == str(account_id)
                and invoice.is_allocatable
                and amount <= invoice.balance
            )
            (applicable if fits else stale).append((invoice_id, amount))
        return applicable, stale

    def _load(self, invoice_id) -> InvoiceEntity:
        invoice = self.invoice_repo.lock(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(f"Fatura {invoice_id} não encontrada")
        return invoice

    @transaction.atomic
    def apply_payment(self, invoice_id, amount: Decimal, when: datetime | None = None) -> InvoiceEntity:
        invoice = self._load(invoice_id)
        invoice.apply_payment(amount, when or timezone.now())
        invoice.check_invariant()
        self.invoice_repo.save(invoice)
        logger.debug("invoice.payment_applied", invoice=invoice.invoice_number, amount=fmt_amount(amount),
                     balance=fmt_amount(invoice.balance), status=invoice.status)
        return invoice

    @transaction.atomic
    def reverse_allocation(self, invoice_id, amount: Decimal) -> InvoiceEntity:
        invoice = self._load(invoice_id)
        invoice.reverse_allocation(amount)
        invoice.check_invariant()
        self.invoice_repo.save(invoice)
        logger.debug("invoice.allocation_reversed", invoice=invoice.invoice_number, amount=fmt_amount(amount),
                     balance=fmt_amount(invoice.balance), status=invoice.status)
        return invoice
