from __future__ import annotations

from decimal import Decimal
from typing import Any

import structlog
from django.utils import timezone

from billing_ledger.adapters.observability.metrics import track_gateway_call
from billing_ledger.core.application.services.account_balance_service import AccountBalanceService
from billing_ledger.core.application.services.invoice_ledger_service import InvoiceLedgerService
from billing_ledger.core.domain.entities.enums import RefundStatus
from billing_ledger.core.domain.entities.payment_entity import PaymentEntity
from billing_ledger.core.domain.entities.refund_entity import RefundEntity
from billing_ledger.core.domain.events.exceptions import (
    GatewayError,
    LedgerInvariantError,
    PaymentNotFoundError,
    RefundFailedError,
    fmt_amount,
)
from billing_ledger.core.domain.repositories.payment_repository import PaymentRepository
from billing_ledger.core.domain.repositories.refund_repository import RefundRepository
from billing_ledger.core.domain.services.money import ZERO, proportional_shares, to_minor_units
from billing_ledger.core.domain.services.payment_gateway import PaymentGateway

logger = structlog.get_logger(__name__)


class RefundSettlementService:
    """
    Parte compartilhada do Refund Engine: despacho ao gateway e liquidação.

    `dispatch` roda ANTES da transação local; `complete` exige transação
    aberta e faz, atomicamente, status do pagamento + estorno das alocações +
    recálculo da conta.
    """

    def __init__(
        self,
        payment_repo: PaymentRepository,
        refund_repo: RefundRepository,
        ledger: InvoiceLedgerService,
        balance_service: AccountBalanceService,
        gateway: PaymentGateway,
    ) -> None:
        self.payment_repo = payment_repo
        self.refund_repo = refund_repo
        self.ledger = ledger
        self.balance_service = balance_service
        self.gateway = gateway

    def dispatch(self, payment: PaymentEntity, refund: RefundEntity) -> tuple[str, str | None]:
        """Retorna `(status, gateway_refund_id)`; pagamentos sem referência são só registro."""
        if not payment.gateway_reference_id:
            logger.info("refund.record_only", refund=refund.refund_number, method=payment.method_type)
            return RefundStatus.COMPLETED, None
        try:
            with track_gateway_call("refund"):
                result = self.gateway.create_refund(
                    payment.gateway_reference_id,
                    to_minor_units(refund.amount),
                    refund.idempotency_key,
                )
        except GatewayError as exc:
            logger.warning("gateway.refund_failed", refund=refund.refund_number, error=str(exc))
            raise RefundFailedError(f"Falha ao processar reembolso {refund.refund_number}: {exc}") from exc
        if result.status == "failed":
            logger.warning("gateway.refund_failed", refund=refund.refund_number, reference=result.reference_id)
            raise RefundFailedError(f"Gateway recusou o reembolso {refund.refund_number}")
        status = RefundStatus.COMPLETED if result.status == "succeeded" else RefundStatus.PROCESSING
        return status, result.reference_id

    def complete(self, refund: RefundEntity) -> tuple[PaymentEntity, list[dict[str, Any]]]:
        """Liquida o reembolso (refund ainda não contado como COMPLETED no banco)."""
        payment = self.payment_repo.lock(refund.payment_id)
        if payment is None:
            raise PaymentNotFoundError(f"Pagamento {refund.payment_id} não encontrado")

        completed = self.refund_repo.sum_for_payment(payment.id, [RefundStatus.COMPLETED]) + refund.amount
        if completed > payment.amount:
            raise LedgerInvariantError(
                f"Reembolsos {fmt_amount(completed)} excedem o pagamento {fmt_amount(payment.amount)}"
            )

        reversals = self._reverse_allocations(payment, refund.amount, final=completed == payment.amount)
        payment.mark_refunded(completed)
        self.payment_repo.save(payment)

        refund.status = RefundStatus.COMPLETED
        refund.processed_at = timezone.now()
        self.balance_service.recompute(payment.account_id)
        logger.info(
            "refund.completed",
            refund=refund.refund_number,
            amount=fmt_amount(refund.amount),
            payment_status=payment.status,
            reversals=len(reversals),
        )
        return payment, reversals

    def _reverse_allocations(self, payment: PaymentEntity, amount: Decimal, *, final: bool) -> list[dict[str, Any]]:
        allocations = payment.allocations
        if not allocations:
            return []
        if final:
            # último reembolso devolve exatamente o que restou em cada fatura
            shares = [a.net_amount for a in allocations]
        else:
            shares = proportional_shares(
                [a.amount for a in allocations],
                amount,
                payment.amount,
                capacities=[a.net_amount for a in allocations],
            )
        reversals = []
        for allocation, share in zip(allocations, shares, strict=True):
            if share <= ZERO:
                continue
            self.ledger.reverse_allocation(allocation.invoice_id, share)
            allocation.reversed_amount += share
            self.payment_repo.save_allocation(allocation)
            reversals.append({"invoice_id": str(allocation.invoice_id), "amount": fmt_amount(share)})
        return reversals
