from __future__ import annotations

import uuid
from decimal import Decimal

import structlog
from django.db import DatabaseError, transaction
from django.utils import timezone

from billing_ledger.core.application.commands.refund_commands import (
    ApproveRefundCommand,
    ConfirmRefundCommand,
    DeclineRefundCommand,
    ProcessRefundCommand,
    RequestRefundCommand,
)
from billing_ledger.core.application.cqrs import CommandHandler
from billing_ledger.core.application.services.ledger_support import publish_after_commit
from billing_ledger.core.application.services.refund_settlement_service import RefundSettlementService
from billing_ledger.core.domain.entities.enums import (
    COMMITTED_REFUND_STATUSES,
    RefundReason,
    RefundStatus,
    RefundType,
)
from billing_ledger.core.domain.entities.payment_entity import PaymentEntity, build_idempotency_key
from billing_ledger.core.domain.entities.refund_entity import RefundEntity
from billing_ledger.core.domain.events.events import (
    RefundCompletedEvent,
    RefundRequestedEvent,
    RefundStatusChangedEvent,
)
from billing_ledger.core.domain.events.exceptions import (
    BillingError,
    BillingValidationError,
    PaymentNotFoundError,
    ReasonRequiredError,
    RefundExceedsAvailableError,
    RefundNotFoundError,
    fmt_amount,
)
from billing_ledger.core.domain.repositories.payment_repository import PaymentRepository
from billing_ledger.core.domain.repositories.refund_repository import RefundRepository
from billing_ledger.core.domain.services.counter_service import DocumentNumberGenerator
from billing_ledger.core.domain.services.event_dispatcher import EventDispatcher
from billing_ledger.core.domain.services.money import positive_money

logger = structlog.get_logger(__name__)

AUTO_APPROVAL_NOTE = "Aprovado automaticamente (abaixo do limite)"
GATEWAY_DECLINE_REASON = "Gateway reportou falha no reembolso"


def available_for_refund(refund_repo: RefundRepository, payment: PaymentEntity) -> Decimal:
    """`payment.amount − Σ reembolsos PENDING/APPROVED/PROCESSING/COMPLETED`."""
    return payment.amount - refund_repo.sum_for_payment(payment.id, COMMITTED_REFUND_STATUSES)


def _ensure_available(refund_repo: RefundRepository, payment: PaymentEntity, amount: Decimal) -> None:
    available = available_for_refund(refund_repo, payment)
    if amount > available:
        raise RefundExceedsAvailableError(
            f"Valor {fmt_amount(amount)} excede o disponível para reembolso {fmt_amount(available)}"
        )


def _completed_event(refund: RefundEntity, payment: PaymentEntity, reversals, actor_id) -> RefundCompletedEvent:
    return RefundCompletedEvent(
        clinic_id=refund.clinic_id,
        actor_id=actor_id,
        refund_id=refund.id,
        payment_id=payment.id,
        amount=refund.amount,
        payment_status=payment.status,
        reversals=tuple(reversals),
    )


def _status_event(refund: RefundEntity, previous: str, actor_id, notes=None) -> RefundStatusChangedEvent:
    return RefundStatusChangedEvent(
        clinic_id=refund.clinic_id,
        actor_id=actor_id,
        refund_id=refund.id,
        previous_status=previous,
        status=refund.status,
        notes=notes,
    )


# ╭──────────────────────────────────────────────╮
# │ Solicitação                                 │
# ╰──────────────────────────────────────────────╯
class RequestRefundHandler(CommandHandler[RequestRefundCommand]):
    """
    Reembolsos com valor >= `approval_threshold` ficam PENDING aguardando
    aprovação manual; abaixo disso são auto-aprovados e processados na hora.
    Se o gateway falhar no fluxo automático, nenhuma linha é gravada.
    """

    def __init__(  # noqa: PLR0913
        self,
        payment_repo: PaymentRepository,
        refund_repo: RefundRepository,
        numbers: DocumentNumberGenerator,
        settlement: RefundSettlementService,
        dispatcher: EventDispatcher,
        approval_threshold: Decimal,
    ) -> None:
        self.payment_repo = payment_repo
        self.refund_repo = refund_repo
        self.numbers = numbers
        self.settlement = settlement
        self.dispatcher = dispatcher
        self.approval_threshold = Decimal(approval_threshold)

    def handle(self, cmd: RequestRefundCommand) -> RefundEntity:
        if cmd.reason not in RefundReason.__members__:
            raise BillingValidationError(f"Motivo de reembolso inválido: {cmd.reason}")
        payment = self.payment_repo.find_by_id(cmd.payment_id)
        if payment is None:
            raise PaymentNotFoundError(f"Pagamento {cmd.payment_id} não encontrado")
        payment.ensure_refundable()
        amount = payment.amount if cmd.amount is None else positive_money(cmd.amount)
        _ensure_available(self.refund_repo, payment, amount)

        now = timezone.now()
        refund_number = self.numbers.next_number(payment.clinic_id, DocumentNumberGenerator.REFUND, now.year)
        refund = RefundEntity(
            id=uuid.uuid4(),
            clinic_id=payment.clinic_id,
            payment_id=payment.id,
            refund_number=refund_number,
            amount=amount,
            refund_type=RefundType.FULL if amount == payment.amount else RefundType.PARTIAL,
            status=RefundStatus.PENDING,
            reason=cmd.reason,
            reason_details=cmd.reason_details,
            idempotency_key=build_idempotency_key("refund", payment.id, refund_number),
            requested_by=cmd.actor_id,
        )

        if amount >= self.approval_threshold:
            return self._hold_for_approval(refund, cmd.actor_id)

        refund.status = RefundStatus.APPROVED
        refund.approved_at = now
        refund.approval_notes = AUTO_APPROVAL_NOTE
        status, reference = self.settlement.dispatch(payment, refund)
        try:
            with transaction.atomic():
                locked = self.payment_repo.lock(payment.id)
                locked.ensure_refundable()
                _ensure_available(self.refund_repo, locked, amount)
                refund.gateway_refund_id = reference
                events = []
                if status == RefundStatus.COMPLETED:
                    settled, reversals = self.settlement.complete(refund)
                    events.append(_completed_event(refund, settled, reversals, cmd.actor_id))
                else:
                    refund.status = RefundStatus.PROCESSING
                created = self.refund_repo.create(refund)
                publish_after_commit(self.dispatcher, self._requested_event(created, cmd.actor_id), *events)
        except (BillingError, DatabaseError) as exc:
            if reference:
                logger.critical(
                    "refund.gateway_orphaned",
                    refund=refund_number,
                    gateway_refund_id=reference,
                    idempotency_key=refund.idempotency_key,
                    error=str(exc),
                )
            raise

        logger.info("refund.requested", refund=refund_number, amount=fmt_amount(amount), status=created.status)
        return created

    def _hold_for_approval(self, refund: RefundEntity, actor_id) -> RefundEntity:
        with transaction.atomic():
            payment = self.payment_repo.lock(refund.payment_id)
            _ensure_available(self.refund_repo, payment, refund.amount)
            created = self.refund_repo.create(refund)
            publish_after_commit(self.dispatcher, self._requested_event(created, actor_id))
        logger.info("refund.pending_approval", refund=created.refund_number, amount=fmt_amount(created.amount),
                    threshold=fmt_amount(self.approval_threshold))
        return created

    @staticmethod
    def _requested_event(refund: RefundEntity, actor_id) -> RefundRequestedEvent:
        return RefundRequestedEvent(
            clinic_id=refund.clinic_id,
            actor_id=actor_id,
            refund_id=refund.id,
            payment_id=refund.payment_id,
            refund_number=refund.refund_number,
            amount=refund.amount,
            refund_type=refund.refund_type,
            status=refund.status,
            reason=refund.reason,
        )


# ╭──────────────────────────────────────────────╮
# │ Aprovação / Recusa                          │
# ╰──────────────────────────────────────────────╯
class ApproveRefundHandler(CommandHandler[ApproveRefundCommand]):
    def __init__(self, refund_repo: RefundRepository, dispatcher: EventDispatcher) -> None:
        self.refund_repo = refund_repo
        self.dispatcher = dispatcher

    def handle(self, cmd: ApproveRefundCommand) -> RefundEntity:
        with transaction.atomic():
            refund = self.refund_repo.lock(cmd.refund_id)
            if refund is None:
                raise RefundNotFoundError(f"Reembolso {cmd.refund_id} não encontrado")
            previous = refund.status
            refund.approve(cmd.actor_id, cmd.notes, timezone.now())
            self.refund_repo.save(refund)
            publish_after_commit(self.dispatcher, _status_event(refund, previous, cmd.actor_id, cmd.notes))
        logger.info("refund.approved", refund=refund.refund_number, approver=cmd.actor_id)
        return refund


class DeclineRefundHandler(CommandHandler[DeclineRefundCommand]):
    def __init__(self, refund_repo: RefundRepository, dispatcher: EventDispatcher) -> None:
        self.refund_repo = refund_repo
        self.dispatcher = dispatcher

    def handle(self, cmd: DeclineRefundCommand) -> RefundEntity:
        if not (cmd.reason or "").strip():
            raise ReasonRequiredError("Motivo da recusa é obrigatório")
        with transaction.atomic():
            refund = self.refund_repo.lock(cmd.refund_id)
            if refund is None:
                raise RefundNotFoundError(f"Reembolso {cmd.refund_id} não encontrado")
            previous = refund.status
            refund.decline(cmd.reason, timezone.now())
            self.refund_repo.save(refund)
            publish_after_commit(self.dispatcher, _status_event(refund, previous, cmd.actor_id, cmd.reason))
        logger.info("refund.declined", refund=refund.refund_number)
        return refund


# ╭──────────────────────────────────────────────╮
# │ Processamento e confirmação                 │
# ╰──────────────────────────────────────────────╯
class ProcessRefundHandler(CommandHandler[ProcessRefundCommand]):
    """APPROVED → gateway → COMPLETED/PROCESSING; falha no gateway mantém APPROVED."""

    def __init__(
        self,
        payment_repo: PaymentRepository,
        refund_repo: RefundRepository,
        settlement: RefundSettlementService,
        dispatcher: EventDispatcher,
    ) -> None:
        self.payment_repo = payment_repo
        self.refund_repo = refund_repo
        self.settlement = settlement
        self.dispatcher = dispatcher

    def handle(self, cmd: ProcessRefundCommand) -> RefundEntity:
        refund = self.refund_repo.find_by_id(cmd.refund_id)
        if refund is None:
            raise RefundNotFoundError(f"Reembolso {cmd.refund_id} não encontrado")
        refund.ensure_status(RefundStatus.APPROVED)
        payment = self.payment_repo.find_by_id(refund.payment_id)
        if payment is None:
            raise PaymentNotFoundError(f"Pagamento {refund.payment_id} não encontrado")

        status, reference = self.settlement.dispatch(payment, refund)
        try:
            with transaction.atomic():
                refund = self.refund_repo.lock(cmd.refund_id)
                refund.ensure_status(RefundStatus.APPROVED)
                previous = refund.status
                refund.gateway_refund_id = reference
                events = []
                if status == RefundStatus.COMPLETED:
                    settled, reversals = self.settlement.complete(refund)
                    events.append(_completed_event(refund, settled, reversals, cmd.actor_id))
                else:
                    refund.status = RefundStatus.PROCESSING
                self.refund_repo.save(refund)
                publish_after_commit(self.dispatcher, _status_event(refund, previous, cmd.actor_id), *events)
        except (BillingError, DatabaseError) as exc:
            if reference:
                logger.critical("refund.gateway_orphaned", refund=refund.refund_number,
                                gateway_refund_id=reference, idempotency_key=refund.idempotency_key,
                                error=str(exc))
            raise

        logger.info("refund.processed", refund=refund.refund_number, status=refund.status)
        return refund


class ConfirmRefundHandler(CommandHandler[ConfirmRefundCommand]):
    """Callback de reconciliação para reembolsos que ficaram PROCESSING no gateway."""

    def __init__(
        self,
        refund_repo: RefundRepository,
        settlement: RefundSettlementService,
        dispatcher: EventDispatcher,
    ) -> None:
        self.refund_repo = refund_repo
        self.settlement = settlement
        self.dispatcher = dispatcher

    def handle(self, cmd: ConfirmRefundCommand) -> RefundEntity:
        if cmd.gateway_status not in ("succeeded", "processing", "requires_action", "failed"):
            raise BillingValidationError(f"Status de gateway inválido: {cmd.gateway_status}")

        with transaction.atomic():
            refund = self.refund_repo.lock(cmd.refund_id)
            if refund is None:
                raise RefundNotFoundError(f"Reembolso {cmd.refund_id} não encontrado")
            refund.ensure_status(RefundStatus.PROCESSING)
            previous = refund.status
            events = []
            if cmd.gateway_status == "succeeded":
                settled, reversals = self.settlement.complete(refund)
                events.append(_completed_event(refund, settled, reversals, cmd.actor_id))
            elif cmd.gateway_status == "failed":
                refund.decline(GATEWAY_DECLINE_REASON, timezone.now(), by_gateway=True)
            else:
                logger.info("refund.confirm_noop", refund=refund.refund_number, gateway_status=cmd.gateway_status)
                return refund
            self.refund_repo.save(refund)
            publish_after_commit(self.dispatcher, _status_event(refund, previous, cmd.actor_id), *events)

        logger.info("refund.confirmed", refund=refund.refund_number, status=refund.status)
        return refund
