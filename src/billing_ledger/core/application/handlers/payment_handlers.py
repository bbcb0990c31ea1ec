from __future__ import annotations

import uuid
from decimal import Decimal

import structlog
from django.db import DatabaseError, transaction
from django.utils import timezone

from billing_ledger.adapters.observability.metrics import track_gateway_call
from billing_ledger.core.application.commands.payment_commands import (
    AllocationInput,
    ConfirmPaymentCommand,
    CreatePaymentCommand,
)
from billing_ledger.core.application.cqrs import CommandHandler
from billing_ledger.core.application.services.account_balance_service import AccountBalanceService
from billing_ledger.core.application.services.invoice_ledger_service import InvoiceLedgerService
from billing_ledger.core.application.services.ledger_support import publish_after_commit, require_open_account
from billing_ledger.core.domain.entities.enums import (
    GATEWAY_METHODS,
    IMMEDIATE_METHODS,
    PaymentMethodType,
    PaymentStatus,
)
from billing_ledger.core.domain.entities.patient_account_entity import PatientAccountEntity
from billing_ledger.core.domain.entities.payment_entity import (
    PaymentAllocationEntity,
    PaymentEntity,
    build_idempotency_key,
)
from billing_ledger.core.domain.events.events import PaymentRecordedEvent, PaymentStatusChangedEvent
from billing_ledger.core.domain.events.exceptions import (
    AllocationExceedsPaymentError,
    BillingError,
    BillingValidationError,
    GatewayError,
    InvalidPaymentStateError,
    PaymentFailedError,
    PaymentNotFoundError,
    UnallocatedAmountError,
    fmt_amount,
)
from billing_ledger.core.domain.repositories.patient_account_repository import PatientAccountRepository
from billing_ledger.core.domain.repositories.payment_repository import PaymentRepository
from billing_ledger.core.domain.services.counter_service import DocumentNumberGenerator
from billing_ledger.core.domain.services.event_dispatcher import EventDispatcher
from billing_ledger.core.domain.services.money import ZERO, positive_money, to_minor_units
from billing_ledger.core.domain.services.payment_gateway import PaymentGateway

logger = structlog.get_logger(__name__)

GATEWAY_STATUS_MAP = {
    "succeeded": PaymentStatus.COMPLETED,
    "processing": PaymentStatus.PROCESSING,
}
GATEWAY_STATUSES = frozenset({"succeeded", "processing", "requires_action", "failed"})
CONFIRMABLE_STATUSES = frozenset({PaymentStatus.PENDING, PaymentStatus.PROCESSING})


def normalize_allocations(
    allocations: tuple[AllocationInput, ...],
    amount: Decimal,
) -> list[tuple[uuid.UUID, Decimal]]:
    """
    Converte as alocações pedidas em `(invoice_id, valor)`.
    Soma acima do pagamento ou sobra não alocada são erro do chamador.
    """
    requested: list[tuple[uuid.UUID, Decimal]] = []
    seen: set[uuid.UUID] = set()
    for pos, alloc in enumerate(allocations):
        try:
            invoice_id = uuid.UUID(str(alloc.invoice_id))
        except ValueError as exc:
            raise BillingValidationError(f"allocations[{pos}].invoice_id inválido") from exc
        if invoice_id in seen:
            raise BillingValidationError(f"Fatura {invoice_id} repetida nas alocações")
        seen.add(invoice_id)
        requested.append((invoice_id, positive_money(alloc.amount, f"allocations[{pos}].amount")))

    total = sum((a for _, a in requested), ZERO)
    if total > amount:
        raise AllocationExceedsPaymentError(
            f"Alocações {fmt_amount(total)} excedem o pagamento {fmt_amount(amount)}"
        )
    if requested and total < amount:
        raise UnallocatedAmountError(
            f"Sobram {fmt_amount(amount - total)} não alocados; aloque o valor integral"
        )
    return requested


def _serialize_pending(requested: list[tuple[uuid.UUID, Decimal]]) -> list[dict]:
    return [{"invoice_id": str(i), "amount": fmt_amount(a)} for i, a in requested]


def _deserialize_pending(pending: list[dict]) -> list[tuple[uuid.UUID, Decimal]]:
    return [(uuid.UUID(p["invoice_id"]), Decimal(p["amount"])) for p in pending]


# ╭──────────────────────────────────────────────╮
# │ Criação de pagamento                        │
# ╰──────────────────────────────────────────────╯
class CreatePaymentHandler(CommandHandler[CreatePaymentCommand]):
    """
    Fluxo:
      1. valida conta, alocações e faturas (sem lock, nenhuma escrita)
      2. reserva o número e chama o gateway FORA da transação
      3. abre a transação, revalida sob lock e grava pagamento + alocações
      4. após o commit, recalcula o saldo da conta
    """

    def __init__(  # noqa: PLR0913
        self,
        account_repo: PatientAccountRepository,
        payment_repo: PaymentRepository,
        ledger: InvoiceLedgerService,
        balance_service: AccountBalanceService,
        numbers: DocumentNumberGenerator,
        gateway: PaymentGateway,
        dispatcher: EventDispatcher,
        currency: str = "brl",
    ) -> None:
        self.account_repo = account_repo
        self.payment_repo = payment_repo
        self.ledger = ledger
        self.balance_service = balance_service
        self.numbers = numbers
        self.gateway = gateway
        self.dispatcher = dispatcher
        self.currency = currency

    def _dispatch(
        self,
        method: PaymentMethodType,
        amount: Decimal,
        account: PatientAccountEntity,
        payment_number: str,
        idempotency_key: str,
    ) -> tuple[str, str | None]:
        if method in IMMEDIATE_METHODS:
            return PaymentStatus.COMPLETED, None
        if method not in GATEWAY_METHODS:
            # transferências/ACH aguardam confirmação externa
            return PaymentStatus.PENDING, None

        try:
            with track_gateway_call("charge"):
                result = self.gateway.create_charge(
                    to_minor_units(amount),
                    self.currency,
                    idempotency_key,
                    {
                        "clinic_id": str(account.clinic_id),
                        "account_id": str(account.id),
                        "payment_number": payment_number,
                    },
                )
        except GatewayError as exc:
            logger.warning("gateway.charge_failed", payment=payment_number, error=str(exc))
            raise PaymentFailedError(f"Falha ao processar o pagamento {payment_number}: {exc}") from exc
        if result.status == "failed":
            logger.warning("gateway.charge_failed", payment=payment_number, reference=result.reference_id)
            raise PaymentFailedError(f"Gateway recusou o pagamento {payment_number}")
        return GATEWAY_STATUS_MAP.get(result.status, PaymentStatus.PENDING), result.reference_id

    def handle(self, cmd: CreatePaymentCommand) -> PaymentEntity:
        amount = positive_money(cmd.amount)
        try:
            method = PaymentMethodType(cmd.method_type)
        except ValueError as exc:
            raise BillingValidationError(f"Forma de pagamento inválida: {cmd.method_type}") from exc
        requested = normalize_allocations(cmd.allocations, amount)

        account = require_open_account(self.account_repo, cmd.account_id, cmd.clinic_id)
        if cmd.request_id:
            existing = self.payment_repo.find_by_request_id(account.id, cmd.request_id)
            if existing is not None:
                logger.info("payment.duplicate_request", payment=existing.payment_number, request_id=cmd.request_id)
                return existing
        self.ledger.check_allocations(account.id, requested)

        now = timezone.now()
        payment_number = self.numbers.next_number(account.clinic_id, DocumentNumberGenerator.PAYMENT, now.year)
        idempotency_key = build_idempotency_key("payment", account.id, payment_number)
        status, reference = self._dispatch(method, amount, account, payment_number, idempotency_key)

        payment = PaymentEntity(
            id=uuid.uuid4(),
            clinic_id=account.clinic_id,
            account_id=account.id,
            payment_number=payment_number,
            amount=amount,
            method_type=method,
            status=status,
            gateway_reference_id=reference,
            idempotency_key=idempotency_key,
            request_id=cmd.request_id,
            payment_date=now,
            processed_at=now if status == PaymentStatus.COMPLETED else None,
            notes=cmd.notes,
            created_by=cmd.actor_id,
        )
        try:
            with transaction.atomic():
                if status == PaymentStatus.COMPLETED:
                    self.ledger.check_allocations(account.id, requested, lock=True)
                    for invoice_id, alloc_amount in requested:
                        self.ledger.apply_payment(invoice_id, alloc_amount, now)
                    payment.allocations = [PaymentAllocationEntity(invoice_id=i, amount=a) for i, a in requested]
                else:
                    payment.pending_allocations = _serialize_pending(requested)
                created = self.payment_repo.create(payment)
                publish_after_commit(self.dispatcher, PaymentRecordedEvent(
                    clinic_id=created.clinic_id,
                    actor_id=cmd.actor_id,
                    payment_id=created.id,
                    account_id=created.account_id,
                    payment_number=created.payment_number,
                    amount=created.amount,
                    method_type=created.method_type,
                    status=created.status,
                    allocations=tuple(_serialize_pending(requested)),
                ))
        except (BillingError, DatabaseError) as exc:
            if reference:
                logger.critical(
                    "payment.charge_orphaned",
                    payment=payment_number,
                    gateway_reference_id=reference,
                    idempotency_key=idempotency_key,
                    error=str(exc),
                )
            raise

        self.balance_service.recompute(account.id)
        logger.info("payment.created", payment=created.payment_number, amount=fmt_amount(amount),
                    status=created.status, method=method, allocations=len(created.allocations))
        return created


# ╭──────────────────────────────────────────────╮
# │ Confirmação (reconciliação externa)         │
# ╰──────────────────────────────────────────────╯
class ConfirmPaymentHandler(CommandHandler[ConfirmPaymentCommand]):
    def __init__(
        self,
        payment_repo: PaymentRepository,
        ledger: InvoiceLedgerService,
        balance_service: AccountBalanceService,
        dispatcher: EventDispatcher,
    ) -> None:
        self.payment_repo = payment_repo
        self.ledger = ledger
        self.balance_service = balance_service
        self.dispatcher = dispatcher

    def handle(self, cmd: ConfirmPaymentCommand) -> PaymentEntity:
        if cmd.gateway_status not in GATEWAY_STATUSES:
            raise BillingValidationError(f"Status de gateway inválido: {cmd.gateway_status}")

        with transaction.atomic():
            payment = self.payment_repo.lock(cmd.payment_id)
            if payment is None:
                raise PaymentNotFoundError(f"Pagamento {cmd.payment_id} não encontrado")
            if payment.status not in CONFIRMABLE_STATUSES:
                raise InvalidPaymentStateError(
                    f"Pagamento {payment.payment_number} já está {payment.status}"
                )
            previous = payment.status
            now = timezone.now()

            if cmd.gateway_status == "succeeded":
                # dinheiro já capturado: o pagamento completa mesmo com alocações obsoletas
                requested, stale = self.ledger.partition_allocations(
                    payment.account_id, _deserialize_pending(payment.pending_allocations)
                )
                if stale:
                    logger.warning(
                        "payment.allocation_stale",
                        payment=payment.payment_number,
                        unallocated=_serialize_pending(stale),
                    )
                for invoice_id, amount in requested:
                    self.ledger.apply_payment(invoice_id, amount, now)
                payment.allocations = self.payment_repo.add_allocations(
                    payment.id, [PaymentAllocationEntity(invoice_id=i, amount=a) for i, a in requested]
                )
                payment.pending_allocations = []
                payment.status = PaymentStatus.COMPLETED
                payment.processed_at = now
            elif cmd.gateway_status == "failed":
                payment.status = PaymentStatus.FAILED
                payment.processed_at = now
            elif cmd.gateway_status == "processing":
                payment.status = PaymentStatus.PROCESSING

            if payment.status == previous:
                logger.info("payment.confirm_noop", payment=payment.payment_number, gateway_status=cmd.gateway_status)
                return payment

            self.payment_repo.save(payment)
            if payment.status == PaymentStatus.COMPLETED:
                self.balance_service.recompute(payment.account_id)
            publish_after_commit(self.dispatcher, PaymentStatusChangedEvent(
                clinic_id=payment.clinic_id,
                actor_id=cmd.actor_id,
                payment_id=payment.id,
                previous_status=previous,
                status=payment.status,
            ))

        logger.info("payment.status_changed", payment=payment.payment_number, previous=previous,
                    status=payment.status)
        return payment
