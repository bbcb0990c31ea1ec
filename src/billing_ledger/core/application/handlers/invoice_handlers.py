from __future__ import annotations

import uuid

import structlog
from django.db import transaction
from django.utils import timezone

from billing_ledger.core.application.commands.invoice_commands import (
    AdjustInvoiceCommand,
    CreateInvoiceCommand,
    UpdateInvoiceCommand,
)
from billing_ledger.core.application.cqrs import CommandHandler
from billing_ledger.core.application.services.account_balance_service import AccountBalanceService
from billing_ledger.core.application.services.ledger_support import publish_after_commit, require_open_account
from billing_ledger.core.domain.entities.enums import InvoiceStatus
from billing_ledger.core.domain.entities.invoice_entity import InvoiceEntity, InvoiceItemEntity
from billing_ledger.core.domain.events.events import (
    InvoiceAdjustedEvent,
    InvoiceCreatedEvent,
    InvoiceUpdatedEvent,
)
from billing_ledger.core.domain.events.exceptions import (
    BillingValidationError,
    InvalidInvoiceStateError,
    InvoiceNotFoundError,
    ReasonRequiredError,
    fmt_amount,
)
from billing_ledger.core.domain.repositories.invoice_repository import InvoiceRepository
from billing_ledger.core.domain.repositories.patient_account_repository import PatientAccountRepository
from billing_ledger.core.domain.services.counter_service import DocumentNumberGenerator
from billing_ledger.core.domain.services.event_dispatcher import EventDispatcher
from billing_ledger.core.domain.services.money import ZERO, non_negative_money, positive_money, to_money

logger = structlog.get_logger(__name__)

CREATABLE_STATUSES = frozenset({InvoiceStatus.DRAFT, InvoiceStatus.PENDING})


class CreateInvoiceHandler(CommandHandler[CreateInvoiceCommand]):
    def __init__(  # noqa: PLR0913
        self,
        account_repo: PatientAccountRepository,
        invoice_repo: InvoiceRepository,
        numbers: DocumentNumberGenerator,
        balance_service: AccountBalanceService,
        dispatcher: EventDispatcher,
    ) -> None:
        self.account_repo = account_repo
        self.invoice_repo = invoice_repo
        self.numbers = numbers
        self.balance_service = balance_service
        self.dispatcher = dispatcher

    @staticmethod
    def _build_items(cmd: CreateInvoiceCommand) -> list[InvoiceItemEntity]:
        if not cmd.items:
            raise BillingValidationError("A fatura precisa de ao menos um item")
        return [
            InvoiceItemEntity.build(
                description=item.description,
                quantity=item.quantity,
                unit_price=non_negative_money(item.unit_price, f"items[{pos}].unit_price"),
                discount=non_negative_money(item.discount, f"items[{pos}].discount"),
                procedure_code=item.procedure_code,
                position=pos,
            )
            for pos, item in enumerate(cmd.items)
        ]

    def handle(self, cmd: CreateInvoiceCommand) -> InvoiceEntity:
        if cmd.status not in CREATABLE_STATUSES:
            raise BillingValidationError(f"Status inicial inválido: {cmd.status}")
        items = self._build_items(cmd)
        adjustments = non_negative_money(cmd.adjustments, "adjustments")
        subtotal = to_money(sum((i.line_total for i in items), ZERO), "subtotal")
        if adjustments > subtotal:
            raise BillingValidationError(
                f"Ajustes {fmt_amount(adjustments)} excedem o subtotal {fmt_amount(subtotal)}"
            )
        invoice_date = cmd.invoice_date or timezone.localdate()
        if cmd.due_date < invoice_date:
            raise BillingValidationError("Vencimento anterior à data da fatura")

        account = require_open_account(self.account_repo, cmd.account_id, cmd.clinic_id)
        now = timezone.now()

        with transaction.atomic():
            invoice = InvoiceEntity(
                id=uuid.uuid4(),
                clinic_id=account.clinic_id,
                account_id=account.id,
                invoice_number=self.numbers.next_number(
                    account.clinic_id, DocumentNumberGenerator.INVOICE, invoice_date.year
                ),
                invoice_date=invoice_date,
                due_date=cmd.due_date,
                status=cmd.status,
                subtotal=subtotal,
                adjustments=adjustments,
                balance=subtotal - adjustments,
                notes=cmd.notes,
                created_by=cmd.actor_id,
                items=items,
            )
            if invoice.is_billable and invoice.balance == ZERO:
                invoice.status = InvoiceStatus.PAID
                invoice.paid_at = now
            invoice.check_invariant()
            created = self.invoice_repo.create(invoice)
            self.balance_service.recompute(account.id)
            publish_after_commit(self.dispatcher, InvoiceCreatedEvent(
                clinic_id=created.clinic_id,
                actor_id=cmd.actor_id,
                invoice_id=created.id,
                account_id=created.account_id,
                invoice_number=created.invoice_number,
                subtotal=created.subtotal,
                status=created.status,
            ))

        logger.info("invoice.created", invoice=created.invoice_number, subtotal=fmt_amount(subtotal),
                    status=created.status)
        return created


class UpdateInvoiceHandler(CommandHandler[UpdateInvoiceCommand]):
    """Aplica um `InvoicePatch`: só os campos presentes são alterados."""

    def __init__(
        self,
        invoice_repo: InvoiceRepository,
        balance_service: AccountBalanceService,
        dispatcher: EventDispatcher,
    ) -> None:
        self.invoice_repo = invoice_repo
        self.balance_service = balance_service
        self.dispatcher = dispatcher

    def handle(self, cmd: UpdateInvoiceCommand) -> InvoiceEntity:
        patch = cmd.patch
        changed = patch.changed_fields()
        if not changed:
            raise BillingValidationError("Nenhum campo para atualizar")
        if patch.status is not None and patch.status not in InvoiceStatus.__members__:
            raise BillingValidationError(f"Status inválido: {patch.status}")

        with transaction.atomic():
            invoice = self.invoice_repo.lock(cmd.invoice_id)
            if invoice is None:
                raise InvoiceNotFoundError(f"Fatura {cmd.invoice_id} não encontrada")
            if invoice.status == InvoiceStatus.CANCELLED:
                raise InvalidInvoiceStateError(f"Fatura {invoice.invoice_number} está cancelada")

            if patch.due_date is not None:
                if patch.due_date < invoice.invoice_date:
                    raise BillingValidationError("Vencimento anterior à data da fatura")
                invoice.due_date = patch.due_date
            if patch.notes is not None:
                invoice.notes = patch.notes
            if patch.status is not None:
                invoice.transition_to(patch.status)
                if invoice.status == InvoiceStatus.PAID:
                    invoice.paid_at = timezone.now()

            invoice.check_invariant()
            self.invoice_repo.save(invoice)
            self.balance_service.recompute(invoice.account_id)
            publish_after_commit(self.dispatcher, InvoiceUpdatedEvent(
                clinic_id=invoice.clinic_id,
                actor_id=cmd.actor_id,
                invoice_id=invoice.id,
                changed_fields=changed,
                status=invoice.status,
            ))

        logger.info("invoice.updated", invoice=invoice.invoice_number, fields=list(changed))
        return invoice


class AdjustInvoiceHandler(CommandHandler[AdjustInvoiceCommand]):
    def __init__(
        self,
        invoice_repo: InvoiceRepository,
        balance_service: AccountBalanceService,
        dispatcher: EventDispatcher,
    ) -> None:
        self.invoice_repo = invoice_repo
        self.balance_service = balance_service
        self.dispatcher = dispatcher

    def handle(self, cmd: AdjustInvoiceCommand) -> InvoiceEntity:
        amount = positive_money(cmd.amount)
        if not (cmd.reason or "").strip():
            raise ReasonRequiredError("Motivo do ajuste é obrigatório")

        with transaction.atomic():
            invoice = self.invoice_repo.lock(cmd.invoice_id)
            if invoice is None:
                raise InvoiceNotFoundError(f"Fatura {cmd.invoice_id} não encontrada")
            invoice.adjust(amount, timezone.now())
            invoice.check_invariant()
            self.invoice_repo.save(invoice)
            self.balance_service.recompute(invoice.account_id)
            publish_after_commit(self.dispatcher, InvoiceAdjustedEvent(
                clinic_id=invoice.clinic_id,
                actor_id=cmd.actor_id,
                invoice_id=invoice.id,
                amount=amount,
                reason=cmd.reason,
                balance=invoice.balance,
            ))

        logger.info("invoice.adjusted", invoice=invoice.invoice_number, amount=fmt_amount(amount),
                    balance=fmt_amount(invoice.balance))
        return invoice
