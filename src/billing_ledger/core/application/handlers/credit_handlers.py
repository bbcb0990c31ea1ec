from __future__ import annotations

import uuid

import structlog
from django.db import transaction
from django.utils import timezone

from billing_ledger.core.application.commands.credit_commands import (
    ApplyCreditCommand,
    CreateCreditCommand,
    TransferCreditCommand,
)
from billing_ledger.core.application.cqrs import CommandHandler
from billing_ledger.core.application.dtos.billing_results import CreditTransferResult
from billing_ledger.core.application.services.account_balance_service import AccountBalanceService
from billing_ledger.core.application.services.invoice_ledger_service import InvoiceLedgerService
from billing_ledger.core.application.services.ledger_support import publish_after_commit, require_open_account
from billing_ledger.core.domain.entities.credit_balance_entity import CreditBalanceEntity
from billing_ledger.core.domain.entities.enums import CreditSource, CreditStatus
from billing_ledger.core.domain.events.events import (
    CreditAppliedEvent,
    CreditCreatedEvent,
    CreditTransferredEvent,
)
from billing_ledger.core.domain.events.exceptions import (
    BillingValidationError,
    CreditNotFoundError,
    DestinationAccountNotFoundError,
    fmt_amount,
)
from billing_ledger.core.domain.repositories.credit_repository import CreditRepository
from billing_ledger.core.domain.repositories.patient_account_repository import PatientAccountRepository
from billing_ledger.core.domain.services.event_dispatcher import EventDispatcher
from billing_ledger.core.domain.services.money import positive_money

logger = structlog.get_logger(__name__)

TRANSFER_DESCRIPTION = "Transferido de outra conta"


def _lock_credit(repo: CreditRepository, credit_id) -> CreditBalanceEntity:
    credit = repo.lock(credit_id)
    if credit is None:
        raise CreditNotFoundError(f"Crédito {credit_id} não encontrado")
    return credit


class CreateCreditHandler(CommandHandler[CreateCreditCommand]):
    def __init__(
        self,
        account_repo: PatientAccountRepository,
        credit_repo: CreditRepository,
        balance_service: AccountBalanceService,
        dispatcher: EventDispatcher,
    ) -> None:
        self.account_repo = account_repo
        self.credit_repo = credit_repo
        self.balance_service = balance_service
        self.dispatcher = dispatcher

    def handle(self, cmd: CreateCreditCommand) -> CreditBalanceEntity:
        amount = positive_money(cmd.amount)
        if cmd.source not in CreditSource.__members__:
            raise BillingValidationError(f"Origem de crédito inválida: {cmd.source}")
        if cmd.expires_at is not None and cmd.expires_at <= timezone.now():
            raise BillingValidationError("Data de expiração já passou")
        account = require_open_account(self.account_repo, cmd.account_id, cmd.clinic_id)

        with transaction.atomic():
            credit = self.credit_repo.create(CreditBalanceEntity(
                id=uuid.uuid4(),
                clinic_id=account.clinic_id,
                account_id=account.id,
                amount=amount,
                remaining_amount=amount,
                source=cmd.source,
                status=CreditStatus.AVAILABLE,
                description=cmd.description,
                expires_at=cmd.expires_at,
                created_by=cmd.actor_id,
            ))
            self.balance_service.recompute(account.id)
            publish_after_commit(self.dispatcher, CreditCreatedEvent(
                clinic_id=credit.clinic_id,
                actor_id=cmd.actor_id,
                credit_id=credit.id,
                account_id=credit.account_id,
                amount=credit.amount,
                source=credit.source,
            ))

        logger.info("credit.created", credit_id=str(credit.id), amount=fmt_amount(amount), source=cmd.source)
        return credit


class ApplyCreditHandler(CommandHandler[ApplyCreditCommand]):
    """Pagamento sem gateway: o crédito quita (parte de) uma fatura da mesma conta."""

    def __init__(
        self,
        credit_repo: CreditRepository,
        ledger: InvoiceLedgerService,
        balance_service: AccountBalanceService,
        dispatcher: EventDispatcher,
    ) -> None:
        self.credit_repo = credit_repo
        self.ledger = ledger
        self.balance_service = balance_service
        self.dispatcher = dispatcher

    def handle(self, cmd: ApplyCreditCommand) -> CreditBalanceEntity:
        amount = positive_money(cmd.amount)

        with transaction.atomic():
            credit = _lock_credit(self.credit_repo, cmd.credit_id)
            now = timezone.now()
            credit.ensure_usable(now)
            credit.ensure_covers(amount)
            self.ledger.check_allocations(credit.account_id, [(cmd.invoice_id, amount)], lock=True)

            invoice = self.ledger.apply_payment(cmd.invoice_id, amount, now)
            credit.consume(amount)
            self.credit_repo.save(credit)
            self.credit_repo.record_application(credit.id, invoice.id, amount, cmd.actor_id)
            self.balance_service.recompute(credit.account_id)
            publish_after_commit(self.dispatcher, CreditAppliedEvent(
                clinic_id=credit.clinic_id,
                actor_id=cmd.actor_id,
                credit_id=credit.id,
                invoice_id=invoice.id,
                amount=amount,
                remaining_amount=credit.remaining_amount,
            ))

        logger.info("credit.applied", credit_id=str(credit.id), invoice=invoice.invoice_number,
                    amount=fmt_amount(amount), remaining=fmt_amount(credit.remaining_amount))
        return credit


class TransferCreditHandler(CommandHandler[TransferCreditCommand]):
    def __init__(
        self,
        account_repo: PatientAccountRepository,
        credit_repo: CreditRepository,
        balance_service: AccountBalanceService,
        dispatcher: EventDispatcher,
    ) -> None:
        self.account_repo = account_repo
        self.credit_repo = credit_repo
        self.balance_service = balance_service
        self.dispatcher = dispatcher

    def handle(self, cmd: TransferCreditCommand) -> CreditTransferResult:
        amount = positive_money(cmd.amount)

        with transaction.atomic():
            source = _lock_credit(self.credit_repo, cmd.credit_id)
            if str(source.account_id) == str(cmd.to_account_id):
                raise BillingValidationError("Conta de destino igual à conta de origem")
            source.ensure_usable(timezone.now())
            source.ensure_covers(amount)
            destination_account = require_open_account(
                self.account_repo,
                cmd.to_account_id,
                source.clinic_id,
                error_cls=DestinationAccountNotFoundError,
            )

            source.consume(amount)
            self.credit_repo.save(source)
            destination = self.credit_repo.create(CreditBalanceEntity(
                id=uuid.uuid4(),
                clinic_id=destination_account.clinic_id,
                account_id=destination_account.id,
                amount=amount,
                remaining_amount=amount,
                source=CreditSource.TRANSFER,
                status=CreditStatus.AVAILABLE,
                description=TRANSFER_DESCRIPTION,
                transferred_from_id=source.id,
                created_by=cmd.actor_id,
            ))
            # ordem fixa de lock entre contas
            for account_id in sorted({source.account_id, destination_account.id}, key=str):
                self.balance_service.recompute(account_id)
            publish_after_commit(self.dispatcher, CreditTransferredEvent(
                clinic_id=source.clinic_id,
                actor_id=cmd.actor_id,
                credit_id=source.id,
                destination_credit_id=destination.id,
                from_account_id=source.account_id,
                to_account_id=destination_account.id,
                amount=amount,
            ))

        logger.info("credit.transferred", credit_id=str(source.id), to_account=str(destination_account.id),
                    amount=fmt_amount(amount))
        return CreditTransferResult(source=source, destination=destination)
