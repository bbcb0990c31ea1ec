from __future__ import annotations

from functools import partial

from django.db import transaction

from billing_ledger.core.domain.entities.patient_account_entity import PatientAccountEntity
from billing_ledger.core.domain.events.events import DomainEvent
from billing_ledger.core.domain.events.exceptions import AccountNotFoundError, NotFoundError
from billing_ledger.core.domain.repositories.patient_account_repository import PatientAccountRepository
from billing_ledger.core.domain.services.event_dispatcher import EventDispatcher


def require_open_account(
    repo: PatientAccountRepository,
    account_id,
    clinic_id=None,
    error_cls: type[NotFoundError] = AccountNotFoundError,
) -> PatientAccountEntity:
    """Conta inexistente, desativada ou de outra clínica é tratada como não encontrada."""
    account = repo.find_by_id(account_id)
    if account is None or not account.is_open or (clinic_id and str(account.clinic_id) != str(clinic_id)):
        raise error_cls(f"Conta {account_id} não encontrada ou inativa")
    return account


def publish_after_commit(dispatcher: EventDispatcher, *events: DomainEvent) -> None:
    """Agenda o dispatch para depois do commit; fora de transação dispara na hora."""
    for event in events:
        transaction.on_commit(partial(dispatcher.dispatch, event))
