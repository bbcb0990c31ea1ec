from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import Decimal

from billing_ledger.core.application.cqrs import CommandDTO


@dataclass(frozen=True)
class AllocationInput:
    invoice_id: uuid.UUID
    amount: Decimal | str


@dataclass(frozen=True)
class CreatePaymentCommand(CommandDTO):
    account_id: uuid.UUID
    amount: Decimal | str
    method_type: str
    allocations: tuple[AllocationInput, ...] = ()
    request_id: str | None = None
    notes: str | None = None
    clinic_id: uuid.UUID | None = None
    actor_id: str | None = None


@dataclass(frozen=True)
class ConfirmPaymentCommand(CommandDTO):
    """Callback do reconciliador externo ("marcar pagamento como concluído")."""
    payment_id: uuid.UUID
    gateway_status: str
    actor_id: str | None = None
