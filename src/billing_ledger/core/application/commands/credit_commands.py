from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from billing_ledger.core.application.cqrs import CommandDTO
from billing_ledger.core.domain.entities.enums import CreditSource


@dataclass(frozen=True)
class CreateCreditCommand(CommandDTO):
    account_id: uuid.UUID
    amount: Decimal | str
    source: str = CreditSource.MANUAL
    expires_at: datetime | None = None
    description: str | None = None
    clinic_id: uuid.UUID | None = None
    actor_id: str | None = None


@dataclass(frozen=True)
class ApplyCreditCommand(CommandDTO):
    credit_id: uuid.UUID
    invoice_id: uuid.UUID
    amount: Decimal | str
    actor_id: str | None = None


@dataclass(frozen=True)
class TransferCreditCommand(CommandDTO):
    credit_id: uuid.UUID
    to_account_id: uuid.UUID
    amount: Decimal | str
    actor_id: str | None = None
