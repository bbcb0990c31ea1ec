from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from billing_ledger.core.domain.entities._base import EntityMixin
from billing_ledger.core.domain.entities.enums import CreditStatus
from billing_ledger.core.domain.events.exceptions import (
    InsufficientCreditError,
    InvalidCreditStateError,
    LedgerInvariantError,
    fmt_amount,
)
from billing_ledger.core.domain.services.money import ZERO


@dataclass(slots=True)
class CreditBalanceEntity(EntityMixin):
    id: uuid.UUID
    clinic_id: uuid.UUID
    account_id: uuid.UUID
    amount: Decimal
    remaining_amount: Decimal
    source: str
    status: str = CreditStatus.AVAILABLE
    description: str | None = None
    expires_at: datetime | None = None
    transferred_from_id: uuid.UUID | None = None
    created_by: str | None = None
    created_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def ensure_usable(self, now: datetime) -> None:
        if self.status != CreditStatus.AVAILABLE:
            raise InvalidCreditStateError(f"Crédito {self.id} não está disponível (status {self.status})")
        if self.is_expired(now):
            raise InvalidCreditStateError(f"Crédito {self.id} expirou em {self.expires_at:%Y-%m-%d}")

    def ensure_covers(self, amount: Decimal) -> None:
        if amount > self.remaining_amount:
            raise InsufficientCreditError(
                f"Valor {fmt_amount(amount)} excede o crédito disponível {fmt_amount(self.remaining_amount)}"
            )

    def consume(self, amount: Decimal) -> None:
        self.ensure_covers(amount)
        self.remaining_amount -= amount
        if self.remaining_amount == ZERO:
            self.status = CreditStatus.APPLIED
        self.check_invariant()

    def check_invariant(self) -> None:
        if not (ZERO <= self.remaining_amount <= self.amount):
            raise LedgerInvariantError(
                f"Crédito {self.id}: saldo {fmt_amount(self.remaining_amount)} fora de [0, {fmt_amount(self.amount)}]"
            )
