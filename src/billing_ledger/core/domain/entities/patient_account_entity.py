from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from billing_ledger.core.domain.entities._base import EntityMixin
from billing_ledger.core.domain.entities.enums import AccountStatus
from billing_ledger.core.domain.services.money import ZERO


@dataclass(slots=True)
class PatientAccountEntity(EntityMixin):
    id: uuid.UUID
    clinic_id: uuid.UUID
    patient_id: uuid.UUID
    account_number: str
    status: str = AccountStatus.ACTIVE
    is_active: bool = True
    balance: Decimal = ZERO
    outstanding_balance: Decimal = ZERO
    credit_balance: Decimal = ZERO
    aging_current: Decimal = ZERO
    aging_30: Decimal = ZERO
    aging_60: Decimal = ZERO
    aging_90: Decimal = ZERO
    aging_120_plus: Decimal = ZERO
    calculated_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        """Conta existe, não foi desativada e não está encerrada."""
        return self.is_active and self.status == AccountStatus.ACTIVE
