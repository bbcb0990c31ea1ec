from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from billing_ledger.core.domain.entities._base import EntityMixin
from billing_ledger.core.domain.entities.enums import (
    REFUNDABLE_PAYMENT_STATUSES,
    PaymentStatus,
)
from billing_ledger.core.domain.events.exceptions import InvalidPaymentStateError
from billing_ledger.core.domain.services.money import ZERO


@dataclass(slots=True)
class PaymentAllocationEntity(EntityMixin):
    invoice_id: uuid.UUID
    amount: Decimal
    reversed_amount: Decimal = ZERO
    payment_id: uuid.UUID | None = None
    id: uuid.UUID | None = None

    @property
    def net_amount(self) -> Decimal:
        return self.amount - self.reversed_amount


@dataclass(slots=True)
class PaymentEntity(EntityMixin):
    id: uuid.UUID
    clinic_id: uuid.UUID
    account_id: uuid.UUID
    payment_number: str
    amount: Decimal
    method_type: str
    status: str = PaymentStatus.PENDING
    gateway_reference_id: str | None = None
    idempotency_key: str | None = None
    request_id: str | None = None
    pending_allocations: list[dict] = field(default_factory=list)
    payment_date: datetime | None = None
    processed_at: datetime | None = None
    notes: str | None = None
    created_by: str | None = None
    allocations: list[PaymentAllocationEntity] = field(default_factory=list)

    @property
    def allocated_total(self) -> Decimal:
        return sum((a.amount for a in self.allocations), ZERO)

    def ensure_refundable(self) -> None:
        if self.status not in REFUNDABLE_PAYMENT_STATUSES:
            raise InvalidPaymentStateError(
                f"Pagamento {self.payment_number} com status {self.status} não pode ser reembolsado"
            )

    def mark_refunded(self, total_refunded: Decimal) -> None:
        """Move para REFUNDED quando o total reembolsado cobre o pagamento."""
        self.status = (
            PaymentStatus.REFUNDED if total_refunded >= self.amount else PaymentStatus.PARTIALLY_REFUNDED
        )


def build_idempotency_key(kind: str, owner_id: uuid.UUID | str, number: str) -> str:
    """Chave determinística: `<kind>:<owner>:<number>`."""
    return f"{kind}:{owner_id}:{number}"
