from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from billing_ledger.core.domain.entities._base import EntityMixin
from billing_ledger.core.domain.entities.enums import RefundStatus
from billing_ledger.core.domain.events.exceptions import InvalidRefundStateError


@dataclass(slots=True)
class RefundEntity(EntityMixin):
    id: uuid.UUID
    clinic_id: uuid.UUID
    payment_id: uuid.UUID
    refund_number: str
    amount: Decimal
    refund_type: str
    status: str
    reason: str
    reason_details: str | None = None
    gateway_refund_id: str | None = None
    idempotency_key: str | None = None
    requested_by: str | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    approval_notes: str | None = None
    declined_reason: str | None = None
    processed_at: datetime | None = None

    def ensure_status(self, *expected: str) -> None:
        if self.status not in expected:
            raise InvalidRefundStateError(
                f"Reembolso {self.refund_number} com status {self.status}; esperado {', '.join(expected)}"
            )

    def approve(self, approver_id: str | None, notes: str | None, when: datetime) -> None:
        self.ensure_status(RefundStatus.PENDING)
        self.status = RefundStatus.APPROVED
        self.approved_by = approver_id
        self.approval_notes = notes
        self.approved_at = when

    def decline(self, reason: str, when: datetime, *, by_gateway: bool = False) -> None:
        """Recusa manual (PENDING/APPROVED) ou falha reportada pelo gateway (PROCESSING)."""
        if by_gateway:
            self.ensure_status(RefundStatus.PROCESSING)
        else:
            self.ensure_status(RefundStatus.PENDING, RefundStatus.APPROVED)
        self.status = RefundStatus.DECLINED
        self.declined_reason = reason
        self.processed_at = when
