from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, ClassVar


# ───────────────────────────────────────────────
# Event Base e Domain Events
# ───────────────────────────────────────────────
@dataclass(frozen=True, kw_only=True)
class DomainEvent:
    event_id: uuid.UUID = field(default_factory=uuid.uuid4)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True, kw_only=True)
class BillingAuditEvent(DomainEvent):
    """
    Evento emitido após cada mutação financeira bem-sucedida.
    Os subscribers de auditoria convertem em `{action, entity, entity_id, actor_id, details}`.
    """
    action: ClassVar[str] = "billing.changed"
    entity: ClassVar[str] = "billing"

    clinic_id: uuid.UUID
    actor_id: str | None = None

    @property
    def entity_id(self) -> uuid.UUID:
        raise NotImplementedError

    def details(self) -> dict[str, Any]:
        skip = {"event_id", "occurred_at", "clinic_id", "actor_id"}
        return {k: _jsonable(v) for k, v in asdict(self).items() if k not in skip}


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    if isinstance(value, uuid.UUID | datetime):
        return str(value)
    if isinstance(value, list | tuple):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    return value


# ╭──────────────────────────────────────────────╮
# │ 1. Faturas                                  │
# ╰──────────────────────────────────────────────╯
@dataclass(frozen=True, kw_only=True)
class InvoiceCreatedEvent(BillingAuditEvent):
    action: ClassVar[str] = "invoice.created"
    entity: ClassVar[str] = "invoice"

    invoice_id: uuid.UUID
    account_id: uuid.UUID
    invoice_number: str
    subtotal: Decimal
    status: str

    @property
    def entity_id(self) -> uuid.UUID:
        return self.invoice_id


@dataclass(frozen=True, kw_only=True)
class InvoiceUpdatedEvent(BillingAuditEvent):
    action: ClassVar[str] = "invoice.updated"
    entity: ClassVar[str] = "invoice"

    invoice_id: uuid.UUID
    changed_fields: tuple[str, ...]
    status: str

    @property
    def entity_id(self) -> uuid.UUID:
        return self.invoice_id


@dataclass(frozen=True, kw_only=True)
class InvoiceAdjustedEvent(BillingAuditEvent):
    action: ClassVar[str] = "invoice.adjusted"
    entity: ClassVar[str] = "invoice"

    invoice_id: uuid.UUID
    amount: Decimal
    reason: str
    balance: Decimal

    @property
    def entity_id(self) -> uuid.UUID:
        return self.invoice_id


# ╭──────────────────────────────────────────────╮
# │ 2. Pagamentos                               │
# ╰──────────────────────────────────────────────╯
@dataclass(frozen=True, kw_only=True)
class PaymentRecordedEvent(BillingAuditEvent):
    action: ClassVar[str] = "payment.created"
    entity: ClassVar[str] = "payment"

    payment_id: uuid.UUID
    account_id: uuid.UUID
    payment_number: str
    amount: Decimal
    method_type: str
    status: str
    allocations: tuple[dict[str, Any], ...] = ()

    @property
    def entity_id(self) -> uuid.UUID:
        return self.payment_id


@dataclass(frozen=True, kw_only=True)
class PaymentStatusChangedEvent(BillingAuditEvent):
    action: ClassVar[str] = "payment.status_changed"
    entity: ClassVar[str] = "payment"

    payment_id: uuid.UUID
    previous_status: str
    status: str

    @property
    def entity_id(self) -> uuid.UUID:
        return self.payment_id


# ╭──────────────────────────────────────────────╮
# │ 3. Créditos                                 │
# ╰──────────────────────────────────────────────╯
@dataclass(frozen=True, kw_only=True)
class CreditCreatedEvent(BillingAuditEvent):
    action: ClassVar[str] = "credit.created"
    entity: ClassVar[str] = "credit"

    credit_id: uuid.UUID
    account_id: uuid.UUID
    amount: Decimal
    source: str

    @property
    def entity_id(self) -> uuid.UUID:
        return self.credit_id


@dataclass(frozen=True, kw_only=True)
class CreditAppliedEvent(BillingAuditEvent):
    action: ClassVar[str] = "credit.applied"
    entity: ClassVar[str] = "credit"

    credit_id: uuid.UUID
    invoice_id: uuid.UUID
    amount: Decimal
    remaining_amount: Decimal

    @property
    def entity_id(self) -> uuid.UUID:
        return self.credit_id


@dataclass(frozen=True, kw_only=True)
class CreditTransferredEvent(BillingAuditEvent):
    action: ClassVar[str] = "credit.transferred"
    entity: ClassVar[str] = "credit"

    credit_id: uuid.UUID
    destination_credit_id: uuid.UUID
    from_account_id: uuid.UUID
    to_account_id: uuid.UUID
    amount: Decimal

    @property
    def entity_id(self) -> uuid.UUID:
        return self.credit_id


# ╭──────────────────────────────────────────────╮
# │ 4. Reembolsos                               │
# ╰──────────────────────────────────────────────╯
@dataclass(frozen=True, kw_only=True)
class RefundRequestedEvent(BillingAuditEvent):
    action: ClassVar[str] = "refund.requested"
    entity: ClassVar[str] = "refund"

    refund_id: uuid.UUID
    payment_id: uuid.UUID
    refund_number: str
    amount: Decimal
    refund_type: str
    status: str
    reason: str

    @property
    def entity_id(self) -> uuid.UUID:
        return self.refund_id


@dataclass(frozen=True, kw_only=True)
class RefundStatusChangedEvent(BillingAuditEvent):
    action: ClassVar[str] = "refund.status_changed"
    entity: ClassVar[str] = "refund"

    refund_id: uuid.UUID
    previous_status: str
    status: str
    notes: str | None = None

    @property
    def entity_id(self) -> uuid.UUID:
        return self.refund_id


@dataclass(frozen=True, kw_only=True)
class RefundCompletedEvent(BillingAuditEvent):
    action: ClassVar[str] = "refund.completed"
    entity: ClassVar[str] = "refund"

    refund_id: uuid.UUID
    payment_id: uuid.UUID
    amount: Decimal
    payment_status: str
    reversals: tuple[dict[str, Any], ...] = ()

    @property
    def entity_id(self) -> uuid.UUID:
        return self.refund_id


AUDITED_EVENTS: tuple[type[BillingAuditEvent], ...] = (
    InvoiceCreatedEvent,
    InvoiceUpdatedEvent,
    InvoiceAdjustedEvent,
    PaymentRecordedEvent,
    PaymentStatusChangedEvent,
    CreditCreatedEvent,
    CreditAppliedEvent,
    CreditTransferredEvent,
    RefundRequestedEvent,
    RefundStatusChangedEvent,
    RefundCompletedEvent,
)
