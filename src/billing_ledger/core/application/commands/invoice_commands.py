from __future__ import annotations

import uuid
from dataclasses import dataclass, fields
from datetime import date
from decimal import Decimal

from billing_ledger.core.application.cqrs import CommandDTO
from billing_ledger.core.domain.entities.enums import InvoiceStatus


@dataclass(frozen=True)
class InvoiceItemInput:
    description: str
    unit_price: Decimal | str
    quantity: int = 1
    discount: Decimal | str = "0.00"
    procedure_code: str | None = None


@dataclass(frozen=True)
class CreateInvoiceCommand(CommandDTO):
    account_id: uuid.UUID
    items: tuple[InvoiceItemInput, ...]
    due_date: date
    status: str = InvoiceStatus.DRAFT
    adjustments: Decimal | str = "0.00"
    invoice_date: date | None = None
    notes: str | None = None
    clinic_id: uuid.UUID | None = None
    actor_id: str | None = None


@dataclass(frozen=True)
class InvoicePatch:
    """Campos editáveis da fatura; `None` significa "não alterar"."""
    due_date: date | None = None
    notes: str | None = None
    status: str | None = None

    def changed_fields(self) -> tuple[str, ...]:
        return tuple(f.name for f in fields(self) if getattr(self, f.name) is not None)


@dataclass(frozen=True)
class UpdateInvoiceCommand(CommandDTO):
    invoice_id: uuid.UUID
    patch: InvoicePatch
    actor_id: str | None = None


@dataclass(frozen=True)
class AdjustInvoiceCommand(CommandDTO):
    invoice_id: uuid.UUID
    amount: Decimal | str
    reason: str
    actor_id: str | None = None
