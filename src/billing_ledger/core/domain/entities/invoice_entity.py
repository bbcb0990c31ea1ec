from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from billing_ledger.core.domain.entities._base import EntityMixin
from billing_ledger.core.domain.entities.enums import (
    ALLOCATABLE_INVOICE_STATUSES,
    NON_BILLABLE_INVOICE_STATUSES,
    InvoiceStatus,
)
from billing_ledger.core.domain.events.exceptions import (
    AmountExceedsBalanceError,
    BillingValidationError,
    InvalidInvoiceStateError,
    LedgerInvariantError,
    fmt_amount,
)
from billing_ledger.core.domain.services.money import ZERO, quantize

# Transições permitidas via patch explícito; PAID/PARTIAL só mudam por alocação
STATUS_TRANSITIONS: dict[str, frozenset[str]] = {
    InvoiceStatus.DRAFT: frozenset({InvoiceStatus.PENDING, InvoiceStatus.SENT, InvoiceStatus.CANCELLED}),
    InvoiceStatus.PENDING: frozenset({InvoiceStatus.SENT, InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED}),
    InvoiceStatus.SENT: frozenset({InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED}),
    InvoiceStatus.PARTIAL: frozenset({InvoiceStatus.OVERDUE}),
    InvoiceStatus.OVERDUE: frozenset({InvoiceStatus.SENT, InvoiceStatus.CANCELLED}),
    InvoiceStatus.PAID: frozenset(),
    InvoiceStatus.CANCELLED: frozenset(),
}


@dataclass(slots=True)
class InvoiceItemEntity(EntityMixin):
    description: str
    quantity: int
    unit_price: Decimal
    discount: Decimal
    line_total: Decimal
    procedure_code: str | None = None
    position: int = 0
    id: uuid.UUID | None = None

    @classmethod
    def build(
        cls,
        *,
        description: str,
        quantity: int,
        unit_price: Decimal,
        discount: Decimal = ZERO,
        procedure_code: str | None = None,
        position: int = 0,
    ) -> InvoiceItemEntity:
        if not description:
            raise BillingValidationError(f"item {position + 1}: descrição é obrigatória")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise BillingValidationError(f"item {position + 1}: quantidade deve ser inteiro >= 1")
        gross = quantize(unit_price * quantity)
        if discount > gross:
            raise BillingValidationError(
                f"item {position + 1}: desconto {fmt_amount(discount)} excede o valor {fmt_amount(gross)}"
            )
        return cls(
            description=description,
            quantity=quantity,
            unit_price=unit_price,
            discount=discount,
            line_total=gross - discount,
            procedure_code=procedure_code,
            position=position,
        )


@dataclass(slots=True)
class InvoiceEntity(EntityMixin):
    id: uuid.UUID
    clinic_id: uuid.UUID
    account_id: uuid.UUID
    invoice_number: str
    invoice_date: date
    due_date: date
    status: str
    subtotal: Decimal
    adjustments: Decimal = ZERO
    paid_amount: Decimal = ZERO
    balance: Decimal = ZERO
    notes: str | None = None
    paid_at: datetime | None = None
    created_by: str | None = None
    items: list[InvoiceItemEntity] = field(default_factory=list)

    # ─────────────────────────── cálculos ───────────────────────────
    def expected_balance(self) -> Decimal:
        return max(ZERO, self.subtotal - self.adjustments - self.paid_amount)

    @property
    def is_billable(self) -> bool:
        return self.status not in NON_BILLABLE_INVOICE_STATUSES

    def days_past_due(self, today: date) -> int:
        return (today - self.due_date).days

    def _settle_status(self, when: datetime | None) -> None:
        if self.balance == ZERO:
            self.status = InvoiceStatus.PAID
            self.paid_at = self.paid_at or when
        else:
            self.status = InvoiceStatus.PARTIAL

    # ─────────────────────────── alocações ──────────────────────────
    @property
    def is_allocatable(self) -> bool:
        return self.status in ALLOCATABLE_INVOICE_STATUSES

    def ensure_allocatable(self) -> None:
        if not self.is_allocatable:
            raise InvalidInvoiceStateError(
                f"Fatura {self.invoice_number} com status {self.status} não aceita alocação"
            )

    def apply_payment(self, amount: Decimal, when: datetime | None = None) -> None:
        if amount <= ZERO:
            raise BillingValidationError("valor da alocação deve ser maior que zero")
        self.ensure_allocatable()
        if amount > self.balance:
            raise AmountExceedsBalanceError(
                f"Valor {fmt_amount(amount)} excede o saldo {fmt_amount(self.balance)} "
                f"da fatura {self.invoice_number}"
            )
        self.paid_amount += amount
        self.balance = self.expected_balance()
        self._settle_status(when)

    def reverse_allocation(self, amount: Decimal) -> None:
        if amount <= ZERO:
            raise BillingValidationError("valor do estorno deve ser maior que zero")
        if amount > self.paid_amount:
            raise LedgerInvariantError(
                f"Estorno {fmt_amount(amount)} maior que o valor pago {fmt_amount(self.paid_amount)} "
                f"da fatura {self.invoice_number}"
            )
        self.paid_amount -= amount
        self.balance = self.expected_balance()
        if self.status == InvoiceStatus.PAID and self.balance > ZERO:
            self.status = InvoiceStatus.PARTIAL
            self.paid_at = None

    def adjust(self, amount: Decimal, when: datetime | None = None) -> None:
        """Ajuste explícito (abatimento) que reduz o saldo sem movimentar dinheiro."""
        if amount <= ZERO:
            raise BillingValidationError("valor do ajuste deve ser maior que zero")
        if self.status in (InvoiceStatus.PAID, InvoiceStatus.CANCELLED):
            raise InvalidInvoiceStateError(
                f"Fatura {self.invoice_number} com status {self.status} não aceita ajuste"
            )
        if amount > self.balance:
            raise AmountExceedsBalanceError(
                f"Ajuste {fmt_amount(amount)} excede o saldo {fmt_amount(self.balance)} "
                f"da fatura {self.invoice_number}"
            )
        self.adjustments += amount
        self.balance = self.expected_balance()
        if self.status != InvoiceStatus.DRAFT and self.balance == ZERO:
            self._settle_status(when)

    # ─────────────────────────── status ─────────────────────────────
    def transition_to(self, new_status: str) -> None:
        if new_status == self.status:
            return
        allowed = STATUS_TRANSITIONS.get(self.status, frozenset())
        if new_status not in allowed:
            raise InvalidInvoiceStateError(
                f"Transição {self.status} → {new_status} não permitida para a fatura {self.invoice_number}"
            )
        if new_status == InvoiceStatus.CANCELLED and self.paid_amount > ZERO:
            raise InvalidInvoiceStateError(
                f"Fatura {self.invoice_number} possui pagamentos e não pode ser cancelada"
            )
        if self.status == InvoiceStatus.DRAFT and self.balance == ZERO and new_status != InvoiceStatus.CANCELLED:
            new_status = InvoiceStatus.PAID
        self.status = new_status

    def check_invariant(self) -> None:
        if self.balance < ZERO or self.paid_amount < ZERO:
            raise LedgerInvariantError(f"Fatura {self.invoice_number} com valores negativos")
        if self.balance != self.expected_balance():
            raise LedgerInvariantError(
                f"Fatura {self.invoice_number}: saldo {fmt_amount(self.balance)} difere do "
                f"esperado {fmt_amount(self.expected_balance())}"
            )
        if self.is_billable and (self.status == InvoiceStatus.PAID) != (self.balance == ZERO):
            raise LedgerInvariantError(
                f"Fatura {self.invoice_number}: status {self.status} incompatível com saldo "
                f"{fmt_amount(self.balance)}"
            )
