"""
Domínio de cobrança → ORM.

⚑ UUID como PK em todas as entidades financeiras
⚑ `clinic_id` propagado em toda linha criada pelo ledger
⚑ CHECKs para saldos não negativos e `0 <= remaining_amount <= amount`
⚑ Numeração legível única por clínica (`INV-`, `PAY-`, `REF-`)
"""

from __future__ import annotations

import uuid
from decimal import Decimal

from django.db import models
from django.db.models import CheckConstraint, F, Index, Q, UniqueConstraint

from billing_ledger.core.domain.entities.enums import (
    AccountStatus,
    CreditSource,
    CreditStatus,
    InvoiceStatus,
    PaymentMethodType,
    PaymentStatus,
    RefundReason,
    RefundStatus,
    RefundType,
)

ZERO = Decimal("0.00")


def _choices(enum_cls) -> list[tuple[str, str]]:
    return [(m.value, m.value.replace("_", " ").title()) for m in enum_cls]


def _money(**kwargs) -> models.DecimalField:
    kwargs.setdefault("default", ZERO)
    return models.DecimalField(max_digits=12, decimal_places=2, **kwargs)


# ╭──────────────────────────────────────────────╮
# │ 1. Contas de Paciente                       │
# ╰──────────────────────────────────────────────╯
class PatientAccount(models.Model):
    """
    Uma conta por paciente (ou núcleo familiar) dentro da clínica.
    Nunca é apagada enquanto houver faturas/pagamentos; desativa-se via `is_active`.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic_id = models.UUIDField(db_index=True)
    patient_id = models.UUIDField(db_index=True)
    account_number = models.CharField(max_length=30)
    status = models.CharField(max_length=20, choices=_choices(AccountStatus), default=AccountStatus.ACTIVE)
    is_active = models.BooleanField(default=True, db_index=True)

    # campos denormalizados (AccountBalanceService)
    balance = _money()
    outstanding_balance = _money()
    credit_balance = _money()
    aging_current = _money()
    aging_30 = _money()
    aging_60 = _money()
    aging_90 = _money()
    aging_120_plus = _money()
    calculated_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "patient_accounts"
        constraints = [
            UniqueConstraint(fields=["clinic_id", "account_number"], name="uniq_account_number_per_clinic"),
        ]

    def __str__(self) -> str:
        return self.account_number


# ╭──────────────────────────────────────────────╮
# │ 2. Faturas                                  │
# ╰──────────────────────────────────────────────╯
class Invoice(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic_id = models.UUIDField(db_index=True)
    account = models.ForeignKey(PatientAccount, on_delete=models.PROTECT, related_name="invoices")
    invoice_number = models.CharField(max_length=30)
    invoice_date = models.DateField()
    due_date = models.DateField()
    status = models.CharField(
        max_length=20, choices=_choices(InvoiceStatus), default=InvoiceStatus.DRAFT, db_index=True
    )
    subtotal = _money()
    adjustments = _money()
    paid_amount = _money()
    balance = _money()
    notes = models.TextField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    created_by = models.CharField(max_length=64, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "invoices"
        ordering = ["-invoice_date", "-created_at"]
        constraints = [
            UniqueConstraint(fields=["clinic_id", "invoice_number"], name="uniq_invoice_number_per_clinic"),
            CheckConstraint(condition=Q(balance__gte=0), name="invoice_balance_non_negative"),
            CheckConstraint(condition=Q(paid_amount__gte=0), name="invoice_paid_non_negative"),
        ]
        indexes = [
            Index(fields=["account", "status"], name="idx_invoice_account_status"),
        ]

    def __str__(self) -> str:
        return self.invoice_number


class InvoiceItem(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name="items")
    position = models.PositiveIntegerField(default=0)
    procedure_code = models.CharField(max_length=30, null=True, blank=True)
    description = models.CharField(max_length=255)
    quantity = models.PositiveIntegerField(default=1)
    unit_price = _money()
    discount = _money()
    line_total = _money()

    class Meta:
        db_table = "invoice_items"
        ordering = ["position"]


# ╭──────────────────────────────────────────────╮
# │ 3. Pagamentos e Alocações                   │
# ╰──────────────────────────────────────────────╯
class Payment(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic_id = models.UUIDField(db_index=True)
    account = models.ForeignKey(PatientAccount, on_delete=models.PROTECT, related_name="payments")
    payment_number = models.CharField(max_length=30)
    amount = _money()
    status = models.CharField(
        max_length=20, choices=_choices(PaymentStatus), default=PaymentStatus.PENDING, db_index=True
    )
    method_type = models.CharField(max_length=20, choices=_choices(PaymentMethodType))
    gateway_reference_id = models.CharField(max_length=255, null=True, blank=True)
    idempotency_key = models.CharField(max_length=255, unique=True, null=True, blank=True)
    request_id = models.CharField(max_length=100, null=True, blank=True)
    pending_allocations = models.JSONField(default=list, blank=True)
    payment_date = models.DateTimeField()
    processed_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(null=True, blank=True)
    created_by = models.CharField(max_length=64, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "payments"
        ordering = ["-payment_date"]
        constraints = [
            UniqueConstraint(fields=["clinic_id", "payment_number"], name="uniq_payment_number_per_clinic"),
            UniqueConstraint(
                fields=["account", "request_id"],
                condition=Q(request_id__isnull=False),
                name="uniq_payment_request_per_account",
            ),
            CheckConstraint(condition=Q(amount__gt=0), name="payment_amount_positive"),
        ]

    def __str__(self) -> str:
        return self.payment_number


class PaymentAllocation(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    payment = models.ForeignKey(Payment, on_delete=models.CASCADE, related_name="allocations")
    invoice = models.ForeignKey(Invoice, on_delete=models.PROTECT, related_name="allocations")
    amount = _money()
    reversed_amount = _money()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "payment_allocations"
        ordering = ["created_at", "id"]
        constraints = [
            UniqueConstraint(fields=["payment", "invoice"], name="uniq_allocation_payment_invoice"),
            CheckConstraint(condition=Q(amount__gt=0), name="allocation_amount_positive"),
            CheckConstraint(
                condition=Q(reversed_amount__gte=0) & Q(reversed_amount__lte=F("amount")),
                name="allocation_reversal_bounded",
            ),
        ]


# ╭──────────────────────────────────────────────╮
# │ 4. Créditos                                 │
# ╰──────────────────────────────────────────────╯
class CreditBalance(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic_id = models.UUIDField(db_index=True)
    account = models.ForeignKey(PatientAccount, on_delete=models.PROTECT, related_name="credits")
    amount = _money()
    remaining_amount = _money()
    status = models.CharField(
        max_length=20, choices=_choices(CreditStatus), default=CreditStatus.AVAILABLE, db_index=True
    )
    source = models.CharField(max_length=20, choices=_choices(CreditSource))
    description = models.CharField(max_length=255, null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)
    transferred_from = models.ForeignKey(
        "self", on_delete=models.PROTECT, null=True, blank=True, related_name="transfers"
    )
    created_by = models.CharField(max_length=64, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "credit_balances"
        ordering = ["created_at"]
        constraints = [
            CheckConstraint(
                condition=Q(remaining_amount__gte=0) & Q(remaining_amount__lte=F("amount")),
                name="credit_remaining_bounded",
            ),
        ]
        indexes = [
            Index(fields=["account", "status"], name="idx_credit_account_status"),
        ]


class CreditApplication(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    credit = models.ForeignKey(CreditBalance, on_delete=models.PROTECT, related_name="applications")
    invoice = models.ForeignKey(Invoice, on_delete=models.PROTECT, related_name="credit_applications")
    amount = _money()
    applied_by = models.CharField(max_length=64, null=True, blank=True)
    applied_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "credit_applications"
        ordering = ["applied_at"]


# ╭──────────────────────────────────────────────╮
# │ 5. Reembolsos                               │
# ╰──────────────────────────────────────────────╯
class Refund(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic_id = models.UUIDField(db_index=True)
    payment = models.ForeignKey(Payment, on_delete=models.PROTECT, related_name="refunds")
    refund_number = models.CharField(max_length=30)
    amount = _money()
    refund_type = models.CharField(max_length=10, choices=_choices(RefundType))
    status = models.CharField(
        max_length=20, choices=_choices(RefundStatus), default=RefundStatus.PENDING, db_index=True
    )
    reason = models.CharField(max_length=30, choices=_choices(RefundReason))
    reason_details = models.TextField(null=True, blank=True)
    gateway_refund_id = models.CharField(max_length=255, null=True, blank=True)
    idempotency_key = models.CharField(max_length=255, null=True, blank=True)
    requested_by = models.CharField(max_length=64, null=True, blank=True)
    approved_by = models.CharField(max_length=64, null=True, blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    approval_notes = models.TextField(null=True, blank=True)
    declined_reason = models.TextField(null=True, blank=True)
    processed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "refunds"
        ordering = ["-created_at"]
        constraints = [
            UniqueConstraint(fields=["clinic_id", "refund_number"], name="uniq_refund_number_per_clinic"),
            CheckConstraint(condition=Q(amount__gt=0), name="refund_amount_positive"),
        ]

    def __str__(self) -> str:
        return self.refund_number


# ╭──────────────────────────────────────────────╮
# │ 6. Infra: numeração e auditoria             │
# ╰──────────────────────────────────────────────╯
class NumberSequence(models.Model):
    """Contador atômico por escopo (`<clinic>:<PREFIX>:<ano>`)."""
    scope = models.CharField(max_length=100, unique=True)
    last_value = models.PositiveBigIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "number_sequences"

    def __str__(self) -> str:
        return f"{self.scope}={self.last_value}"


class AuditLog(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic_id = models.UUIDField(db_index=True)
    action = models.CharField(max_length=50, db_index=True)
    entity = models.CharField(max_length=30)
    entity_id = models.CharField(max_length=64, db_index=True)
    actor_id = models.CharField(max_length=64, null=True, blank=True)
    details = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        db_table = "audit_logs"
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.action} {self.entity}:{self.entity_id}"
