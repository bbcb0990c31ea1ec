# =========================================================
# Serializers da API de faturamento.
#  • *Input*  → validam o formato do payload (tipos, enums)
#  • saída    → espelham as *entities*, não os modelos Django
# Regras de negócio (valores > 0, saldos, estados) ficam nos handlers.
# =========================================================
from rest_framework import serializers

from billing_ledger.core.domain.entities.enums import (
    CreditSource,
    InvoiceStatus,
    PaymentMethodType,
    RefundReason,
)

MONEY = dict(max_digits=12, decimal_places=2)
GATEWAY_STATUS_CHOICES = ("succeeded", "processing", "requires_action", "failed")


def _choices(enum) -> list[str]:
    return [m.value for m in enum]


# ───────────────────────────────────────────────
# Entrada: Faturas
# ───────────────────────────────────────────────
class InvoiceItemInputSerializer(serializers.Serializer):
    description    = serializers.CharField(max_length=255)
    quantity       = serializers.IntegerField(default=1)
    unit_price     = serializers.DecimalField(**MONEY)
    discount       = serializers.DecimalField(default="0.00", **MONEY)
    procedure_code = serializers.CharField(max_length=32, required=False, allow_null=True, allow_blank=True)


class CreateInvoiceInputSerializer(serializers.Serializer):
    account_id   = serializers.UUIDField()
    items        = InvoiceItemInputSerializer(many=True)
    due_date     = serializers.DateField()
    invoice_date = serializers.DateField(required=False, allow_null=True)
    status       = serializers.ChoiceField(choices=_choices(InvoiceStatus), default=InvoiceStatus.DRAFT.value)
    adjustments  = serializers.DecimalField(default="0.00", **MONEY)
    notes        = serializers.CharField(required=False, allow_null=True, allow_blank=True)


class UpdateInvoiceInputSerializer(serializers.Serializer):
    due_date = serializers.DateField(required=False)
    notes    = serializers.CharField(required=False, allow_blank=True)
    status   = serializers.ChoiceField(choices=_choices(InvoiceStatus), required=False)


class AdjustInvoiceInputSerializer(serializers.Serializer):
    amount = serializers.DecimalField(**MONEY)
    reason = serializers.CharField(allow_blank=True)


# ───────────────────────────────────────────────
# Entrada: Pagamentos
# ───────────────────────────────────────────────
class AllocationInputSerializer(serializers.Serializer):
    invoice_id = serializers.UUIDField()
    amount     = serializers.DecimalField(**MONEY)


class CreatePaymentInputSerializer(serializers.Serializer):
    account_id  = serializers.UUIDField()
    amount      = serializers.DecimalField(**MONEY)
    method_type = serializers.ChoiceField(choices=_choices(PaymentMethodType))
    allocations = AllocationInputSerializer(many=True, required=False, default=list)
    request_id  = serializers.CharField(max_length=64, required=False, allow_null=True)
    notes       = serializers.CharField(required=False, allow_null=True, allow_blank=True)


class GatewayStatusInputSerializer(serializers.Serializer):
    gateway_status = serializers.ChoiceField(choices=GATEWAY_STATUS_CHOICES)


# ───────────────────────────────────────────────
# Entrada: Créditos
# ───────────────────────────────────────────────
class CreateCreditInputSerializer(serializers.Serializer):
    account_id  = serializers.UUIDField()
    amount      = serializers.DecimalField(**MONEY)
    source      = serializers.ChoiceField(choices=_choices(CreditSource), default=CreditSource.MANUAL.value)
    expires_at  = serializers.DateTimeField(required=False, allow_null=True)
    description = serializers.CharField(required=False, allow_null=True, allow_blank=True)


class ApplyCreditInputSerializer(serializers.Serializer):
    invoice_id = serializers.UUIDField()
    amount     = serializers.DecimalField(**MONEY)


class TransferCreditInputSerializer(serializers.Serializer):
    to_account_id = serializers.UUIDField()
    amount        = serializers.DecimalField(**MONEY)


# ───────────────────────────────────────────────
# Entrada: Reembolsos
# ───────────────────────────────────────────────
class RequestRefundInputSerializer(serializers.Serializer):
    payment_id     = serializers.UUIDField()
    reason         = serializers.ChoiceField(choices=_choices(RefundReason))
    amount         = serializers.DecimalField(required=False, allow_null=True, **MONEY)
    reason_details = serializers.CharField(required=False, allow_null=True, allow_blank=True)


class ApproveRefundInputSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_null=True, allow_blank=True)


class DeclineRefundInputSerializer(serializers.Serializer):
    reason = serializers.CharField(allow_blank=True)


# ───────────────────────────────────────────────
# Saída
# ───────────────────────────────────────────────
class InvoiceItemSerializer(serializers.Serializer):
    description    = serializers.CharField()
    quantity       = serializers.IntegerField()
    unit_price     = serializers.DecimalField(**MONEY)
    discount       = serializers.DecimalField(**MONEY)
    line_total     = serializers.DecimalField(**MONEY)
    procedure_code = serializers.CharField(allow_null=True)


class InvoiceSerializer(serializers.Serializer):
    id             = serializers.UUIDField()
    account_id     = serializers.UUIDField()
    invoice_number = serializers.CharField()
    invoice_date   = serializers.DateField()
    due_date       = serializers.DateField()
    status         = serializers.CharField()
    subtotal       = serializers.DecimalField(**MONEY)
    adjustments    = serializers.DecimalField(**MONEY)
    paid_amount    = serializers.DecimalField(**MONEY)
    balance        = serializers.DecimalField(**MONEY)
    notes          = serializers.CharField(allow_null=True)
    paid_at        = serializers.DateTimeField(allow_null=True)
    items          = InvoiceItemSerializer(many=True)


class PaymentAllocationSerializer(serializers.Serializer):
    invoice_id      = serializers.UUIDField()
    amount          = serializers.DecimalField(**MONEY)
    reversed_amount = serializers.DecimalField(**MONEY)


class PaymentSerializer(serializers.Serializer):
    id                   = serializers.UUIDField()
    account_id           = serializers.UUIDField()
    payment_number       = serializers.CharField()
    amount               = serializers.DecimalField(**MONEY)
    method_type          = serializers.CharField()
    status               = serializers.CharField()
    gateway_reference_id = serializers.CharField(allow_null=True)
    request_id           = serializers.CharField(allow_null=True)
    payment_date         = serializers.DateTimeField(allow_null=True)
    processed_at         = serializers.DateTimeField(allow_null=True)
    allocations          = PaymentAllocationSerializer(many=True)
    pending_allocations  = serializers.ListField(child=serializers.DictField())


class CreditSerializer(serializers.Serializer):
    id                  = serializers.UUIDField()
    account_id          = serializers.UUIDField()
    amount              = serializers.DecimalField(**MONEY)
    remaining_amount    = serializers.DecimalField(**MONEY)
    source              = serializers.CharField()
    status              = serializers.CharField()
    description         = serializers.CharField(allow_null=True)
    expires_at          = serializers.DateTimeField(allow_null=True)
    transferred_from_id = serializers.UUIDField(allow_null=True)


class CreditTransferSerializer(serializers.Serializer):
    source      = CreditSerializer()
    destination = CreditSerializer()


class RefundSerializer(serializers.Serializer):
    id                = serializers.UUIDField()
    payment_id        = serializers.UUIDField()
    refund_number     = serializers.CharField()
    amount            = serializers.DecimalField(**MONEY)
    refund_type       = serializers.CharField()
    status            = serializers.CharField()
    reason            = serializers.CharField()
    reason_details    = serializers.CharField(allow_null=True)
    gateway_refund_id = serializers.CharField(allow_null=True)
    approved_by       = serializers.CharField(allow_null=True)
    approved_at       = serializers.DateTimeField(allow_null=True)
    approval_notes    = serializers.CharField(allow_null=True)
    declined_reason   = serializers.CharField(allow_null=True)
    processed_at      = serializers.DateTimeField(allow_null=True)


class RefundAvailabilitySerializer(serializers.Serializer):
    payment_id = serializers.UUIDField(source="payment.id")
    amount     = serializers.DecimalField(source="payment.amount", **MONEY)
    committed  = serializers.DecimalField(**MONEY)
    available  = serializers.DecimalField(**MONEY)


class AccountBalanceSerializer(serializers.Serializer):
    id                  = serializers.UUIDField()
    account_number      = serializers.CharField()
    status              = serializers.CharField()
    balance             = serializers.DecimalField(**MONEY)
    outstanding_balance = serializers.DecimalField(**MONEY)
    credit_balance      = serializers.DecimalField(**MONEY)
    aging_current       = serializers.DecimalField(**MONEY)
    aging_30            = serializers.DecimalField(**MONEY)
    aging_60            = serializers.DecimalField(**MONEY)
    aging_90            = serializers.DecimalField(**MONEY)
    aging_120_plus      = serializers.DecimalField(**MONEY)
    calculated_at       = serializers.DateTimeField(allow_null=True)
