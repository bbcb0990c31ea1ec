from enum import StrEnum


class AccountStatus(StrEnum):
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    CLOSED = "CLOSED"


class InvoiceStatus(StrEnum):
    DRAFT = "DRAFT"
    PENDING = "PENDING"
    SENT = "SENT"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


class PaymentStatus(StrEnum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"


class PaymentMethodType(StrEnum):
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    ACH = "ACH"
    CASH = "CASH"
    CHECK = "CHECK"
    E_TRANSFER = "E_TRANSFER"
    WIRE = "WIRE"
    OTHER = "OTHER"


class CreditStatus(StrEnum):
    AVAILABLE = "AVAILABLE"
    APPLIED = "APPLIED"


class CreditSource(StrEnum):
    OVERPAYMENT = "OVERPAYMENT"
    INSURANCE_REFUND = "INSURANCE_REFUND"
    ADJUSTMENT = "ADJUSTMENT"
    PROMOTIONAL = "PROMOTIONAL"
    TRANSFER = "TRANSFER"
    MANUAL = "MANUAL"


class RefundStatus(StrEnum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    DECLINED = "DECLINED"


class RefundType(StrEnum):
    FULL = "FULL"
    PARTIAL = "PARTIAL"


class RefundReason(StrEnum):
    OVERPAYMENT = "OVERPAYMENT"
    DUPLICATE_PAYMENT = "DUPLICATE_PAYMENT"
    TREATMENT_CANCELLED = "TREATMENT_CANCELLED"
    INSURANCE_ADJUSTMENT = "INSURANCE_ADJUSTMENT"
    PATIENT_REQUEST = "PATIENT_REQUEST"
    BILLING_ERROR = "BILLING_ERROR"
    OTHER = "OTHER"


# Faturas que aceitam alocação de pagamento/crédito
ALLOCATABLE_INVOICE_STATUSES = frozenset({
    InvoiceStatus.PENDING,
    InvoiceStatus.SENT,
    InvoiceStatus.PARTIAL,
    InvoiceStatus.OVERDUE,
})

# Faturas fora do saldo da conta
NON_BILLABLE_INVOICE_STATUSES = frozenset({InvoiceStatus.DRAFT, InvoiceStatus.CANCELLED})

GATEWAY_METHODS = frozenset({PaymentMethodType.CREDIT_CARD, PaymentMethodType.DEBIT_CARD})
IMMEDIATE_METHODS = frozenset({PaymentMethodType.CASH, PaymentMethodType.CHECK})

REFUNDABLE_PAYMENT_STATUSES = frozenset({PaymentStatus.COMPLETED, PaymentStatus.PARTIALLY_REFUNDED})

# Reembolsos que comprometem o valor disponível do pagamento
COMMITTED_REFUND_STATUSES = frozenset({
    RefundStatus.PENDING,
    RefundStatus.APPROVED,
    RefundStatus.PROCESSING,
    RefundStatus.COMPLETED,
})
