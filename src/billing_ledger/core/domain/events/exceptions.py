from __future__ import annotations

from decimal import Decimal


def fmt_amount(value: Decimal) -> str:
    """Formata valores monetários com duas casas, como recebidos na entrada."""
    return f"{Decimal(value):.2f}"


class BillingError(Exception):
    """
    Classe base para todas as exceções do ledger de cobrança.

    Cada subclasse expõe um `code` estável, consumido pela camada HTTP e
    pelo `BillingFacadeService` para montar o erro estruturado.
    """
    code = "BILLING_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


# ╭──────────────────────────────────────────────╮
# │ 1. Validação (nenhum efeito colateral)      │
# ╰──────────────────────────────────────────────╯
class BillingValidationError(BillingError):
    """Entrada malformada ou ausente; rejeitada antes de qualquer escrita."""
    code = "VALIDATION_ERROR"


class UnallocatedAmountError(BillingValidationError):
    code = "UNALLOCATED_AMOUNT"


class AllocationExceedsPaymentError(BillingValidationError):
    code = "ALLOCATION_EXCEEDS_PAYMENT"


class ReasonRequiredError(BillingValidationError):
    code = "REASON_REQUIRED"


# ╭──────────────────────────────────────────────╮
# │ 2. Registros inexistentes                   │
# ╰──────────────────────────────────────────────╯
class NotFoundError(BillingError):
    code = "NOT_FOUND"


class AccountNotFoundError(NotFoundError):
    code = "ACCOUNT_NOT_FOUND"


class DestinationAccountNotFoundError(NotFoundError):
    code = "DEST_ACCOUNT_NOT_FOUND"


class InvoiceNotFoundError(NotFoundError):
    code = "INVOICE_NOT_FOUND"


class PaymentNotFoundError(NotFoundError):
    code = "PAYMENT_NOT_FOUND"


class CreditNotFoundError(NotFoundError):
    code = "CREDIT_NOT_FOUND"


class RefundNotFoundError(NotFoundError):
    code = "REFUND_NOT_FOUND"


# ╭──────────────────────────────────────────────╮
# │ 3. Conflito de estado                       │
# ╰──────────────────────────────────────────────╯
class StateConflictError(BillingError):
    """Operação não permitida para o status atual da entidade."""
    code = "STATE_CONFLICT"


class InvalidInvoiceStateError(StateConflictError):
    code = "INVALID_INVOICE_STATE"


class InvalidPaymentStateError(StateConflictError):
    code = "INVALID_PAYMENT_STATE"


class InvalidRefundStateError(StateConflictError):
    code = "INVALID_REFUND_STATE"


class InvalidCreditStateError(StateConflictError):
    code = "INVALID_CREDIT_STATE"


# ╭──────────────────────────────────────────────╮
# │ 4. Insuficiência                            │
# ╰──────────────────────────────────────────────╯
class InsufficiencyError(BillingError):
    """Valor solicitado excede a quantidade disponível."""
    code = "INSUFFICIENT"


class InsufficientCreditError(InsufficiencyError):
    code = "INSUFFICIENT_CREDIT"


class AmountExceedsBalanceError(InsufficiencyError):
    code = "AMOUNT_EXCEEDS_BALANCE"


class RefundExceedsAvailableError(InsufficiencyError):
    code = "REFUND_EXCEEDS_AVAILABLE"


# ╭──────────────────────────────────────────────╮
# │ 5. Dependência externa (gateway)            │
# ╰──────────────────────────────────────────────╯
class GatewayError(Exception):
    """
    Falha de comunicação com o gateway de pagamento.
    Exemplos:
    - timeout / erro de rede
    - resposta 4xx/5xx
    - status `failed` ou payload inválido
    """


class ExternalDependencyError(BillingError):
    """Sempre re-tentada pelo chamador, nunca internamente."""
    code = "EXTERNAL_ERROR"


class PaymentFailedError(ExternalDependencyError):
    code = "PAYMENT_FAILED"


class RefundFailedError(ExternalDependencyError):
    code = "REFUND_FAILED"


# ╭──────────────────────────────────────────────╮
# │ 6. Interno                                  │
# ╰──────────────────────────────────────────────╯
class LedgerInvariantError(BillingError):
    """
    Invariante local violada no meio de uma transação.
    Deve abortar a transação inteira; nunca persistir correção parcial.
    """
    code = "LEDGER_INVARIANT_VIOLATION"
