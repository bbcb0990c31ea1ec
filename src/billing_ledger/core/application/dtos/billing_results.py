from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from billing_ledger.core.domain.entities.credit_balance_entity import CreditBalanceEntity
from billing_ledger.core.domain.entities.payment_entity import PaymentEntity


@dataclass(frozen=True)
class CreditTransferResult:
    source: CreditBalanceEntity
    destination: CreditBalanceEntity


@dataclass(frozen=True)
class RefundAvailability:
    payment: PaymentEntity
    committed: Decimal
    available: Decimal
