from __future__ import annotations

import uuid
from dataclasses import dataclass

from billing_ledger.core.application.cqrs import QueryDTO

# `clinic_id` opcional: quando presente, registros de outra clínica são "não encontrados"


@dataclass(frozen=True)
class GetAccountBalanceQuery(QueryDTO):
    account_id: uuid.UUID
    clinic_id: uuid.UUID | None = None


@dataclass(frozen=True)
class ListAvailableCreditsQuery(QueryDTO):
    account_id: uuid.UUID
    clinic_id: uuid.UUID | None = None


@dataclass(frozen=True)
class GetAvailableForRefundQuery(QueryDTO):
    payment_id: uuid.UUID
    clinic_id: uuid.UUID | None = None


@dataclass(frozen=True)
class GetInvoiceQuery(QueryDTO):
    invoice_id: uuid.UUID
    clinic_id: uuid.UUID | None = None


@dataclass(frozen=True)
class GetPaymentQuery(QueryDTO):
    payment_id: uuid.UUID
    clinic_id: uuid.UUID | None = None


@dataclass(frozen=True)
class GetRefundQuery(QueryDTO):
    refund_id: uuid.UUID
    clinic_id: uuid.UUID | None = None


@dataclass(frozen=True)
class GetCreditQuery(QueryDTO):
    credit_id: uuid.UUID
    clinic_id: uuid.UUID | None = None
