from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import Decimal

from billing_ledger.core.application.cqrs import CommandDTO


@dataclass(frozen=True)
class RequestRefundCommand(CommandDTO):
    payment_id: uuid.UUID
    reason: str
    amount: Decimal | str | None = None
    reason_details: str | None = None
    actor_id: str | None = None


@dataclass(frozen=True)
class ApproveRefundCommand(CommandDTO):
    refund_id: uuid.UUID
    actor_id: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class DeclineRefundCommand(CommandDTO):
    refund_id: uuid.UUID
    reason: str
    actor_id: str | None = None


@dataclass(frozen=True)
class ProcessRefundCommand(CommandDTO):
    refund_id: uuid.UUID
    actor_id: str | None = None


@dataclass(frozen=True)
class ConfirmRefundCommand(CommandDTO):
    refund_id: uuid.UUID
    gateway_status: str
    actor_id: str | None = None
