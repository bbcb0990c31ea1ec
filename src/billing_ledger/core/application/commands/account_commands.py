from __future__ import annotations

import uuid
from dataclasses import dataclass

from billing_ledger.core.application.cqrs import CommandDTO


@dataclass(frozen=True)
class RecomputeAccountBalanceCommand(CommandDTO):
    account_id: uuid.UUID
