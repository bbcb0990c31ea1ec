"""
Gateway de pagamento em memória para os testes.

Registra cada chamada (`charges` / `refunds`) e responde com o status
configurado; `fail_with` faz a próxima chamada levantar `GatewayError`.
"""
from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Any

from billing_ledger.core.application.dtos.gateway_dtos import GatewayResultDTO
from billing_ledger.core.domain.events.exceptions import GatewayError


@dataclass
class FakePaymentGateway:
    charge_status: str = "succeeded"
    refund_status: str = "succeeded"
    fail_with: str | None = None
    charges: list[dict[str, Any]] = field(default_factory=list)
    refunds: list[dict[str, Any]] = field(default_factory=list)
    _seq: itertools.count = field(default_factory=lambda: itertools.count(1), repr=False)

    def _maybe_fail(self) -> None:
        if self.fail_with:
            message, self.fail_with = self.fail_with, None
            raise GatewayError(message)

    def create_charge(self, amount_minor_units, currency, idempotency_key, metadata) -> GatewayResultDTO:
        self._maybe_fail()
        reference = f"ch_test_{next(self._seq)}"
        self.charges.append({
            "reference_id": reference,
            "amount": amount_minor_units,
            "currency": currency,
            "idempotency_key": idempotency_key,
            "metadata": metadata,
        })
        return GatewayResultDTO(reference_id=reference, status=self.charge_status)

    def create_refund(self, charge_reference_id, amount_minor_units, idempotency_key) -> GatewayResultDTO:
        self._maybe_fail()
        reference = f"re_test_{next(self._seq)}"
        self.refunds.append({
            "reference_id": reference,
            "charge": charge_reference_id,
            "amount": amount_minor_units,
            "idempotency_key": idempotency_key,
        })
        return GatewayResultDTO(reference_id=reference, status=self.refund_status)

    @property
    def calls(self) -> int:
        return len(self.charges) + len(self.refunds)
