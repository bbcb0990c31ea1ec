from __future__ import annotations

from typing import Any, Protocol

from billing_ledger.core.application.dtos.gateway_dtos import GatewayResultDTO


class PaymentGateway(Protocol):
    """
    Porta para o processador de pagamentos externo.

    Implementações devem ser idempotentes por `idempotency_key` e levantar
    `GatewayError` em timeout, erro HTTP ou status `failed`.
    """

    def create_charge(
        self,
        amount_minor_units: int,
        currency: str,
        idempotency_key: str,
        metadata: dict[str, Any],
    ) -> GatewayResultDTO: ...

    def create_refund(
        self,
        charge_reference_id: str,
        amount_minor_units: int,
        idempotency_key: str,
    ) -> GatewayResultDTO: ...
