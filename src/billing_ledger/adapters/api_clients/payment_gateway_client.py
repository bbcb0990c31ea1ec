from __future__ import annotations

from typing import Any

import requests
from pydantic import ValidationError

from billing_ledger.adapters.api_clients.base_api_client import BaseAPIClient
from billing_ledger.core.application.dtos.gateway_dtos import (
    GatewayChargeRequestDTO,
    GatewayRefundRequestDTO,
    GatewayResultDTO,
)
from billing_ledger.core.domain.events.exceptions import GatewayError


class HttpPaymentGatewayClient(BaseAPIClient):
    """
    Cliente do processador de pagamentos (API estilo Stripe).

    Cada chamada envia o cabeçalho `Idempotency-Key`; o gateway garante
    que a mesma chave nunca gera duas cobranças. Timeout é tratado como
    falha e nunca é re-tentado aqui.
    """

    def __init__(self, *, base_url: str, api_key: str, timeout: float = 10.0) -> None:
        super().__init__(
            base_url=base_url,
            default_headers={"Authorization": f"Bearer {api_key}"},
            timeout=timeout,
        )

    def _call(self, path: str, payload: dict[str, Any], idempotency_key: str) -> GatewayResultDTO:
        try:
            result = self._post(
                path,
                payload=payload,
                response_model=GatewayResultDTO,
                headers={"Idempotency-Key": idempotency_key},
            )
        except requests.Timeout as exc:
            raise GatewayError(f"timeout após {self.timeout}s") from exc
        except (requests.RequestException, ValidationError, ValueError) as exc:
            raise GatewayError(str(exc)) from exc
        if result.status == "failed":
            raise GatewayError(f"gateway recusou a operação {result.reference_id}")
        return result

    def create_charge(
        self,
        amount_minor_units: int,
        currency: str,
        idempotency_key: str,
        metadata: dict[str, Any],
    ) -> GatewayResultDTO:
        body = GatewayChargeRequestDTO(amount=amount_minor_units, currency=currency, metadata=metadata)
        return self._call("payment_intents", body.model_dump(), idempotency_key)

    def create_refund(
        self,
        charge_reference_id: str,
        amount_minor_units: int,
        idempotency_key: str,
    ) -> GatewayResultDTO:
        body = GatewayRefundRequestDTO(charge=charge_reference_id, amount=amount_minor_units)
        return self._call("refunds", body.model_dump(), idempotency_key)
