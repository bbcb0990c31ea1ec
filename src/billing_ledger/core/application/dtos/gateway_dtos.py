from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

GatewayStatus = Literal["succeeded", "processing", "requires_action", "failed"]


class GatewayChargeRequestDTO(BaseModel):
    amount: int = Field(gt=0)
    currency: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class GatewayRefundRequestDTO(BaseModel):
    charge: str
    amount: int = Field(gt=0)


class GatewayResultDTO(BaseModel):
    """Resposta normalizada do gateway: referência opaca + status."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    reference_id: str = Field(alias="id", min_length=1)
    status: GatewayStatus
