from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from billing_ledger.core.domain.events.exceptions import BillingError

T = TypeVar("T")


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Resultado da superfície de operações: payload de sucesso ou `{code, message}`."""
    success: bool
    data: T | None = None
    error: dict[str, str] | None = None

    @classmethod
    def ok(cls, data: T) -> OperationResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, exc: BillingError) -> OperationResult[Any]:
        return cls(success=False, error=exc.to_dict())

    @property
    def code(self) -> str | None:
        return self.error["code"] if self.error else None
