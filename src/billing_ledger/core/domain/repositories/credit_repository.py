from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal

from billing_ledger.core.domain.entities.credit_balance_entity import CreditBalanceEntity


class CreditRepository(ABC):
    @abstractmethod
    def find_by_id(self, credit_id) -> CreditBalanceEntity | None:
        ...

    @abstractmethod
    def lock(self, credit_id) -> CreditBalanceEntity | None:
        ...

    @abstractmethod
    def create(self, credit: CreditBalanceEntity) -> CreditBalanceEntity:
        ...

    @abstractmethod
    def save(self, credit: CreditBalanceEntity) -> None:
        ...

    @abstractmethod
    def list_available(self, account_id, now: datetime) -> list[CreditBalanceEntity]:
        """Créditos AVAILABLE, com saldo e não expirados (expiração mais próxima primeiro)."""
        ...

    @abstractmethod
    def record_application(self, credit_id, invoice_id, amount: Decimal, applied_by: str | None) -> None:
        ...
