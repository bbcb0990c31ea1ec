from abc import ABC, abstractmethod
from collections.abc import Iterable
from decimal import Decimal

from billing_ledger.core.domain.entities.refund_entity import RefundEntity


class RefundRepository(ABC):
    @abstractmethod
    def find_by_id(self, refund_id) -> RefundEntity | None:
        ...

    @abstractmethod
    def lock(self, refund_id) -> RefundEntity | None:
        ...

    @abstractmethod
    def create(self, refund: RefundEntity) -> RefundEntity:
        ...

    @abstractmethod
    def save(self, refund: RefundEntity) -> None:
        ...

    @abstractmethod
    def sum_for_payment(self, payment_id, statuses: Iterable[str]) -> Decimal:
        ...
