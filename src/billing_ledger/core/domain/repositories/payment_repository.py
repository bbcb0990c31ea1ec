from abc import ABC, abstractmethod

from billing_ledger.core.domain.entities.payment_entity import PaymentAllocationEntity, PaymentEntity


class PaymentRepository(ABC):
    @abstractmethod
    def find_by_id(self, payment_id) -> PaymentEntity | None:
        ...

    @abstractmethod
    def lock(self, payment_id) -> PaymentEntity | None:
        ...

    @abstractmethod
    def find_by_request_id(self, account_id, request_id: str) -> PaymentEntity | None:
        ...

    @abstractmethod
    def create(self, payment: PaymentEntity) -> PaymentEntity:
        """Cria o pagamento e as alocações presentes em `payment.allocations`."""
        ...

    @abstractmethod
    def save(self, payment: PaymentEntity) -> None:
        ...

    @abstractmethod
    def add_allocations(self, payment_id, allocations: list[PaymentAllocationEntity]) -> list[PaymentAllocationEntity]:
        ...

    @abstractmethod
    def save_allocation(self, allocation: PaymentAllocationEntity) -> None:
        """Atualiza o `reversed_amount` de uma alocação."""
        ...
