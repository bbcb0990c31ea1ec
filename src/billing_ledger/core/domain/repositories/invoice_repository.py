from abc import ABC, abstractmethod

from billing_ledger.core.domain.entities.invoice_entity import InvoiceEntity


class InvoiceRepository(ABC):
    @abstractmethod
    def find_by_id(self, invoice_id) -> InvoiceEntity | None:
        ...

    @abstractmethod
    def lock(self, invoice_id) -> InvoiceEntity | None:
        ...

    @abstractmethod
    def lock_many(self, invoice_ids) -> dict:
        """
        Bloqueia várias faturas em ordem de id (evita deadlock entre
        pagamentos concorrentes) e retorna `{id: InvoiceEntity}`.
        """
        ...

    @abstractmethod
    def create(self, invoice: InvoiceEntity) -> InvoiceEntity:
        ...

    @abstractmethod
    def save(self, invoice: InvoiceEntity) -> None:
        """Grava valores, status e campos editáveis da fatura."""
        ...

    @abstractmethod
    def list_for_account(self, account_id) -> list[InvoiceEntity]:
        ...
