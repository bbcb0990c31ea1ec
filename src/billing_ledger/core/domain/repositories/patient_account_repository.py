from abc import ABC, abstractmethod

from billing_ledger.core.domain.entities.patient_account_entity import PatientAccountEntity


class PatientAccountRepository(ABC):
    @abstractmethod
    def find_by_id(self, account_id) -> PatientAccountEntity | None:
        ...

    @abstractmethod
    def lock(self, account_id) -> PatientAccountEntity | None:
        """Carrega a conta com `SELECT ... FOR UPDATE` (exige transação aberta)."""
        ...

    @abstractmethod
    def list_ids(self, clinic_id=None) -> list:
        ...

    @abstractmethod
    def save_balances(self, account: PatientAccountEntity) -> None:
        """Persiste apenas os campos denormalizados calculados pelo agregador."""
        ...
