from __future__ import annotations

from django.utils import timezone

from billing_ledger.core.domain.entities.patient_account_entity import PatientAccountEntity
from billing_ledger.core.domain.repositories.patient_account_repository import PatientAccountRepository
from plugins.django_interface.models import PatientAccount as PatientAccountModel

BALANCE_FIELDS = (
    "balance", "outstanding_balance", "credit_balance",
    "aging_current", "aging_30", "aging_60", "aging_90", "aging_120_plus",
    "calculated_at",
)


class PatientAccountRepoImpl(PatientAccountRepository):
    def find_by_id(self, account_id) -> PatientAccountEntity | None:
        model = PatientAccountModel.objects.filter(id=account_id).first()
        return PatientAccountEntity.from_model(model) if model else None

    def lock(self, account_id) -> PatientAccountEntity | None:
        model = PatientAccountModel.objects.select_for_update().filter(id=account_id).first()
        return PatientAccountEntity.from_model(model) if model else None

    def list_ids(self, clinic_id=None) -> list:
        qs = PatientAccountModel.objects.filter(is_active=True)
        if clinic_id:
            qs = qs.filter(clinic_id=clinic_id)
        return list(qs.order_by("id").values_list("id", flat=True))

    def save_balances(self, account: PatientAccountEntity) -> None:
        PatientAccountModel.objects.filter(id=account.id).update(
            updated_at=timezone.now(),
            **{name: getattr(account, name) for name in BALANCE_FIELDS},
        )
