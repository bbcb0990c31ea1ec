from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from django.db.models import F, Q

from billing_ledger.core.domain.entities.credit_balance_entity import CreditBalanceEntity
from billing_ledger.core.domain.entities.enums import CreditStatus
from billing_ledger.core.domain.repositories.credit_repository import CreditRepository
from plugins.django_interface.models import CreditApplication as CreditApplicationModel
from plugins.django_interface.models import CreditBalance as CreditModel

MUTABLE_FIELDS = ["remaining_amount", "status", "updated_at"]


class CreditRepoImpl(CreditRepository):
    def find_by_id(self, credit_id) -> CreditBalanceEntity | None:
        model = CreditModel.objects.filter(id=credit_id).first()
        return CreditBalanceEntity.from_model(model) if model else None

    def lock(self, credit_id) -> CreditBalanceEntity | None:
        model = CreditModel.objects.select_for_update().filter(id=credit_id).first()
        return CreditBalanceEntity.from_model(model) if model else None

    def create(self, credit: CreditBalanceEntity) -> CreditBalanceEntity:
        model = CreditModel.objects.create(
            id=credit.id,
            clinic_id=credit.clinic_id,
            account_id=credit.account_id,
            amount=credit.amount,
            remaining_amount=credit.remaining_amount,
            status=credit.status,
            source=credit.source,
            description=credit.description,
            expires_at=credit.expires_at,
            transferred_from_id=credit.transferred_from_id,
            created_by=credit.created_by,
        )
        return CreditBalanceEntity.from_model(model)

    def save(self, credit: CreditBalanceEntity) -> None:
        model = CreditModel.objects.get(id=credit.id)
        model.remaining_amount = credit.remaining_amount
        model.status = credit.status
        model.save(update_fields=MUTABLE_FIELDS)

    def list_available(self, account_id, now: datetime) -> list[CreditBalanceEntity]:
        qs = (
            CreditModel.objects.filter(
                account_id=account_id,
                status=CreditStatus.AVAILABLE,
                remaining_amount__gt=0,
            )
            .filter(Q(expires_at__isnull=True) | Q(expires_at__gt=now))
            .order_by(F("expires_at").asc(nulls_last=True), "created_at")
        )
        return [CreditBalanceEntity.from_model(m) for m in qs]

    def record_application(self, credit_id, invoice_id, amount: Decimal, applied_by: str | None) -> None:
        CreditApplicationModel.objects.create(
            credit_id=credit_id,
            invoice_id=invoice_id,
            amount=amount,
            applied_by=applied_by,
        )
