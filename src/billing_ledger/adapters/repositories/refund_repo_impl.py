from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal

from django.db.models import Sum

from billing_ledger.core.domain.entities.refund_entity import RefundEntity
from billing_ledger.core.domain.repositories.refund_repository import RefundRepository
from plugins.django_interface.models import Refund as RefundModel

MUTABLE_FIELDS = [
    "status", "gateway_refund_id", "approved_by", "approved_at",
    "approval_notes", "declined_reason", "processed_at", "updated_at",
]


class RefundRepoImpl(RefundRepository):
    def find_by_id(self, refund_id) -> RefundEntity | None:
        model = RefundModel.objects.filter(id=refund_id).first()
        return RefundEntity.from_model(model) if model else None

    def lock(self, refund_id) -> RefundEntity | None:
        model = RefundModel.objects.select_for_update().filter(id=refund_id).first()
        return RefundEntity.from_model(model) if model else None

    def create(self, refund: RefundEntity) -> RefundEntity:
        model = RefundModel.objects.create(**refund.to_dict())
        return RefundEntity.from_model(model)

    def save(self, refund: RefundEntity) -> None:
        model = RefundModel.objects.get(id=refund.id)
        for name in MUTABLE_FIELDS[:-1]:
            setattr(model, name, getattr(refund, name))
        model.save(update_fields=MUTABLE_FIELDS)

    def sum_for_payment(self, payment_id, statuses: Iterable[str]) -> Decimal:
        total = (
            RefundModel.objects.filter(payment_id=payment_id, status__in=list(statuses))
            .aggregate(total=Sum("amount"))["total"]
        )
        return total or Decimal("0.00")
