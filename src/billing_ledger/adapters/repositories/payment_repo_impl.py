from __future__ import annotations

import uuid

from django.db import transaction

from billing_ledger.core.domain.entities.payment_entity import PaymentAllocationEntity, PaymentEntity
from billing_ledger.core.domain.repositories.payment_repository import PaymentRepository
from plugins.django_interface.models import Payment as PaymentModel
from plugins.django_interface.models import PaymentAllocation as AllocationModel

MUTABLE_FIELDS = [
    "status", "gateway_reference_id", "pending_allocations",
    "processed_at", "notes", "updated_at",
]


class PaymentRepoImpl(PaymentRepository):
    @staticmethod
    def _to_entity(model: PaymentModel) -> PaymentEntity:
        allocations = [PaymentAllocationEntity.from_model(a) for a in model.allocations.all()]
        return PaymentEntity.from_model(
            model,
            allocations=allocations,
            pending_allocations=list(model.pending_allocations or []),
        )

    def find_by_id(self, payment_id) -> PaymentEntity | None:
        model = PaymentModel.objects.prefetch_related("allocations").filter(id=payment_id).first()
        return self._to_entity(model) if model else None

    def lock(self, payment_id) -> PaymentEntity | None:
        model = PaymentModel.objects.select_for_update().filter(id=payment_id).first()
        return self._to_entity(model) if model else None

    def find_by_request_id(self, account_id, request_id: str) -> PaymentEntity | None:
        model = (
            PaymentModel.objects.prefetch_related("allocations")
            .filter(account_id=account_id, request_id=request_id)
            .first()
        )
        return self._to_entity(model) if model else None

    @transaction.atomic
    def create(self, payment: PaymentEntity) -> PaymentEntity:
        model = PaymentModel.objects.create(
            id=payment.id,
            clinic_id=payment.clinic_id,
            account_id=payment.account_id,
            payment_number=payment.payment_number,
            amount=payment.amount,
            status=payment.status,
            method_type=payment.method_type,
            gateway_reference_id=payment.gateway_reference_id,
            idempotency_key=payment.idempotency_key,
            request_id=payment.request_id,
            pending_allocations=payment.pending_allocations,
            payment_date=payment.payment_date,
            processed_at=payment.processed_at,
            notes=payment.notes,
            created_by=payment.created_by,
        )
        if payment.allocations:
            self.add_allocations(model.id, payment.allocations)
        return self._to_entity(model)

    def save(self, payment: PaymentEntity) -> None:
        model = PaymentModel.objects.get(id=payment.id)
        for name in MUTABLE_FIELDS[:-1]:
            setattr(model, name, getattr(payment, name))
        model.save(update_fields=MUTABLE_FIELDS)

    def add_allocations(self, payment_id, allocations: list[PaymentAllocationEntity]) -> list[PaymentAllocationEntity]:
        created = AllocationModel.objects.bulk_create([
            AllocationModel(
                id=a.id or uuid.uuid4(),
                payment_id=payment_id,
                invoice_id=a.invoice_id,
                amount=a.amount,
                reversed_amount=a.reversed_amount,
            )
            for a in allocations
        ])
        return [PaymentAllocationEntity.from_model(m) for m in created]

    def save_allocation(self, allocation: PaymentAllocationEntity) -> None:
        AllocationModel.objects.filter(id=allocation.id).update(reversed_amount=allocation.reversed_amount)
