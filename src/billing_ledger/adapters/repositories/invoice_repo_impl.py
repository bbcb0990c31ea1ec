from __future__ import annotations

import uuid

from django.db import transaction

from billing_ledger.core.domain.entities.invoice_entity import InvoiceEntity, InvoiceItemEntity
from billing_ledger.core.domain.repositories.invoice_repository import InvoiceRepository
from plugins.django_interface.models import Invoice as InvoiceModel
from plugins.django_interface.models import InvoiceItem as InvoiceItemModel

MUTABLE_FIELDS = [
    "status", "adjustments", "paid_amount", "balance",
    "due_date", "notes", "paid_at", "updated_at",
]


class InvoiceRepoImpl(InvoiceRepository):
    """Persistência de faturas e itens via Django ORM."""

    @staticmethod
    def _to_entity(model: InvoiceModel) -> InvoiceEntity:
        items = [InvoiceItemEntity.from_model(i) for i in model.items.all()]
        return InvoiceEntity.from_model(model, items=items)

    def find_by_id(self, invoice_id) -> InvoiceEntity | None:
        model = InvoiceModel.objects.prefetch_related("items").filter(id=invoice_id).first()
        return self._to_entity(model) if model else None

    def lock(self, invoice_id) -> InvoiceEntity | None:
        model = InvoiceModel.objects.select_for_update().filter(id=invoice_id).first()
        return self._to_entity(model) if model else None

    def lock_many(self, invoice_ids) -> dict:
        qs = InvoiceModel.objects.select_for_update().filter(id__in=list(invoice_ids)).order_by("id")
        return {m.id: self._to_entity(m) for m in qs}

    @transaction.atomic
    def create(self, invoice: InvoiceEntity) -> InvoiceEntity:
        model = InvoiceModel.objects.create(
            id=invoice.id,
            clinic_id=invoice.clinic_id,
            account_id=invoice.account_id,
            invoice_number=invoice.invoice_number,
            invoice_date=invoice.invoice_date,
            due_date=invoice.due_date,
            status=invoice.status,
            subtotal=invoice.subtotal,
            adjustments=invoice.adjustments,
            paid_amount=invoice.paid_amount,
            balance=invoice.balance,
            notes=invoice.notes,
            paid_at=invoice.paid_at,
            created_by=invoice.created_by,
        )
        InvoiceItemModel.objects.bulk_create([
            InvoiceItemModel(
                id=item.id or uuid.uuid4(),
                invoice=model,
                position=item.position,
                procedure_code=item.procedure_code,
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                discount=item.discount,
                line_total=item.line_total,
            )
            for item in invoice.items
        ])
        return self._to_entity(model)

    def save(self, invoice: InvoiceEntity) -> None:
        model = InvoiceModel.objects.get(id=invoice.id)
        for name in MUTABLE_FIELDS[:-1]:
            setattr(model, name, getattr(invoice, name))
        model.save(update_fields=MUTABLE_FIELDS)

    def list_for_account(self, account_id) -> list[InvoiceEntity]:
        qs = InvoiceModel.objects.prefetch_related("items").filter(account_id=account_id).order_by("due_date", "id")
        return [self._to_entity(m) for m in qs]
