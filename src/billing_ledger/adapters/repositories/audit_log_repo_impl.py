from __future__ import annotations

from typing import Any

from billing_ledger.core.domain.repositories.audit_log_repository import AuditLogRepository
from plugins.django_interface.models import AuditLog as AuditLogModel


class AuditLogRepoImpl(AuditLogRepository):
    def record(
        self,
        *,
        clinic_id,
        action: str,
        entity: str,
        entity_id,
        actor_id: str | None,
        details: dict[str, Any],
    ) -> None:
        AuditLogModel.objects.create(
            clinic_id=clinic_id,
            action=action,
            entity=entity,
            entity_id=str(entity_id),
            actor_id=actor_id,
            details=details,
        )
