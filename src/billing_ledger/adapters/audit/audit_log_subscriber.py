from __future__ import annotations

import structlog

from billing_ledger.core.domain.events.events import AUDITED_EVENTS, BillingAuditEvent
from billing_ledger.core.domain.repositories.audit_log_repository import AuditLogRepository
from billing_ledger.core.domain.services.event_dispatcher import EventDispatcher

logger = structlog.get_logger(__name__)


class AuditLogSubscriber:
    """
    Sink de auditoria fire-and-forget.

    Recebe os eventos já pós-commit; qualquer exceção sobe para o
    `EventDispatcher`, que apenas registra `event.handler_error`.
    """

    def __init__(self, repo: AuditLogRepository) -> None:
        self.repo = repo

    def register(self, dispatcher: EventDispatcher) -> None:
        for event_type in AUDITED_EVENTS:
            dispatcher.subscribe(event_type, self)

    def __call__(self, event: BillingAuditEvent) -> None:
        self.repo.record(
            clinic_id=event.clinic_id,
            action=event.action,
            entity=event.entity,
            entity_id=event.entity_id,
            actor_id=event.actor_id,
            details=event.details(),
        )
        logger.debug("audit.recorded", action=event.action, entity_id=str(event.entity_id))
