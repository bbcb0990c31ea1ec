from __future__ import annotations

import structlog
from celery import Task, shared_task
from django.db import OperationalError

from billing_ledger.core.application.commands.payment_commands import ConfirmPaymentCommand
from billing_ledger.core.application.commands.refund_commands import ConfirmRefundCommand

log = structlog.get_logger(__name__)

QUEUE_BILLING = "billing"
GATEWAY_ACTOR = "gateway-webhook"


def _facade():
    from billing_ledger.adapters.config import composition_root

    return composition_root.container.billing_facade_service()


# ──────────────────────────────────────────────────────────────────────────
# Base Task com DLQ
# ──────────────────────────────────────────────────────────────────────────
class BaseTaskWithDLQ(Task):
    """Reenfileira na `dead_letter` quando a task esgota as retentativas (exceto em eager)."""

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        if getattr(self.app.conf, "task_always_eager", False):
            log.critical("task.failed_eager_mode", task=self.name, task_id=task_id, error=str(exc))
        else:
            log.critical("task.failed_dlq_redirect", task=self.name, task_id=task_id, error=str(exc),
                         queue="dead_letter")
            self.app.send_task(
                self.name,
                args=args,
                kwargs=kwargs,
                queue="dead_letter",
                routing_key="dead_letter",
            )
        super().on_failure(exc, task_id, args, kwargs, einfo)


# ──────────────────────────────────────────────────────────────────────────
# Recalculo de saldo
# ──────────────────────────────────────────────────────────────────────────
@shared_task(base=BaseTaskWithDLQ, autoretry_for=(OperationalError,), max_retries=3, default_retry_delay=30,
             queue=QUEUE_BILLING)
def rebalance_account_task(account_id: str) -> dict | None:
    """Recalcula saldo e aging de UMA conta; resultado de negócio com erro não é re-tentado."""
    result = _facade().recompute_account_balance(account_id)
    if not result.success:
        log.warning("rebalance.rejected", account_id=account_id, **result.error)
        return result.error
    log.info("rebalance.ok", account_id=account_id, balance=str(result.data.balance))
    return None


@shared_task(queue=QUEUE_BILLING)
def schedule_rebalance(clinic_id: str | None = None) -> int:
    """Fan-out: uma `rebalance_account_task` por conta (da clínica ou de todas)."""
    from billing_ledger.adapters.config import composition_root

    account_ids = composition_root.container.account_repo().list_ids(clinic_id)
    for account_id in account_ids:
        rebalance_account_task.delay(str(account_id))
    log.info("rebalance.scheduled", clinic_id=clinic_id, accounts=len(account_ids))
    return len(account_ids)


# ──────────────────────────────────────────────────────────────────────────
# Eventos assíncronos do gateway
# ──────────────────────────────────────────────────────────────────────────
@shared_task(base=BaseTaskWithDLQ, autoretry_for=(OperationalError,), max_retries=5, default_retry_delay=60,
             queue=QUEUE_BILLING)
def confirm_gateway_event_task(kind: str, object_id: str, gateway_status: str) -> dict:
    """
    Aplica o resultado final de uma cobrança/reembolso que ficou PENDING/PROCESSING.
    `kind` ∈ {"payment", "refund"}.
    """
    facade = _facade()
    if kind == "payment":
        result = facade.confirm_payment(ConfirmPaymentCommand(
            payment_id=object_id, gateway_status=gateway_status, actor_id=GATEWAY_ACTOR,
        ))
    elif kind == "refund":
        result = facade.confirm_refund(ConfirmRefundCommand(
            refund_id=object_id, gateway_status=gateway_status, actor_id=GATEWAY_ACTOR,
        ))
    else:
        raise ValueError(f"Tipo de evento de gateway desconhecido: {kind}")

    if result.success:
        log.info("gateway_event.applied", kind=kind, object_id=object_id, status=result.data.status)
        return {"success": True, "status": result.data.status}
    log.warning("gateway_event.rejected", kind=kind, object_id=object_id, **result.error)
    return {"success": False, "error": result.error}
