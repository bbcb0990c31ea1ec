"""
Admin site registry
-------------------
Registro dinâmico dos modelos do ledger. Valores monetários são somente
leitura: toda mutação passa pelos handlers (nunca pelo admin).
"""

import structlog
from django.contrib import admin as django_admin

from . import models

logger = structlog.get_logger(__name__)

MONEY_FIELDS = (
    "subtotal", "adjustments", "paid_amount", "balance", "amount", "remaining_amount",
    "reversed_amount", "outstanding_balance", "credit_balance",
)

# ╭──────────────────────────────────────────────╮
# │ Configuração de cada ModelAdmin             │
# ╰──────────────────────────────────────────────╯
MODEL_ADMIN_REGISTRY: dict[type[models.models.Model], dict] = {
    # 1. Contas
    models.PatientAccount: dict(
        list_display=("account_number", "clinic_id", "status", "balance", "calculated_at"),
        list_filter=("status", "is_active"),
        search_fields=("account_number",),
    ),
    # 2. Faturas
    models.Invoice: dict(
        list_display=("invoice_number", "account", "status", "subtotal", "balance", "due_date"),
        list_filter=("status",),
        search_fields=("invoice_number",),
    ),
    models.InvoiceItem: dict(
        list_display=("invoice", "description", "quantity", "line_total"),
        search_fields=("description", "procedure_code"),
    ),
    # 3. Pagamentos
    models.Payment: dict(
        list_display=("payment_number", "account", "method_type", "status", "amount"),
        list_filter=("status", "method_type"),
        search_fields=("payment_number", "gateway_reference_id"),
    ),
    models.PaymentAllocation: dict(
        list_display=("payment", "invoice", "amount", "reversed_amount"),
    ),
    # 4. Créditos
    models.CreditBalance: dict(
        list_display=("account", "source", "status", "amount", "remaining_amount", "expires_at"),
        list_filter=("status", "source"),
    ),
    models.CreditApplication: dict(
        list_display=("credit", "invoice", "amount", "applied_at"),
    ),
    # 5. Reembolsos
    models.Refund: dict(
        list_display=("refund_number", "payment", "status", "amount", "reason"),
        list_filter=("status", "reason"),
        search_fields=("refund_number", "gateway_refund_id"),
    ),
    # 6. Infra
    models.NumberSequence: dict(
        list_display=("scope", "last_value"),
        search_fields=("scope",),
    ),
    models.AuditLog: dict(
        list_display=("action", "entity", "entity_id", "actor_id", "created_at"),
        list_filter=("action", "entity"),
        search_fields=("entity_id",),
    ),
}

# ╭──────────────────────────────────────────────╮
# │ Registro dinâmico                           │
# ╰──────────────────────────────────────────────╯
for model, opts in MODEL_ADMIN_REGISTRY.items():
    field_names = {f.name for f in model._meta.get_fields()}
    readonly = tuple(name for name in MONEY_FIELDS if name in field_names)
    admin_class = type(f"{model.__name__}Admin", (django_admin.ModelAdmin,), {**opts, "readonly_fields": readonly})
    django_admin.site.register(model, admin_class)
    logger.debug("admin.model_registered", model=model.__name__)
