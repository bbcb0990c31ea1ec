from django.apps import AppConfig


class BillingConfig(AppConfig):
    name = "clinic_billing_api"
    verbose_name = "Clinic Billing Ledger API"

    def ready(self):
        from django.conf import settings

        # ─── DI container ──────────────────────────────────────────
        from billing_ledger.adapters.config.composition_root import setup_di_container_from_settings

        setup_di_container_from_settings(settings)
