from __future__ import annotations

from django.conf import settings
from django.core.management.base import BaseCommand

from billing_ledger.adapters.config.composition_root import setup_di_container_from_settings


class Command(BaseCommand):
    """
    Recalcula saldo e aging de todas as contas (ou de uma clínica / conta).
    Idempotente: seguro para rodar diariamente, já que o aging muda com a data.
    """
    help = "Recalcula balance/outstanding/credit e os baldes de aging das contas."

    def add_arguments(self, parser):
        parser.add_argument("--clinic-id", help="UUID da clínica (opcional – todas se omitido).")
        parser.add_argument("--account-id", help="UUID de uma única conta (tem precedência sobre --clinic-id).")
        parser.add_argument(
            "--async",
            action="store_true",
            dest="use_celery",
            help="Enfileira uma task por conta em vez de processar inline.",
        )

    def handle(self, *args, **options):
        container = setup_di_container_from_settings(settings)
        facade = container.billing_facade_service()

        if options["account_id"]:
            account_ids = [options["account_id"]]
        else:
            account_ids = container.account_repo().list_ids(options["clinic_id"])

        self.stdout.write(self.style.NOTICE(f"Recalculando {len(account_ids)} conta(s)…"))

        if options["use_celery"]:
            from clinic_billing_api.tasks import rebalance_account_task

            for account_id in account_ids:
                rebalance_account_task.delay(str(account_id))
            self.stdout.write(self.style.SUCCESS(f"✔️  {len(account_ids)} task(s) enfileirada(s)."))
            return

        failures = 0
        for account_id in account_ids:
            result = facade.recompute_account_balance(account_id)
            if result.success:
                self.stdout.write(f"  {result.data.account_number}: saldo {result.data.balance}")
            else:
                failures += 1
                self.stderr.write(self.style.ERROR(f"❌  {account_id}: {result.error['code']} – {result.error['message']}"))

        style = self.style.SUCCESS if not failures else self.style.WARNING
        self.stdout.write(style(f"Concluído: {len(account_ids) - failures} ok, {failures} com erro."))
