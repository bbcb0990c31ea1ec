from __future__ import annotations

import structlog
from django.db import transaction
from django.db.models import F

from plugins.django_interface.models import NumberSequence

logger = structlog.get_logger(__name__)


class DjangoCounterService:
    """
    Contador atômico baseado em linha dedicada por escopo.

    O incremento é feito com `F()` sob `select_for_update`, nunca lendo o
    maior número já emitido. Se a transação externa sofrer rollback o número
    volta a ficar livre; se o documento falhar depois, fica uma lacuna.
    """

    def next(self, scope: str) -> int:
        with transaction.atomic():
            seq, created = NumberSequence.objects.select_for_update().get_or_create(scope=scope)
            NumberSequence.objects.filter(pk=seq.pk).update(last_value=F("last_value") + 1)
            seq.refresh_from_db(fields=["last_value"])
        if created:
            logger.info("numbering.scope_created", scope=scope)
        return seq.last_value
