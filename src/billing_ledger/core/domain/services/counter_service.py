from __future__ import annotations

import uuid
from typing import Protocol


class CounterService(Protocol):
    """Contador monotônico por escopo; lacunas são toleradas."""

    def next(self, scope: str) -> int: ...


class DocumentNumberGenerator:
    """
    Gera números legíveis `PREFIX-YYYY-NNNNN` por clínica.
    O escopo do contador é `<clinic_id>:<PREFIX>:<YYYY>`, reiniciando a cada ano.
    """
    INVOICE = "INV"
    PAYMENT = "PAY"
    REFUND = "REF"

    def __init__(self, counter: CounterService, width: int = 5) -> None:
        self.counter = counter
        self.width = width

    def next_number(self, clinic_id: uuid.UUID, prefix: str, year: int) -> str:
        seq = self.counter.next(f"{clinic_id}:{prefix}:{year}")
        return f"{prefix}-{year}-{seq:0{self.width}d}"
