from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager

from prometheus_client import Counter, Histogram

# Registradas no REGISTRY padrão, exportado por django_prometheus em /metrics/
BILLING_OPERATIONS = Counter(
    "billing_operations_total",
    "Operacoes do ledger de cobranca",
    ["operation", "outcome"],
)

BILLING_OPERATION_DURATION = Histogram(
    "billing_operation_duration_seconds",
    "Duracao das operacoes do ledger",
    ["operation"],
)

GATEWAY_CALL_DURATION = Histogram(
    "billing_gateway_call_duration_seconds",
    "Latencia das chamadas ao gateway de pagamento",
    ["operation"],
)

GATEWAY_FAILURES = Counter(
    "billing_gateway_failures_total",
    "Falhas do gateway de pagamento",
    ["operation"],
)


@contextmanager
def track_gateway_call(operation: str) -> Iterator[None]:
    start = time.perf_counter()
    try:
        yield
    except Exception:
        GATEWAY_FAILURES.labels(operation=operation).inc()
        raise
    finally:
        GATEWAY_CALL_DURATION.labels(operation=operation).observe(time.perf_counter() - start)
