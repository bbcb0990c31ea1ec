from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar

import structlog

from billing_ledger.adapters.observability.metrics import BILLING_OPERATION_DURATION, BILLING_OPERATIONS
from billing_ledger.core.domain.events.exceptions import BillingError

# ───────────────────────────────────────────────
# CQRS com Log de Performance e Métricas
# ───────────────────────────────────────────────

C = TypeVar('C')  # Command type
Q = TypeVar('Q')  # Query type
R = TypeVar('R')  # Query result type

logger = structlog.get_logger(__name__)


# ───────────────────────────────────────────────
# DTOs
# ───────────────────────────────────────────────
@dataclass(frozen=True)
class CommandDTO:
    """Base para todos comandos de escrita."""
    pass


@dataclass(frozen=True)
class QueryDTO:
    """Base para consultas de leitura."""
    pass


# ───────────────────────────────────────────────
# Handlers Protocols
# ───────────────────────────────────────────────
class CommandHandler(Protocol, Generic[C]):
    def handle(self, command: C) -> Any:
        """Processa um comando e aplica mudanças de estado."""
        ...


class QueryHandler(Protocol, Generic[Q, R]):
    def handle(self, query: Q) -> R:
        """Processa uma consulta e retorna um resultado."""
        ...


# ───────────────────────────────────────────────
# Buses com Logging e Métricas
# ───────────────────────────────────────────────
class CommandBus:
    """Dispatcher de comandos com medição de performance."""
    def __init__(self) -> None:
        self._handlers: dict[type, CommandHandler] = {}

    def register(self, command_type: type[C], handler: CommandHandler[C]) -> None:
        self._handlers[command_type] = handler
        logger.debug("command.registered", command=command_type.__name__)

    def dispatch(self, command: C) -> Any:
        name = type(command).__name__
        handler = self._handlers.get(type(command))
        if not handler:
            raise ValueError(f"Nenhum handler para comando: {name}")
        start = time.perf_counter()
        logger.info("command.dispatch", command=name)
        try:
            result = handler.handle(command)
        except BillingError as exc:
            BILLING_OPERATIONS.labels(operation=name, outcome=exc.code).inc()
            logger.warning("command.rejected", command=name, code=exc.code, error=exc.message)
            raise
        except Exception:
            BILLING_OPERATIONS.labels(operation=name, outcome="INTERNAL_ERROR").inc()
            raise
        elapsed = time.perf_counter() - start
        BILLING_OPERATIONS.labels(operation=name, outcome="OK").inc()
        BILLING_OPERATION_DURATION.labels(operation=name).observe(elapsed)
        logger.info("command.done", command=name, duration=f"{elapsed:.3f}s")
        return result


class QueryBus:
    """Dispatcher de queries com medição."""
    def __init__(self) -> None:
        self._handlers: dict[type, QueryHandler] = {}

    def register(self, query_type: type[QueryDTO], handler: QueryHandler[Any, Any]) -> None:
        self._handlers[query_type] = handler
        logger.debug("query.registered", query=query_type.__name__)

    def dispatch(self, query: QueryDTO) -> Any:
        handler = self._handlers.get(type(query))
        if not handler:
            raise ValueError(f"Nenhum handler para query: {type(query).__name__}")
        start = time.perf_counter()
        result = handler.handle(query)
        logger.debug("query.done", query=type(query).__name__, duration=f"{time.perf_counter() - start:.3f}s")
        return result


# ───────────────────────────────────────────────
# Service de Alto Nível
# ───────────────────────────────────────────────
class BaseService:
    """Orquestra execução de comandos e queries via buses."""
    def __init__(self, command_bus: CommandBus, query_bus: QueryBus) -> None:
        self.commands = command_bus
        self.queries = query_bus

    def execute(self, command: CommandDTO) -> Any:
        return self.commands.dispatch(command)

    def query(self, query: QueryDTO) -> Any:
        return self.queries.dispatch(query)
