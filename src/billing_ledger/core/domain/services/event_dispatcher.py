from collections.abc import Callable

import structlog

from billing_ledger.core.domain.events.events import DomainEvent

logger = structlog.get_logger(__name__)


class EventDispatcher:
    """
    Dispatcher de eventos de domínio.

    Falhas de um listener são registradas e nunca propagam: os eventos são
    disparados depois do commit e não podem desfazer a transação financeira.
    """
    def __init__(self) -> None:
        self._subs: dict[type[DomainEvent], list[Callable[[DomainEvent], None]]] = {}

    def subscribe(self, event_type: type[DomainEvent], handler: Callable[[DomainEvent], None]) -> None:
        self._subs.setdefault(event_type, []).append(handler)
        logger.debug(
            "event.subscribed",
            event_type=event_type.__name__,
            handler_name=_name_of(handler),
        )

    def dispatch(self, event: DomainEvent) -> None:
        handlers = self._subs.get(type(event), [])
        logger.info(
            "event.dispatch",
            event_name=type(event).__name__,
            listeners=len(handlers),
        )
        for h in handlers:
            try:
                h(event)
            except Exception as e:  # noqa: BLE001
                logger.error(
                    "event.handler_error",
                    event_name=type(event).__name__,
                    handler_name=_name_of(h),
                    error=str(e),
                    exc_info=True,
                )


def _name_of(handler: Callable) -> str:
    return getattr(handler, "__name__", handler.__class__.__name__)
