from abc import ABC, abstractmethod
from typing import Any


class AuditLogRepository(ABC):
    @abstractmethod
    def record(
        self,
        *,
        clinic_id,
        action: str,
        entity: str,
        entity_id,
        actor_id: str | None,
        details: dict[str, Any],
    ) -> None:
        ...
