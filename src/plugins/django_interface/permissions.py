import uuid

from rest_framework.permissions import BasePermission

CLINIC_HEADER = "X-Clinic-Id"


def clinic_id_from(request) -> uuid.UUID | None:
    """Lê o cabeçalho `X-Clinic-Id`; valor ausente ou malformado → `None`."""
    raw = request.headers.get(CLINIC_HEADER)
    if not raw:
        return None
    try:
        return uuid.UUID(raw)
    except ValueError:
        return None


class HasClinicHeader(BasePermission):
    """Toda chamada da API de faturamento é escopada por clínica."""

    message = f"Cabeçalho {CLINIC_HEADER} ausente ou inválido."

    def has_permission(self, request, view):
        return clinic_id_from(request) is not None
