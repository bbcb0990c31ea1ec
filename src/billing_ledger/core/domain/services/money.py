"""
Aritmética monetária do ledger.

Todos os valores circulam como `Decimal` com duas casas; float nunca é
aceito sem passar por `str()` para não herdar erro binário.
"""
from __future__ import annotations

from collections.abc import Sequence
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation

from billing_ledger.core.domain.events.exceptions import BillingValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
# colunas monetárias: max_digits=12, decimal_places=2
MAX_AMOUNT = Decimal("9999999999.99")


def to_money(value, field: str = "amount") -> Decimal:
    if value is None or isinstance(value, bool):
        raise BillingValidationError(f"{field} é obrigatório")
    try:
        amount = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise BillingValidationError(f"{field} inválido: {value!r}") from exc
    if not amount.is_finite():
        raise BillingValidationError(f"{field} inválido: {value!r}")
    if abs(amount) > MAX_AMOUNT:
        raise BillingValidationError(f"{field} excede o limite de {MAX_AMOUNT}")
    if amount != amount.quantize(CENT, rounding=ROUND_HALF_UP):
        raise BillingValidationError(f"{field} deve ter no máximo duas casas decimais")
    return amount.quantize(CENT)


def positive_money(value, field: str = "amount") -> Decimal:
    amount = to_money(value, field)
    if amount <= ZERO:
        raise BillingValidationError(f"{field} deve ser maior que zero")
    return amount


def non_negative_money(value, field: str = "amount") -> Decimal:
    amount = to_money(value, field)
    if amount < ZERO:
        raise BillingValidationError(f"{field} não pode ser negativo")
    return amount


def quantize(value: Decimal, rounding: str = ROUND_HALF_UP) -> Decimal:
    return value.quantize(CENT, rounding=rounding)


def to_minor_units(amount: Decimal) -> int:
    """Converte para centavos na fronteira com o gateway."""
    return int((amount * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_minor_units(units: int) -> Decimal:
    return (Decimal(units) / 100).quantize(CENT)


def proportional_shares(
    amounts: Sequence[Decimal],
    numerator: Decimal,
    denominator: Decimal,
    capacities: Sequence[Decimal] | None = None,
) -> list[Decimal]:
    """
    Divide `sum(amounts) * numerator / denominator` entre as parcelas na
    proporção de cada `amount`.

    Cada parcela é truncada no centavo; o resto é varrido para a última
    parcela com capacidade, percorrendo de trás para frente. Nenhuma parcela
    ultrapassa sua `capacity` (padrão: o próprio amount).
    """
    if denominator <= ZERO:
        raise BillingValidationError("denominador deve ser positivo")
    caps = list(capacities) if capacities is not None else list(amounts)
    ratio = numerator / denominator

    shares = [min(quantize(a * ratio, ROUND_DOWN), cap) for a, cap in zip(amounts, caps, strict=True)]
    target = min(quantize(sum(amounts, ZERO) * ratio), sum(caps, ZERO))
    remainder = target - sum(shares, ZERO)

    for idx in range(len(shares) - 1, -1, -1):
        if remainder <= ZERO:
            break
        room = caps[idx] - shares[idx]
        if room <= ZERO:
            continue
        extra = min(room, remainder)
        shares[idx] += extra
        remainder -= extra
    return shares
