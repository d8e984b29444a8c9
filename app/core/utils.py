from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from app.core.errors import ValidationError

CENT = Decimal("0.01")
# Numeric(10, 2)
MONEY_MAX = Decimal("99999999.99")


def to_money(value: Decimal | float | int | str) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def parse_money(value: object, field_name: str) -> Decimal:
    raw = str(value if value is not None else "").strip().replace(",", ".")
    if not raw:
        raise ValidationError(field_name, f"Falta {field_name}")
    try:
        amount = to_money(raw)
    except InvalidOperation as exc:
        raise ValidationError(field_name, f"Importe invalido en {field_name}") from exc
    if not amount.is_finite():
        raise ValidationError(field_name, f"Importe invalido en {field_name}")
    if amount < 0:
        raise ValidationError(field_name, f"Importe negativo en {field_name}")
    if amount > MONEY_MAX:
        raise ValidationError(field_name, f"Importe demasiado alto en {field_name}")
    return amount


def money(value: Decimal | float | int) -> str:
    return f"{to_money(value):.2f}"
