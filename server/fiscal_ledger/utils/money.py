from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from fiscal_ledger.errors import ValidationError

ZERO = Decimal("0.00")
CENT = Decimal("0.01")
RATE_PLACES = Decimal("0.0001")
QUANTITY_PLACES = Decimal("0.0001")


def _quantize(value, places: Decimal, label: str) -> Decimal:
    try:
        return Decimal(str(value)).quantize(places, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError(f"Invalid {label}: {value!r}") from None


def to_money(value: Decimal | int | str | None) -> Decimal:
    """Round to cents, half up. ``None`` counts as zero."""
    if value is None:
        return ZERO
    return _quantize(value, CENT, "monetary amount")


def to_quantity(value: Decimal | int | str) -> Decimal:
    return _quantize(value, QUANTITY_PLACES, "quantity")


def quantize_rate(value: Decimal | int | str | None) -> Decimal:
    if value is None:
        return Decimal("0.0000")
    return _quantize(value, RATE_PLACES, "rate")
