"""
Module: ledger_kernel.db.types
Responsibility: Annotated column type aliases and the money helpers every
    model and service uses, so precision and rounding are defined once.
Architecture position: Kernel > DB.  May be imported by models/, domain/ and
    services/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats.  Money is Decimal quantized to MONEY_DECIMAL_PLACES.
    - round_money() is the only sanctioned rounding function.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from sqlalchemy import Numeric, String

# Monetary amount: decimal(14, 2)
Money = Annotated[Decimal, Numeric(14, 2)]

# Tax rate: decimal(5, 4), e.g. 0.1900
Rate = Annotated[Decimal, Numeric(5, 4)]

# Item quantity: decimal(10, 2)
Quantity = Annotated[Decimal, Numeric(10, 2)]

# Short identifier strings
ShortCode = Annotated[str, String(50)]

MONEY_DECIMAL_PLACES = 2
RATE_DECIMAL_PLACES = 4
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0.00")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the ledger precision.

    This is the ONLY sanctioned rounding function for ledger amounts.
    """
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def to_decimal(value: Decimal | int | str) -> Decimal:
    """
    Convert caller input to Decimal without passing through float.

    Raises:
        ValueError: float input, or a string that is not a number.
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a monetary value: {value!r}")
    if isinstance(value, float):
        raise ValueError(f"Float amounts are not accepted: {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"Not a monetary value: {value!r}") from None
    if not result.is_finite():
        raise ValueError(f"Not a monetary value: {value!r}")
    return result


def money(value: Decimal | int | str) -> Decimal:
    """Parse and round to ledger precision in one step."""
    return round_money(to_decimal(value))
