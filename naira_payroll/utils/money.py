"""
Fixed-point money helpers.

Amounts are ``Decimal`` end to end; rounding to kobo (two places,
half-up) happens only where a value is published or stored.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional, Type

from naira_payroll.utils.error_handling import InvalidAmountException, ValidationException

ZERO = Decimal("0")
KOBO = Decimal("0.01")


def to_naira(amount: Decimal) -> Decimal:
    """Round to two decimal places, half-up."""
    return amount.quantize(KOBO, rounding=ROUND_HALF_UP)


def as_decimal(value: Any, field: str = "amount") -> Decimal:
    """Coerce an input amount to Decimal without passing through float."""
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(value)
        except InvalidOperation:
            raise InvalidAmountException(value, field=field)
    else:
        raise InvalidAmountException(value, field=field, message=f"Unsupported amount type for '{field}'")
    if not result.is_finite():
        raise InvalidAmountException(value, field=field)
    return result


def total(amounts: Iterable[Decimal]) -> Decimal:
    return sum(amounts, ZERO)


def normalize_amount_map(
    raw: Optional[Mapping[str, Any]],
    codes: Type[Enum],
    field: str,
) -> Dict[str, Decimal]:
    """
    Validate a free-form amount map against a closed code set.

    Keys must be values of ``codes``; amounts must be non-negative.
    Returns a new dict with keys in sorted order so that the same input
    always serializes identically.
    """
    if not raw:
        return {}
    allowed = {c.value for c in codes}
    result: Dict[str, Decimal] = {}
    for key in sorted(raw):
        code = key.value if isinstance(key, Enum) else str(key)
        if code not in allowed:
            raise ValidationException(
                f"Unknown {field} code '{code}'",
                field=field,
                details={"allowed": sorted(allowed)},
            )
        amount = as_decimal(raw[key], field=f"{field}.{code}")
        if amount < ZERO:
            raise InvalidAmountException(amount, field=f"{field}.{code}")
        result[code] = amount
    return result


def amounts_to_json(amounts: Mapping[str, Decimal]) -> Dict[str, str]:
    """Serialize an amount map for a JSON column (strings keep precision)."""
    return {code: str(to_naira(amount)) for code, amount in sorted(amounts.items())}


def amounts_from_json(raw: Any, codes: Type[Enum], field: str) -> Dict[str, Decimal]:
    """
    Read an amount map back from a JSON column.

    Stored maps get the same checks as fresh input. JSON numbers are
    read through their text form so a float never reaches the amount.
    """
    if not raw:
        return {}
    if not isinstance(raw, Mapping):
        raise ValidationException(f"'{field}' must map codes to amounts", field=field)
    decoded = {key: str(amount) if isinstance(amount, float) else amount for key, amount in raw.items()}
    return normalize_amount_map(decoded, codes, field)
