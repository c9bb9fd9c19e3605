from decimal import Decimal, ROUND_HALF_UP
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

def to_money(value: Any) -> Decimal:
    """
    Convertit un montant (str|int|float|Decimal) en Decimal arrondi au centime.
    - Les float passent par str() pour éviter les artefacts binaires (10.1 -> 10.10).
    - None ou "" -> 0.00
    """
    if value is None or value == "":
        return ZERO
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
