from decimal import Decimal

import pytest

from freshcart.discounts import compute_discount, discount_for, lookup
from freshcart.errors import ValidationError

def test_fresh10_on_100_is_10():
    assert compute_discount("FRESH10", 100) == Decimal("10.00")

def test_code_is_case_insensitive_and_trimmed():
    assert compute_discount("  fresh10 ", Decimal("40")) == Decimal("4.00")
    assert lookup("Fresh10").code == "FRESH10"

@pytest.mark.parametrize("code", ["BOGUS", "", None, "FRESH"])
def test_unknown_or_empty_code_is_rejected(code):
    with pytest.raises(ValidationError):
        compute_discount(code, 100)

def test_discount_is_rounded_to_cents():
    # 10 % de 33.35 = 3.335 -> 3.34 (ROUND_HALF_UP)
    assert compute_discount("FRESH10", Decimal("33.35")) == Decimal("3.34")

def test_no_discount_or_empty_subtotal_gives_zero():
    assert discount_for(None, 100) == Decimal("0.00")
    assert compute_discount("FRESH10", 0) == Decimal("0.00")
    assert compute_discount("FRESH10", -5) == Decimal("0.00")

def test_same_inputs_same_output():
    assert compute_discount("FRESH10", "59.99") == compute_discount("FRESH10", "59.99") == Decimal("6.00")
