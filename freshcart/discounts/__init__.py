from .engine import DISCOUNT_CODES, Discount, compute_discount, discount_for, lookup, normalize_code

__all__ = [
    "DISCOUNT_CODES",
    "Discount",
    "compute_discount",
    "discount_for",
    "lookup",
    "normalize_code",
]
