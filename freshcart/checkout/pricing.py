"""
Règle de prix du checkout.
- shipping = 0 si subtotal > FREE_SHIPPING_THRESHOLD, sinon SHIPPING_FEE
- total = subtotal - discount + shipping
"""
from decimal import Decimal

from freshcart import config
from freshcart.money import ZERO, to_money

def shipping_for(subtotal: Decimal) -> Decimal:
    if to_money(subtotal) > config.FREE_SHIPPING_THRESHOLD:
        return ZERO
    return to_money(config.SHIPPING_FEE)

def total_for(subtotal: Decimal, discount: Decimal, shipping: Decimal) -> Decimal:
    return to_money(to_money(subtotal) - to_money(discount) + to_money(shipping))
