from decimal import Decimal

from freshcart.cart.models import CartEntry, entry_from_row

def test_row_with_price_snapshot():
    row = {
        "product_id": "p1",
        "quantity": 2,
        "unit_price": "10.00",
        "product": {"title": "Tomates", "farmer_id": "f1"},
        "products": {"id": "p1", "price": 12, "unit": "kg"},
    }
    e = entry_from_row(row)
    assert e.unit_price == Decimal("10.00")
    assert e.line_total == Decimal("20.00")
    assert e.farmer_id == "f1"
    assert e.metadata["unit"] == "kg"

def test_row_without_snapshot_uses_joined_product_price():
    e = entry_from_row({"product_id": "p1", "quantity": 1, "products": {"id": "p1", "price": 7.5}})
    assert e.unit_price == Decimal("7.50")

def test_unusable_rows_are_skipped():
    assert entry_from_row({"product_id": "p1", "quantity": 0, "unit_price": 1}) is None
    assert entry_from_row({"quantity": 3, "unit_price": 1}) is None

def test_farmer_from_nested_farmer():
    e = CartEntry("p1", 1, Decimal("1"), {"farmer": {"id": 42}})
    assert e.farmer_id == "42"

def test_to_row_sends_absolute_quantity():
    row = CartEntry("p1", 5, Decimal("2.50"), {"title": "Miel"}).to_row("b1")
    assert row == {
        "buyer_id": "b1",
        "product_id": "p1",
        "quantity": 5,
        "unit_price": "2.50",
        "product": {"title": "Miel"},
    }
