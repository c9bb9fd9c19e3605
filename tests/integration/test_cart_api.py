from decimal import Decimal

from freshcart.cart.models import CartEntry

BUYER = "buyer-1"

def test_missing_buyer_header_is_401(client):
    res = client.get("/api/v1/cart", headers={"X-Buyer-Id": ""})
    assert res.status_code == 401

def test_get_loads_remote_cart(client, cart_remote):
    cart_remote.seed(BUYER, CartEntry("p1", 2, Decimal("10"), {"title": "Pommes"}))
    data = client.get("/api/v1/cart").json()
    assert data["total_items"] == 2
    assert data["subtotal"] == "20.00"
    assert data["items"][0]["product"]["title"] == "Pommes"

def test_add_merge_update_remove(client, cart_remote):
    res = client.post("/api/v1/cart/items", json={"product_id": "p1", "quantity": 2, "unit_price": "10"})
    assert res.status_code == 200
    client.post("/api/v1/cart/items", json={"product_id": "p1", "quantity": 3})
    client.post("/api/v1/cart/items", json={"product_id": "p2", "quantity": 1, "product": {"price": 20, "title": "Miel"}})
    data = client.get("/api/v1/cart").json()
    assert data["total_items"] == 6
    assert data["subtotal"] == "70.00"
    assert cart_remote.quantities(BUYER) == {"p1": 5, "p2": 1}

    data = client.put("/api/v1/cart/items/p1", json={"quantity": 0}).json()
    assert [i["product_id"] for i in data["items"]] == ["p2"]
    data = client.delete("/api/v1/cart/items/p2").json()
    assert data["items"] == []
    assert cart_remote.quantities(BUYER) == {}

def test_invalid_quantity_is_400(client, cart_remote):
    res = client.post("/api/v1/cart/items", json={"product_id": "p1", "quantity": 0, "unit_price": "1"})
    assert res.status_code == 400
    assert "add_item" not in cart_remote.call_names()

def test_remote_failure_is_reported_not_raised(client, cart_remote):
    cart_remote.fail_next("add_item")
    res = client.post("/api/v1/cart/items", json={"product_id": "p1", "quantity": 1, "unit_price": "1"})
    assert res.status_code == 200
    assert res.json()["items"] == []
    assert res.json()["error"]

def test_discount_endpoints(client):
    client.post("/api/v1/cart/items", json={"product_id": "p1", "quantity": 1, "unit_price": "60"})
    res = client.post("/api/v1/cart/discount", json={"code": "fresh10"})
    assert res.json()["discount"] == "FRESH10"
    assert res.json()["discount_amount"] == "6.00"
    assert client.post("/api/v1/cart/discount", json={"code": "BOGUS"}).status_code == 400
    assert client.get("/api/v1/cart").json()["discount"] == "FRESH10"
    assert client.delete("/api/v1/cart/discount").json()["discount_amount"] == "0.00"

def test_clear_cart(client, cart_remote):
    cart_remote.seed(BUYER, CartEntry("p1", 1, Decimal("1")), CartEntry("p2", 1, Decimal("1")))
    assert client.delete("/api/v1/cart").json()["total_items"] == 0
    assert cart_remote.quantities(BUYER) == {}

def test_carts_are_per_buyer(client, cart_remote):
    client.post("/api/v1/cart/items", json={"product_id": "p1", "quantity": 1, "unit_price": "1"})
    other = client.get("/api/v1/cart", headers={"X-Buyer-Id": "buyer-2"}).json()
    assert other["items"] == []
    assert cart_remote.quantities("buyer-2") == {}
