import asyncio
import random
from decimal import Decimal

import pytest

from freshcart.cart.models import CartEntry
from freshcart.cart.store import CartStore
from freshcart.errors import RemoteSyncError, ValidationError

BUYER = "b1"

def _entry(pid, qty, price):
    return CartEntry(pid, qty, Decimal(price), {"title": pid})

async def _loaded(remote):
    store = CartStore(BUYER, remote=remote)
    await store.fetch()
    return store

def test_add_merges_quantities(cart_remote):
    async def scenario():
        store = await _loaded(cart_remote)
        await store.add_item("p", 2, unit_price="10")
        await store.add_item("p", 3)
        return store

    store = asyncio.run(scenario())
    assert [(e.product_id, e.quantity) for e in store.items()] == [("p", 5)]
    assert store.total_items() == 5
    assert store.total_price() == Decimal("50.00")
    # Remote: upsert de la quantité absolue
    assert cart_remote.quantities(BUYER) == {"p": 5}
    assert ("add_item", BUYER, "p", 5) in cart_remote.calls

def test_price_snapshot_is_kept_on_merge(cart_remote):
    async def scenario():
        store = await _loaded(cart_remote)
        await store.add_item("p", 1, unit_price="10")
        await store.add_item("p", 1, unit_price="99")
        return store

    store = asyncio.run(scenario())
    assert store.get("p").unit_price == Decimal("10.00")

def test_price_taken_from_metadata(cart_remote):
    async def scenario():
        store = await _loaded(cart_remote)
        await store.add_item("p", 2, metadata={"price": 4.5, "title": "Oeufs"})
        return store

    assert asyncio.run(scenario()).total_price() == Decimal("9.00")

@pytest.mark.parametrize("qty", [0, -1, 1.5, True, "2"])
def test_add_rejects_invalid_quantity_before_remote(cart_remote, qty):
    async def scenario():
        store = CartStore(BUYER, remote=cart_remote)
        with pytest.raises(ValidationError):
            await store.add_item("p", qty, unit_price="1")

    asyncio.run(scenario())
    assert cart_remote.calls == []

def test_add_new_entry_without_price_is_rejected(cart_remote):
    async def scenario():
        store = CartStore(BUYER, remote=cart_remote)
        with pytest.raises(ValidationError):
            await store.add_item("p", 1)

    asyncio.run(scenario())
    # Relecture du panier autorisée, aucune écriture
    assert cart_remote.call_names() == ["get_items"]

def test_update_to_zero_is_remove(cart_remote):
    cart_remote.seed(BUYER, _entry("a", 1, "3"), _entry("b", 2, "4"))

    async def scenario():
        store = await _loaded(cart_remote)
        await store.update_quantity("a", 0)
        await store.update_quantity("b", 5)
        return store

    store = asyncio.run(scenario())
    assert store.get("a") is None
    assert store.get("b").quantity == 5
    assert cart_remote.quantities(BUYER) == {"b": 5}
    assert "remove_item" in cart_remote.call_names()

def test_clear_cart(cart_remote):
    cart_remote.seed(BUYER, _entry("a", 1, "3"), _entry("b", 2, "4"))

    async def scenario():
        store = await _loaded(cart_remote)
        await store.clear_cart()
        return store

    store = asyncio.run(scenario())
    assert store.items() == []
    assert cart_remote.quantities(BUYER) == {}

def test_local_update_visible_before_remote_leg(cart_remote):
    cart_remote.delays["add_item"] = 0.05

    async def scenario():
        store = await _loaded(cart_remote)
        task = asyncio.ensure_future(store.add_item("p", 2, unit_price="1"))
        await asyncio.sleep(0)
        seen_locally = store.total_items()
        seen_remotely = dict(cart_remote.quantities(BUYER))
        await task
        return seen_locally, seen_remotely

    seen_locally, seen_remotely = asyncio.run(scenario())
    assert seen_locally == 2
    assert seen_remotely == {}

def test_remote_writes_keep_issue_order(cart_remote):
    # L'ajout est lent, la suppression rapide: sans file série, la suppression arriverait avant
    cart_remote.delays["add_item"] = 0.05

    async def scenario():
        store = await _loaded(cart_remote)
        await asyncio.gather(store.add_item("p", 1, unit_price="2"), store.remove_item("p"))
        return store

    store = asyncio.run(scenario())
    assert cart_remote.call_names()[-2:] == ["add_item", "remove_item"]
    assert cart_remote.quantities(BUYER) == {}
    assert store.items() == []

def test_rapid_quantity_updates_last_one_wins(cart_remote):
    cart_remote.seed(BUYER, _entry("p", 1, "2"))
    cart_remote.delays["update_quantity"] = 0.01

    async def scenario():
        store = await _loaded(cart_remote)
        await asyncio.gather(*(store.update_quantity("p", q) for q in (2, 3, 4, 5)))
        return store

    store = asyncio.run(scenario())
    assert store.get("p").quantity == 5
    assert cart_remote.quantities(BUYER) == {"p": 5}

def test_remote_failure_resyncs_instead_of_raising(cart_remote):
    cart_remote.seed(BUYER, _entry("a", 1, "3"))
    cart_remote.fail_next("add_item")

    async def scenario():
        store = await _loaded(cart_remote)
        ok = await store.add_item("p", 2, unit_price="5")
        return store, ok

    store, ok = asyncio.run(scenario())
    assert ok is False
    assert store.error
    # Vérité distante reprise, pas de compensation devinée
    assert [e.product_id for e in store.items()] == ["a"]
    assert cart_remote.call_names().count("get_items") == 2

def test_resync_replays_still_queued_mutations(cart_remote):
    cart_remote.fail_next("add_item")

    async def scenario():
        store = await _loaded(cart_remote)
        results = await asyncio.gather(
            store.add_item("p1", 1, unit_price="1"),
            store.add_item("p2", 2, unit_price="2"),
        )
        return store, results

    store, results = asyncio.run(scenario())
    assert results == [False, True]
    assert [e.product_id for e in store.items()] == ["p2"]
    assert cart_remote.quantities(BUYER) == {"p2": 2}

def test_retire_removes_only_given_products(cart_remote):
    cart_remote.seed(BUYER, _entry("a", 1, "1"), _entry("b", 1, "1"), _entry("c", 1, "1"))

    async def scenario():
        store = await _loaded(cart_remote)
        await store.retire(["b"])
        return store

    store = asyncio.run(scenario())
    assert sorted(e.product_id for e in store.items()) == ["a", "c"]
    assert cart_remote.quantities(BUYER) == {"a": 1, "c": 1}

def test_retire_failure_is_raised_after_resync(cart_remote):
    cart_remote.seed(BUYER, _entry("a", 1, "1"), _entry("b", 1, "1"))
    cart_remote.fail_next("clear_items")

    async def scenario():
        store = await _loaded(cart_remote)
        with pytest.raises(RemoteSyncError):
            await store.retire(["a"])
        return store

    store = asyncio.run(scenario())
    assert sorted(e.product_id for e in store.items()) == ["a", "b"]

def test_discount_recomputed_on_current_subtotal(cart_remote):
    async def scenario():
        store = await _loaded(cart_remote)
        await store.add_item("p", 1, unit_price="100")
        store.apply_discount("fresh10")
        first = store.discount_amount()
        await store.add_item("q", 1, unit_price="20")
        return store, first

    store, first = asyncio.run(scenario())
    assert first == Decimal("10.00")
    assert store.discount_amount() == Decimal("12.00")
    store.remove_discount()
    assert store.discount_amount() == Decimal("0.00")

def test_unknown_discount_keeps_previous_state(cart_remote):
    store = CartStore(BUYER, remote=cart_remote)
    with pytest.raises(ValidationError):
        store.apply_discount("BOGUS")
    assert store.discount is None
    assert store.discount_amount() == Decimal("0.00")

def test_snapshot_items_rejects_unknown_product(cart_remote):
    cart_remote.seed(BUYER, _entry("a", 1, "1"))

    async def scenario():
        store = await _loaded(cart_remote)
        assert [e.product_id for e in store.snapshot_items(["a"])] == ["a"]
        with pytest.raises(ValidationError):
            store.snapshot_items(["zzz"])

    asyncio.run(scenario())

def test_totals_follow_any_mutation_sequence(cart_remote):
    rng = random.Random(7)
    prices = {"p1": Decimal("1.25"), "p2": Decimal("3.10"), "p3": Decimal("9.99")}

    async def scenario():
        store = await _loaded(cart_remote)
        expected = {}
        for _ in range(60):
            pid = rng.choice(sorted(prices))
            op = rng.choice(["add", "update", "remove"])
            if op == "add":
                qty = rng.randint(1, 4)
                await store.add_item(pid, qty, unit_price=prices[pid])
                expected[pid] = expected.get(pid, 0) + qty
            elif op == "update":
                qty = rng.randint(-1, 5)
                await store.update_quantity(pid, qty)
                if qty <= 0:
                    expected.pop(pid, None)
                elif pid in expected:
                    expected[pid] = qty
            else:
                await store.remove_item(pid)
                expected.pop(pid, None)
            assert store.total_items() == sum(expected.values())
            assert store.total_price() == sum((prices[p] * q for p, q in expected.items()), Decimal("0.00"))
        return expected

    expected = asyncio.run(scenario())
    assert cart_remote.quantities(BUYER) == expected
