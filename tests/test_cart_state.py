"""Tests for the optimistic cart/saved/wishlist container."""

import pytest

from storefront.core.errors import OutOfStock
from storefront.schemas.cart import Collection
from storefront.services.cart_state import CartState, MutationKind
from storefront.services.reconciliation import apply_failure
from tests.helpers import TickingClock, make_product

CAKE = make_product("cake-1", "50.00", stock=10)
TART = make_product("cake-2", "12.50", stock=2)
SOLD_OUT = make_product("cake-3", "8.00", stock=0)


@pytest.fixture
def state():
    return CartState(TickingClock())


def _kinds(state):
    return [(m.kind, m.key) for m in state.drain_outbox()]


class TestAddItem:
    def test_adds_new_line(self, state):
        snapshot = state.add_item(CAKE, 2)
        assert [(i.key, i.quantity) for i in snapshot.cart_items] == [("cake-1", 2)]
        assert snapshot.cart_count == 2

    def test_merges_instead_of_duplicating(self, state):
        state.add_item(CAKE, 1)
        snapshot = state.add_item(CAKE, 2)
        assert len(snapshot.cart_items) == 1
        assert snapshot.cart_items[0].quantity == 3

    def test_clamps_to_stock(self, state):
        snapshot = state.add_item(TART, 3)
        assert snapshot.cart_items[0].quantity == 2
        assert [n.kind for n in state.drain_notices()] == ["max_stock"]

    def test_merge_clamps_to_stock(self, state):
        state.add_item(TART, 1)
        snapshot = state.add_item(TART, 5)
        assert snapshot.cart_items[0].quantity == 2

    def test_at_max_is_a_noop_with_notice(self, state):
        state.add_item(TART, 2)
        state.drain_outbox()
        state.add_item(TART, 1)
        assert state.drain_outbox() == []
        assert state.drain_notices()[-1].kind == "max_stock"

    def test_out_of_stock_not_added(self, state):
        snapshot = state.add_item(SOLD_OUT, 1)
        assert snapshot.cart_items == []
        assert state.drain_notices()[0].kind == "out_of_stock"
        assert state.drain_outbox() == []

    def test_rejects_non_positive_quantity(self, state):
        snapshot = state.add_item(CAKE, 0)
        assert snapshot.cart_items == []
        assert state.drain_outbox() == []
        assert state.drain_notices()[-1].kind == "invalid_quantity"

    def test_variants_are_separate_lines(self, state):
        state.add_item(CAKE, 1)
        snapshot = state.add_item(make_product("cake-1", "65.00", stock=3, variant_id="large"), 1)
        assert [i.key for i in snapshot.cart_items] == ["cake-1", "cake-1:large"]

    def test_adding_saved_item_moves_it_to_cart(self, state):
        state.add_item(CAKE, 1)
        state.move_to_saved("cake-1")
        snapshot = state.add_item(CAKE, 2)
        assert snapshot.saved_items == []
        assert snapshot.cart_items[0].quantity == 2

    def test_queues_upsert(self, state):
        state.add_item(CAKE, 2)
        (mutation,) = state.drain_outbox()
        assert mutation.kind == MutationKind.UPSERT
        assert mutation.collection == Collection.CART
        assert mutation.quantity == 2
        assert mutation.seq == 1


class TestUpdateQuantity:
    def test_sets_quantity(self, state):
        state.add_item(CAKE, 1)
        assert state.update_quantity("cake-1", 4).cart_items[0].quantity == 4

    def test_rejects_below_one(self, state):
        state.add_item(CAKE, 2)
        state.drain_outbox()
        snapshot = state.update_quantity("cake-1", 0)
        assert snapshot.cart_items[0].quantity == 2
        assert state.drain_outbox() == []
        assert state.drain_notices()[-1].kind == "invalid_quantity"

    def test_clamps_to_stock(self, state):
        state.add_item(TART, 1)
        assert state.update_quantity("cake-2", 9).cart_items[0].quantity == 2

    def test_unknown_key_is_noop(self, state):
        assert state.update_quantity("ghost", 3).cart_items == []
        assert state.drain_outbox() == []

    def test_sold_out_line_rejects_edits_and_stays_flagged(self, state):
        state.add_item(CAKE, 1)
        (mutation,) = state.drain_outbox()
        apply_failure(state, mutation, OutOfStock("sold out", available=0))
        state.drain_notices()

        snapshot = state.update_quantity("cake-1", 2)
        (line,) = snapshot.cart_items
        assert line.quantity == 1
        assert line.out_of_stock
        assert state.is_in_cart("cake-1")
        assert state.drain_outbox() == []
        assert state.drain_notices()[-1].kind == "out_of_stock"


class TestRemoveAndClear:
    def test_remove(self, state):
        state.add_item(CAKE, 1)
        state.drain_outbox()
        snapshot = state.remove_item("cake-1")
        assert snapshot.cart_items == []
        assert not state.is_in_cart("cake-1")
        assert _kinds(state) == [(MutationKind.DELETE, "cake-1")]

    def test_remove_absent_is_noop(self, state):
        state.remove_item("ghost")
        assert state.drain_outbox() == []

    def test_remove_twice_queues_once(self, state):
        state.add_item(CAKE, 1)
        state.drain_outbox()
        state.remove_item("cake-1")
        state.remove_item("cake-1")
        assert len(state.drain_outbox()) == 1

    def test_clear_cart_keeps_saved(self, state):
        state.add_item(CAKE, 1)
        state.add_item(TART, 1)
        state.move_to_saved("cake-2")
        snapshot = state.clear_cart()
        assert snapshot.cart_items == []
        assert [i.key for i in snapshot.saved_items] == ["cake-2"]


class TestMoves:
    def test_move_to_saved(self, state):
        state.add_item(CAKE, 3)
        snapshot = state.move_to_saved("cake-1")
        assert snapshot.cart_items == []
        assert [i.key for i in snapshot.saved_items] == ["cake-1"]
        assert state.is_saved("cake-1") and not state.is_in_cart("cake-1")

    def test_move_to_saved_not_in_cart_is_noop(self, state):
        state.move_to_saved("cake-1")
        assert state.drain_outbox() == []

    def test_move_to_cart_resets_quantity(self, state):
        state.add_item(CAKE, 3)
        state.move_to_saved("cake-1")
        snapshot = state.move_to_cart("cake-1")
        assert snapshot.saved_items == []
        assert snapshot.cart_items[0].quantity == 1

    def test_move_to_cart_rejected_without_stock(self, state):
        state.add_item(TART, 1)
        state.move_to_saved("cake-2")
        state.tracked("cake-2").value = state.tracked("cake-2").value.model_copy(
            update={"stock_available": 0}
        )
        snapshot = state.move_to_cart("cake-2")
        assert snapshot.cart_items == []
        assert snapshot.saved_items[0].out_of_stock

    def test_moved_item_goes_to_end_of_list(self, state):
        state.add_item(CAKE, 1)
        state.add_item(TART, 1)
        state.move_to_saved("cake-1")
        snapshot = state.move_to_cart("cake-1")
        assert [i.key for i in snapshot.cart_items] == ["cake-2", "cake-1"]

    def test_move_queues_single_upsert(self, state):
        state.add_item(CAKE, 1)
        state.drain_outbox()
        state.move_to_saved("cake-1")
        (mutation,) = state.drain_outbox()
        assert mutation.kind == MutationKind.UPSERT
        assert mutation.collection == Collection.SAVED
        assert mutation.quantity is None


class TestWishlist:
    def test_toggle_on_and_off(self, state):
        assert state.toggle_wishlist("cake-1").wishlist == ["cake-1"]
        assert state.toggle_wishlist("cake-1").wishlist == []

    def test_toggle_queues_desired_membership(self, state):
        state.toggle_wishlist("cake-1")
        state.toggle_wishlist("cake-1")
        first, second = state.drain_outbox()
        assert (first.member, first.seq) == (True, 1)
        assert (second.member, second.seq) == (False, 2)

    def test_wishlist_independent_of_cart(self, state):
        state.add_item(CAKE, 1)
        state.toggle_wishlist("cake-1")
        assert state.is_in_cart("cake-1")
        assert state.is_in_wishlist("cake-1")


class TestDeterminism:
    def test_same_operations_same_snapshot(self):
        def run():
            state = CartState(TickingClock())
            state.add_item(CAKE, 2)
            state.add_item(TART, 3)
            state.move_to_saved("cake-2")
            state.toggle_wishlist("cake-3")
            state.update_quantity("cake-1", 5)
            return state.snapshot(), state.drain_outbox()

        assert run() == run()

    def test_reset_keeps_wishlist_when_asked(self, state):
        state.add_item(CAKE, 1)
        state.toggle_wishlist("cake-1")
        state.reset(keep_wishlist=True)
        snapshot = state.snapshot()
        assert snapshot.cart_items == []
        assert snapshot.wishlist == ["cake-1"]
        state.reset()
        assert state.snapshot().wishlist == []
