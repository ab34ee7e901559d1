# storefront/services/cart_state.py
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable

from storefront.core.clock import utc_now
from storefront.schemas.cart import (
    CartSnapshot,
    Collection,
    LineItem,
    ProductSnapshot,
    SavedItem,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class MutationKind(str, Enum):
    UPSERT = "upsert"
    DELETE = "delete"
    WISHLIST = "wishlist"


class Channel(str, Enum):
    ITEMS = "items"
    WISHLIST = "wishlist"


@dataclass(frozen=True)
class PendingMutation:
    """
    A remote write queued by a local mutation.

    seq is per identity and strictly increasing; reconciliation uses it to
    drop responses that arrive after a newer one was already applied.
    """

    kind: MutationKind
    key: str
    seq: int
    mutated_at: datetime
    collection: Collection | None = None
    quantity: int | None = None
    member: bool | None = None

    @property
    def channel(self) -> Channel:
        if self.kind == MutationKind.WISHLIST:
            return Channel.WISHLIST
        return Channel.ITEMS


@dataclass
class TrackedEntry:
    """
    Write-through cache slot for one cart/saved identity.

    value=None marks a local delete still waiting for the store.
    confirmed is the last value the store acknowledged (None: absent
    server-side); a failed mutation rolls back to it once no older
    mutation is still in flight.
    """

    key: str
    value: LineItem | SavedItem | None
    updated_at: datetime
    confirmed: LineItem | SavedItem | None = None

    @property
    def collection(self) -> Collection | None:
        if isinstance(self.value, LineItem):
            return Collection.CART
        if isinstance(self.value, SavedItem):
            return Collection.SAVED
        return None


@dataclass
class WishlistSlot:
    product_id: str
    member: bool
    updated_at: datetime
    confirmed: bool = False


@dataclass(frozen=True)
class Notice:
    """
    User-visible message: a warning (stock clamp, already saved, ...) or a
    success once the store confirms a write.
    """

    kind: str
    message: str
    key: str | None = None
    level: str = "warning"


def snapshot_fields(item: ProductSnapshot) -> dict:
    data = item.model_dump(include=set(ProductSnapshot.model_fields))
    data["out_of_stock"] = False
    return data


class CartState:
    """
    In-memory cart, saved-for-later and wishlist collections.

    Every operation:
      - applies synchronously and returns the new CartSnapshot
      - queues the matching remote write in the outbox (see drain_outbox)
      - depends only on (previous state, arguments, clock)

    One TrackedEntry per identity means an identity is in the cart or in
    saved, never both.
    """

    def __init__(self, clock: Clock | None = None):
        self._clock = clock or utc_now
        self._entries: dict[str, TrackedEntry] = {}
        self._wishlist: dict[str, WishlistSlot] = {}
        self._local_seq: dict[tuple[Channel, str], int] = {}
        self._server_seq: dict[tuple[Channel, str], int] = {}
        # seq -> value that mutation put on screen, until its response lands
        self._inflight: dict[tuple[Channel, str], dict[int, object]] = {}
        self._versions: dict[tuple[Channel, str], int] = {}
        self._outbox: list[PendingMutation] = []
        self.notices: list[Notice] = []

    # ---- queries ----

    def snapshot(self) -> CartSnapshot:
        return CartSnapshot(
            cart_items=[e.value for e in self._entries.values() if isinstance(e.value, LineItem)],
            saved_items=[e.value for e in self._entries.values() if isinstance(e.value, SavedItem)],
            wishlist=[pid for pid, slot in self._wishlist.items() if slot.member],
        )

    def cart_items(self) -> list[LineItem]:
        return self.snapshot().cart_items

    def is_in_cart(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.collection == Collection.CART

    def is_saved(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.collection == Collection.SAVED

    def cart_quantity(self, key: str) -> int:
        entry = self._entries.get(key)
        if entry is not None and isinstance(entry.value, LineItem):
            return entry.value.quantity
        return 0

    def is_in_wishlist(self, product_id: str) -> bool:
        slot = self._wishlist.get(product_id)
        return slot is not None and slot.member

    # ---- mutations ----

    def add_item(self, item: ProductSnapshot, quantity: int = 1) -> CartSnapshot:
        """
        Add `quantity` of `item` to the cart.

        Merges into an existing cart line (summing quantities) and clamps
        to stock. An identity sitting in saved moves to the cart.
        quantity < 1 is rejected with a notice.
        """
        key = item.key
        if quantity < 1:
            self._notice("invalid_quantity", "Quantity must be at least 1", key)
            return self.snapshot()

        stock = item.stock_available
        entry = self._entries.get(key)
        current = entry.value if entry is not None else None

        if stock == 0:
            if current is not None:
                self._flag_out_of_stock(entry)
            self._notice("out_of_stock", f"{item.name} is out of stock", key)
            return self.snapshot()

        if isinstance(current, LineItem):
            new_quantity = min(current.quantity + quantity, stock)
            if new_quantity == current.quantity:
                self._notice(
                    "max_stock",
                    f"{item.name} is already at maximum quantity",
                    key,
                )
                return self.snapshot()
            value = current.model_copy(
                update={
                    "quantity": new_quantity,
                    "stock_available": stock,
                    "out_of_stock": False,
                }
            )
            requested = current.quantity + quantity
        else:
            new_quantity = min(quantity, stock)
            value = LineItem(**snapshot_fields(item), quantity=new_quantity)
            requested = quantity

        if requested > new_quantity:
            self._notice("max_stock", f"Only {stock} of {item.name} available", key)

        self._write(key, value)
        return self.snapshot()

    def remove_item(self, key: str) -> CartSnapshot:
        """
        Delete `key` from whichever collection holds it. Safe to retry.
        """
        entry = self._entries.get(key)
        if entry is None or entry.value is None:
            return self.snapshot()

        collection = entry.collection
        entry.value = None
        entry.updated_at = self._clock()
        self._enqueue(MutationKind.DELETE, key, entry.updated_at, None, collection=collection)
        return self.snapshot()

    def update_quantity(self, key: str, quantity: int) -> CartSnapshot:
        """
        Set the quantity of a cart line.

        quantity < 1 is rejected; quantity above stock is clamped to stock.
        """
        entry = self._entries.get(key)
        if entry is None or not isinstance(entry.value, LineItem):
            return self.snapshot()

        current = entry.value
        if quantity < 1:
            self._notice("invalid_quantity", "Quantity must be at least 1", key)
            return self.snapshot()

        if current.stock_available == 0:
            self._flag_out_of_stock(entry)
            self._notice("out_of_stock", f"{current.name} is out of stock", key)
            return self.snapshot()

        new_quantity = min(quantity, current.stock_available)
        if new_quantity < quantity:
            self._notice(
                "max_stock",
                f"{current.name} is at maximum available quantity",
                key,
            )
        if new_quantity == current.quantity:
            return self.snapshot()

        self._write(key, current.model_copy(update={"quantity": new_quantity}))
        return self.snapshot()

    def move_to_saved(self, key: str) -> CartSnapshot:
        entry = self._entries.get(key)
        if entry is None or not isinstance(entry.value, LineItem):
            return self.snapshot()

        self._write(key, SavedItem(**snapshot_fields(entry.value)))
        return self.snapshot()

    def move_to_cart(self, key: str) -> CartSnapshot:
        """
        Move a saved item back to the cart with quantity 1.

        Rejected when the item has no stock; it stays in saved, flagged.
        """
        entry = self._entries.get(key)
        if entry is None or not isinstance(entry.value, SavedItem):
            return self.snapshot()

        saved = entry.value
        if saved.stock_available == 0:
            self._flag_out_of_stock(entry)
            self._notice("out_of_stock", f"{saved.name} is out of stock", key)
            return self.snapshot()

        self._write(key, LineItem(**snapshot_fields(saved), quantity=1))
        return self.snapshot()

    def clear_cart(self) -> CartSnapshot:
        for key in [k for k in self._entries if self.is_in_cart(k)]:
            self.remove_item(key)
        return self.snapshot()

    def toggle_wishlist(self, product_id: str) -> CartSnapshot:
        """
        Flip wishlist membership.

        The local flag always follows program order; responses from the
        store are matched by sequence number, so a double toggle ends where
        it started no matter which response lands first.
        """
        now = self._clock()
        slot = self._wishlist.get(product_id)
        if slot is None:
            slot = WishlistSlot(product_id=product_id, member=False, updated_at=now)
            self._wishlist[product_id] = slot

        slot.member = not slot.member
        slot.updated_at = now
        self._enqueue(MutationKind.WISHLIST, product_id, now, slot.member, member=slot.member)
        return self.snapshot()

    # ---- outbox ----

    def drain_outbox(self) -> list[PendingMutation]:
        pending, self._outbox = self._outbox, []
        return pending

    def drain_notices(self) -> list[Notice]:
        notices, self.notices = self.notices, []
        return notices

    # ---- reconciliation hooks ----

    def tracked(self, key: str) -> TrackedEntry | None:
        return self._entries.get(key)

    def tracked_keys(self) -> list[str]:
        return list(self._entries)

    def put(self, entry: TrackedEntry) -> None:
        self._entries[entry.key] = entry

    def drop(self, key: str) -> None:
        self._entries.pop(key, None)

    def wishlist_slot(self, product_id: str) -> WishlistSlot | None:
        return self._wishlist.get(product_id)

    def wishlist_ids(self) -> list[str]:
        return list(self._wishlist)

    def put_wishlist(self, slot: WishlistSlot) -> None:
        self._wishlist[slot.product_id] = slot

    def drop_wishlist(self, product_id: str) -> None:
        self._wishlist.pop(product_id, None)

    def is_stale(self, mutation: PendingMutation) -> bool:
        """
        True if the response no longer matters: a newer seq already
        succeeded, or this seq was already settled.
        """
        slot = (mutation.channel, mutation.key)
        return (
            mutation.seq <= self._server_seq.get(slot, 0)
            or mutation.seq not in self._inflight.get(slot, {})
        )

    def is_latest(self, mutation: PendingMutation) -> bool:
        """True if no newer mutation of the identity is still awaiting the store."""
        pending = self._inflight.get((mutation.channel, mutation.key), {})
        return bool(pending) and mutation.seq == max(pending)

    def settle_success(self, mutation: PendingMutation) -> None:
        """
        The store applied `mutation`; every older seq it overwrote can no
        longer affect the identity.
        """
        slot = (mutation.channel, mutation.key)
        self._server_seq[slot] = mutation.seq
        pending = self._inflight.get(slot, {})
        for seq in [s for s in pending if s <= mutation.seq]:
            del pending[seq]
        self._bump(slot)

    def settle_failure(self, mutation: PendingMutation) -> tuple[bool, object]:
        """
        The store rejected `mutation`. Older mutations still in flight keep
        their chance to land.

        Returns (found, value): the value the newest remaining in-flight
        mutation put on screen, i.e. the pre-mutation value. found is False
        when nothing older is in flight and the confirmed value applies.
        """
        slot = (mutation.channel, mutation.key)
        pending = self._inflight.get(slot, {})
        pending.pop(mutation.seq, None)
        self._bump(slot)
        if not pending:
            return False, None
        return True, pending[max(pending)]

    def forget_inflight(self, channel: Channel, key: str) -> None:
        """Identity dropped locally; responses still on the way are stale."""
        self._inflight.pop((channel, key), None)
        self._bump((channel, key))

    def has_pending(self, channel: Channel, key: str) -> bool:
        return bool(self._inflight.get((channel, key)))

    def reconciled_marks(self) -> dict[tuple[Channel, str], int]:
        """
        Per-identity change counters. Taken before a full fetch so the
        merge can tell which identities changed since.
        """
        return dict(self._versions)

    def changed_since(
        self,
        marks: dict[tuple[Channel, str], int],
        channel: Channel,
        key: str,
    ) -> bool:
        """
        True if `key` still has a write in flight, or was written or
        reconciled after `marks` was taken.
        """
        slot = (channel, key)
        return self.has_pending(channel, key) or self._versions.get(slot, 0) > marks.get(slot, 0)

    def requeue(self, key: str, value: LineItem) -> None:
        """Queue a fresh write for `key` with an already-applied value."""
        self._write(key, value)

    def notice(
        self,
        kind: str,
        message: str,
        key: str | None = None,
        level: str = "warning",
    ) -> None:
        self.notices.append(Notice(kind=kind, message=message, key=key, level=level))

    def reset(self, keep_wishlist: bool = False) -> None:
        """
        Forget all collections (logout). Sequence counters survive so
        late responses are still recognised as stale.
        """
        self._entries.clear()
        if not keep_wishlist:
            self._wishlist.clear()
        self._outbox.clear()
        self.notices.clear()

    # ---- helpers ----

    def _write(self, key: str, value: LineItem | SavedItem) -> None:
        now = self._clock()
        entry = self._entries.get(key)
        if entry is None:
            entry = TrackedEntry(key=key, value=value, updated_at=now)
            self._entries[key] = entry
        else:
            moved = entry.collection is not None and type(entry.value) is not type(value)
            entry.value = value
            entry.updated_at = now
            if moved:
                # moved items show up at the end of their new list
                self._entries[key] = self._entries.pop(key)

        quantity = value.quantity if isinstance(value, LineItem) else None
        self._enqueue(
            MutationKind.UPSERT,
            key,
            now,
            value,
            collection=entry.collection,
            quantity=quantity,
        )

    def _enqueue(
        self,
        kind: MutationKind,
        key: str,
        mutated_at: datetime,
        shown,
        **fields,
    ) -> None:
        channel = Channel.WISHLIST if kind == MutationKind.WISHLIST else Channel.ITEMS
        seq = self._local_seq.get((channel, key), 0) + 1
        self._local_seq[(channel, key)] = seq
        self._inflight.setdefault((channel, key), {})[seq] = shown
        self._bump((channel, key))
        mutation = PendingMutation(
            kind=kind,
            key=key,
            seq=seq,
            mutated_at=mutated_at,
            **fields,
        )
        self._outbox.append(mutation)
        logger.debug("Queued %s for %s (seq %s)", kind.value, key, seq)

    def _bump(self, slot: tuple[Channel, str]) -> None:
        self._versions[slot] = self._versions.get(slot, 0) + 1

    def _flag_out_of_stock(self, entry: TrackedEntry) -> None:
        entry.value = entry.value.model_copy(
            update={"stock_available": 0, "out_of_stock": True}
        )

    def _notice(self, kind: str, message: str, key: str | None) -> None:
        self.notices.append(Notice(kind=kind, message=message, key=key))
