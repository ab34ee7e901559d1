# storefront/services/reconciliation.py
"""
Merging store responses back into the optimistic CartState.

Three entry points:
  - apply_confirmation: one remote write succeeded
  - apply_failure:      one remote write failed
  - merge_remote:       a full revalidation fetch came back

All of them touch only the identity they are about (except merge_remote,
which walks every identity) and none of them await, so they run atomically
on the event loop.
"""

import asyncio
import logging
from typing import Awaitable, Callable

from storefront.core.clock import as_utc
from storefront.core.errors import NotFound, OutOfStock, StoreError
from storefront.schemas.cart import (
    Collection,
    LineItem,
    SavedItem,
    StoreCollections,
    StoreEntry,
)
from storefront.schemas.wishlist import WishlistEntryRead, WishlistToggleRead
from storefront.services.cart_state import (
    CartState,
    Channel,
    PendingMutation,
    TrackedEntry,
    WishlistSlot,
)

logger = logging.getLogger(__name__)


def apply_confirmation(
    state: CartState,
    mutation: PendingMutation,
    result: StoreEntry | WishlistToggleRead | None,
) -> bool:
    """
    Fold a successful store response into the state.

    Responses older than one already reconciled for the identity are
    dropped. A response for an older seq still updates the rollback
    target, but never replaces a newer optimistic value.

    Returns True if the visible state changed.
    """
    if state.is_stale(mutation):
        logger.debug("Dropping stale response for %s (seq %s)", mutation.key, mutation.seq)
        return False

    latest = state.is_latest(mutation)
    state.settle_success(mutation)

    if mutation.channel == Channel.WISHLIST:
        return _confirm_wishlist(state, mutation, result, latest)

    entry = state.tracked(mutation.key)
    if entry is None:
        return False

    previous = entry.confirmed
    server_value = result.to_local() if isinstance(result, StoreEntry) else None
    entry.confirmed = server_value
    if not latest:
        return False

    if server_value is None:
        state.drop(mutation.key)
    else:
        entry.value = server_value
        entry.updated_at = as_utc(result.updated_at)
    _success_notice(state, mutation, previous, server_value)
    return True


def _confirm_wishlist(
    state: CartState,
    mutation: PendingMutation,
    result: WishlistToggleRead | None,
    latest: bool,
) -> bool:
    slot = state.wishlist_slot(mutation.key)
    if slot is None or result is None:
        return False

    slot.confirmed = result.member
    if not latest:
        return False

    slot.member = result.member
    if slot.member:
        state.notice("wishlist_added", "Added to wishlist", mutation.key, level="success")
    else:
        state.drop_wishlist(mutation.key)
        state.notice("wishlist_removed", "Removed from wishlist", mutation.key, level="success")
    return True


def _success_notice(
    state: CartState,
    mutation: PendingMutation,
    previous: LineItem | SavedItem | None,
    current: LineItem | SavedItem | None,
) -> None:
    if isinstance(current, LineItem):
        if isinstance(previous, LineItem):
            kind, message = "cart_updated", "Cart updated"
        elif isinstance(previous, SavedItem):
            kind, message = "moved_to_cart", "Moved to cart"
        else:
            kind, message = "added_to_cart", "Added to cart"
    elif isinstance(current, SavedItem):
        if isinstance(previous, SavedItem):
            return
        kind, message = "moved_to_saved", "Moved to saved items"
    elif mutation.collection == Collection.SAVED:
        kind, message = "removed_from_saved", "Removed from saved items"
    else:
        kind, message = "removed_from_cart", "Removed from cart"
    state.notice(kind, message, mutation.key, level="success")


def apply_failure(
    state: CartState,
    mutation: PendingMutation,
    error: StoreError,
) -> bool:
    """
    Recover from a failed remote write.

      - NotFound:       the identity is gone server-side; drop it locally
      - OutOfStock:     clamp to the reported stock and push the clamped
                        quantity (stock 0 flags the line instead)
      - anything else:  roll back to the pre-mutation value

    The pre-mutation value is what the next older mutation still in flight
    put on screen; with none left it is the last confirmed value. An older
    mutation failing while a newer one is in flight only drops out of the
    rollback chain and leaves the newer value alone.

    Returns True if the visible state changed.
    """
    if state.is_stale(mutation):
        logger.debug("Dropping stale failure for %s (seq %s)", mutation.key, mutation.seq)
        return False

    latest = state.is_latest(mutation)
    older_in_flight, previous = state.settle_failure(mutation)
    if not latest:
        return False

    if mutation.channel == Channel.WISHLIST:
        slot = state.wishlist_slot(mutation.key)
        if slot is None:
            return False
        if isinstance(error, NotFound):
            state.drop_wishlist(mutation.key)
            state.forget_inflight(Channel.WISHLIST, mutation.key)
        else:
            slot.member = previous if older_in_flight else slot.confirmed
            if not slot.member and not older_in_flight:
                state.drop_wishlist(mutation.key)
        state.notice("sync_failed", "Failed to update wishlist", mutation.key)
        logger.warning("Wishlist update for %s rolled back: %s", mutation.key, error.message)
        return True

    entry = state.tracked(mutation.key)
    if entry is None:
        return False

    if isinstance(error, NotFound):
        state.drop(mutation.key)
        state.forget_inflight(Channel.ITEMS, mutation.key)
        state.notice("not_found", "Item is no longer available", mutation.key)
        logger.info("Dropped %s, store reports it gone", mutation.key)
        return True

    fallback = previous if older_in_flight else entry.confirmed

    if isinstance(error, OutOfStock) and isinstance(entry.value, LineItem):
        _clamp_to_stock(state, entry, error.available, fallback)
        return True

    if fallback is None and not older_in_flight:
        state.drop(mutation.key)
    else:
        entry.value = fallback
    state.notice("sync_failed", "Failed to update cart", mutation.key)
    logger.warning(
        "Rolled back %s after %s: %s",
        mutation.key,
        error.kind,
        error.message,
    )
    return True


def _clamp_to_stock(
    state: CartState,
    entry: TrackedEntry,
    available: int,
    fallback: LineItem | SavedItem | None,
) -> None:
    line = entry.value
    if available == 0:
        quantity = line.quantity
        if isinstance(fallback, LineItem):
            quantity = fallback.quantity
        entry.value = line.model_copy(
            update={"quantity": quantity, "stock_available": 0, "out_of_stock": True}
        )
        state.notice("out_of_stock", f"{line.name} is out of stock", entry.key)
        logger.info("%s flagged out of stock", entry.key)
        return

    clamped = line.model_copy(
        update={
            "quantity": min(line.quantity, available),
            "stock_available": available,
            "out_of_stock": False,
        }
    )
    state.requeue(entry.key, clamped)
    state.notice("max_stock", f"Only {available} of {line.name} available", entry.key)
    logger.info("%s clamped to %s", entry.key, clamped.quantity)


def merge_remote(
    state: CartState,
    collections: StoreCollections,
    wishlist: list[WishlistEntryRead],
    marks: dict[tuple[Channel, str], int] | None = None,
) -> None:
    """
    Merge a full fetch of the store into the state.

    `marks` is state.reconciled_marks() taken when the fetch started. An
    identity with a mutation reconciled after that point (or still pending)
    is "changed"; the fetched data may predate it.

      - remote only:  added
      - local only:   removed, unless changed
      - both:         unchanged identities take the store's value; changed
                      ones keep whichever side has the newer mutation
                      timestamp
    """
    if marks is None:
        marks = state.reconciled_marks()

    remote = {entry.key: entry for entry in collections.entries()}
    keys = state.tracked_keys() + [k for k in remote if state.tracked(k) is None]

    for key in keys:
        entry = state.tracked(key)
        server = remote.get(key)
        changed = state.changed_since(marks, Channel.ITEMS, key)

        if server is None:
            if entry is not None and not changed:
                logger.debug("%s gone from the store, dropping", key)
                state.drop(key)
            continue

        server_value = server.to_local()
        server_at = as_utc(server.updated_at)

        if entry is None:
            state.put(
                TrackedEntry(
                    key=key,
                    value=server_value,
                    updated_at=server_at,
                    confirmed=server_value,
                )
            )
            continue

        if not changed or server_at >= entry.updated_at:
            entry.value = server_value
            entry.updated_at = server_at
            entry.confirmed = server_value

    _merge_wishlist(state, wishlist, marks)


def _merge_wishlist(
    state: CartState,
    wishlist: list[WishlistEntryRead],
    marks: dict[tuple[Channel, str], int],
) -> None:
    remote = {row.product_id: as_utc(row.added_at) for row in wishlist}
    ids = state.wishlist_ids() + [pid for pid in remote if state.wishlist_slot(pid) is None]

    for product_id in ids:
        slot = state.wishlist_slot(product_id)
        added_at = remote.get(product_id)
        changed = state.changed_since(marks, Channel.WISHLIST, product_id)

        if added_at is None:
            if slot is not None and not changed:
                state.drop_wishlist(product_id)
            continue

        if slot is None:
            state.put_wishlist(
                WishlistSlot(
                    product_id=product_id,
                    member=True,
                    updated_at=added_at,
                    confirmed=True,
                )
            )
            continue

        if not changed or added_at >= slot.updated_at:
            slot.member = True
            slot.updated_at = added_at
            slot.confirmed = True


class Revalidator:
    """
    Runs a revalidation coroutine periodically and on demand.

    - trigger(): start one unless one is in flight (the in-flight task is
      returned instead) or the last one finished inside the dedupe window
    - supersede(): cancel the in-flight one and start fresh
    """

    def __init__(
        self,
        revalidate: Callable[[], Awaitable[None]],
        interval: float,
        dedupe_interval: float = 0.0,
    ):
        self._revalidate = revalidate
        self.interval = interval
        self.dedupe_interval = dedupe_interval
        self.runs = 0

        self._task: asyncio.Task | None = None
        self._ticker: asyncio.Task | None = None
        self._last_completed: float | None = None

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def task(self) -> asyncio.Task | None:
        return self._task if self.in_flight else None

    def trigger(self) -> asyncio.Task | None:
        if self.in_flight:
            logger.debug("Revalidation already in flight, not starting another")
            return self._task

        loop = asyncio.get_running_loop()
        if (
            self._last_completed is not None
            and loop.time() - self._last_completed < self.dedupe_interval
        ):
            logger.debug("Revalidation skipped, inside dedupe window")
            return None

        return self._start()

    def supersede(self) -> asyncio.Task:
        if self.in_flight:
            self._task.cancel()
        return self._start()

    def start(self) -> None:
        if self.interval <= 0:
            return
        if self._ticker is None or self._ticker.done():
            self._ticker = asyncio.get_running_loop().create_task(self._tick())

    async def stop(self) -> None:
        tasks = [t for t in (self._ticker, self._task) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._ticker = None
        self._task = None

    def _start(self) -> asyncio.Task:
        self.runs += 1
        self._task = asyncio.get_running_loop().create_task(self._run())
        return self._task

    async def _run(self) -> None:
        await self._revalidate()
        self._last_completed = asyncio.get_running_loop().time()

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.trigger()
