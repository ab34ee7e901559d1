# storefront/services/cart_session.py
import asyncio
import logging
from decimal import Decimal
from typing import Callable, Iterable

from storefront.core.config import Settings, get_settings
from storefront.core.errors import StoreError
from storefront.core.local_store import InMemoryRemoteStore
from storefront.core.store_client import RemoteStore
from storefront.schemas.cart import CartSnapshot, ProductSnapshot
from storefront.schemas.pricing import PricingSnapshot, ShippingOption
from storefront.services.cart_state import (
    CartState,
    Clock,
    MutationKind,
    Notice,
    PendingMutation,
)
from storefront.services.pricing import (
    DEFAULT_SHIPPING_OPTIONS,
    compute_pricing,
    find_shipping_option,
)
from storefront.services.promo_validator import (
    PromoCodeValidator,
    PromoLookup,
    PromoStatus,
)
from storefront.services.reconciliation import (
    Revalidator,
    apply_confirmation,
    apply_failure,
    merge_remote,
)

logger = logging.getLogger(__name__)

GUEST_USER_ID = "guest"

Subscriber = Callable[[CartSnapshot], None]


class CartSession:
    """
    One user's cart, saved-for-later list, wishlist and checkout choices.

    Responsibilities:
      - apply every mutation optimistically and push it to the store
      - fold store responses back in (see services.reconciliation)
      - revalidate against the store periodically and on focus
      - derive pricing from the current cart
      - notify subscribers whenever the visible collections change

    Lifecycle:

        session = CartSession(user_id, HttpRemoteStore(token=token))
        await session.hydrate()
        session.start_revalidation()
        ...
        await session.teardown()   # on logout

    Mutations must be called from inside the running event loop. None of
    them raise on store failures; check `last_failure` and `drain_notices()`.
    A failed write is rolled back and followed by a refetch of the store.
    """

    def __init__(
        self,
        user_id: str,
        store: RemoteStore,
        settings: Settings | None = None,
        clock: Clock | None = None,
        promo_lookup: PromoLookup | None = None,
        shipping_options: Iterable[ShippingOption] = DEFAULT_SHIPPING_OPTIONS,
    ):
        self.user_id = user_id
        self.store = store
        self.settings = settings or get_settings()

        self.state = CartState(clock)
        self.promo = PromoCodeValidator(
            lookup=promo_lookup or store.lookup_promo_code,
            clock=clock,
        )
        self.shipping_options = tuple(shipping_options)
        self.shipping_option_id: str | None = None
        self.gift_wrap = False

        self.hydrated = False
        self.last_failure: StoreError | None = None

        self._inflight: set[asyncio.Task] = set()
        self._subscribers: list[Subscriber] = []
        self._revalidator = Revalidator(
            self._refresh,
            interval=self.settings.REVALIDATE_INTERVAL_SECONDS,
            dedupe_interval=self.settings.REVALIDATE_DEDUPE_SECONDS,
        )

    @classmethod
    def guest(
        cls,
        catalog: Iterable[ProductSnapshot] = (),
        settings: Settings | None = None,
        clock: Clock | None = None,
    ) -> "CartSession":
        """
        Session with no account; collections live only in this process.
        """
        return cls(
            GUEST_USER_ID,
            InMemoryRemoteStore(catalog),
            settings=settings,
            clock=clock,
        )

    # ---- lifecycle ----

    async def hydrate(self) -> bool:
        """
        Load the user's collections from the store. Returns False (and
        records last_failure) if the store could not be reached.
        """
        ok = await self._refresh()
        self.hydrated = ok
        logger.info("Session for %s hydrated: %s", self.user_id, ok)
        return ok

    def start_revalidation(self) -> None:
        self._revalidator.start()

    def on_focus(self) -> asyncio.Task | None:
        """Window regained focus; revalidate unless one just ran."""
        return self._revalidator.trigger()

    async def revalidate(self, force: bool = False) -> None:
        """
        Revalidate now. force=True cancels an in-flight fetch and starts
        over; otherwise an in-flight fetch is joined.
        """
        if force:
            task = self._revalidator.supersede()
        else:
            task = self._revalidator.trigger()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def wait_idle(self) -> None:
        """
        Wait until every dispatched store write (and follow-up) settled,
        along with any refetch a failed write started.
        """
        while self._inflight or self._revalidator.in_flight:
            tasks = list(self._inflight)
            if self._revalidator.task is not None:
                tasks.append(self._revalidator.task)
            await asyncio.gather(*tasks, return_exceptions=True)

    async def teardown(self) -> None:
        """
        Logout: settle outstanding writes, stop revalidating and forget
        everything user-specific.
        """
        await self.wait_idle()
        await self._revalidator.stop()

        keep_wishlist = not self.settings.CLEAR_WISHLIST_ON_LOGOUT
        self.state.reset(keep_wishlist=keep_wishlist)
        self.promo.remove()
        self.shipping_option_id = None
        self.gift_wrap = False
        self.last_failure = None
        self.hydrated = False

        logger.info("Session for %s torn down", self.user_id)
        self._notify()

    # ---- reads ----

    @property
    def snapshot(self) -> CartSnapshot:
        return self.state.snapshot()

    @property
    def pricing(self) -> PricingSnapshot:
        return compute_pricing(
            self.state.cart_items(),
            find_shipping_option(self.shipping_options, self.shipping_option_id),
            self.gift_wrap,
            self.promo.application,
            tax_rate=self.settings.TAX_RATE,
            gift_wrap_fee=self.settings.GIFT_WRAP_FEE,
        )

    def subtotal(self) -> Decimal:
        return self.pricing.subtotal

    def drain_notices(self) -> list[Notice]:
        return self.state.drain_notices()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Call `callback(snapshot)` on every visible change. Returns an
        unsubscribe function.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    # ---- mutations ----

    def add_item(self, item: ProductSnapshot, quantity: int = 1) -> CartSnapshot:
        self.state.add_item(item, quantity)
        return self._dispatch()

    def remove_item(self, key: str) -> CartSnapshot:
        self.state.remove_item(key)
        return self._dispatch()

    def update_quantity(self, key: str, quantity: int) -> CartSnapshot:
        self.state.update_quantity(key, quantity)
        return self._dispatch()

    def move_to_saved(self, key: str) -> CartSnapshot:
        self.state.move_to_saved(key)
        return self._dispatch()

    def move_to_cart(self, key: str) -> CartSnapshot:
        self.state.move_to_cart(key)
        return self._dispatch()

    def toggle_wishlist(self, product_id: str) -> CartSnapshot:
        self.state.toggle_wishlist(product_id)
        return self._dispatch()

    def clear_cart(self) -> CartSnapshot:
        self.state.clear_cart()
        return self._dispatch()

    # ---- checkout choices ----

    def select_shipping(self, option_id: str | None) -> PricingSnapshot:
        if option_id is not None and find_shipping_option(self.shipping_options, option_id) is None:
            raise ValueError(f"Unknown shipping option: {option_id}")
        self.shipping_option_id = option_id
        return self.pricing

    def set_gift_wrap(self, enabled: bool) -> PricingSnapshot:
        self.gift_wrap = enabled
        return self.pricing

    async def apply_promo(self, code: str) -> PromoStatus:
        status = await self.promo.submit(code, self.subtotal)
        if self.promo.error is not None and status != PromoStatus.REJECTED:
            self.last_failure = self.promo.error
        return status

    def remove_promo(self) -> PromoStatus:
        return self.promo.remove()

    # ---- internal helpers ----

    def _dispatch(self) -> CartSnapshot:
        loop = asyncio.get_running_loop()
        for mutation in self.state.drain_outbox():
            task = loop.create_task(self._send(mutation))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
        return self._notify()

    async def _send(self, mutation: PendingMutation) -> None:
        try:
            result = await self._call_store(mutation)
        except StoreError as exc:
            logger.warning(
                "%s %s failed (%s): %s",
                mutation.kind.value,
                mutation.key,
                exc.kind,
                exc.message,
            )
            changed = apply_failure(self.state, mutation, exc)
            if changed:
                self.last_failure = exc
                # the write may have landed anyway; re-read store truth
                self._revalidator.supersede()
        else:
            changed = apply_confirmation(self.state, mutation, result)

        # clamps queue a follow-up write
        if changed:
            self._dispatch()

    async def _call_store(self, mutation: PendingMutation):
        if mutation.kind == MutationKind.UPSERT:
            return await self.store.upsert_entry(
                self.user_id,
                mutation.key,
                mutation.collection,
                mutation.quantity,
                mutation.mutated_at,
            )
        if mutation.kind == MutationKind.DELETE:
            await self.store.delete_entry(self.user_id, mutation.key, mutation.mutated_at)
            return None

        return await self.store.set_wishlist_entry(
            self.user_id,
            mutation.key,
            mutation.member,
            mutation.mutated_at,
        )

    async def _refresh(self) -> bool:
        marks = self.state.reconciled_marks()
        try:
            collections, wishlist = await asyncio.gather(
                self.store.fetch_collection(self.user_id),
                self.store.fetch_wishlist(self.user_id),
            )
        except StoreError as exc:
            logger.warning("Revalidation for %s failed: %s", self.user_id, exc.message)
            self.last_failure = exc
            return False

        merge_remote(self.state, collections, wishlist, marks)
        logger.debug("Revalidated %s", self.user_id)
        self._notify()
        return True

    def _notify(self) -> CartSnapshot:
        snapshot = self.state.snapshot()
        for callback in list(self._subscribers):
            callback(snapshot)
        return snapshot
