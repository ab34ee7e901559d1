"""Shared test doubles: a ticking clock, a gated store and product factories."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from storefront.core.errors import StoreError
from storefront.core.local_store import InMemoryRemoteStore
from storefront.schemas.cart import ProductSnapshot

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class TickingClock:
    """Returns T0, T0+1s, T0+2s, ... so every mutation has its own timestamp."""

    def __init__(self, start: datetime = T0, step: timedelta = timedelta(seconds=1)):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now += self.step
        return current


@dataclass
class Held:
    method: str
    key: str
    gate: asyncio.Event = field(default_factory=asyncio.Event)
    done: asyncio.Event = field(default_factory=asyncio.Event)
    error: StoreError | None = None


class GatedStore(InMemoryRemoteStore):
    """
    InMemoryRemoteStore whose writes wait until the test releases them,
    so a test decides the order responses come back in.
    """

    def __init__(self, catalog=()):
        super().__init__(catalog)
        self.held: list[Held] = []

    async def wait_held(self, count: int) -> None:
        while len(self.held) < count:
            await asyncio.sleep(0)

    async def release(self, index: int, error: StoreError | None = None) -> None:
        held = self.held[index]
        held.error = error
        held.gate.set()
        await held.done.wait()

    async def release_all(self) -> None:
        for index, held in enumerate(self.held):
            if not held.gate.is_set():
                await self.release(index)

    async def _through_gate(self, method, key, call):
        held = Held(method=method, key=key)
        self.held.append(held)
        await held.gate.wait()
        try:
            if held.error is not None:
                raise held.error
            return await call()
        finally:
            held.done.set()

    async def upsert_entry(self, user_id, key, collection, quantity, mutated_at):
        parent = super().upsert_entry
        return await self._through_gate(
            "upsert_entry",
            key,
            lambda: parent(user_id, key, collection, quantity, mutated_at),
        )

    async def delete_entry(self, user_id, key, mutated_at):
        parent = super().delete_entry
        return await self._through_gate(
            "delete_entry",
            key,
            lambda: parent(user_id, key, mutated_at),
        )

    async def set_wishlist_entry(self, user_id, product_id, member, mutated_at):
        parent = super().set_wishlist_entry
        return await self._through_gate(
            "set_wishlist_entry",
            product_id,
            lambda: parent(user_id, product_id, member, mutated_at),
        )


def make_product(
    product_id: str = "cake-1",
    price: str = "50.00",
    stock: int = 10,
    variant_id: str | None = None,
    name: str | None = None,
) -> ProductSnapshot:
    return ProductSnapshot(
        product_id=product_id,
        variant_id=variant_id,
        variant_name="Large" if variant_id else None,
        name=name or f"Product {product_id}",
        unit_price=Decimal(price),
        stock_available=stock,
        slug=product_id,
    )


