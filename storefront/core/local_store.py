# storefront/core/local_store.py
"""
In-process RemoteStore.

Backs guest sessions (no account, nothing leaves the process) and serves
as a fast stand-in for the HTTP store. Write semantics match the store
API: last write wins on mutation timestamp, deletes leave tombstones.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from storefront.core.clock import as_utc
from storefront.core.errors import NotFound, OutOfStock
from storefront.core.store_client import RemoteStore
from storefront.schemas.cart import (
    Collection,
    ProductSnapshot,
    StoreCollections,
    StoreEntry,
)
from storefront.schemas.pricing import PromoRule
from storefront.schemas.wishlist import WishlistEntryRead, WishlistToggleRead
from storefront.services.promo_validator import DEFAULT_PROMO_RULES, normalize_code

logger = logging.getLogger(__name__)


@dataclass
class _Row:
    collection: Collection | None
    quantity: int | None
    updated_at: datetime


@dataclass
class _Membership:
    member: bool
    updated_at: datetime


class InMemoryRemoteStore(RemoteStore):
    def __init__(
        self,
        catalog: Iterable[ProductSnapshot] = (),
        promo_rules: Iterable[PromoRule] = DEFAULT_PROMO_RULES,
    ):
        self._catalog: dict[str, ProductSnapshot] = {}
        self._rows: dict[tuple[str, str], _Row] = {}
        self._wishlist: dict[tuple[str, str], _Membership] = {}
        self._promo = {normalize_code(rule.code): rule for rule in promo_rules}
        self.calls: list[tuple[str, str]] = []

        for product in catalog:
            self.add_product(product)

    def add_product(self, product: ProductSnapshot) -> None:
        self._catalog[product.key] = product

    def set_stock(self, key: str, stock: int) -> None:
        product = self._catalog[key]
        self._catalog[key] = product.model_copy(update={"stock_available": stock})

    def remove_product(self, key: str) -> None:
        self._catalog.pop(key, None)

    # ---- reads ----

    async def fetch_collection(self, user_id: str) -> StoreCollections:
        self.calls.append(("fetch_collection", user_id))
        result = StoreCollections()
        for (owner, key), row in self._rows.items():
            if owner != user_id or row.collection is None or key not in self._catalog:
                continue
            entry = self._entry(key, row)
            if row.collection == Collection.CART:
                result.cart_items.append(entry)
            else:
                result.saved_items.append(entry)
        return result

    async def fetch_wishlist(self, user_id: str) -> list[WishlistEntryRead]:
        self.calls.append(("fetch_wishlist", user_id))
        return [
            WishlistEntryRead(product_id=product_id, added_at=slot.updated_at)
            for (owner, product_id), slot in self._wishlist.items()
            if owner == user_id and slot.member
        ]

    async def lookup_promo_code(self, code: str) -> PromoRule | None:
        self.calls.append(("lookup_promo_code", code))
        return self._promo.get(normalize_code(code))

    # ---- writes ----

    async def upsert_entry(
        self,
        user_id: str,
        key: str,
        collection: Collection,
        quantity: int | None,
        mutated_at: datetime,
    ) -> StoreEntry:
        self.calls.append(("upsert_entry", key))
        product = self._catalog.get(key)
        if product is None:
            raise NotFound(f"Product {key} not found", key=key)

        mutated_at = as_utc(mutated_at)
        row = self._rows.get((user_id, key))
        if row is not None and row.updated_at > mutated_at:
            logger.debug("Ignoring stale write for %s", key)
            if row.collection is None:
                raise NotFound(f"{key} was removed", key=key)
            return self._entry(key, row)

        if collection == Collection.CART:
            quantity = quantity or 1
            if quantity > product.stock_available:
                raise OutOfStock(
                    f"Only {product.stock_available} of {product.name} available",
                    available=product.stock_available,
                    key=key,
                )
        else:
            quantity = None

        row = _Row(collection=collection, quantity=quantity, updated_at=mutated_at)
        self._rows[(user_id, key)] = row
        return self._entry(key, row)

    async def delete_entry(self, user_id: str, key: str, mutated_at: datetime) -> None:
        self.calls.append(("delete_entry", key))
        mutated_at = as_utc(mutated_at)
        row = self._rows.get((user_id, key))
        if row is not None and row.updated_at > mutated_at:
            return
        self._rows[(user_id, key)] = _Row(collection=None, quantity=None, updated_at=mutated_at)

    async def set_wishlist_entry(
        self,
        user_id: str,
        product_id: str,
        member: bool,
        mutated_at: datetime,
    ) -> WishlistToggleRead:
        self.calls.append(("set_wishlist_entry", product_id))
        mutated_at = as_utc(mutated_at)
        slot = self._wishlist.get((user_id, product_id))
        if slot is None or slot.updated_at <= mutated_at:
            slot = _Membership(member=member, updated_at=mutated_at)
            self._wishlist[(user_id, product_id)] = slot
        return WishlistToggleRead(product_id=product_id, member=slot.member)

    def _entry(self, key: str, row: _Row) -> StoreEntry:
        product = self._catalog[key]
        return StoreEntry(
            **product.model_dump(exclude={"out_of_stock"}),
            out_of_stock=product.stock_available == 0,
            collection=row.collection,
            quantity=row.quantity,
            updated_at=row.updated_at,
        )
