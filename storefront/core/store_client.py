# storefront/core/store_client.py
"""
Remote store adapters used by the cart session.

Every adapter raises only `StoreError` subclasses; HTTP statuses and
transport failures are translated here so nothing above this layer needs to
know about httpx.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from storefront.core.config import Settings, get_settings
from storefront.core.errors import NetworkFailure, NotFound, OutOfStock
from storefront.core.identity import split_key
from storefront.schemas.cart import (
    CartEntryUpsert,
    Collection,
    StoreCollections,
    StoreEntry,
)
from storefront.schemas.pricing import PromoRule
from storefront.schemas.wishlist import (
    WishlistEntryRead,
    WishlistMembershipUpdate,
    WishlistRead,
    WishlistToggleRead,
)

logger = logging.getLogger(__name__)


class RemoteStore(ABC):
    """
    Async interface to the authoritative store.

    Writes carry the client's mutation timestamp; the store keeps whichever
    write is newest per row.
    """

    @abstractmethod
    async def fetch_collection(self, user_id: str) -> StoreCollections: ...

    @abstractmethod
    async def fetch_wishlist(self, user_id: str) -> list[WishlistEntryRead]: ...

    @abstractmethod
    async def upsert_entry(
        self,
        user_id: str,
        key: str,
        collection: Collection,
        quantity: int | None,
        mutated_at: datetime,
    ) -> StoreEntry: ...

    @abstractmethod
    async def delete_entry(
        self,
        user_id: str,
        key: str,
        mutated_at: datetime,
    ) -> None: ...

    @abstractmethod
    async def set_wishlist_entry(
        self,
        user_id: str,
        product_id: str,
        member: bool,
        mutated_at: datetime,
    ) -> WishlistToggleRead: ...

    @abstractmethod
    async def lookup_promo_code(self, code: str) -> PromoRule | None: ...


class HttpRemoteStore(RemoteStore):
    """
    RemoteStore backed by the store API (see storefront.routers).

    Usage:

        store = HttpRemoteStore(token=access_token)
        try:
            collections = await store.fetch_collection(user_id)
        finally:
            await store.aclose()
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._client = httpx.AsyncClient(
            base_url=base_url or settings.STORE_BASE_URL,
            headers=headers,
            timeout=timeout if timeout is not None else settings.STORE_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # ---- reads ----

    async def fetch_collection(self, user_id: str) -> StoreCollections:
        response = await self._request("GET", f"/users/{user_id}/cart")
        return self._parse(StoreCollections, response)

    async def fetch_wishlist(self, user_id: str) -> list[WishlistEntryRead]:
        response = await self._request("GET", f"/users/{user_id}/wishlist")
        return self._parse(WishlistRead, response).items

    async def lookup_promo_code(self, code: str) -> PromoRule | None:
        try:
            response = await self._request("GET", f"/promo-codes/{quote(code, safe='')}")
        except NotFound:
            return None
        return self._parse(PromoRule, response)

    # ---- writes ----

    async def upsert_entry(
        self,
        user_id: str,
        key: str,
        collection: Collection,
        quantity: int | None,
        mutated_at: datetime,
    ) -> StoreEntry:
        product_id, variant_id = split_key(key)
        payload = CartEntryUpsert(
            product_id=product_id,
            variant_id=variant_id,
            collection=collection,
            quantity=quantity if collection == Collection.CART else None,
            mutated_at=mutated_at,
        )
        response = await self._request(
            "PUT",
            f"/users/{user_id}/cart/items",
            key=key,
            json=payload.model_dump(mode="json"),
        )
        return self._parse(StoreEntry, response)

    async def delete_entry(self, user_id: str, key: str, mutated_at: datetime) -> None:
        product_id, variant_id = split_key(key)
        params = {"mutated_at": mutated_at.isoformat()}
        if variant_id is not None:
            params["variant_id"] = variant_id
        await self._request(
            "DELETE",
            f"/users/{user_id}/cart/items/{product_id}",
            key=key,
            params=params,
        )

    async def set_wishlist_entry(
        self,
        user_id: str,
        product_id: str,
        member: bool,
        mutated_at: datetime,
    ) -> WishlistToggleRead:
        payload = WishlistMembershipUpdate(member=member, mutated_at=mutated_at)
        response = await self._request(
            "PUT",
            f"/users/{user_id}/wishlist/{product_id}",
            key=product_id,
            json=payload.model_dump(mode="json"),
        )
        return self._parse(WishlistToggleRead, response)

    # ---- internal helpers ----

    async def _request(
        self,
        method: str,
        url: str,
        key: str | None = None,
        **kwargs,
    ) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise NetworkFailure(f"Could not reach the store: {exc}", key=key) from exc

        if response.is_success:
            return response

        detail = _detail(response)
        message = detail.get("message") or response.reason_phrase

        if response.status_code == httpx.codes.NOT_FOUND:
            raise NotFound(message, key=key)
        if response.status_code == httpx.codes.CONFLICT:
            raise OutOfStock(message, available=int(detail.get("available", 0)), key=key)

        logger.warning("%s %s returned %s", method, url, response.status_code)
        raise NetworkFailure(message, key=key, status_code=response.status_code)

    @staticmethod
    def _parse(model, response: httpx.Response):
        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise NetworkFailure(f"Unexpected store response: {exc}") from exc


def _detail(response: httpx.Response) -> dict:
    """
    Pull FastAPI's `detail` out of an error body. String details become
    {"message": ...}.
    """
    try:
        body = response.json()
    except ValueError:
        return {}

    detail = body.get("detail") if isinstance(body, dict) else None
    if isinstance(detail, dict):
        return detail
    if isinstance(detail, str):
        return {"message": detail}
    return {}
