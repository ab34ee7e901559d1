"""Tests for the HTTP store adapter, against the real app and failing transports."""

import asyncio

import httpx
import pytest

from storefront.core.auth import create_access_token
from storefront.core.errors import NetworkFailure, NotFound, OutOfStock
from storefront.core.store_client import HttpRemoteStore
from storefront.main import app
from storefront.schemas.cart import Collection
from storefront.schemas.pricing import PromoKind
from storefront.services.cart_session import CartSession
from tests.helpers import T0, make_product

BASE_URL = "http://testserver/api/v1"


@pytest.fixture
def store_factory(seed_products):
    def _build(user_id: str = "user-1") -> HttpRemoteStore:
        return HttpRemoteStore(
            base_url=BASE_URL,
            token=create_access_token(user_id),
            transport=httpx.ASGITransport(app=app),
        )

    return _build


def _failing_store(handler) -> HttpRemoteStore:
    return HttpRemoteStore(base_url=BASE_URL, token="t", transport=httpx.MockTransport(handler))


class TestAgainstApp:
    def test_round_trip(self, store_factory):
        async def scenario():
            store = store_factory()
            try:
                entry = await store.upsert_entry("user-1", "cake-1:large", Collection.CART, 2, T0)
                assert entry.key == "cake-1:large"
                await store.upsert_entry("user-1", "cake-1", Collection.SAVED, None, T0)
                collections = await store.fetch_collection("user-1")

                await store.delete_entry("user-1", "cake-1:large", T0.replace(hour=13))
                after_delete = await store.fetch_collection("user-1")

                member = await store.set_wishlist_entry("user-1", "cake-2", True, T0)
                wishlist = await store.fetch_wishlist("user-1")
                promo = await store.lookup_promo_code("flat100")
                missing = await store.lookup_promo_code("NOPE")
            finally:
                await store.aclose()
            return collections, after_delete, member, wishlist, promo, missing

        collections, after_delete, member, wishlist, promo, missing = asyncio.run(scenario())
        assert [e.key for e in collections.cart_items] == ["cake-1:large"]
        assert [e.key for e in collections.saved_items] == ["cake-1"]
        assert after_delete.cart_items == []
        assert member.member is True
        assert [w.product_id for w in wishlist] == ["cake-2"]
        assert promo.kind == PromoKind.FLAT
        assert missing is None

    def test_conflict_maps_to_out_of_stock(self, store_factory):
        async def scenario():
            store = store_factory()
            try:
                await store.upsert_entry("user-1", "cake-1", Collection.CART, 9, T0)
            finally:
                await store.aclose()

        with pytest.raises(OutOfStock) as exc_info:
            asyncio.run(scenario())
        assert exc_info.value.available == 5
        assert exc_info.value.key == "cake-1"

    def test_missing_product_maps_to_not_found(self, store_factory):
        async def scenario():
            store = store_factory()
            try:
                await store.upsert_entry("user-1", "ghost", Collection.CART, 1, T0)
            finally:
                await store.aclose()

        with pytest.raises(NotFound):
            asyncio.run(scenario())

    def test_forbidden_maps_to_network_failure(self, store_factory):
        async def scenario():
            store = store_factory("user-2")
            try:
                await store.fetch_collection("user-1")
            finally:
                await store.aclose()

        with pytest.raises(NetworkFailure) as exc_info:
            asyncio.run(scenario())
        assert exc_info.value.status_code == 403

    def test_session_survives_a_new_login(self, store_factory, settings, clock):
        async def scenario():
            first = CartSession("user-1", store_factory(), settings=settings, clock=clock)
            first.add_item(make_product("cake-1", "50.00", stock=5), 2)
            first.toggle_wishlist("cake-2")
            await first.teardown()
            await first.store.aclose()

            second = CartSession("user-1", store_factory(), settings=settings, clock=clock)
            await second.hydrate()
            await second.store.aclose()
            return second

        second = asyncio.run(scenario())
        assert second.state.cart_quantity("cake-1") == 2
        assert second.snapshot.cart_items[0].creator.name == "Amy"
        assert second.snapshot.wishlist == ["cake-2"]


class TestTransportFailures:
    def test_connect_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async def scenario():
            store = _failing_store(handler)
            try:
                await store.fetch_wishlist("user-1")
            finally:
                await store.aclose()

        with pytest.raises(NetworkFailure):
            asyncio.run(scenario())

    def test_server_error(self):
        async def scenario():
            store = _failing_store(lambda request: httpx.Response(503, text="maintenance"))
            try:
                await store.delete_entry("user-1", "cake-1", T0)
            finally:
                await store.aclose()

        with pytest.raises(NetworkFailure) as exc_info:
            asyncio.run(scenario())
        assert exc_info.value.status_code == 503

    def test_malformed_body(self):
        async def scenario():
            store = _failing_store(lambda request: httpx.Response(200, json={"unexpected": True}))
            try:
                await store.upsert_entry("user-1", "cake-1", Collection.CART, 1, T0)
            finally:
                await store.aclose()

        with pytest.raises(NetworkFailure):
            asyncio.run(scenario())

    def test_hydrate_reports_failure_instead_of_raising(self, settings):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async def scenario():
            session = CartSession("user-1", _failing_store(handler), settings=settings)
            ok = await session.hydrate()
            await session.store.aclose()
            return ok, session

        ok, session = asyncio.run(scenario())
        assert ok is False
        assert not session.hydrated
        assert isinstance(session.last_failure, NetworkFailure)

    def test_failed_write_rolls_back_through_session(self, settings):
        async def scenario():
            store = _failing_store(lambda request: httpx.Response(500))
            session = CartSession("user-1", store, settings=settings)
            session.add_item(make_product("cake-1"), 1)
            await session.wait_idle()
            await store.aclose()
            return session

        session = asyncio.run(scenario())
        assert session.snapshot.cart_items == []
        assert isinstance(session.last_failure, NetworkFailure)

    def test_promo_code_is_escaped_in_path(self):
        seen = []

        def handler(request):
            seen.append(request.url.raw_path)
            return httpx.Response(404, json={"detail": {"code": "invalid_promo_code"}})

        async def scenario():
            store = _failing_store(handler)
            try:
                return await store.lookup_promo_code("A/B?#1")
            finally:
                await store.aclose()

        assert asyncio.run(scenario()) is None
        assert seen == [b"/api/v1/promo-codes/A%2FB%3F%231"]
