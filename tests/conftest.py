import os

os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ["DATABASE_URL"] = "sqlite://"

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel

from storefront.core.auth import create_access_token
from storefront.core.config import Settings
from storefront.core.local_store import InMemoryRemoteStore
from storefront.database import engine
from storefront.main import app
from storefront.models.product import Product, ProductVariant
from storefront.repositories.promo_repo import PromoRepository
from storefront.services.promo_service import PromoService
from storefront.services.promo_validator import DEFAULT_PROMO_RULES
from tests.helpers import GatedStore, TickingClock, make_product


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def settings():
    return Settings(
        JWT_SECRET="test-secret",
        REVALIDATE_INTERVAL_SECONDS=0,
        REVALIDATE_DEDUPE_SECONDS=0,
    )


@pytest.fixture
def catalog():
    return [
        make_product("cake-1", "50.00", stock=10),
        make_product("cake-2", "12.50", stock=2),
        make_product("cake-3", "8.00", stock=0),
        make_product("cake-1", "65.00", stock=3, variant_id="large"),
    ]


@pytest.fixture
def memory_store(catalog):
    return InMemoryRemoteStore(catalog)


@pytest.fixture
def gated_store(catalog):
    return GatedStore(catalog)


# ---- store API ----


@pytest.fixture
def db():
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        PromoService(PromoRepository()).seed_defaults(session, DEFAULT_PROMO_RULES)
        yield session


@pytest.fixture
def seed_products(db):
    db.add(
        Product(
            id="cake-1",
            name="Strawberry Cake",
            slug="strawberry-cake",
            price=Decimal("50.00"),
            stock_on_hand=5,
            creator_name="Amy",
            creator_verified=True,
        )
    )
    db.add(Product(id="cake-2", name="Lemon Tart", slug="lemon-tart", price=Decimal("12.50"), stock_on_hand=0))
    db.add(Product(id="cake-9", name="Retired Cake", slug="retired-cake", price=Decimal("9.00"), stock_on_hand=4, is_active=False))
    db.add(ProductVariant(id="large", product_id="cake-1", name="Large", price=Decimal("65.00"), stock_on_hand=2))
    db.commit()


@pytest.fixture
def client(db):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    def _headers(user_id: str = "user-1") -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id, email=f'{user_id}@example.com')}"}

    return _headers
