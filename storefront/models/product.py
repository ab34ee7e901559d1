# storefront/models/product.py
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlmodel import SQLModel, Field


class Product(SQLModel, table=True):
    """
    Catalog entry. Cart lines snapshot name, price and stock from here
    (or from the variant, when one is chosen).
    """

    __tablename__ = "products"

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        primary_key=True,
        index=True,
    )

    name: str = Field(
        max_length=100,
        min_length=1,
        index=True,
        description="Display name",
    )

    slug: str = Field(
        max_length=255,
        unique=True,
        index=True,
        description="URL-friendly identifier (unique)",
    )

    price: Decimal = Field(
        ge=0,
        max_digits=12,
        decimal_places=2,
        description="Unit price when no variant is chosen",
    )

    stock_on_hand: int = Field(
        default=0,
        ge=0,
        description="How many units currently in stock",
    )

    is_active: bool = Field(
        default=True,
        index=True,
        description="Inactive products cannot be added to a cart",
    )

    hero_image_url: str | None = None

    creator_id: str | None = None
    creator_name: str | None = None
    creator_verified: bool = False

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (UTC)",
    )


class ProductVariant(SQLModel, table=True):
    """
    A purchasable variant (size, flavour, ...) with its own price and stock.
    """

    __tablename__ = "product_variants"

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        primary_key=True,
        index=True,
    )

    product_id: str = Field(
        foreign_key="products.id",
        index=True,
    )

    name: str = Field(max_length=100)

    price: Decimal = Field(ge=0, max_digits=12, decimal_places=2)

    stock_on_hand: int = Field(default=0, ge=0)
