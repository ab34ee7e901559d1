# storefront/models/cart.py
import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field, UniqueConstraint

from storefront.schemas.cart import Collection


class CartEntry(SQLModel, table=True):
    """
    One row per (user, item identity), covering both the cart and the
    saved-for-later list.

    - collection says which list the identity is in; NULL means the
      identity was removed (tombstone kept so older writes cannot
      resurrect it)
    - quantity is only set for cart rows
    - updated_at is the client mutation timestamp of the winning write
    """

    __tablename__ = "cart_entries"
    __table_args__ = (UniqueConstraint("user_id", "item_key"),)

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        primary_key=True,
    )

    user_id: str = Field(
        foreign_key="users.id",
        index=True,
    )

    item_key: str = Field(index=True)

    product_id: str = Field(foreign_key="products.id", index=True)
    variant_id: str | None = Field(default=None, foreign_key="product_variants.id")

    collection: Collection | None = Field(default=None)
    quantity: int | None = Field(default=None, ge=1)

    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
