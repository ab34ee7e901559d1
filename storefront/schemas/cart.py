# storefront/schemas/cart.py
from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlmodel import SQLModel, Field

from storefront.core.identity import item_key


class Collection(str, Enum):
    """Which list an identity currently lives in. Never both."""

    CART = "cart"
    SAVED = "saved"


class CreatorSummary(SQLModel):
    """
    Denormalized seller info shown next to a line. Display only.
    """

    id: str = ""
    name: str = "Unknown"
    is_verified: bool = False


class ProductSnapshot(SQLModel):
    """
    Fields shared by cart lines, saved items and store entries.

    unit_price is snapshotted from the variant if present, else from the
    product; stock_available is refreshed from the same record.
    """

    product_id: str
    variant_id: str | None = None
    variant_name: str | None = None

    name: str
    unit_price: Decimal = Field(ge=0)
    stock_available: int = Field(default=0, ge=0)

    image: str | None = None
    slug: str | None = None
    creator: CreatorSummary | None = None

    # Set when the store reports zero stock; the line is kept, not deleted.
    out_of_stock: bool = False

    @property
    def key(self) -> str:
        return item_key(self.product_id, self.variant_id)


class LineItem(ProductSnapshot):
    """
    One cart line. quantity is always within [1, stock_available]
    unless the line is flagged out_of_stock.
    """

    quantity: int = Field(ge=1)


class SavedItem(ProductSnapshot):
    """
    Saved-for-later entry. Not purchase-quantity-bound, so no quantity.
    """


class CartSnapshot(SQLModel):
    """
    Read-only view of the client collections handed to page components.
    """

    cart_items: list[LineItem] = Field(default_factory=list)
    saved_items: list[SavedItem] = Field(default_factory=list)
    wishlist: list[str] = Field(default_factory=list)

    @property
    def cart_count(self) -> int:
        return sum(item.quantity for item in self.cart_items)


# ---- Store wire schemas ----


class CartEntryUpsert(SQLModel):
    """
    Payload for writing one identity into the cart or saved collection.

    The same call moves an identity between collections, since the store
    keeps a single row per identity.

    mutated_at is the client's mutation timestamp; the store ignores writes
    older than what it already holds.
    """

    product_id: str
    variant_id: str | None = None
    collection: Collection = Collection.CART
    quantity: int | None = Field(default=None, ge=1)
    mutated_at: datetime | None = None


class StoreEntry(ProductSnapshot):
    """
    Server-authoritative record for one identity.
    """

    collection: Collection
    quantity: int | None = None
    updated_at: datetime

    def to_local(self) -> LineItem | SavedItem:
        """Convert to the client-side model matching the collection."""
        data = self.model_dump(exclude={"collection", "quantity", "updated_at"})
        if self.collection == Collection.CART:
            return LineItem(**data, quantity=max(self.quantity or 1, 1))
        return SavedItem(**data)


class StoreCollections(SQLModel):
    """
    Full cart + saved collections for one user.
    """

    cart_items: list[StoreEntry] = Field(default_factory=list)
    saved_items: list[StoreEntry] = Field(default_factory=list)

    def entries(self) -> list[StoreEntry]:
        return [*self.cart_items, *self.saved_items]
