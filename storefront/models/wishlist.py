# storefront/models/wishlist.py
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class WishlistEntry(SQLModel, table=True):
    """
    Wishlist membership for (user, product). Rows are kept when a product
    leaves the wishlist (member=False) so stale writes can be detected.
    """

    __tablename__ = "wishlist_entries"

    user_id: str = Field(foreign_key="users.id", primary_key=True)
    product_id: str = Field(primary_key=True)

    member: bool = True

    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
