# storefront/schemas/wishlist.py
from datetime import datetime

from sqlmodel import SQLModel, Field


class WishlistEntryRead(SQLModel):
    """
    One wishlist membership fact.
    """

    product_id: str
    added_at: datetime


class WishlistRead(SQLModel):
    items: list[WishlistEntryRead] = Field(default_factory=list)


class WishlistMembershipUpdate(SQLModel):
    """
    Desired membership for one product. Writes older than the stored
    row are ignored, so replays and reordering converge.
    """

    member: bool
    mutated_at: datetime | None = None


class WishlistToggleRead(SQLModel):
    """
    Membership as the store holds it after a write.
    """

    product_id: str
    member: bool
