# storefront/services/wishlist_service.py
from fastapi import HTTPException, status
from sqlmodel import Session

from storefront.core.clock import as_utc, utc_now
from storefront.models.wishlist import WishlistEntry
from storefront.repositories.product_repo import ProductRepository
from storefront.repositories.wishlist_repo import WishlistRepository
from storefront.schemas.wishlist import (
    WishlistEntryRead,
    WishlistMembershipUpdate,
    WishlistRead,
    WishlistToggleRead,
)


class WishlistService:
    """
    Wishlist membership per (user, product).

    Writes send the desired membership, not a flip, and the newest
    mutation timestamp wins, so retried or reordered requests converge.
    """

    def __init__(self, wishlist_repo: WishlistRepository, product_repo: ProductRepository):
        self.wishlist_repo = wishlist_repo
        self.product_repo = product_repo

    def list_wishlist(self, session: Session, user_id: str) -> WishlistRead:
        return WishlistRead(
            items=[
                WishlistEntryRead(product_id=row.product_id, added_at=as_utc(row.updated_at))
                for row in self.wishlist_repo.list_members(session, user_id)
            ]
        )

    def set_membership(
        self,
        session: Session,
        user_id: str,
        product_id: str,
        payload: WishlistMembershipUpdate,
    ) -> WishlistToggleRead:
        if not self.product_repo.get_by_id(session, product_id):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"code": "not_found", "message": "Product not found"},
            )

        mutated_at = as_utc(payload.mutated_at or utc_now())
        entry = self.wishlist_repo.get(session, user_id, product_id)

        if entry is not None and as_utc(entry.updated_at) > mutated_at:
            return WishlistToggleRead(product_id=product_id, member=entry.member)

        if entry is None:
            entry = WishlistEntry(user_id=user_id, product_id=product_id)

        entry.member = payload.member
        entry.updated_at = mutated_at
        entry = self.wishlist_repo.save(session, entry)

        return WishlistToggleRead(product_id=product_id, member=entry.member)
